"""
Application layer: builds the gate's components from configuration and
manages their lifecycle.
"""

from .startup import ApplicationStartup

__all__ = [
    "ApplicationStartup",
]
