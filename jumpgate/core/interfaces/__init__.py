"""
Core interfaces defining the contracts between gate components.
"""

from .lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .credentials import ICredentialStore

__all__ = [
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "ICredentialStore",
]
