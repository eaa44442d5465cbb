"""
Configuration loading and validation for the gate.
"""

from .models import (
    ApplicationConfig,
    CredentialStoreConfig,
    LoggingConfig,
    ServerConfig,
    UpstreamConfig,
)
from .loader import ConfigLoader

__all__ = [
    "ApplicationConfig",
    "CredentialStoreConfig",
    "LoggingConfig",
    "ServerConfig",
    "UpstreamConfig",
    "ConfigLoader",
]
