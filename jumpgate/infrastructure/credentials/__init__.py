"""
Credential store implementations.
"""

from .memory import InMemoryCredentialStore
from .file import FileCredentialStore
from .sql import SQLCredentialStore, metadata
from .factory import create_credential_store

__all__ = [
    "InMemoryCredentialStore",
    "FileCredentialStore",
    "SQLCredentialStore",
    "create_credential_store",
    "metadata",
]
