"""
Credential store selection.
"""

from ..config.models import CredentialStoreConfig
from ...core.interfaces.credentials import ICredentialStore
from .file import FileCredentialStore
from .sql import SQLCredentialStore


def create_credential_store(config: CredentialStoreConfig) -> ICredentialStore:
    """Build the credential store named by ``config.backend``."""
    backend = config.backend.lower()

    if backend == "file":
        return FileCredentialStore(config.path)
    if backend == "sql":
        if not config.url:
            raise ValueError("The sql credential store requires a url")
        return SQLCredentialStore(config.url)

    raise ValueError(f"Unknown credential store backend: {config.backend}")
