"""
Jumpgate - SSH bastion with per-target credential mediation.

Callers log in as ``user%target`` with a public key. The gate checks the
key against its ACL, logs in to the target with credentials it holds
itself, pinning the target's host key, and relays every channel between
the two connections.
"""

__version__ = "0.1.0"

# Public API exports
from .core.exceptions import (
    BastionError,
    SessionError,
    AuthFormatError,
    CredentialLookupError,
    AccessDeniedError,
    HostKeyMismatchError,
    DialError,
    ChannelError,
    ChannelSetupError,
    RelayIOError,
    NotFoundError,
    CredentialStoreError,
)
from .core.interfaces.lifecycle import IStartable, IStoppable, IHealthCheckable, IComponent
from .core.interfaces.credentials import ICredentialStore
from .core.domain.session import Principal, Session

__all__ = [
    "BastionError",
    "SessionError",
    "AuthFormatError",
    "CredentialLookupError",
    "AccessDeniedError",
    "HostKeyMismatchError",
    "DialError",
    "ChannelError",
    "ChannelSetupError",
    "RelayIOError",
    "NotFoundError",
    "CredentialStoreError",
    "IStartable",
    "IStoppable",
    "IHealthCheckable",
    "IComponent",
    "ICredentialStore",
    "Principal",
    "Session",
]
