"""
Exception hierarchy for the jump gate.

Session errors are fatal to one mediated connection pair; channel errors
only ever end a single relayed channel.
"""

from typing import Optional


class BastionError(Exception):
    """Base exception for all jump gate errors."""
    pass


class SessionError(BastionError):
    """Raised when a mediated connection pair must be torn down."""
    pass


class AuthFormatError(SessionError):
    """Inbound username does not encode ``user%target``."""

    def __init__(self, message: str, username: Optional[str] = None):
        self.username = username
        super().__init__(message)


class CredentialLookupError(SessionError):
    """The target's password could not be fetched during the handshake."""
    pass


class AccessDeniedError(SessionError):
    """The ACL does not allow this key to reach the requested target."""

    def __init__(self, message: str, fingerprint: Optional[str] = None,
                 target: Optional[str] = None):
        self.fingerprint = fingerprint
        self.target = target
        super().__init__(message)


class HostKeyMismatchError(SessionError):
    """The target offered a host key other than the pinned one."""

    def __init__(self, message: str, target: Optional[str] = None,
                 expected: Optional[str] = None, offered: Optional[str] = None):
        self.target = target
        self.expected = expected
        self.offered = offered
        super().__init__(message)


class DialError(SessionError):
    """The outbound connection to the target could not be established."""
    pass


class ChannelError(BastionError):
    """Base exception for failures scoped to a single channel."""
    pass


class ChannelSetupError(ChannelError):
    """A channel could not be accepted inbound or opened outbound."""
    pass


class RelayIOError(ChannelError):
    """A relayed channel failed while moving data or requests."""
    pass


class NotFoundError(BastionError):
    """A credential store lookup returned no row."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"no {kind} for {key!r}")


class CredentialStoreError(BastionError):
    """The credential store backend failed to answer a query."""
    pass
