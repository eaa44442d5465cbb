"""
Session domain models.

A session is one mediated connection pair: the inbound connection from the
caller and the outbound connection the gate dials on its behalf.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from ..exceptions import AuthFormatError, CredentialLookupError, DialError, SessionError

USERNAME_DELIMITER = "%"
DEFAULT_SSH_PORT = 22

# Channel types relayed between the two legs
SESSION_CHANNEL = "session"
DIRECT_TCPIP_CHANNEL = "direct-tcpip"
DIRECT_STREAMLOCAL_CHANNEL = "direct-streamlocal@openssh.com"

# Global request types the inbound leg may observe
TCPIP_FORWARD_REQUEST = "tcpip-forward"
STREAMLOCAL_FORWARD_REQUEST = "streamlocal-forward@openssh.com"


@dataclass(frozen=True)
class Principal:
    """The ``user`` and ``target`` encoded in an inbound username."""

    user: str
    target: str

    @classmethod
    def parse(cls, username: str) -> 'Principal':
        """
        Split ``<user>%<target>`` on the first delimiter.

        Raises:
            AuthFormatError: If the delimiter is missing or a field is empty.
        """
        user, sep, target = username.partition(USERNAME_DELIMITER)
        if not sep:
            raise AuthFormatError(
                f"username has wrong format: {username!r}", username)
        if not user or not target:
            raise AuthFormatError(
                f"username has an empty user or target: {username!r}", username)
        return cls(user=user, target=target)


def split_target(target: str) -> Tuple[str, int]:
    """
    Split a ``host:port`` target into a dial address.

    IPv6 literals must be bracketed (``[::1]:22``). A target without a port
    dials the standard SSH port.
    """
    if target.startswith("["):
        host, sep, rest = target[1:].partition("]")
        if not sep:
            raise DialError(f"unterminated IPv6 literal in target {target!r}")
        port_str = rest[1:] if rest.startswith(":") else ""
    elif target.count(":") == 1:
        host, _, port_str = target.partition(":")
    else:
        host, port_str = target, ""

    if not host:
        raise DialError(f"target has no host: {target!r}")
    if not port_str:
        return host, DEFAULT_SSH_PORT

    try:
        port = int(port_str)
    except ValueError:
        raise DialError(f"target has an invalid port: {target!r}")
    if not (1 <= port <= 65535):
        raise DialError(f"target port out of range: {target!r}")
    return host, port


@dataclass(frozen=True)
class GlobalRequest:
    """A connection-scoped request observed on the inbound leg."""

    request_type: str
    payload: Tuple[Any, ...] = ()
    received_at: float = field(default_factory=time.time)


@dataclass
class Session:
    """
    State of one mediated connection pair.

    The principal is rebound on every public-key attempt during the
    handshake and frozen by ``seal()`` once authentication completes. The
    target password lives here only until ``wipe()``.
    """

    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    peer: str = ""
    principal: Optional[Principal] = None
    key_fingerprint: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    authenticated: bool = False
    outbound: Optional[Any] = field(default=None, repr=False)
    created_at: float = field(default_factory=time.time)

    @property
    def user(self) -> Optional[str]:
        return self.principal.user if self.principal else None

    @property
    def target(self) -> Optional[str]:
        return self.principal.target if self.principal else None

    def bind(self, principal: Principal, key_fingerprint: str, password: str) -> None:
        """Record the identity and credentials of a public-key attempt."""
        if self.authenticated:
            raise SessionError(
                f"session {self.session_id} is already authenticated "
                f"as {self.principal}")
        self.principal = principal
        self.key_fingerprint = key_fingerprint
        self.password = password

    def seal(self) -> None:
        """Freeze the principal after a successful handshake."""
        if self.principal is None or self.key_fingerprint is None:
            raise CredentialLookupError(
                f"session {self.session_id} authenticated without a recorded key")
        self.authenticated = True

    def kbdint_answers(self, questions: Sequence[str]) -> List[str]:
        """Answer every keyboard-interactive question with the target password."""
        if self.password is None:
            raise CredentialLookupError(
                f"no password held for session {self.session_id}")
        return [self.password for _ in questions]

    def wipe(self) -> None:
        """Drop the held password and outbound handle."""
        self.password = None
        self.outbound = None
