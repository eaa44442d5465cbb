"""
Outbound leg of a mediated connection.

The gate logs in to the target as the parsed ``user`` with the password it
fetched during the inbound handshake. The target's host key must match the
pinned fingerprint exactly; there is no trust-on-first-use path and no
local keys, agent or known_hosts file is consulted.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import asyncssh
from loguru import logger

from ....core.domain.session import Session, split_target
from ....core.exceptions import (
    CredentialStoreError,
    DialError,
    HostKeyMismatchError,
    NotFoundError,
)
from ....core.interfaces.credentials import ICredentialStore
from ...config.models import UpstreamConfig

PREFERRED_AUTH = "password,keyboard-interactive"


class TargetClient(asyncssh.SSHClient):
    """
    Client-side callbacks for the connection to the target.

    Password and keyboard-interactive answers come from the session and are
    each offered once, so a wrong password ends the dial instead of looping.
    """

    def __init__(self, session: Session, pinned_fingerprint: str,
                 on_lost: Optional[Callable[[Optional[Exception]], None]] = None):
        self.session = session
        self.pinned_fingerprint = pinned_fingerprint
        self.offered_fingerprint: Optional[str] = None
        self._on_lost = on_lost
        self._password_sent = False
        self._kbdint_started = False
        self._log = logger.bind(session=session.session_id)

    def validate_host_public_key(self, host: str, addr: str, port: int,
                                 key: asyncssh.SSHKey) -> bool:
        fingerprint = key.get_fingerprint()
        self._log.info(f"Host key {host}:{port}: {fingerprint}")

        if fingerprint != self.pinned_fingerprint:
            self.offered_fingerprint = fingerprint
            self._log.warning(
                f"Host key mismatch for {host}:{port}: "
                f"pinned {self.pinned_fingerprint}, offered {fingerprint}")
            return False

        return True

    def password_auth_requested(self) -> Optional[str]:
        if self._password_sent or self.session.password is None:
            return None

        self._password_sent = True
        return self.session.password

    def kbdint_auth_requested(self) -> Optional[str]:
        if self._kbdint_started or self.session.password is None:
            return None

        self._kbdint_started = True
        return ''

    def kbdint_challenge_received(self, name: str, instructions: str, lang: str,
                                  prompts: Sequence[Tuple[str, bool]]) -> Optional[List[str]]:
        return self.session.kbdint_answers([prompt for prompt, _ in prompts])

    def auth_completed(self) -> None:
        self._log.info(
            f"Logged in to {self.session.target} as {self.session.user!r}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            self._log.info(f"Outbound connection lost: {exc}")
        else:
            self._log.debug("Outbound connection closed")

        if self._on_lost:
            self._on_lost(exc)


async def dial_target(
    session: Session,
    store: ICredentialStore,
    config: Optional[UpstreamConfig] = None,
    on_lost: Optional[Callable[[Optional[Exception]], None]] = None,
) -> asyncssh.SSHClientConnection:
    """
    Open the outbound connection for an authenticated session.

    Raises:
        HostKeyMismatchError: If no key is pinned for the target or the
            target offers a different one.
        DialError: On any network, protocol or authentication failure.
    """
    config = config or UpstreamConfig()
    target = session.target
    if target is None or session.user is None:
        raise DialError("session has no target to dial")

    host, port = split_target(target)

    try:
        pinned = await store.pinned_host_key_fingerprint(target)
    except NotFoundError:
        raise HostKeyMismatchError(
            f"no host key pinned for {target!r}", target=target) from None
    except CredentialStoreError as e:
        raise DialError(f"cannot fetch host key for {target!r}: {e}") from e

    client: Optional[TargetClient] = None

    def client_factory() -> TargetClient:
        nonlocal client
        client = TargetClient(session, pinned, on_lost)
        return client

    options: Dict[str, Any] = {
        'username': session.user,
        'known_hosts': ([], [], []),
        'client_keys': None,
        'agent_path': None,
        'config': None,
        'preferred_auth': PREFERRED_AUTH,
        'client_version': config.client_version,
    }
    if config.keepalive_interval:
        options['keepalive_interval'] = config.keepalive_interval

    try:
        conn, _ = await asyncssh.create_connection(
            client_factory, host, port, **options)
    except (asyncssh.Error, OSError) as e:
        if client is not None and client.offered_fingerprint is not None:
            raise HostKeyMismatchError(
                f"host key mismatch for {target!r}", target=target,
                expected=pinned, offered=client.offered_fingerprint) from e
        raise DialError(f"cannot connect to {target!r}: {e}") from e

    session.outbound = conn
    return conn
