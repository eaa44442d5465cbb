"""
Inbound leg of a mediated connection.

``GateServer`` is the per-connection ``asyncssh.SSHServer``. It runs the
public-key handshake against the credential store and turns channel opens
and global requests from the caller into two event streams that the
connection supervisor drains.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, List, Optional, Tuple

import asyncssh
from loguru import logger

from ....core.domain.session import (
    DIRECT_STREAMLOCAL_CHANNEL,
    DIRECT_TCPIP_CHANNEL,
    SESSION_CHANNEL,
    STREAMLOCAL_FORWARD_REQUEST,
    TCPIP_FORWARD_REQUEST,
    GlobalRequest,
    Principal,
    Session,
)
from ....core.domain.streams import EventStream
from ....core.exceptions import (
    AuthFormatError,
    ChannelSetupError,
    CredentialLookupError,
    CredentialStoreError,
    NotFoundError,
)
from ....core.interfaces.credentials import ICredentialStore


@dataclass
class ChannelOffer:
    """
    A channel the caller asked to open, awaiting a decision.

    asyncssh holds the open request until ``future`` resolves: to the
    session object handling the inbound end when accepted, or to a
    ``ChannelOpenError`` when refused.
    """

    channel_type: str
    extra_data: Tuple[Any, ...] = ()
    future: 'asyncio.Future[Any]' = field(
        default_factory=lambda: asyncio.get_running_loop().create_future())

    @property
    def pending(self) -> bool:
        return not self.future.done()

    def accept(self, handler: Any) -> None:
        if self.future.done():
            raise ChannelSetupError(
                f"{self.channel_type} channel offer is no longer pending")
        self.future.set_result(handler)

    def reject(self, reason: str,
               code: int = asyncssh.OPEN_CONNECT_FAILED) -> None:
        if not self.future.done():
            self.future.set_exception(asyncssh.ChannelOpenError(code, reason))

    async def wait(self) -> Any:
        return await self.future


class GateServer(asyncssh.SSHServer):
    """
    Authentication capability and event source for one inbound connection.

    Every public-key attempt re-parses the username and fetches the target
    password; the last successful attempt is the one bound to the session.
    The key is only recorded here, ACL enforcement happens after the
    handshake completes.
    """

    def __init__(self, store: ICredentialStore, session: Optional[Session] = None):
        self.store = store
        self.session = session or Session()
        self.channel_offers: EventStream[ChannelOffer] = EventStream("channels")
        self.global_requests: EventStream[GlobalRequest] = EventStream("requests")
        self.conn: Optional[asyncssh.SSHServerConnection] = None
        self.auth_error: Optional[Exception] = None
        self._offers: List[ChannelOffer] = []
        self._log = logger.bind(session=self.session.session_id)

    @property
    def log(self) -> Any:
        return self._log

    @property
    def closed(self) -> bool:
        return self.channel_offers.closed

    def connection_made(self, conn: asyncssh.SSHServerConnection) -> None:
        self.conn = conn
        peer = conn.get_extra_info('peername')
        if peer:
            self.session.peer = f"{peer[0]}:{peer[1]}"
        self._log.info(f"Connection from {self.session.peer or 'unknown peer'}")

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc:
            self._log.info(f"Inbound connection lost: {exc}")
        else:
            self._log.debug("Inbound connection closed")

        self.channel_offers.close()
        self.global_requests.close()

        for offer in self._offers:
            offer.reject("Connection closed")
        self._offers.clear()

    def begin_auth(self, username: str) -> bool:
        return True

    def public_key_auth_supported(self) -> bool:
        return True

    async def validate_public_key(self, username: str, key: asyncssh.SSHKey) -> bool:
        fingerprint = key.get_fingerprint()
        self._log.info(
            f"Pubkey attempt by {username!r} from {self.session.peer}: {fingerprint}")

        try:
            principal = Principal.parse(username)
        except AuthFormatError as e:
            self.auth_error = e
            self._log.warning(str(e))
            return False

        try:
            password = await self.store.password_for(principal.target)
        except (NotFoundError, CredentialStoreError) as e:
            self.auth_error = CredentialLookupError(
                f"cannot fetch password for {principal.target!r}: {e}")
            self._log.warning(str(self.auth_error))
            return False

        self.session.bind(principal, fingerprint, password)
        return True

    def auth_completed(self) -> None:
        self.session.seal()
        self.auth_error = None
        self._log.info(
            f"Authenticated {self.session.user!r} for {self.session.target!r} "
            f"with key {self.session.key_fingerprint}")

    def session_requested(self) -> Awaitable[Any]:
        return self._offer(SESSION_CHANNEL)

    def connection_requested(self, dest_host: str, dest_port: int,
                             orig_host: str, orig_port: int) -> Awaitable[Any]:
        return self._offer(DIRECT_TCPIP_CHANNEL,
                           (dest_host, dest_port, orig_host, orig_port))

    def unix_connection_requested(self, dest_path: str) -> Awaitable[Any]:
        return self._offer(DIRECT_STREAMLOCAL_CHANNEL, (dest_path,))

    def server_requested(self, listen_host: str, listen_port: int) -> bool:
        self.global_requests.put(
            GlobalRequest(TCPIP_FORWARD_REQUEST, (listen_host, listen_port)))
        return False

    def unix_server_requested(self, listen_path: str) -> bool:
        self.global_requests.put(
            GlobalRequest(STREAMLOCAL_FORWARD_REQUEST, (listen_path,)))
        return False

    def _offer(self, channel_type: str,
               extra_data: Tuple[Any, ...] = ()) -> Awaitable[Any]:
        offer = ChannelOffer(channel_type, extra_data)
        self._offers = [o for o in self._offers if o.pending]
        if self.channel_offers.put(offer):
            self._offers.append(offer)
        else:
            offer.reject("Connection is closing")
        return offer.wait()
