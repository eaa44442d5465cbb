"""
Connection supervisor.

One supervisor task owns one authenticated inbound connection: it enforces
the ACL, dials the target and then dispatches a channel relay for every
channel the caller opens until the caller goes away.
"""

import asyncio
from typing import Any, Optional, Set

import asyncssh
from loguru import logger

from ....core.domain.session import SESSION_CHANNEL, GlobalRequest, Session
from ....core.exceptions import (
    AccessDeniedError,
    ChannelSetupError,
    CredentialLookupError,
    CredentialStoreError,
    NotFoundError,
)
from ....core.interfaces.credentials import ICredentialStore
from ...config.models import UpstreamConfig
from .gate import ChannelOffer, GateServer
from .outbound import dial_target
from .relay import ChannelRelay, RelayGroup


class ConnectionSupervisor:
    """Mediates one inbound connection end to end."""

    def __init__(self, store: ICredentialStore,
                 upstream: Optional[UpstreamConfig] = None) -> None:
        self._store = store
        self._upstream = upstream or UpstreamConfig()

    async def handle(self, conn: asyncssh.SSHServerConnection) -> None:
        """
        Run the session for an inbound connection that finished its handshake.

        Returns once the caller has no more channels or requests and every
        relay has finished. The outbound connection is always closed on
        return; closing ``conn`` is left to the caller.

        Raises:
            SessionError: Any connection-fatal failure.
        """
        gate: GateServer = conn.get_owner()
        session = gate.session
        log = logger.bind(session=session.session_id)
        relays = RelayGroup(session.session_id)
        target_conn: Optional[asyncssh.SSHClientConnection] = None

        try:
            await self._authorize(session)
            log.info(f"ACL allows {session.key_fingerprint} to reach {session.target}")

            target_conn = await dial_target(
                session, self._store, self._upstream,
                on_lost=lambda exc: conn.close())
            log.info(f"Connected to {session.target} as {session.user!r}")

            await self._relay_loop(gate, target_conn, relays, log)
            log.info(
                f"Session ending after {relays.started} channel(s)")
        finally:
            if target_conn is not None:
                target_conn.close()
                await target_conn.wait_closed()
            await relays.join()
            session.wipe()

    async def _authorize(self, session: Session) -> None:
        if not session.authenticated or session.key_fingerprint is None:
            raise CredentialLookupError(
                f"session {session.session_id} has no authenticated key")

        target = session.target or ""
        try:
            allowed = await self._store.is_authorized(session.key_fingerprint, target)
        except NotFoundError:
            raise AccessDeniedError(
                f"acl has no entry for key {session.key_fingerprint!r} "
                f"and {target!r}",
                fingerprint=session.key_fingerprint, target=target) from None
        except CredentialStoreError as e:
            raise AccessDeniedError(
                f"cannot check ACL for {target!r}: {e}",
                fingerprint=session.key_fingerprint, target=target) from e

        if not allowed:
            raise AccessDeniedError(
                f"acl rejects key {session.key_fingerprint!r} "
                f"from connecting to {target!r}",
                fingerprint=session.key_fingerprint, target=target)

    async def _relay_loop(self, gate: GateServer, target_conn: Any,
                          relays: RelayGroup, log: Any) -> None:
        channels_done = False
        requests_done = False
        next_offer: Optional['asyncio.Task[Optional[ChannelOffer]]'] = None
        next_request: Optional['asyncio.Task[Optional[GlobalRequest]]'] = None

        try:
            while not (channels_done and requests_done):
                if not channels_done and next_offer is None:
                    next_offer = asyncio.ensure_future(gate.channel_offers.next())
                if not requests_done and next_request is None:
                    next_request = asyncio.ensure_future(gate.global_requests.next())

                waiting: Set['asyncio.Future[Any]'] = {
                    t for t in (next_offer, next_request) if t is not None}
                done, _ = await asyncio.wait(
                    waiting, return_when=asyncio.FIRST_COMPLETED)

                if next_offer is not None and next_offer in done:
                    offer = next_offer.result()
                    next_offer = None
                    if offer is None:
                        log.info("No more channels")
                        channels_done = True
                    else:
                        await self._dispatch(offer, gate, target_conn, relays, log)

                if next_request is not None and next_request in done:
                    request = next_request.result()
                    next_request = None
                    if request is None:
                        log.info("No more requests")
                        requests_done = True
                    else:
                        log.info(
                            f"Global request {request.request_type} "
                            f"{request.payload} refused")
        finally:
            for task in (next_offer, next_request):
                if task is not None and not task.done():
                    task.cancel()

    async def _dispatch(self, offer: ChannelOffer, gate: GateServer,
                        target_conn: Any, relays: RelayGroup, log: Any) -> None:
        label = f"{offer.channel_type}#{relays.started + 1}"
        log.info(f"New channel {label} extra data {offer.extra_data}")

        if gate.closed:
            offer.reject("Connection closed")
            return

        relay: Optional[ChannelRelay] = None
        try:
            relay = ChannelRelay(offer.channel_type, offer.extra_data, target_conn,
                                 label=label, session_id=gate.session.session_id)
            if offer.channel_type != SESSION_CHANNEL:
                await relay.open_outbound()
            offer.accept(relay.inbound)
        except ChannelSetupError as e:
            log.error(f"Failed to set up channel: {e}")
            offer.reject(str(e))
            if relay is not None:
                relay.abort()
            return

        relays.spawn(relay)
