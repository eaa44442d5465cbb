"""
Channel relay between the inbound and outbound legs.

A ``ChannelRelay`` owns one inbound channel and the matching channel it
opens on the target connection. Each end is a *leg*: an asyncssh session
object whose callbacks push data, EOF and channel requests into the
opposite leg.

Operations aimed at a leg whose channel is not open yet are queued and
the source leg stops reading until they are flushed. Once both channels
are open, each leg keeps a zero-size write buffer so a full send window
pauses reading on the opposite leg until it drains.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import asyncssh
from loguru import logger

from ....core.domain.session import (
    DIRECT_STREAMLOCAL_CHANNEL,
    DIRECT_TCPIP_CHANNEL,
    SESSION_CHANNEL,
)
from ....core.exceptions import ChannelError, ChannelSetupError, RelayIOError

ChannelOp = Callable[[Any], None]


class Leg:
    """One end of a relayed channel."""

    side = "leg"

    def __init__(self, relay: 'ChannelRelay') -> None:
        self.relay = relay
        self.chan: Optional[Any] = None
        self._pending: List[ChannelOp] = []
        self._drained = asyncio.Event()
        self._drained.set()
        self._closed = asyncio.Event()
        self._reading_paused = False

    @property
    def peer(self) -> 'Leg':
        return self.relay.peer_of(self)

    @property
    def is_open(self) -> bool:
        return self.chan is not None and not self._closed.is_set()

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    # asyncssh session callbacks

    def connection_made(self, chan: Any) -> None:
        self.chan = chan
        chan.set_write_buffer_limits(0, 0)
        self._flush_pending()

    def data_received(self, data: bytes, datatype: Optional[int]) -> None:
        self.peer.submit(lambda chan: chan.write(data, datatype))

    def eof_received(self) -> bool:
        self.peer.submit(lambda chan: chan.write_eof())
        return True

    def pause_writing(self) -> None:
        self._drained.clear()
        self.peer.pause_reading()

    def resume_writing(self) -> None:
        self._drained.set()
        self.peer.resume_reading()

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._closed.set()
        self._drained.set()
        self._pending.clear()
        self.relay.leg_closed(self, exc)

    # Relay side

    def submit(self, op: ChannelOp) -> None:
        """Apply ``op`` to this leg's channel, queueing it until open."""
        if self._closed.is_set():
            return

        if self.chan is None:
            if not self._pending:
                self.peer.pause_reading()
            self._pending.append(op)
            return

        self._apply(op)

    def pause_reading(self) -> None:
        if self.chan is not None and not self._reading_paused:
            self._reading_paused = True
            self.chan.pause_reading()

    def resume_reading(self) -> None:
        if self.chan is not None and self._reading_paused:
            self._reading_paused = False
            self.chan.resume_reading()

    async def drain(self) -> None:
        await self._drained.wait()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def close(self) -> None:
        if self.chan is None:
            self._closed.set()
            self._pending.clear()
        elif not self._closed.is_set():
            self.chan.close()

    def _flush_pending(self) -> None:
        if not self._pending:
            return

        pending, self._pending = self._pending, []
        for op in pending:
            if not self._apply(op):
                return
        if self._drained.is_set():
            self.peer.resume_reading()

    def _apply(self, op: ChannelOp) -> bool:
        try:
            op(self.chan)
        except (OSError, asyncssh.Error) as e:
            self.relay.fail(RelayIOError(
                f"{self.relay.label}: write to {self.side} failed: {e}"))
            return False
        return True


class InboundSessionLeg(Leg, asyncssh.SSHServerSession):
    """Caller end of a session channel."""

    side = "inbound"

    def __init__(self, relay: 'ChannelRelay') -> None:
        super().__init__(relay)
        self.pty: Optional[Tuple[str, Tuple[int, int, int, int], Dict[int, int]]] = None
        self.command: Optional[str] = None
        self.subsystem: Optional[str] = None
        self.exit_status: Optional[int] = None
        self.exit_signal: Optional[Tuple[str, bool, str, str]] = None

    def pty_requested(self, term_type: str, term_size: Tuple[int, int, int, int],
                      term_modes: Dict[int, int]) -> bool:
        self.pty = (term_type, term_size, dict(term_modes))
        return True

    def shell_requested(self) -> bool:
        return True

    def exec_requested(self, command: str) -> bool:
        self.command = command
        return True

    def subsystem_requested(self, subsystem: str) -> bool:
        self.subsystem = subsystem
        return True

    def session_started(self) -> None:
        self.relay.start_outbound()

    def terminal_size_changed(self, width: int, height: int,
                              pixwidth: int, pixheight: int) -> None:
        self.peer.submit(
            lambda chan: chan.change_terminal_size(width, height, pixwidth, pixheight))

    def break_received(self, msec: int) -> bool:
        self.peer.submit(lambda chan: chan.send_break(msec))
        return True

    def signal_received(self, signal: str) -> None:
        self.peer.submit(lambda chan: chan.send_signal(signal))

    def environment(self) -> Dict[str, str]:
        if self.chan is None:
            return {}
        return dict(self.chan.get_environment())

    async def finish(self) -> None:
        """Report how the target's process ended, then close."""
        if self.chan is None or self.is_closed:
            return

        await self.drain()
        try:
            if self.exit_signal is not None:
                self.chan.exit_with_signal(*self.exit_signal)
            elif self.exit_status is not None:
                self.chan.exit(self.exit_status)
        except (OSError, asyncssh.Error) as e:
            self.relay.log.debug(f"{self.relay.label}: cannot report exit: {e}")
        self.close()


class OutboundSessionLeg(Leg, asyncssh.SSHClientSession):
    """Target end of a session channel."""

    side = "outbound"

    def exit_status_received(self, status: int) -> None:
        self.relay.inbound.exit_status = status

    def exit_signal_received(self, signal: str, core_dumped: bool,
                             msg: str, lang: str) -> None:
        self.relay.inbound.exit_signal = (signal, core_dumped, msg, lang)

    def xon_xoff_requested(self, client_can_do: bool) -> None:
        self.peer.submit(lambda chan: chan.set_xon_xoff(client_can_do))


class StreamLeg(Leg, asyncssh.SSHTCPSession):
    """Either end of a direct-tcpip or direct-streamlocal channel."""

    def __init__(self, relay: 'ChannelRelay', side: str) -> None:
        super().__init__(relay)
        self.side = side


class ChannelRelay:
    """
    Relays one logical channel between the caller and the target.

    ``run()`` completes once both legs are closed and raises the
    ``ChannelError`` that ended the relay, if any.
    """

    def __init__(self, channel_type: str, extra_data: Tuple[Any, ...],
                 target_conn: Any, label: Optional[str] = None,
                 session_id: str = "-") -> None:
        self.channel_type = channel_type
        self.extra_data = tuple(extra_data)
        self.label = label or channel_type
        self._target = target_conn
        self._log = logger.bind(session=session_id)
        self._closing = asyncio.Event()
        self._error: Optional[ChannelError] = None
        self._open_task: Optional['asyncio.Task[None]'] = None
        self._outbound_ended = False

        self.inbound: Any
        self.outbound: Any
        if channel_type == SESSION_CHANNEL:
            self.inbound = InboundSessionLeg(self)
            self.outbound = OutboundSessionLeg(self)
        elif channel_type in (DIRECT_TCPIP_CHANNEL, DIRECT_STREAMLOCAL_CHANNEL):
            self.inbound = StreamLeg(self, "inbound")
            self.outbound = StreamLeg(self, "outbound")
        else:
            raise ChannelSetupError(f"unsupported channel type {channel_type!r}")

    @property
    def log(self) -> Any:
        return self._log

    @property
    def error(self) -> Optional[ChannelError]:
        return self._error

    @property
    def closing(self) -> bool:
        return self._closing.is_set()

    def peer_of(self, leg: Leg) -> Leg:
        return self.outbound if leg is self.inbound else self.inbound

    async def open_outbound(self) -> None:
        """
        Open the target channel with the inbound channel's type and extra data.

        Raises:
            ChannelSetupError: If the target refuses or the connection fails.
        """
        try:
            if self.channel_type == DIRECT_TCPIP_CHANNEL:
                dest_host, dest_port, orig_host, orig_port = self.extra_data
                await self._target.create_connection(
                    lambda: self.outbound, dest_host, dest_port,
                    orig_host, orig_port)
            elif self.channel_type == DIRECT_STREAMLOCAL_CHANNEL:
                (dest_path,) = self.extra_data
                await self._target.create_unix_connection(
                    lambda: self.outbound, dest_path)
            else:
                await self._open_outbound_session()
        except (asyncssh.Error, OSError) as e:
            raise ChannelSetupError(
                f"{self.label}: target refused channel: {e}") from e

        self._log.debug(f"{self.label}: outbound channel open")

    async def _open_outbound_session(self) -> None:
        inbound: InboundSessionLeg = self.inbound
        options: Dict[str, Any] = {
            'env': inbound.environment(),
            'encoding': None,
        }
        if inbound.pty is not None:
            term_type, term_size, term_modes = inbound.pty
            options.update(request_pty='force', term_type=term_type,
                           term_size=term_size, term_modes=term_modes)
        else:
            options['request_pty'] = False

        await self._target.create_session(
            lambda: self.outbound, inbound.command,
            subsystem=inbound.subsystem, **options)

    def start_outbound(self) -> None:
        """Open the target session once the caller has started its own."""
        if self._open_task is None and not self.closing:
            self._open_task = asyncio.create_task(self._start_outbound())

    async def _start_outbound(self) -> None:
        try:
            await self.open_outbound()
        except ChannelSetupError as e:
            self.fail(e)

    def leg_closed(self, leg: Leg, exc: Optional[Exception]) -> None:
        if exc is not None and self._error is None:
            self._error = RelayIOError(f"{self.label}: {leg.side} channel failed: {exc}")
        if not self._closing.is_set():
            self._outbound_ended = leg is self.outbound
            self._closing.set()

    def fail(self, error: ChannelError) -> None:
        if self._error is None:
            self._error = error
        self._closing.set()

    def abort(self) -> None:
        """Close both legs immediately without waiting on the relay task."""
        self._closing.set()
        if self._open_task is not None and not self._open_task.done():
            self._open_task.cancel()
        self.inbound.close()
        self.outbound.close()

    async def run(self) -> None:
        await self._closing.wait()

        if self._open_task is not None and not self._open_task.done():
            self._open_task.cancel()
            await asyncio.gather(self._open_task, return_exceptions=True)

        if self._outbound_ended and isinstance(self.inbound, InboundSessionLeg):
            await self.inbound.finish()

        self.inbound.close()
        self.outbound.close()
        await asyncio.gather(self.inbound.wait_closed(), self.outbound.wait_closed())

        if self._error is not None:
            raise self._error
        self._log.debug(f"{self.label}: relay finished")


class RelayGroup:
    """Tracked set of running relays for one session."""

    def __init__(self, session_id: str = "-") -> None:
        self._tasks: Set['asyncio.Task[None]'] = set()
        self._relays: Set[ChannelRelay] = set()
        self._log = logger.bind(session=session_id)
        self.started = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, relay: ChannelRelay) -> 'asyncio.Task[None]':
        task = asyncio.create_task(self._run(relay))
        self._tasks.add(task)
        self._relays.add(relay)
        self.started += 1

        def _done(t: 'asyncio.Task[None]') -> None:
            self._tasks.discard(t)
            self._relays.discard(relay)

        task.add_done_callback(_done)
        return task

    async def _run(self, relay: ChannelRelay) -> None:
        try:
            await relay.run()
        except ChannelError as e:
            self._log.warning(f"Channel failed: {e}")
        except Exception:
            self._log.exception(f"{relay.label}: unexpected relay error")

    async def join(self) -> None:
        """Close every relay and wait for all of them to finish."""
        for relay in list(self._relays):
            relay.abort()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
