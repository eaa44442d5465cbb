"""
SSH listener for the jump gate.

``BastionServer`` accepts raw SSH connections, lets ``GateServer`` run the
handshake and spawns one connection supervisor per authenticated caller.
"""

import asyncio
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import asyncssh
from loguru import logger

from ....core.exceptions import SessionError
from ....core.interfaces.credentials import ICredentialStore
from ....core.interfaces.lifecycle import IComponent
from ...config.models import ServerConfig, UpstreamConfig
from .gate import GateServer
from .supervisor import ConnectionSupervisor


class BastionServer(IComponent):
    """
    Listener component owning the asyncssh acceptor and all supervisors.

    Stopping the server stops accepting, closes every live inbound
    connection and waits for their supervisors to finish.
    """

    def __init__(
        self,
        config: ServerConfig,
        store: ICredentialStore,
        upstream: Optional[UpstreamConfig] = None,
        host_keys: Optional[List[asyncssh.SSHKey]] = None,
    ) -> None:
        self._config = config
        self._store = store
        self._supervisor = ConnectionSupervisor(store, upstream)
        self._host_keys = host_keys
        self._acceptor: Optional[asyncssh.SSHAcceptor] = None
        self._tasks: Set['asyncio.Task[None]'] = set()
        self._connections: Set[asyncssh.SSHServerConnection] = set()
        self._running = False
        self._started_at: Optional[float] = None
        self._sessions_total = 0
        self._sessions_failed = 0

    @property
    def name(self) -> str:
        return "BastionServer"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def port(self) -> Optional[int]:
        """Port the listener is bound to, once started."""
        if self._acceptor is None:
            return None
        return self._acceptor.get_port()

    @property
    def active_sessions(self) -> int:
        return len(self._tasks)

    async def start(self) -> None:
        if self._running:
            return

        host_keys = self._host_keys or self._load_host_keys()

        self._acceptor = await asyncssh.listen(
            self._config.host,
            self._config.port,
            server_factory=self._create_gate,
            server_host_keys=host_keys,
            acceptor=self._accept,
            error_handler=self._handshake_failed,
            encoding=None,
            line_editor=False,
            login_timeout=self._config.login_timeout,
            keepalive_interval=self._config.keepalive_interval,
            server_version=self._config.server_version,
        )

        self._running = True
        self._started_at = time.time()
        logger.info(f"Jump gate listening on {self._config.host}:{self.port}")

    async def stop(self) -> None:
        if not self._running:
            return

        self._running = False

        if self._acceptor is not None:
            self._acceptor.close()
            await self._acceptor.wait_closed()
            self._acceptor = None

        for conn in list(self._connections):
            conn.close()

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        logger.info("Jump gate stopped")

    async def check_health(self) -> Dict[str, Any]:
        return {
            'healthy': self._running,
            'status': 'running' if self._running else 'stopped',
            'details': {
                'listen': f"{self._config.host}:{self.port}",
                'active_sessions': self.active_sessions,
                'sessions_total': self._sessions_total,
                'sessions_failed': self._sessions_failed,
                'uptime': time.time() - self._started_at if self._started_at else 0.0,
            }
        }

    def _load_host_keys(self) -> List[asyncssh.SSHKey]:
        keys = []
        for path in self._config.host_key_paths:
            if not Path(path).exists():
                raise FileNotFoundError(f"Host key not found: {path}")
            key = asyncssh.read_private_key(path)
            logger.info(f"Loaded host key {path}: {key.get_fingerprint()}")
            keys.append(key)

        if not keys:
            raise ValueError("At least one server host key is required")
        return keys

    def _create_gate(self) -> GateServer:
        return GateServer(self._store)

    def _accept(self, conn: asyncssh.SSHServerConnection) -> None:
        self._sessions_total += 1
        self._connections.add(conn)
        task = asyncio.create_task(self._supervise(conn))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _supervise(self, conn: asyncssh.SSHServerConnection) -> None:
        gate: GateServer = conn.get_owner()
        log = gate.log

        try:
            await self._supervisor.handle(conn)
        except SessionError as e:
            self._sessions_failed += 1
            log.warning(f"Session terminated: {type(e).__name__}: {e}")
        except Exception:
            self._sessions_failed += 1
            log.exception("Unexpected error in connection supervisor")
        finally:
            self._connections.discard(conn)
            conn.close()
            log.info("Connection closed")

    def _handshake_failed(self, conn: asyncssh.SSHServerConnection,
                          exc: Exception) -> None:
        gate = conn.get_owner()
        reason = getattr(gate, 'auth_error', None) or exc
        log = gate.log if isinstance(gate, GateServer) else logger
        log.info(f"Handshake failed: {reason}")
