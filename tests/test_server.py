"""
Tests for the bastion listener component.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import pytest

from jumpgate.core.exceptions import AccessDeniedError
from jumpgate.infrastructure.config.models import ServerConfig
from jumpgate.infrastructure.credentials.memory import InMemoryCredentialStore
from jumpgate.infrastructure.services.bastion.gate import GateServer
from jumpgate.infrastructure.services.bastion.server import BastionServer

LISTEN = 'jumpgate.infrastructure.services.bastion.server.asyncssh.listen'


@pytest.fixture
def acceptor() -> Mock:
    acceptor = Mock()
    acceptor.get_port.return_value = 2222
    acceptor.wait_closed = AsyncMock()
    return acceptor


@pytest.fixture
def server() -> BastionServer:
    config = ServerConfig(host="127.0.0.1", port=2222, login_timeout=30.0,
                          server_version="Test_1.0")
    return BastionServer(config, InMemoryCredentialStore(), host_keys=[Mock()])


class TestBastionServerLifecycle:
    """Test cases for starting and stopping the listener."""

    async def test_start_listens(self, server: BastionServer, acceptor: Mock) -> None:
        with patch(LISTEN, new=AsyncMock(return_value=acceptor)) as listen:
            await server.start()

        args, kwargs = listen.call_args
        assert args == ("127.0.0.1", 2222)
        assert kwargs['encoding'] is None
        assert kwargs['login_timeout'] == 30.0
        assert kwargs['server_version'] == "Test_1.0"
        assert isinstance(kwargs['server_factory'](), GateServer)
        assert server.port == 2222

    async def test_start_is_idempotent(self, server: BastionServer, acceptor: Mock) -> None:
        with patch(LISTEN, new=AsyncMock(return_value=acceptor)) as listen:
            await server.start()
            await server.start()

        listen.assert_awaited_once()

    async def test_stop_closes_acceptor(self, server: BastionServer, acceptor: Mock) -> None:
        with patch(LISTEN, new=AsyncMock(return_value=acceptor)):
            await server.start()
        await server.stop()

        acceptor.close.assert_called_once_with()
        assert server.port is None

    async def test_health(self, server: BastionServer, acceptor: Mock) -> None:
        health = await server.check_health()
        assert health['healthy'] is False

        with patch(LISTEN, new=AsyncMock(return_value=acceptor)):
            await server.start()
        health = await server.check_health()

        assert health['healthy'] is True
        assert health['details']['listen'] == "127.0.0.1:2222"
        assert health['details']['active_sessions'] == 0

    def test_missing_host_key_file(self, tmp_path: Any) -> None:
        config = ServerConfig(host_key_paths=[str(tmp_path / "missing")])
        server = BastionServer(config, InMemoryCredentialStore())

        with pytest.raises(FileNotFoundError):
            server._load_host_keys()

    def test_no_host_keys(self) -> None:
        server = BastionServer(ServerConfig(host_key_paths=[]), InMemoryCredentialStore())

        with pytest.raises(ValueError):
            server._load_host_keys()


class TestSupervision:
    """Test cases for per-connection supervision."""

    def make_conn(self) -> Mock:
        conn = Mock()
        conn.get_owner.return_value = GateServer(InMemoryCredentialStore())
        return conn

    async def test_session_error_counts_as_failure(self, server: BastionServer) -> None:
        conn = self.make_conn()
        server._supervisor.handle = AsyncMock(side_effect=AccessDeniedError("denied"))

        server._accept(conn)
        assert server.active_sessions == 1
        await asyncio.gather(*list(server._tasks))

        health = await server.check_health()
        assert health['details']['sessions_total'] == 1
        assert health['details']['sessions_failed'] == 1
        assert server.active_sessions == 0
        conn.close.assert_called_once_with()

    async def test_unexpected_error_is_contained(self, server: BastionServer) -> None:
        conn = self.make_conn()
        server._supervisor.handle = AsyncMock(side_effect=RuntimeError("boom"))

        await server._supervise(conn)

        conn.close.assert_called_once_with()

    async def test_clean_session(self, server: BastionServer) -> None:
        conn = self.make_conn()
        server._supervisor.handle = AsyncMock()

        await server._supervise(conn)

        health = await server.check_health()
        assert health['details']['sessions_failed'] == 0
        conn.close.assert_called_once_with()

    def test_handshake_failure_logged(self, server: BastionServer) -> None:
        conn = self.make_conn()
        gate = conn.get_owner.return_value
        gate.auth_error = AccessDeniedError("denied")

        server._handshake_failed(conn, ConnectionResetError("reset"))
