"""
Tests for the credential store implementations.
"""

import json
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from jumpgate.core.exceptions import CredentialStoreError, NotFoundError
from jumpgate.core.interfaces.credentials import ICredentialStore
from jumpgate.infrastructure.config.models import CredentialStoreConfig
from jumpgate.infrastructure.credentials import (
    FileCredentialStore,
    InMemoryCredentialStore,
    SQLCredentialStore,
    create_credential_store,
)
from jumpgate.infrastructure.credentials.sql import (
    acl_table,
    host_keys_table,
    passwords_table,
)

TARGET = "10.0.0.5:22"
KEY = "SHA256:client"
HOST_KEY = "SHA256:target"


@pytest.fixture
def document() -> Dict[str, Any]:
    return {
        "targets": {
            TARGET: {
                "password": "p1",
                "host_key": HOST_KEY,
                "authorized_keys": [KEY, "SHA256:other"],
            },
            "db:2222": {
                "password": 1234,
                "authorized_keys": [],
            },
        }
    }


class TestInMemoryCredentialStore:
    """Test cases for InMemoryCredentialStore."""

    @pytest.fixture
    def store(self) -> InMemoryCredentialStore:
        return InMemoryCredentialStore(
            passwords={TARGET: "p1"},
            host_keys={TARGET: HOST_KEY},
            acl=[(KEY, TARGET)],
        )

    def test_implements_interface(self, store: InMemoryCredentialStore) -> None:
        assert isinstance(store, ICredentialStore)
        assert store.name == "InMemoryCredentialStore"

    async def test_password_for(self, store: InMemoryCredentialStore) -> None:
        assert await store.password_for(TARGET) == "p1"

    async def test_password_miss(self, store: InMemoryCredentialStore) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await store.password_for("unknown:22")

        assert exc_info.value.kind == "password"
        assert exc_info.value.key == "unknown:22"

    async def test_pinned_host_key(self, store: InMemoryCredentialStore) -> None:
        assert await store.pinned_host_key_fingerprint(TARGET) == HOST_KEY

        with pytest.raises(NotFoundError):
            await store.pinned_host_key_fingerprint("unknown:22")

    async def test_is_authorized(self, store: InMemoryCredentialStore) -> None:
        assert await store.is_authorized(KEY, TARGET) is True
        assert await store.is_authorized("SHA256:stranger", TARGET) is False
        assert await store.is_authorized(KEY, "unknown:22") is False

    async def test_targets_match_exactly(self, store: InMemoryCredentialStore) -> None:
        with pytest.raises(NotFoundError):
            await store.password_for("10.0.0.5")
        assert await store.is_authorized(KEY, "10.0.0.5:022") is False

    async def test_mutators(self, store: InMemoryCredentialStore) -> None:
        store.set_password("b:22", "p2")
        store.pin_host_key("b:22", "SHA256:b")
        store.allow(KEY, "b:22")

        assert await store.password_for("b:22") == "p2"
        assert await store.pinned_host_key_fingerprint("b:22") == "SHA256:b"
        assert await store.is_authorized(KEY, "b:22") is True

        store.revoke(KEY, "b:22")
        assert await store.is_authorized(KEY, "b:22") is False

    async def test_health(self, store: InMemoryCredentialStore) -> None:
        assert (await store.check_health())['healthy'] is False

        await store.start()
        health = await store.check_health()

        assert health['healthy'] is True
        assert health['details']['acl_entries'] == 1

        await store.stop()
        assert (await store.check_health())['status'] == 'stopped'


class TestFileCredentialStore:
    """Test cases for FileCredentialStore."""

    async def test_load_yaml(self, tmp_path: Path, document: Dict[str, Any]) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text(yaml.safe_dump(document))

        store = FileCredentialStore(str(path))
        await store.start()

        assert await store.password_for(TARGET) == "p1"
        assert await store.password_for("db:2222") == "1234"
        assert await store.pinned_host_key_fingerprint(TARGET) == HOST_KEY
        assert await store.is_authorized(KEY, TARGET) is True
        assert await store.is_authorized(KEY, "db:2222") is False
        with pytest.raises(NotFoundError):
            await store.pinned_host_key_fingerprint("db:2222")

    async def test_load_json(self, tmp_path: Path, document: Dict[str, Any]) -> None:
        path = tmp_path / "credentials.json"
        path.write_text(json.dumps(document))

        store = FileCredentialStore(str(path))
        await store.start()

        assert await store.is_authorized("SHA256:other", TARGET) is True

    async def test_reload_replaces_tables(self, tmp_path: Path,
                                          document: Dict[str, Any]) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text(yaml.safe_dump(document))
        store = FileCredentialStore(str(path))
        await store.start()

        document["targets"][TARGET]["authorized_keys"] = []
        del document["targets"]["db:2222"]
        path.write_text(yaml.safe_dump(document))
        await store.reload()

        assert await store.is_authorized(KEY, TARGET) is False
        with pytest.raises(NotFoundError):
            await store.password_for("db:2222")

    async def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text("")

        store = FileCredentialStore(str(path))
        await store.start()

        with pytest.raises(NotFoundError):
            await store.password_for(TARGET)

    async def test_missing_file(self, tmp_path: Path) -> None:
        store = FileCredentialStore(str(tmp_path / "missing.yaml"))

        with pytest.raises(CredentialStoreError):
            await store.start()

    async def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text("targets: [unclosed")

        with pytest.raises(CredentialStoreError):
            await FileCredentialStore(str(path)).start()

    @pytest.mark.parametrize("content", [
        "- a list\n",
        "targets: [a, b]\n",
        "targets:\n  host:22: not-a-mapping\n",
        "targets:\n  host:22:\n    authorized_keys: SHA256:single\n",
    ])
    async def test_malformed_document(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text(content)

        with pytest.raises(CredentialStoreError):
            await FileCredentialStore(str(path)).start()

    async def test_failed_reload_keeps_previous_tables(
            self, tmp_path: Path, document: Dict[str, Any]) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text(yaml.safe_dump(document))
        store = FileCredentialStore(str(path))
        await store.start()

        path.write_text("targets: [unclosed")
        with pytest.raises(CredentialStoreError):
            await store.reload()

        assert await store.password_for(TARGET) == "p1"

    async def test_health_reports_path(self, tmp_path: Path,
                                       document: Dict[str, Any]) -> None:
        path = tmp_path / "credentials.yaml"
        path.write_text(yaml.safe_dump(document))
        store = FileCredentialStore(str(path))
        await store.start()

        health = await store.check_health()

        assert health['healthy'] is True
        assert health['details']['path'] == str(path)
        assert health['details']['passwords'] == 2
        assert health['details']['loaded_at'] > 0


class TestSQLCredentialStore:
    """Test cases for SQLCredentialStore on SQLite."""

    @pytest.fixture
    async def store(self, tmp_path: Path) -> Any:
        store = SQLCredentialStore(f"sqlite:///{tmp_path / 'jumpgate.db'}")
        await store.start()
        await store.create_schema()

        with store.engine.begin() as conn:
            conn.execute(passwords_table.insert(), [{"target": TARGET, "password": "p1"}])
            conn.execute(host_keys_table.insert(), [{"target": TARGET, "pubkey": HOST_KEY}])
            conn.execute(acl_table.insert(), [{"pubkey": KEY, "target": TARGET}])

        yield store
        await store.stop()

    async def test_password_for(self, store: SQLCredentialStore) -> None:
        assert await store.password_for(TARGET) == "p1"

        with pytest.raises(NotFoundError):
            await store.password_for("unknown:22")

    async def test_pinned_host_key(self, store: SQLCredentialStore) -> None:
        assert await store.pinned_host_key_fingerprint(TARGET) == HOST_KEY

        with pytest.raises(NotFoundError):
            await store.pinned_host_key_fingerprint("unknown:22")

    async def test_is_authorized(self, store: SQLCredentialStore) -> None:
        assert await store.is_authorized(KEY, TARGET) is True
        assert await store.is_authorized(KEY, "unknown:22") is False
        assert await store.is_authorized("SHA256:stranger", TARGET) is False

    async def test_health(self, store: SQLCredentialStore) -> None:
        health = await store.check_health()

        assert health['healthy'] is True
        assert health['details']['backend'] == "sqlite"

    async def test_missing_schema_is_store_error(self, tmp_path: Path) -> None:
        store = SQLCredentialStore(f"sqlite:///{tmp_path / 'empty.db'}")
        await store.start()

        try:
            with pytest.raises(CredentialStoreError):
                await store.password_for(TARGET)
        finally:
            await store.stop()

    async def test_not_started(self) -> None:
        store = SQLCredentialStore("sqlite://")

        with pytest.raises(CredentialStoreError):
            await store.password_for(TARGET)
        assert (await store.check_health())['healthy'] is False

    async def test_invalid_url(self) -> None:
        with pytest.raises(CredentialStoreError):
            await SQLCredentialStore("not a url").start()


class TestCreateCredentialStore:
    """Test cases for backend selection."""

    def test_file_backend(self) -> None:
        store = create_credential_store(
            CredentialStoreConfig(backend="file", path="creds.yaml"))

        assert isinstance(store, FileCredentialStore)
        assert store.path == Path("creds.yaml")

    def test_sql_backend(self) -> None:
        store = create_credential_store(
            CredentialStoreConfig(backend="sql", url="sqlite://"))

        assert isinstance(store, SQLCredentialStore)

    def test_sql_backend_requires_url(self) -> None:
        with pytest.raises(ValueError):
            create_credential_store(CredentialStoreConfig(backend="sql"))

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError):
            create_credential_store(CredentialStoreConfig(backend="ldap"))
