"""
SQL-backed credential store.

Three tables hold the gate's credentials:

- ``passwords(target, password)``: the password used to log in to a target
- ``host_keys(target, pubkey)``: the pinned SHA256 host key fingerprint
- ``acl(pubkey, target)``: which client key fingerprints may reach a target

Queries are blocking SQLAlchemy calls and run in a worker thread via
``asyncio.to_thread()``.
"""

import asyncio
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import (
    Column,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ...core.exceptions import CredentialStoreError, NotFoundError
from ...core.interfaces.credentials import ICredentialStore

metadata = MetaData()

passwords_table = Table(
    "passwords",
    metadata,
    Column("target", String(255), primary_key=True),
    Column("password", Text, nullable=False),
)

host_keys_table = Table(
    "host_keys",
    metadata,
    Column("target", String(255), primary_key=True),
    Column("pubkey", String(255), nullable=False),
)

acl_table = Table(
    "acl",
    metadata,
    Column("pubkey", String(255), primary_key=True),
    Column("target", String(255), primary_key=True),
)


class SQLCredentialStore(ICredentialStore):
    """Credential store reading from a relational database."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self._url = url
        self._echo = echo
        self._engine: Optional[Engine] = None

    @property
    def name(self) -> str:
        return "SQLCredentialStore"

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise CredentialStoreError("Credential store is not started")
        return self._engine

    async def start(self) -> None:
        if self._engine is not None:
            return

        try:
            self._engine = create_engine(
                self._url, echo=self._echo, pool_pre_ping=True)
        except (SQLAlchemyError, ValueError) as e:
            raise CredentialStoreError(
                f"Cannot open credential database: {e}") from e

        logger.info(f"Credential database opened ({self.engine.url.get_backend_name()})")

    async def stop(self) -> None:
        if self._engine is None:
            return

        engine, self._engine = self._engine, None
        await asyncio.to_thread(engine.dispose)
        logger.info("Credential database closed")

    async def check_health(self) -> Dict[str, Any]:
        if self._engine is None:
            return {'healthy': False, 'status': 'stopped', 'details': {}}

        details: Dict[str, Any] = {
            'backend': self._engine.url.get_backend_name()}
        try:
            await asyncio.to_thread(self._ping)
        except SQLAlchemyError as e:
            details['error'] = str(e)
            return {'healthy': False, 'status': 'unreachable', 'details': details}

        return {'healthy': True, 'status': 'running', 'details': details}

    async def create_schema(self) -> None:
        """Create the credential tables if they do not exist."""
        try:
            await asyncio.to_thread(metadata.create_all, self.engine)
        except SQLAlchemyError as e:
            raise CredentialStoreError(f"Cannot create schema: {e}") from e

    async def password_for(self, target: str) -> str:
        query = select(passwords_table.c.password).where(
            passwords_table.c.target == target)
        value = await self._scalar(query)
        if value is None:
            raise NotFoundError("password", target)
        return str(value)

    async def pinned_host_key_fingerprint(self, target: str) -> str:
        query = select(host_keys_table.c.pubkey).where(
            host_keys_table.c.target == target)
        value = await self._scalar(query)
        if value is None:
            raise NotFoundError("host key", target)
        return str(value)

    async def is_authorized(self, key_fingerprint: str, target: str) -> bool:
        query = select(acl_table.c.target).where(and_(
            acl_table.c.pubkey == key_fingerprint,
            acl_table.c.target == target,
        ))
        return await self._scalar(query) is not None

    async def _scalar(self, query: Any) -> Any:
        try:
            return await asyncio.to_thread(self._run_scalar, query)
        except SQLAlchemyError as e:
            raise CredentialStoreError(f"Credential query failed: {e}") from e

    def _run_scalar(self, query: Any) -> Any:
        with self.engine.connect() as conn:
            return conn.execute(query).scalar()

    def _ping(self) -> None:
        with self.engine.connect() as conn:
            conn.execute(select(1))
