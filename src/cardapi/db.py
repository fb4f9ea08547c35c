import logging
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import event, text
from sqlalchemy.engine import Result
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql.elements import TextClause

from cardapi.config import Settings
from cardapi.errors import classify_db_error

logger = logging.getLogger("cardapi.db")

Base = declarative_base()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Store:
    """Handle on the relational store: an async engine plus a cache of
    prepared statements keyed by query text.

    One Store is built by whoever owns the process (the web app, a test) and
    passed to the repositories and the ledger. Connections are never shared
    between logical operations; each ``connect()``/``begin()`` checks out its
    own from the engine's pool.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._statements: dict[str, TextClause] = {}
        self._lock = threading.Lock()
        if engine.dialect.name == "sqlite":
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    @classmethod
    def from_url(cls, url: str, echo: bool = False, **engine_kwargs) -> "Store":
        engine = create_async_engine(url, echo=echo, future=True, **engine_kwargs)
        logger.info("[Store] Engine created for dialect %s", engine.dialect.name)
        return cls(engine)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Store":
        kwargs = {}
        if settings.database_url.startswith("postgresql"):
            kwargs["pool_pre_ping"] = True
        return cls.from_url(settings.database_url, echo=settings.DB_ECHO, **kwargs)

    @property
    def cached_statements(self) -> int:
        with self._lock:
            return len(self._statements)

    def statement(self, sql: str) -> TextClause:
        with self._lock:
            stmt = self._statements.get(sql)
            if stmt is None:
                stmt = text(sql)
                self._statements[sql] = stmt
            return stmt

    async def execute(
        self,
        conn: AsyncConnection,
        sql: str,
        params: dict | None = None,
        *,
        op: str,
        reference: tuple[str, object] | None = None,
    ) -> Result:
        """Run a cached statement on ``conn``.

        ``reference`` names the (entity, id) a foreign key in this statement
        points at, so a violation can be reported against it.
        """
        try:
            return await conn.execute(self.statement(sql), params or {})
        except SQLAlchemyError as exc:
            raise classify_db_error(exc, op, reference) from exc

    @asynccontextmanager
    async def connect(self, op: str = "connect") -> AsyncIterator[AsyncConnection]:
        """Connection for reads; nothing is committed."""
        try:
            async with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise classify_db_error(exc, op) from exc

    @asynccontextmanager
    async def begin(self, op: str = "transaction") -> AsyncIterator[AsyncConnection]:
        """Connection inside a transaction: committed on normal exit, rolled
        back if anything raises."""
        try:
            async with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise classify_db_error(exc, op) from exc

    async def ping(self) -> None:
        async with self.connect("Ping") as conn:
            await self.execute(conn, "SELECT 1", op="Ping")

    async def create_all(self) -> None:
        # models must be imported for their tables to be on Base.metadata
        from cardapi import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from cardapi import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def close(self) -> None:
        with self._lock:
            self._statements.clear()
        await self.engine.dispose()
        logger.info("[Store] Engine disposed")
