# Licensed under the HealthPorta Non-Commercial License (see LICENSE).

"""Pooled asyncpg access through a SQLAlchemy 2 async engine."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import asyncpg
from sqlalchemy import event
from sqlalchemy.engine.url import URL
from sqlalchemy.exc import DisconnectionError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

ENV_PREFIX = "DRUGSTATS_"
DRIVER = "postgresql+asyncpg"


class QueryError(RuntimeError):
    """Raised when a query cannot be executed against the database."""


@dataclass(frozen=True)
class QueryDescriptor:
    """SQL text with positional $n placeholders and the values bound to them."""

    sql: str
    params: Tuple[Any, ...] = ()


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.lower() in {"1", "true", "on", "yes"}


def idle_timeout_listeners(idle_timeout: float):
    """Pool event hooks that discard connections left idle longer than ``idle_timeout``.

    A rejected checkout raises ``DisconnectionError`` so the pool opens a
    fresh connection in place of the stale one.
    """

    def on_checkin(_dbapi_connection, connection_record):
        connection_record.info["idle_since"] = time.monotonic()

    def on_checkout(_dbapi_connection, connection_record, _connection_proxy):
        idle_since = connection_record.info.pop("idle_since", None)
        if idle_since is not None and time.monotonic() - idle_since > idle_timeout:
            raise DisconnectionError(f"connection idle for more than {idle_timeout:g}s")

    return on_checkin, on_checkout


@dataclass
class Database:
    engine: Optional[AsyncEngine] = None

    def _url(self) -> URL:
        return URL.create(
            drivername=DRIVER,
            username=_env("DB_USER", "postgres"),
            password=_env("DB_PASSWORD", ""),
            host=_env("DB_HOST", "127.0.0.1"),
            port=int(_env("DB_PORT", "5432")),
            database=_env("DB_DATABASE", "postgres"),
        )

    async def connect(self) -> None:
        if self.engine is not None:
            return

        pool_min = int(_env("DB_POOL_MIN_SIZE", "1"))
        pool_max = int(_env("DB_POOL_MAX_SIZE", "10"))
        pool_size = max(pool_min, 1)
        max_overflow = max(pool_max - pool_size, 0)

        url = self._url()
        self.engine = create_async_engine(
            url,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=float(_env("DB_POOL_TIMEOUT", "10")),
            echo=_env_bool(os.getenv(f"{ENV_PREFIX}DB_ECHO")),
            connect_args={
                "timeout": float(_env("DB_CONNECT_TIMEOUT", "10")),
                "ssl": _env("DB_SSLMODE", "prefer"),
            },
        )
        on_checkin, on_checkout = idle_timeout_listeners(float(_env("DB_IDLE_TIMEOUT", "30")))
        event.listen(self.engine.sync_engine, "checkin", on_checkin)
        event.listen(self.engine.sync_engine, "checkout", on_checkout)
        logger.info(
            "Database pool ready for %s:%s/%s (max %d connections)",
            url.host, url.port, url.database, pool_size + max_overflow,
        )

    async def disconnect(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        logger.info("Database pool closed")

    async def fetch(self, query: QueryDescriptor) -> List[Any]:
        """Run a ``QueryDescriptor`` in one round trip and return its rows.

        The SQL uses asyncpg's native ``$n`` placeholders, so it goes straight
        to the driver connection checked out of the SQLAlchemy pool.
        """
        try:
            if self.engine is None:
                await self.connect()
            assert self.engine is not None
            async with self.engine.connect() as connection:
                raw_connection = await connection.get_raw_connection()
                return await raw_connection.driver_connection.fetch(query.sql, *query.params)
        except (SQLAlchemyError, asyncpg.PostgresError, asyncpg.InterfaceError,
                OSError, asyncio.TimeoutError) as exc:
            raise QueryError(str(exc)) from exc

    async def ping(self) -> None:
        await self.fetch(QueryDescriptor("SELECT 1"))

    def init_app(self, app) -> None:
        app.ctx.db = self

        @app.listener("after_server_start")
        async def _on_start(_app):
            await self.connect()

        @app.listener("before_server_stop")
        async def _on_stop(_app):
            await self.disconnect()


db = Database()


__all__ = [
    "Database",
    "QueryDescriptor",
    "QueryError",
    "db",
]
