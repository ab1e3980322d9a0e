from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable
from urllib.parse import urlsplit, urlunsplit

import asyncpg

from .errors import CloseError, ConnectError, DatabaseUnavailable, QueryError
from .runtime import ProcessState
from .settings import options

log = logging.getLogger(__name__)

PROBE_QUERY = "SELECT NOW()"

# Builds a connected pool for a DSN within the given connect timeout.
PoolFactory = Callable[[str, float], Awaitable[Any]]


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Identifies which physical database a pool targets."""

    url: str

    @classmethod
    def from_url(cls, url: str) -> "ConnectionDescriptor":
        raw = url.strip()
        parts = urlsplit(raw)
        if not parts.scheme or not parts.netloc:
            return cls(raw)
        scheme = parts.scheme.lower()
        if scheme == "postgres":
            scheme = "postgresql"
        userinfo, sep, hostport = parts.netloc.rpartition("@")
        netloc = f"{userinfo}{sep}{hostport.lower()}"
        return cls(urlunsplit((scheme, netloc, parts.path, parts.query, parts.fragment)))

    def redacted(self) -> str:
        parts = urlsplit(self.url)
        if parts.password is None:
            return self.url
        userinfo, _, hostport = parts.netloc.rpartition("@")
        user = userinfo.split(":", 1)[0]
        return urlunsplit((parts.scheme, f"{user}:***@{hostport}", parts.path, parts.query, parts.fragment))


class HandleState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


@dataclass
class PoolHandle:
    descriptor: ConnectionDescriptor
    pool: Any
    state: HandleState = HandleState.OPEN


async def create_asyncpg_pool(dsn: str, timeout: float) -> asyncpg.Pool:
    return await asyncpg.create_pool(dsn=dsn, min_size=1, max_size=max(1, options.db_pool_max), timeout=timeout)


class ResourcePool:
    """Owns zero or one open connection pool to the configured database."""

    def __init__(
        self,
        state: ProcessState,
        connect: PoolFactory | None = None,
        connect_timeout_s: float | None = None,
    ) -> None:
        self.state = state
        self._connect_pool = connect or create_asyncpg_pool
        self.connect_timeout_s = connect_timeout_s if connect_timeout_s is not None else options.db_connect_timeout_s
        self._handle: PoolHandle | None = None
        self._handle_state = HandleState.CLOSED
        self._lock = asyncio.Lock()
        self._wanted_generation = 0

    @property
    def handle_state(self) -> HandleState:
        return self._handle_state

    @property
    def descriptor(self) -> ConnectionDescriptor | None:
        return self._handle.descriptor if self._handle else None

    @property
    def connected(self) -> bool:
        return self._handle is not None and self._handle_state is HandleState.OPEN and self.state.db_connected

    def is_current(self, generation: int) -> bool:
        return generation >= self._wanted_generation

    async def _connect(self, descriptor: ConnectionDescriptor) -> Any:
        """Create a pool and run the liveness probe. Raises ConnectError."""
        log.info("Connecting to database %s", descriptor.redacted())
        try:
            pool = await asyncio.wait_for(
                self._connect_pool(descriptor.url, self.connect_timeout_s),
                timeout=self.connect_timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(f"timed out after {self.connect_timeout_s:g}s") from e
        except Exception as e:
            raise ConnectError(f"{type(e).__name__}: {e}") from e

        try:
            await asyncio.wait_for(pool.fetchval(PROBE_QUERY), timeout=self.connect_timeout_s)
        except Exception as e:
            try:
                await self._close_pool(pool)
            except CloseError as close_err:
                log.warning("Discarding unprobed pool failed: %s", close_err)
            if isinstance(e, asyncio.TimeoutError):
                raise ConnectError(f"liveness probe timed out after {self.connect_timeout_s:g}s") from e
            raise ConnectError(f"liveness probe failed: {type(e).__name__}: {e}") from e
        return pool

    async def _close_pool(self, pool: Any) -> None:
        try:
            await pool.close()
        except Exception as e:
            raise CloseError(f"{type(e).__name__}: {e}") from e

    def _publish(self, descriptor: ConnectionDescriptor, pool: Any) -> PoolHandle:
        self._handle = PoolHandle(descriptor=descriptor, pool=pool)
        self._handle_state = HandleState.OPEN
        self.state.set_db_connected(True)
        self.state.log_event("INFO", f"Database connection successful ({descriptor.redacted()})")
        return self._handle

    async def open(self, descriptor: ConnectionDescriptor, generation: int | None = None) -> PoolHandle | None:
        """Open a pool for ``descriptor``; any existing handle is closed first.

        Failures are logged and leave the connected flag false; they are
        never raised. When ``generation`` is given and has been superseded by
        the time the probe succeeds, the new pool is closed instead of
        published.
        """
        if self._handle is not None:
            await self.close()
        self._handle_state = HandleState.OPENING
        try:
            pool = await self._connect(descriptor)
        except ConnectError as e:
            self._handle_state = HandleState.CLOSED
            self.state.set_db_connected(False)
            self.state.log_event("WARN", f"Database connection failed: {e}")
            return None

        if generation is not None and not self.is_current(generation):
            self._handle_state = HandleState.CLOSED
            log.info("Discarding pool for superseded %s", descriptor.redacted())
            try:
                await self._close_pool(pool)
            except CloseError as e:
                self.state.log_event("ERROR", f"Error closing superseded database connection: {e}")
            return None
        return self._publish(descriptor, pool)

    async def close(self) -> None:
        """Best-effort close of the current handle."""
        handle = self._handle
        if handle is None:
            self._handle_state = HandleState.CLOSED
            self.state.set_db_connected(False)
            return
        self.state.set_db_connected(False)
        self._handle_state = handle.state = HandleState.CLOSING
        log.info("Closing existing database connection...")
        try:
            await self._close_pool(handle.pool)
            log.info("Database connection closed successfully")
        except CloseError as e:
            self.state.log_event("ERROR", f"Error closing database connection: {e}")
        finally:
            handle.state = HandleState.CLOSED
            self._handle = None
            self._handle_state = HandleState.CLOSED

    async def reconcile(self, descriptor: ConnectionDescriptor, generation: int) -> bool:
        """Move the pool to ``descriptor``: close the old handle, then open the new one.

        Returns True when the pool ends up connected to ``descriptor`` on
        behalf of this generation. A superseded generation never publishes
        its pool.
        """
        async with self._lock:
            if not self.is_current(generation):
                log.debug("Skipping superseded reconnect (generation %d)", generation)
                return False
            if self.connected and self.descriptor == descriptor:
                return True

            if self._handle is not None:
                await self.close()
            else:
                log.info("No existing database connection, connecting with new settings...")

            if not self.is_current(generation):
                log.debug("Reconnect superseded while closing (generation %d)", generation)
                return False

            return await self.open(descriptor, generation) is not None

    def request(self, descriptor: ConnectionDescriptor, generation: int) -> asyncio.Task[bool]:
        """Mark ``generation`` as the latest wanted target and schedule the reconnect."""
        self._wanted_generation = max(self._wanted_generation, generation)
        return asyncio.create_task(self.reconcile(descriptor, generation), name=f"db-reconcile-{generation}")

    def _live_pool(self) -> Any:
        handle = self._handle
        if handle is None or handle.state is not HandleState.OPEN or not self.state.db_connected:
            raise DatabaseUnavailable("Database not connected")
        return handle.pool

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        pool = self._live_pool()
        try:
            rows = await pool.fetch(query, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise QueryError(str(e) or type(e).__name__) from e
        return [dict(r) for r in rows]

    async def fetchrow(self, query: str, *args: Any) -> dict[str, Any] | None:
        pool = self._live_pool()
        try:
            row = await pool.fetchrow(query, *args)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise QueryError(str(e) or type(e).__name__) from e
        return dict(row) if row is not None else None
