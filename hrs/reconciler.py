from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .db import ConnectionDescriptor, ResourcePool
from .errors import ConfigReadError
from .runtime import ProcessState, utc_now
from .server import ServerLifecycle
from .settings import ConfigSource, Settings, SettingsDiff

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReloadEvent:
    previous: Settings
    current: Settings
    generation: int
    timestamp: str = field(default_factory=utc_now)

    @property
    def diff(self) -> SettingsDiff:
        return self.previous.diff(self.current)


@dataclass(frozen=True)
class ReloadOutcome:
    success: bool
    message: str
    settings: Settings
    generation: int
    database_url_changed: bool = False
    server_restarting: bool = False


class Reconciler:
    """Applies reloaded settings to the dependent resources.

    ``reload()`` re-reads the config source, swaps the settings snapshot and
    schedules the database reconnect and/or listener restart the change
    requires. It returns without waiting for them; ``settle()`` does.
    """

    def __init__(
        self,
        source: ConfigSource,
        state: ProcessState,
        pool: ResourcePool,
        server: ServerLifecycle,
    ) -> None:
        self.source = source
        self.state = state
        self.pool = pool
        self.server = server
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[Any]] = set()

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def reload(self) -> ReloadOutcome:
        async with self._lock:
            log.info("Reloading environment variables...")
            try:
                new_settings = await asyncio.to_thread(self.source.load)
            except ConfigReadError as e:
                self.state.log_event("ERROR", f"Error reloading environment variables: {e}")
                return ReloadOutcome(
                    success=False,
                    message=str(e),
                    settings=self.state.settings,
                    generation=self.state.generation,
                )
            previous, generation = self.state.swap_settings(new_settings)

        event = ReloadEvent(previous=previous, current=new_settings, generation=generation)
        return self.apply(event)

    def apply(self, event: ReloadEvent) -> ReloadOutcome:
        diff = event.diff
        prev, cur = event.previous, event.current
        log.info(
            "Settings comparison (generation %d): port %d -> %d, mode %s -> %s, database URL changed: %s",
            event.generation, prev.port, cur.port, prev.mode.value, cur.mode.value, diff.database_changed,
        )

        if diff.database_changed:
            self.state.log_event("INFO", "Database connection string changed, reconnecting...")
            self._track(self.pool.request(ConnectionDescriptor.from_url(cur.database_url), event.generation))

        restarting = diff.server_changed and self.server.active
        if restarting:
            self._track(self.server.request_restart(cur, event.generation))

        return ReloadOutcome(
            success=True,
            message="Environment variables reloaded",
            settings=cur,
            generation=event.generation,
            database_url_changed=diff.database_changed,
            server_restarting=restarting,
        )

    async def settle(self) -> None:
        """Wait for every scheduled reconnect/restart, including ones they trigger."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
