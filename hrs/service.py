from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from .api import create_app
from .db import ConnectionDescriptor, PoolFactory, ResourcePool
from .errors import ConfigReadError, ServerStartError
from .reconciler import Reconciler
from .render import RenderFn
from .runtime import ProcessState
from .server import ServerLifecycle
from .settings import ConfigSource, Settings, options
from .watcher import ConfigWatcher

log = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or options.log_level).upper(), format=LOG_FORMAT)


class Service:
    """Wires config source, watcher, pool, listener and reconciler together."""

    def __init__(
        self,
        source: ConfigSource | None = None,
        *,
        connect: PoolFactory | None = None,
        root: str | Path = ".",
        render: RenderFn | None = None,
        watch: bool = True,
        watcher_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self.source = source or ConfigSource(options.env_file)
        self.state = ProcessState(self._initial_settings())
        self.pool = ResourcePool(self.state, connect=connect)
        self.server = ServerLifecycle(self.state, self.build_app, on_exit=self.request_shutdown)
        self.reconciler = Reconciler(self.source, self.state, self.pool, self.server)
        self.watcher = (
            ConfigWatcher(self.source.path, self.reconciler.reload, **(watcher_kwargs or {})) if watch else None
        )
        self.root = root
        self.render = render
        self._shutdown: asyncio.Event | None = None

    def _initial_settings(self) -> Settings:
        try:
            return self.source.load()
        except ConfigReadError as e:
            log.warning("%s; using environment and defaults", e)
            return self.source.defaults()

    def build_app(self, settings: Settings) -> FastAPI:
        return create_app(settings, self.state, self.pool, self.reconciler, root=self.root, render=self.render)

    async def start(self) -> None:
        settings = self.state.settings
        # The database comes first so the first request already sees the final flag.
        await self.pool.request(ConnectionDescriptor.from_url(settings.database_url), self.state.generation)
        await self.server.start(settings)
        self.state.log_event("INFO", f"Database {'connected' if self.state.db_connected else 'not connected'}")
        if self.watcher is not None:
            self.watcher.start()

    async def stop(self) -> None:
        log.info("Shutting down")
        if self.watcher is not None:
            self.watcher.stop()
        try:
            await asyncio.wait_for(self.reconciler.settle(), timeout=options.shutdown_grace_s)
        except asyncio.TimeoutError:
            log.warning("Pending reconnect/restart did not finish within %ss", options.shutdown_grace_s)
        await self.server.stop()
        await self.pool.close()

    def request_shutdown(self) -> None:
        if self._shutdown is not None:
            self._shutdown.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                log.debug("Signal handlers unavailable; relying on uvicorn for %s", sig.name)

    async def run(self) -> int:
        self._shutdown = asyncio.Event()
        self._install_signal_handlers()
        try:
            await self.start()
        except ServerStartError as e:
            self.state.log_event("ERROR", str(e))
            await self.stop()
            return 1
        await self._shutdown.wait()
        await self.stop()
        return 0


def main() -> int:
    configure_logging()
    return asyncio.run(Service().run())
