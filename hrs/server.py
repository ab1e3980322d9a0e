from __future__ import annotations

import asyncio
import logging
import socket
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

import uvicorn

from .errors import CloseError, ServerStartError
from .runtime import ProcessState
from .settings import Settings, options

log = logging.getLogger(__name__)

AppFactory = Callable[[Settings], Any]


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"


@dataclass
class ServerHandle:
    settings: Settings
    port: int
    server: uvicorn.Server
    sock: socket.socket
    task: asyncio.Task[None]


def bind_socket(host: str, port: int) -> socket.socket:
    """Create a bound (not yet listening) TCP socket.

    Binding here rather than inside uvicorn keeps bind failures as plain
    OSErrors instead of uvicorn's sys.exit().
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class ServerLifecycle:
    """Owns zero or one bound HTTP listener."""

    def __init__(
        self,
        state: ProcessState,
        app_factory: AppFactory,
        host: str | None = None,
        on_exit: Callable[[], None] | None = None,
        startup_timeout_s: float = 10.0,
    ) -> None:
        self.state = state
        self.app_factory = app_factory
        self.host = host or options.host
        self.on_exit = on_exit
        self.startup_timeout_s = startup_timeout_s
        self.server_state = ServerState.STOPPED
        self.handle: ServerHandle | None = None
        self.restart_count = 0
        self._lock = asyncio.Lock()
        self._wanted_generation = 0

    @property
    def running(self) -> bool:
        return self.handle is not None and self.server_state is ServerState.LISTENING

    @property
    def active(self) -> bool:
        """True while a listener is owned or a restart is in flight."""
        return self.handle is not None or self.server_state is not ServerState.STOPPED or self._lock.locked()

    @property
    def port(self) -> int | None:
        return self.handle.port if self.handle else None

    def is_current(self, generation: int) -> bool:
        return generation >= self._wanted_generation

    async def start(self, settings: Settings) -> ServerHandle:
        """Bind and serve; returns once uvicorn reports it is accepting connections."""
        if self.handle is not None:
            raise ServerStartError(f"Server already running on port {self.handle.port}")
        self.server_state = ServerState.STARTING
        try:
            sock = bind_socket(self.host, settings.port)
        except OSError as e:
            self.server_state = ServerState.STOPPED
            raise ServerStartError(f"Cannot bind {self.host}:{settings.port}: {e}") from e

        config = uvicorn.Config(
            self.app_factory(settings),
            lifespan="off",
            log_config=None,
            timeout_graceful_shutdown=options.shutdown_grace_s,
        )
        server = uvicorn.Server(config)
        task = asyncio.create_task(server.serve(sockets=[sock]), name=f"http-{settings.port}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_timeout_s
        while not server.started:
            if task.done() or loop.time() > deadline:
                server.should_exit = True
                if not task.done():
                    await asyncio.gather(task, return_exceptions=True)
                sock.close()
                self.server_state = ServerState.STOPPED
                reason = task.exception() if not task.cancelled() else None
                raise ServerStartError(f"Server on port {settings.port} did not start: {reason or 'timeout'}")
            await asyncio.sleep(0.02)

        port = sock.getsockname()[1]
        handle = ServerHandle(settings=settings, port=port, server=server, sock=sock, task=task)
        self.handle = handle
        self.server_state = ServerState.LISTENING
        self.state.set_listening_port(port)
        task.add_done_callback(lambda t: self._on_task_done(handle, t))
        self.state.log_event("INFO", f"Server running at http://{self.host}:{port} ({settings.mode.value})")
        return handle

    def _on_task_done(self, handle: ServerHandle, task: asyncio.Task[None]) -> None:
        if self.handle is not handle or self.server_state is ServerState.STOPPING:
            return
        # uvicorn exited on its own (e.g. it caught a signal).
        self.handle = None
        self.server_state = ServerState.STOPPED
        self.state.set_listening_port(None)
        handle.sock.close()
        if not task.cancelled() and task.exception() is not None:
            self.state.log_event("ERROR", f"Server on port {handle.port} crashed: {task.exception()}")
        else:
            self.state.log_event("INFO", f"Server on port {handle.port} exited")
        if self.on_exit is not None:
            self.on_exit()

    async def stop(self) -> None:
        """Stop accepting, let in-flight requests finish, release the socket."""
        handle = self.handle
        if handle is None:
            self.server_state = ServerState.STOPPED
            return
        self.server_state = ServerState.STOPPING
        log.info("Stopping server on port %d", handle.port)
        handle.server.should_exit = True
        try:
            try:
                await handle.task
            except Exception as e:
                raise CloseError(f"{type(e).__name__}: {e}") from e
        except CloseError as e:
            self.state.log_event("ERROR", f"Error stopping server on port {handle.port}: {e}")
        finally:
            handle.sock.close()
            self.handle = None
            self.server_state = ServerState.STOPPED
            self.state.set_listening_port(None)

    async def restart(self, settings: Settings, generation: int | None = None) -> bool:
        """Stop the current listener, then start a new one for ``settings``.

        If the new port cannot be bound the listener comes back on the
        previous port so the process stays reachable.
        """
        async with self._lock:
            if generation is not None and not self.is_current(generation):
                log.debug("Skipping superseded restart (generation %d)", generation)
                return False
            previous_port = self.handle.port if self.handle else None
            self.state.log_event("INFO", f"Critical server settings changed, restarting server on port {settings.port}")
            await self.stop()
            try:
                await self.start(settings)
            except ServerStartError as e:
                self.state.log_event("ERROR", f"Restart failed: {e}")
                if previous_port is None or previous_port == settings.port:
                    return False
                fallback = replace(settings, port=previous_port)
                try:
                    await self.start(fallback)
                except ServerStartError as e2:
                    self.state.log_event("ERROR", f"Could not rebind previous port {previous_port}: {e2}")
                return False
            self.restart_count += 1
            return True

    def request_restart(self, settings: Settings, generation: int) -> asyncio.Task[bool]:
        self._wanted_generation = max(self._wanted_generation, generation)
        return asyncio.create_task(self.restart(settings, generation), name=f"http-restart-{generation}")
