"""Config file watching with debounced reload.

Two change sources sit behind one interface:

 - ``EventChangeSource``: watchdog observer (inotify/FSEvents/...) on the
   file's directory, filtered to the file itself.
 - ``PollingChangeSource``: checks the file's mtime on an interval and
   reports a change only when it strictly increases.

``ConfigWatcher`` prefers events and falls back to polling when the observer
cannot be started. Notifications from either source go through one debounce
state machine (IDLE / PENDING) with a single timer, so a burst of filesystem
events produces one reload.
"""

from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .settings import options

log = logging.getLogger(__name__)

ReloadCallback = Callable[[], Awaitable[Any]]

# watchdog event types that can carry new file contents.
_CHANGE_EVENTS = {"modified", "created", "moved", "closed"}


class ChangeSource(Protocol):
    mode: str

    def start(self) -> None: ...

    def stop(self) -> None: ...


class _FileEventHandler(FileSystemEventHandler):
    def __init__(self, target: Path, notify: Callable[[], None]) -> None:
        super().__init__()
        self._target = target
        self._notify = notify

    def _matches(self, path: Any) -> bool:
        if not path:
            return False
        return Path(os.fsdecode(path)).resolve() == self._target

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        # Editors often save by writing a temp file and renaming it over the target.
        if self._matches(event.src_path) or self._matches(getattr(event, "dest_path", "")):
            self._notify()


class EventChangeSource:
    """Subscribes to filesystem events for one file."""

    mode = "events"

    def __init__(self, path: Path, notify: Callable[[], None], loop: asyncio.AbstractEventLoop) -> None:
        self.path = path.resolve()
        self._notify = notify
        self._loop = loop
        self._observer: Any = None

    def _from_observer_thread(self) -> None:
        try:
            self._loop.call_soon_threadsafe(self._notify)
        except RuntimeError:
            log.debug("Dropped change for %s: event loop is closed", self.path)

    def start(self) -> None:
        observer = Observer()
        observer.schedule(_FileEventHandler(self.path, self._from_observer_thread), str(self.path.parent), recursive=False)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        observer = self._observer
        self._observer = None
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout=2.0)
        except RuntimeError as e:
            log.warning("Stopping file observer failed: %s", e)


class PollingChangeSource:
    """Polls the file's modification time."""

    mode = "polling"

    def __init__(self, path: Path, notify: Callable[[], None], interval_s: float) -> None:
        self.path = path
        self._notify = notify
        self.interval_s = interval_s
        self._last_mtime: int | None = None
        self._task: asyncio.Task[None] | None = None

    def _mtime(self) -> int | None:
        try:
            return self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def start(self) -> None:
        self._last_mtime = self._mtime()
        self._task = asyncio.get_running_loop().create_task(self._poll(), name="config-poll")

    def check(self) -> bool:
        """Compare the current mtime with the last one seen; notify on a strict increase."""
        current = self._mtime()
        if current is None:
            return False
        if self._last_mtime is None or current > self._last_mtime:
            self._last_mtime = current
            log.info("%s changed (detected by polling)", self.path)
            self._notify()
            return True
        return False

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                self.check()
            except OSError as e:
                log.error("Error checking %s: %s", self.path, e)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None


class DebounceState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


class ConfigWatcher:
    """Watches the config file and invokes ``on_change`` once per burst of changes."""

    def __init__(
        self,
        path: str | Path,
        on_change: ReloadCallback,
        *,
        debounce_s: float | None = None,
        poll_interval_s: float | None = None,
        force_polling: bool | None = None,
    ) -> None:
        self.path = Path(path)
        self.on_change = on_change
        self.debounce_s = debounce_s if debounce_s is not None else options.watch_debounce_ms / 1000.0
        self.poll_interval_s = (
            poll_interval_s if poll_interval_s is not None else options.watch_poll_interval_ms / 1000.0
        )
        self.force_polling = options.watch_force_polling if force_polling is None else force_polling
        self.state = DebounceState.IDLE
        self.source: ChangeSource | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def mode(self) -> str | None:
        return self.source.mode if self.source else None

    def _event_source(self) -> ChangeSource:
        return EventChangeSource(self.path, self.notify, asyncio.get_running_loop())

    def start(self) -> None:
        """Start watching. Must be called from the event loop."""
        if self.source is not None:
            return
        if not self.path.exists():
            log.warning(".env file not found for watching at %s; polling for it", self.path)
        elif not self.force_polling:
            source = self._event_source()
            try:
                source.start()
            except (OSError, RuntimeError) as e:
                log.error("Error setting up file watcher: %s", e)
                log.info("Setting up fallback interval-based file checking")
            else:
                self.source = source
                log.info("Watching %s for changes", self.path)
                return
        source = PollingChangeSource(self.path, self.notify, self.poll_interval_s)
        source.start()
        self.source = source
        log.info("Polling %s every %.1fs", self.path, self.poll_interval_s)

    def notify(self) -> None:
        """Record a change notification (event loop thread only)."""
        if self.state is DebounceState.PENDING:
            return
        self.state = DebounceState.PENDING
        self._timer = asyncio.get_running_loop().call_later(self.debounce_s, self._fire)

    def _fire(self) -> None:
        self._timer = None
        self.state = DebounceState.IDLE
        log.info("%s changed, reloading environment variables", self.path)
        task = asyncio.get_running_loop().create_task(self._run_callback(), name="config-reload")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_callback(self) -> None:
        try:
            await self.on_change()
        except Exception:
            log.exception("Config reload callback failed")

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state = DebounceState.IDLE
        if self.source is not None:
            self.source.stop()
            self.source = None
