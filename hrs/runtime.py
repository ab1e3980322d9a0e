from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock

from .settings import Settings, options

log = logging.getLogger("hrs.events")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def iso_now() -> str:
    """Current time as an ISO 8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class EventRecord:
    ts: str
    level: str
    message: str


class ProcessState:
    """Process-wide state shared by the reconciler and the request handlers.

    Only the reconciler, the pool and the server lifecycle write to it.
    Request handlers read it.
    """

    def __init__(self, settings: Settings, event_log_size: int | None = None) -> None:
        self.lock = Lock()
        self._settings = settings
        self._generation = 0
        self.db_connected = False
        self.listening_port: int | None = None  # actual bound port, None while stopped
        self.events: deque[EventRecord] = deque(maxlen=max(1, event_log_size or options.event_log_size))

    @property
    def settings(self) -> Settings:
        with self.lock:
            return self._settings

    @property
    def generation(self) -> int:
        with self.lock:
            return self._generation

    def swap_settings(self, settings: Settings) -> tuple[Settings, int]:
        """Replace the snapshot and bump the generation.

        Returns (previous_settings, new_generation).
        """
        with self.lock:
            previous = self._settings
            self._settings = settings
            self._generation += 1
            return previous, self._generation

    def set_db_connected(self, connected: bool) -> None:
        with self.lock:
            self.db_connected = connected

    def set_listening_port(self, port: int | None) -> None:
        with self.lock:
            self.listening_port = port

    def log_event(self, level: str, message: str) -> None:
        level = level.upper()
        log.log(_LEVELS.get(level, logging.INFO), message)
        with self.lock:
            self.events.append(EventRecord(ts=utc_now(), level=level, message=message))

    def latest_events(self, limit: int = 100) -> list[EventRecord]:
        with self.lock:
            items = list(self.events)
        return list(reversed(items))[: max(0, limit)]
