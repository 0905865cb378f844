"""Debounced, best-effort autosave of session snapshots."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .storage import PersistenceError

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 2.5


class DebouncedSaver:
    """Coalesces snapshot saves into one write `delay` seconds after the last change.

    Each `queue()` replaces the pending snapshot and restarts the timer. A
    failed save is logged and dropped; the next `queue()` schedules a fresh
    attempt. With `delay <= 0`, or when no event loop is running, saves happen
    immediately.
    """

    def __init__(
        self,
        save: Callable[[dict[str, Any]], None],
        delay: float = DEFAULT_DELAY_SECONDS,
    ) -> None:
        self._save = save
        self._delay = delay
        self._pending: dict[str, Any] | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def queue(self, snapshot: dict[str, Any]) -> None:
        self._pending = snapshot
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._delay <= 0:
            self.flush()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._timer = loop.call_later(self._delay, self.flush)

    def flush(self) -> bool:
        """Write the pending snapshot now. Returns whether a save succeeded."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return False
        try:
            self._save(snapshot)
        except PersistenceError as e:
            logger.warning("Autosave failed: %s", e)
            return False
        return True

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending = None
