"""Background thread invoking the reconciliation pass on a fixed interval."""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Event, Thread
from typing import Any

LOGGER = logging.getLogger(__name__)


class PeriodicRunner:
    """Run ``task`` after ``startup_delay`` seconds, then every ``interval``.

    Exceptions from ``task`` are logged and the loop carries on.
    """

    def __init__(
        self,
        task: Callable[[], Any],
        *,
        interval: float,
        startup_delay: float = 0.0,
        name: str = "remind-scheduler",
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._task = task
        self._interval = interval
        self._startup_delay = startup_delay
        self._name = name
        self._stop = Event()
        self._thread: Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        LOGGER.info(
            "Scheduler started (interval %.0fs, warm-up after %.0fs)",
            self._interval,
            self._startup_delay,
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            LOGGER.info("Scheduler stopped")

    def _run(self) -> None:
        if self._stop.wait(self._startup_delay):
            return
        while True:
            try:
                self._task()
            except Exception:  # pylint: disable=broad-exception-caught
                LOGGER.exception("Scheduled reminder check failed")
            if self._stop.wait(self._interval):
                return


__all__ = ["PeriodicRunner"]
