# poller.py
from __future__ import annotations

import logging
from typing import Any, Callable, Generic, List, Optional, TypeVar

from models import ParseError
from tool_exec import ToolErrorKind, ToolFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

SnapshotListener = Callable[[int, Any], None]
StatusListener = Callable[[str, Any], None]


class StatePoller(Generic[T]):
    """
    Runs `fetch` on a worker at a fixed interval and on demand.

    Only one poll is in flight at a time; a request that arrives while one is
    running schedules exactly one follow-up. Failed polls keep the previous
    snapshot. Status listeners get ("degraded", bool) after `failure_threshold`
    consecutive failures and on recovery, and ("unavailable", message) once when
    the tool is missing, after which polling stops for good.
    """

    def __init__(
        self,
        name: str,
        scheduler,
        fetch: Callable[[], T],
        interval: float,
        failure_threshold: int = 3,
    ) -> None:
        self.name = name
        self._scheduler = scheduler
        self._fetch = fetch
        self._interval = interval
        self._threshold = max(1, int(failure_threshold))

        self.snapshot: Optional[T] = None
        self.generation = 0
        self.failures = 0
        self.degraded = False
        self.unavailable = False

        self._in_flight = False
        self._rerun = False
        self._timer = None
        self._listeners: List[SnapshotListener] = []
        self._status_listeners: List[StatusListener] = []

    def on_snapshot(self, cb: SnapshotListener) -> None:
        self._listeners.append(cb)

    def on_status(self, cb: StatusListener) -> None:
        self._status_listeners.append(cb)

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        if self._timer is not None or self.unavailable:
            return
        self._timer = self._scheduler.call_repeating(self._interval, self._tick)
        self.request_poll()

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None

    def request_poll(self) -> int:
        """Ask for a poll now; returns the generation that will carry its result."""
        if self.unavailable:
            return self.generation
        if self._in_flight:
            self._rerun = True
            return self.generation + 1
        return self._issue()

    def _tick(self) -> None:
        if self._in_flight or self.unavailable:
            return
        self._issue()

    def _issue(self) -> int:
        self.generation += 1
        gen = self.generation
        self._in_flight = True
        self._rerun = False
        self._scheduler.submit(self._run_fetch, lambda result: self._on_result(gen, result))
        return gen

    def _run_fetch(self) -> Any:
        # Runs on a worker thread. Expected failures travel back as values.
        try:
            return self._fetch()
        except (ToolFailure, ParseError) as e:
            return e

    def _on_result(self, gen: int, result: Any) -> None:
        self._in_flight = False

        if isinstance(result, BaseException):
            self._on_failure(result)
        else:
            self._on_success(gen, result)

        if self._rerun and not self.unavailable:
            self._issue()

    def _on_success(self, gen: int, snapshot: T) -> None:
        self.failures = 0
        if self.degraded:
            self.degraded = False
            logger.info("%s poller recovered", self.name)
            self._emit_status("degraded", False)
        self.snapshot = snapshot
        for cb in list(self._listeners):
            cb(gen, snapshot)

    def _on_failure(self, err: BaseException) -> None:
        if isinstance(err, ToolFailure) and err.error.kind is ToolErrorKind.NOT_FOUND:
            self.unavailable = True
            self.stop()
            logger.warning("%s poller disabled: %s", self.name, err)
            self._emit_status("unavailable", str(err))
            return

        self.failures += 1
        if isinstance(err, ParseError):
            logger.warning("%s poll returned unreadable output (%d in a row): %s", self.name, self.failures, err)
        else:
            logger.warning("%s poll failed (%d in a row): %s", self.name, self.failures, err)

        if self.failures >= self._threshold and not self.degraded:
            self.degraded = True
            logger.warning("%s poller degraded after %d failures", self.name, self.failures)
            self._emit_status("degraded", True)

    def _emit_status(self, key: str, value: Any) -> None:
        for cb in list(self._status_listeners):
            cb(key, value)
