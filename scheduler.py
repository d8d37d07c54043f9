# scheduler.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from PySide6.QtCore import QObject, QRunnable, QThreadPool, QTimer, Signal, Slot

logger = logging.getLogger(__name__)

Job = Callable[[], Any]
Done = Callable[[Any], None]


class TimerHandle:
    def __init__(self, timer: QTimer) -> None:
        self._timer: Optional[QTimer] = timer

    @property
    def active(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    def cancel(self) -> None:
        t = self._timer
        self._timer = None
        if t is None:
            return
        t.stop()
        t.deleteLater()


class _JobRunnable(QRunnable):
    def __init__(self, job: Job, done: Done, report: Callable[[Done, Any], None]) -> None:
        super().__init__()
        self.setAutoDelete(True)
        self._job = job
        self._done = done
        self._report = report

    def run(self) -> None:
        try:
            result = self._job()
        except Exception as e:
            logger.exception("background job failed")
            result = e
        self._report(self._done, result)


class QtScheduler(QObject):
    """
    The event loop seam used by the controller core.

    Timers run on the Qt event loop. Jobs run on a bounded QThreadPool and their
    results come back into the loop through a queued signal, so every callback
    handed to submit() runs on the thread that owns this object. A job that raises
    delivers the exception object as its result.
    """

    _delivered = Signal(object, object)

    def __init__(self, max_workers: int = 2, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._pool = QThreadPool(self)
        self._pool.setMaxThreadCount(max(1, int(max_workers)))
        self._delivered.connect(self._deliver)

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, fn: Callable[[], None]) -> TimerHandle:
        t = QTimer(self)
        t.setSingleShot(True)
        handle = TimerHandle(t)

        def fire() -> None:
            handle.cancel()
            fn()

        t.timeout.connect(fire)
        t.start(max(0, int(delay * 1000)))
        return handle

    def call_repeating(self, interval: float, fn: Callable[[], None]) -> TimerHandle:
        t = QTimer(self)
        t.setInterval(max(1, int(interval * 1000)))
        t.timeout.connect(fn)
        t.start()
        return TimerHandle(t)

    def submit(self, job: Job, done: Done) -> None:
        self._pool.start(_JobRunnable(job, done, self._delivered.emit))

    def wait_idle(self, msecs: int = -1) -> bool:
        return self._pool.waitForDone(msecs)

    @Slot(object, object)
    def _deliver(self, done: Done, result: Any) -> None:
        try:
            done(result)
        except Exception:
            logger.exception("result callback failed")
