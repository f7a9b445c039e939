from __future__ import annotations

from dataclasses import dataclass
import logging
import queue as queue_module
import threading
import time
from typing import Mapping

from .storage import HistoryStore

_LOGGER = logging.getLogger("calcsvc.recorder")


@dataclass(frozen=True)
class _RecordJob:
    operation: str
    parameters: Mapping[str, float]
    result: float


_STOP = object()


class HistoryRecorder:
    """Best-effort, at-most-once persistence of successful calculations.

    With ``asynchronous=True`` jobs go through a bounded queue drained by a
    single worker thread, so the request path never waits on the store. A full
    queue drops the record. Store failures are logged and never re-raised.
    """

    def __init__(self, store: HistoryStore, *, max_queue: int = 1000, asynchronous: bool = True) -> None:
        if max_queue < 1:
            raise ValueError("max_queue must be at least 1")
        self.store = store
        self.asynchronous = asynchronous
        self._queue: queue_module.Queue = queue_module.Queue(maxsize=max_queue)
        self._worker: threading.Thread | None = None
        self._lock = threading.Lock()
        self._closed = False

    def record(self, operation: str, parameters: Mapping[str, float], result: float) -> bool:
        try:
            self.store.insert(operation, parameters, result)
        except Exception:
            _LOGGER.exception("Error saving calculation operation=%s", operation)
            return False
        return True

    def submit(self, operation: str, parameters: Mapping[str, float], result: float) -> bool:
        if not self.asynchronous:
            return self.record(operation, parameters, result)
        if self._closed:
            _LOGGER.warning("Recorder closed; dropping calculation operation=%s", operation)
            return False
        self._ensure_worker()
        try:
            self._queue.put_nowait(_RecordJob(operation, dict(parameters), result))
        except queue_module.Full:
            _LOGGER.warning("History queue full; dropping calculation operation=%s", operation)
            return False
        return True

    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for queued jobs to be processed; False if ``timeout`` expires first."""
        if not self.asynchronous or self._worker is None:
            return True
        deadline = None if timeout is None else time.monotonic() + max(0.0, timeout)
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def close(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            worker = self._worker
        if worker is None:
            return
        if not self.flush(timeout):
            _LOGGER.warning("History recorder closed with %d pending calculations", self.pending())
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue_module.Full:
            _LOGGER.warning("History recorder worker did not stop; queue still full")
            return
        worker.join(timeout)

    def _ensure_worker(self) -> None:
        if self._worker is not None:
            return
        with self._lock:
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._run,
                    name="calcsvc-history-recorder",
                    daemon=True,
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                self.record(job.operation, job.parameters, job.result)
            finally:
                self._queue.task_done()
