import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from threading import Condition, Event, Thread
from typing import Any, Callable, Literal

logger = logging.getLogger(__name__)

JobState = Literal["queued", "running", "done", "failed", "cancelled"]


@dataclass
class QueuedJob:
    name: str
    fn: Callable[[], Any] = field(repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: JobState = "queued"
    error: str | None = None
    _done: Event = field(default_factory=Event, repr=False)

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    @property
    def finished(self) -> bool:
        return self._done.is_set()


class SerialQueueClosed(Exception):
    pass


class SerialQueue:
    """
    FIFO of jobs drained by exactly one worker thread.

    Jobs that share decoder or seek state go through the same queue so
    they never overlap. Cancellation is cooperative: cancel_pending()
    drops queued jobs and raises a stop flag that the running job reads
    through should_continue().
    """

    def __init__(self, name: str = "serial-queue"):
        self.name = name

        self._jobs: deque[QueuedJob] = deque()
        self._cond = Condition()
        self._stop_requested = False
        self._closed = False
        self._current: QueuedJob | None = None
        self._thread: Thread | None = None

    def submit(self, fn: Callable[[], Any], name: str = "job") -> QueuedJob:
        job = QueuedJob(name=name, fn=fn)

        with self._cond:
            if self._closed:
                raise SerialQueueClosed(f"{self.name} is closed")
            self._jobs.append(job)
            self._ensure_worker()
            self._cond.notify()

        return job

    def cancel_pending(self) -> list[QueuedJob]:
        with self._cond:
            dropped = list(self._jobs)
            self._jobs.clear()
            if self._current is not None:
                self._stop_requested = True

        for job in dropped:
            job.state = "cancelled"
            job._done.set()

        if dropped:
            logger.info("%s: dropped %d queued jobs", self.name, len(dropped))
        return dropped

    def should_continue(self) -> bool:
        with self._cond:
            return not self._stop_requested and not self._closed

    @property
    def stop_requested(self) -> bool:
        with self._cond:
            return self._stop_requested

    @property
    def is_busy(self) -> bool:
        with self._cond:
            return self._current is not None or bool(self._jobs)

    @property
    def pending_count(self) -> int:
        with self._cond:
            return len(self._jobs)

    def close(self, timeout: float | None = 5.0) -> None:
        self.cancel_pending()

        with self._cond:
            self._closed = True
            thread = self._thread
            self._cond.notify_all()

        if thread is not None:
            thread.join(timeout=timeout)

    def _ensure_worker(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = Thread(target=self._run_loop, name=self.name, daemon=True)
        self._thread.start()

    def _run_loop(self) -> None:
        while True:
            with self._cond:
                # idle workers exit; submit() starts a new one
                if not self._jobs:
                    self._thread = None
                    return
                job = self._jobs.popleft()
                self._current = job

            job.state = "running"
            try:
                job.fn()
                job.state = "done"
            except Exception as exc:
                job.state = "failed"
                job.error = str(exc)
                logger.exception("%s: job %s failed", self.name, job.name)
            finally:
                with self._cond:
                    self._current = None
                    self._stop_requested = False
                job._done.set()
