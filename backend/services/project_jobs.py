from dataclasses import dataclass
from threading import Lock
from typing import Callable

from pipeline.chunking_session import ChunkPreparationSession
from pipeline.frame_capture import FrameCaptureSession
from pipeline.serial_queue import QueuedJob, SerialQueue
from services.operation_tracker import OperationHandle


@dataclass
class ProjectQueueStatus:
    project_id: str
    busy: bool = False
    pending: int = 0
    cancelling: bool = False


class ProjectJobConflictError(Exception):
    pass


class ProjectJobs:
    """
    One SerialQueue per project: chunk preparation and frame capture for
    the same project run one after another, different projects in parallel.
    """

    def __init__(
        self,
        chunking: ChunkPreparationSession,
        capture: FrameCaptureSession,
    ):
        self.chunking = chunking
        self.capture = capture

        self._queues: dict[str, SerialQueue] = {}
        self._pending: dict[str, tuple[QueuedJob, OperationHandle]] = {}
        self._lock = Lock()

    def submit_chunk_preparation(self, project_id: str) -> str:
        self._check_accepting(project_id)
        handle = self.chunking.start_operation()

        def job(queue: SerialQueue) -> None:
            self.chunking.run(project_id, handle=handle)

        self._submit(project_id, job, f"chunks:{project_id}", handle)
        return handle.id

    def submit_frame_capture(self, project_id: str, timestamps: list[str]) -> str:
        self._check_accepting(project_id)
        handle = self.capture.start_operation(len(timestamps))

        def job(queue: SerialQueue) -> None:
            self.capture.run(
                project_id,
                timestamps,
                handle=handle,
                should_continue=queue.should_continue,
            )

        self._submit(project_id, job, f"frames:{project_id}", handle)
        return handle.id

    def cancel(self, project_id: str) -> int:
        with self._lock:
            queue = self._queues.get(project_id)
        if queue is None:
            return 0

        dropped = queue.cancel_pending()
        for job in dropped:
            handle = self._forget(job.id)
            if handle is not None:
                handle.finish(success=False, message="Cancelled")
        return len(dropped)

    def get_status(self, project_id: str) -> ProjectQueueStatus:
        with self._lock:
            queue = self._queues.get(project_id)
        if queue is None:
            return ProjectQueueStatus(project_id=project_id)
        return ProjectQueueStatus(
            project_id=project_id,
            busy=queue.is_busy,
            pending=queue.pending_count,
            cancelling=queue.stop_requested,
        )

    def shutdown(self) -> None:
        with self._lock:
            queues = list(self._queues.values())
            self._queues = {}

        for queue in queues:
            for job in queue.cancel_pending():
                handle = self._forget(job.id)
                if handle is not None:
                    handle.finish(success=False, message="Cancelled")
            queue.close()

    @property
    def queue_count(self) -> int:
        with self._lock:
            return len(self._queues)

    def _check_accepting(self, project_id: str) -> None:
        with self._lock:
            queue = self._queues.get(project_id)
        if queue is not None and queue.stop_requested:
            raise ProjectJobConflictError(
                f"Jobs for project {project_id} are being cancelled. Retry once the current job stops."
            )

    def _submit(
        self,
        project_id: str,
        fn: Callable[[SerialQueue], None],
        name: str,
        handle: OperationHandle,
    ) -> QueuedJob:
        with self._lock:
            queue = self._queues.get(project_id)
            if queue is None:
                queue = SerialQueue(name=f"project-{project_id}")
                self._queues[project_id] = queue

            if queue.stop_requested:
                job = None
            else:
                job = queue.submit(lambda: fn(queue), name=name)
                self._pending = {
                    job_id: entry for job_id, entry in self._pending.items() if not entry[0].finished
                }
                self._pending[job.id] = (job, handle)
                # drop idle queues
                self._queues = {
                    pid: q
                    for pid, q in self._queues.items()
                    if pid == project_id or q.is_busy or q.stop_requested
                }

        if job is None:
            handle.finish(success=False, message="Cancelled")
            raise ProjectJobConflictError(
                f"Jobs for project {project_id} are being cancelled. Retry once the current job stops."
            )
        return job

    def _forget(self, job_id: str) -> OperationHandle | None:
        with self._lock:
            entry = self._pending.pop(job_id, None)
        return entry[1] if entry else None
