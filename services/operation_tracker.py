import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Literal, get_args

OperationType = Literal[
    "download",
    "extraction",
    "chunking",
    "upload",
    "frame_capture",
    "transcription",
    "processing",
]
OperationStatus = Literal["pending", "running", "completed", "failed"]

MAX_HISTORY = 30

_ACTIVE_STATUSES = ("pending", "running")
_UPDATABLE_FIELDS = ("type", "title", "message", "progress", "status", "details")
_OPERATION_TYPES = get_args(OperationType)
_OPERATION_STATUSES = get_args(OperationStatus)


@dataclass
class ProgressOperation:
    id: str
    type: OperationType
    title: str
    message: str
    progress: float
    status: OperationStatus
    timestamp: datetime
    details: str | None = None


class OperationTracker:
    """
    Bounded ledger of long-running operations, newest first.
    Reads return copies; callers never hold live records.
    """

    def __init__(self, max_history: int = MAX_HISTORY):
        if max_history <= 0:
            raise ValueError("max_history must be positive")
        self.max_history = max_history
        self._operations: list[ProgressOperation] = []
        self._lock = Lock()

    def add(
        self,
        type: OperationType,
        title: str,
        message: str = "",
        progress: float = 0.0,
        status: OperationStatus = "running",
        details: str | None = None,
    ) -> str:
        _check_type_and_status(type, status)
        op = ProgressOperation(
            id=self._generate_id(),
            type=type,
            title=title,
            message=message,
            progress=_clamp(progress),
            status=status,
            timestamp=datetime.now(timezone.utc),
            details=details,
        )

        with self._lock:
            self._operations.insert(0, op)
            if len(self._operations) > self.max_history:
                del self._operations[self.max_history:]

        return op.id

    def update(self, op_id: str, **updates: object) -> bool:
        unknown = set(updates) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update operation fields: {sorted(unknown)}")
        _check_type_and_status(updates.get("type"), updates.get("status"))

        if "progress" in updates:
            updates["progress"] = _clamp(float(updates["progress"]))  # type: ignore[arg-type]

        with self._lock:
            for i, op in enumerate(self._operations):
                if op.id == op_id:
                    self._operations[i] = replace(op, **updates)
                    return True
        return False

    def complete(self, op_id: str, success: bool = True) -> bool:
        with self._lock:
            for i, op in enumerate(self._operations):
                if op.id == op_id:
                    self._operations[i] = replace(
                        op,
                        status="completed" if success else "failed",
                        progress=100.0 if success else op.progress,
                    )
                    return True
        return False

    def remove(self, op_id: str) -> bool:
        with self._lock:
            before = len(self._operations)
            self._operations = [op for op in self._operations if op.id != op_id]
            return len(self._operations) != before

    def clear_completed(self) -> None:
        with self._lock:
            self._operations = [op for op in self._operations if op.status in _ACTIVE_STATUSES]

    def clear_all(self) -> None:
        with self._lock:
            self._operations = []

    def get(self, op_id: str) -> ProgressOperation | None:
        with self._lock:
            for op in self._operations:
                if op.id == op_id:
                    return replace(op)
        return None

    def active(self) -> list[ProgressOperation]:
        with self._lock:
            return [replace(op) for op in self._operations if op.status in _ACTIVE_STATUSES]

    def recent(self) -> list[ProgressOperation]:
        with self._lock:
            ops = [replace(op) for op in self._operations]
        return sorted(ops, key=lambda op: op.timestamp, reverse=True)

    @property
    def is_active(self) -> bool:
        with self._lock:
            return any(op.status in _ACTIVE_STATUSES for op in self._operations)

    def start_operation(
        self,
        type: OperationType,
        title: str,
        message: str,
        initial_progress: float = 0.0,
    ) -> "OperationHandle":
        op_id = self.add(
            type=type,
            title=title,
            message=message,
            progress=initial_progress,
            status="running",
            details="",
        )
        return OperationHandle(self, op_id)

    def _generate_id(self) -> str:
        return f"op-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


class OperationHandle:
    """Updates one tracker record in place for the lifetime of a task."""

    def __init__(self, tracker: OperationTracker, op_id: str):
        self.tracker = tracker
        self.id = op_id

    def update_progress(self, progress: float, message: str | None = None) -> None:
        updates: dict[str, object] = {"progress": progress}
        if message:
            updates["message"] = message
        self.tracker.update(self.id, **updates)

    def set_stage(self, type: OperationType, message: str, progress: float | None = None) -> None:
        updates: dict[str, object] = {"type": type, "message": message}
        if progress is not None:
            updates["progress"] = progress
        self.tracker.update(self.id, **updates)

    def finish(self, success: bool = True, message: str | None = None) -> None:
        self.tracker.complete(self.id, success)
        if message:
            self.tracker.update(self.id, message=message)


def _clamp(progress: float) -> float:
    return min(max(0.0, float(progress)), 100.0)


def _check_type_and_status(type: object, status: object) -> None:
    if type is not None and type not in _OPERATION_TYPES:
        raise ValueError(f"Unknown operation type: {type!r}")
    if status is not None and status not in _OPERATION_STATUSES:
        raise ValueError(f"Unknown operation status: {status!r}")


_default_tracker = OperationTracker()


def get_tracker() -> OperationTracker:
    return _default_tracker
