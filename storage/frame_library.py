import logging
import time
from typing import Iterable, Mapping

from pipeline.timestamps import timestamp_to_seconds
from storage.project_store import ProjectStore
from storage.records import ExtractedFrame

logger = logging.getLogger(__name__)

FrameMap = dict[str, ExtractedFrame]


def make_frame_id(timestamp: str, created_ms: int) -> str:
    return f"frame-{timestamp.replace(':', '-')}-{created_ms}"


def merge(
    existing: Mapping[str, ExtractedFrame],
    incoming: Iterable[ExtractedFrame],
    now_ms: int | None = None,
) -> FrameMap:
    """
    Upsert `incoming` over a copy of `existing`, keyed by frame id.

    Frames without an id get one derived from their timestamp and the
    creation time. Last write wins on id collisions. Neither argument
    is mutated.
    """
    created_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)

    merged: FrameMap = dict(existing)
    for frame in incoming:
        if not frame.id:
            frame = frame.model_copy(update={"id": make_frame_id(frame.timestamp, created_ms)})
        merged[frame.id] = frame  # type: ignore[index]
    return merged


def sorted_by_timestamp(frames: Iterable[ExtractedFrame]) -> list[ExtractedFrame]:
    return sorted(frames, key=lambda f: timestamp_to_seconds(f.timestamp))


class FrameLibrary:
    """
    The per-project frame map. Every write goes through merge() or an
    explicit removal and is persisted as the complete set.
    """

    def __init__(self, store: ProjectStore):
        self.store = store

    def load(self, project_id: str) -> FrameMap:
        record = self.store.require_project(project_id)
        return {frame.id: frame for frame in record.extracted_frames if frame.id}

    def merge_and_save(
        self,
        project_id: str,
        incoming: Iterable[ExtractedFrame],
        now_ms: int | None = None,
    ) -> FrameMap:
        incoming = list(incoming)
        existing = self.load(project_id)
        merged = merge(existing, incoming, now_ms=now_ms)

        logger.info(
            "Merging %d new frames with %d existing frames -> %d total",
            len(incoming),
            len(existing),
            len(merged),
        )

        self.store.save_extracted_frames(project_id, list(merged.values()))
        return merged

    def remove(self, project_id: str, frame_ids: Iterable[str]) -> FrameMap:
        doomed = set(frame_ids)
        existing = self.load(project_id)
        remaining = {fid: frame for fid, frame in existing.items() if fid not in doomed}

        removed = len(existing) - len(remaining)
        if removed:
            self.store.save_extracted_frames(project_id, list(remaining.values()))
            logger.info("Removed %d frames from project %s", removed, project_id)
        return remaining

    def has_all_timestamps(self, project_id: str, timestamps: Iterable[str]) -> bool:
        try:
            wanted = {timestamp_to_seconds(t) for t in timestamps}
        except ValueError:
            return False
        if not wanted:
            return False
        present = {frame.seconds for frame in self.load(project_id).values()}
        return wanted <= present
