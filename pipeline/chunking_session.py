import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Literal

from pipeline.audio_chunker import (
    DEFAULT_CHUNK_LENGTH_SECONDS,
    DEFAULT_OVERLAP_SECONDS,
    plan_chunks,
)
from pipeline.chunk_uploader import ChunkUploader, chunk_storage_path
from pipeline.errors import DownloadFailure, PersistFailure, PipelineError, UploadFailure
from services.operation_tracker import OperationHandle, OperationTracker
from sources.audio_chunk import AudioChunk, ChunkBoundary
from sources.audio_extractor import AudioExtractor
from sources.media_downloader import MediaDownloader
from storage.project_store import ProjectStore
from storage.records import ChunkingMetadata, ChunkMetadata

logger = logging.getLogger(__name__)

SessionStatus = Literal[
    "pending", "downloading", "extracting", "chunking", "uploading", "complete", "error"
]

_CHUNK_STATE = {"pending": "pending", "uploaded": "complete", "failed": "error"}


@dataclass
class ChunkingSession:
    project_id: str
    source_video_path: str | None = None
    total_duration: float | None = None
    chunk_length_seconds: float = DEFAULT_CHUNK_LENGTH_SECONDS
    overlap_seconds: float = DEFAULT_OVERLAP_SECONDS
    chunks: list[AudioChunk] = field(default_factory=list)
    status: SessionStatus = "pending"
    error: str | None = None


class ChunkPreparationSession:
    """
    download -> extract -> plan -> upload for one project.

    Each stage reports into the same tracker record. Any failure ends the
    session; chunks already in storage are left where they are.
    """

    def __init__(
        self,
        downloader: MediaDownloader,
        extractor: AudioExtractor,
        uploader: ChunkUploader,
        store: ProjectStore,
        tracker: OperationTracker,
        chunk_length_seconds: float = DEFAULT_CHUNK_LENGTH_SECONDS,
        overlap_seconds: float = DEFAULT_OVERLAP_SECONDS,
    ):
        self.downloader = downloader
        self.extractor = extractor
        self.uploader = uploader
        self.store = store
        self.tracker = tracker
        self.chunk_length_seconds = chunk_length_seconds
        self.overlap_seconds = overlap_seconds

    def start_operation(self) -> OperationHandle:
        return self.tracker.start_operation(
            type="download",
            title="Preparing audio chunks",
            message="Queued",
        )

    def run(
        self,
        project_id: str,
        handle: OperationHandle | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> ChunkingSession:
        session = ChunkingSession(
            project_id=project_id,
            chunk_length_seconds=self.chunk_length_seconds,
            overlap_seconds=self.overlap_seconds,
        )
        handle = handle or self.start_operation()
        boundaries: list[ChunkBoundary] = []

        try:
            record = self.store.require_project(project_id)
            session.source_video_path = record.source_video_path
            if not record.source_video_path:
                raise DownloadFailure(f"Project {project_id} has no source video")

            session.status = "downloading"
            handle.set_stage("download", "Downloading source video", progress=5)
            video_bytes = self.downloader.download(record.source_video_path)

            session.status = "extracting"
            handle.set_stage("extraction", "Extracting audio track", progress=20)
            audio_bytes = self.extractor.extract(video_bytes)
            del video_bytes
            session.total_duration = self.extractor.probe_duration(audio_bytes)

            session.status = "chunking"
            handle.set_stage("chunking", "Planning audio chunks", progress=35)
            boundaries = plan_chunks(
                session.total_duration,
                self.chunk_length_seconds,
                self.overlap_seconds,
            )
            self._save_metadata(session, boundaries, "processing")

            session.status = "uploading"
            handle.set_stage("upload", f"Uploading {len(boundaries)} chunks", progress=40)

            def report(done: int, total: int) -> None:
                handle.update_progress(40 + 55 * done / total, f"Uploaded {done}/{total} chunks")
                if on_progress is not None:
                    on_progress(done, total)

            result = self.uploader.upload(project_id, boundaries, audio_bytes, on_progress=report)
            session.chunks = result.chunks

            if not result.success:
                raise UploadFailure(
                    f"{len(result.failed_indices)} of {len(boundaries)} chunks failed to upload",
                    failed_indices=result.failed_indices,
                )

            self._save_metadata(session, boundaries, "complete")
        except PipelineError as exc:
            session.status = "error"
            session.error = str(exc)
            logger.error("Chunk preparation for %s failed at %s: %s", project_id, exc.stage, exc)

            if boundaries:
                self._save_metadata_quietly(session, boundaries)
            self.tracker.update(handle.id, details=str(exc))
            handle.finish(success=False, message=f"Failed during {exc.stage}: {exc.message}")
            raise
        except Exception as exc:
            session.status = "error"
            session.error = str(exc)
            logger.exception("Chunk preparation for %s crashed", project_id)
            handle.finish(success=False, message=f"Unexpected error: {exc}")
            raise

        session.status = "complete"
        handle.finish(success=True, message=f"Prepared {len(session.chunks)} chunks")
        logger.info(
            "Chunk preparation for %s complete: %d chunks over %.2fs",
            project_id,
            len(session.chunks),
            session.total_duration,
        )
        return session

    def _save_metadata(
        self,
        session: ChunkingSession,
        boundaries: list[ChunkBoundary],
        status: str,
    ) -> None:
        by_index = {chunk.index: chunk for chunk in session.chunks}
        chunks = []
        for boundary in boundaries:
            uploaded = by_index.get(boundary.index)
            chunks.append(
                ChunkMetadata(
                    index=boundary.index,
                    start_time=boundary.start_time,
                    end_time=boundary.end_time,
                    duration=boundary.duration,
                    video_path=uploaded.storage_path
                    if uploaded
                    else chunk_storage_path(session.project_id, boundary.index),
                    title=f"Chunk {boundary.index + 1}",
                    status=_CHUNK_STATE[uploaded.status] if uploaded else "pending",
                )
            )

        self.store.save_chunking(
            session.project_id,
            ChunkingMetadata(
                is_chunked=True,
                chunks=chunks,
                total_duration=session.total_duration,
                status=status,
                processed_at=datetime.now(timezone.utc),
            ),
        )

    def _save_metadata_quietly(self, session: ChunkingSession, boundaries: list[ChunkBoundary]) -> None:
        try:
            self._save_metadata(session, boundaries, "error")
        except PersistFailure as exc:
            logger.error("Could not record chunking failure for %s: %s", session.project_id, exc)
