import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from pipeline.errors import PipelineError, SourceError, StorageError
from pipeline.frame_sampler import DEFAULT_JPEG_QUALITY, DEFAULT_MAX_RETRIES, FrameSampler
from services.operation_tracker import OperationHandle, OperationTracker
from sources.av_video_source import AVVideoSource
from sources.video_source import VideoSource
from storage.frame_library import FrameLibrary, make_frame_id
from storage.records import ExtractedFrame
from storage.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)


def still_storage_path(project_id: str, timestamp: str, created_ms: int) -> str:
    return f"{project_id}/{timestamp.replace(':', '_')}-{created_ms}.jpg"


@dataclass
class FrameCaptureResult:
    requested: int
    frames: list[ExtractedFrame] = field(default_factory=list)
    skipped: bool = False


class FrameCaptureSession:
    """
    Captures stills for a project at the requested timestamps, stores
    them and merges them into the project's frame library.

    Frames that fail to decode or upload are dropped; the rest are kept.
    """

    def __init__(
        self,
        video_gateway: StorageGateway,
        stills_gateway: StorageGateway,
        library: FrameLibrary,
        tracker: OperationTracker,
        source_factory: Callable[[str], VideoSource] = AVVideoSource,
        quality: int = DEFAULT_JPEG_QUALITY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        signed_url_ttl: int = 3600,
    ):
        self.video_gateway = video_gateway
        self.stills_gateway = stills_gateway
        self.library = library
        self.tracker = tracker
        self.source_factory = source_factory
        self.quality = quality
        self.max_retries = max_retries
        self.signed_url_ttl = signed_url_ttl

    def start_operation(self, count: int) -> OperationHandle:
        return self.tracker.start_operation(
            type="frame_capture",
            title="Capturing frames",
            message=f"Queued {count} frames",
        )

    def run(
        self,
        project_id: str,
        timestamps: list[str],
        handle: OperationHandle | None = None,
        should_continue: Optional[Callable[[], bool]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> FrameCaptureResult:
        timestamps = list(timestamps)
        handle = handle or self.start_operation(len(timestamps))
        result = FrameCaptureResult(requested=len(timestamps))

        try:
            if self.library.has_all_timestamps(project_id, timestamps):
                result.skipped = True
                handle.finish(success=True, message="All frames already captured")
                logger.info("All %d frames already captured for %s", len(timestamps), project_id)
                return result

            record = self.library.store.require_project(project_id)
            if not record.source_video_path:
                raise SourceError(f"Project {project_id} has no source video")

            try:
                url = self.video_gateway.get_signed_url(
                    record.source_video_path,
                    expires_in=self.signed_url_ttl,
                )
            except StorageError as exc:
                raise SourceError(f"Could not resolve video URL: {exc}") from exc

            handle.update_progress(5, "Loading video")

            def report(done: int, total: int) -> None:
                handle.update_progress(5 + 75 * done / total, f"Captured {done}/{total} frames")
                if on_progress is not None:
                    on_progress(done, total)

            with self.source_factory(url) as source:
                sampler = FrameSampler(source, quality=self.quality, max_retries=self.max_retries)
                captured = sampler.sample(
                    timestamps,
                    duration=record.video_metadata.duration,
                    on_progress=report,
                    should_continue=should_continue,
                )

            handle.set_stage("upload", f"Uploading {len(captured)} frames", progress=80)

            created_ms = int(time.time() * 1000)
            existing_ids = {
                frame.seconds: frame_id
                for frame_id, frame in self.library.load(project_id).items()
            }

            for shot in captured:
                path = still_storage_path(project_id, shot.timestamp, created_ms)
                try:
                    stored = self.stills_gateway.upload(
                        path,
                        shot.image_bytes,
                        upsert=True,
                        content_type="image/jpeg",
                    )
                    image_url = self.stills_gateway.get_public_url(stored)
                except StorageError as exc:
                    logger.error("Failed to upload frame at %s: %s", shot.timestamp, exc)
                    continue

                result.frames.append(
                    ExtractedFrame(
                        id=existing_ids.get(shot.seconds) or make_frame_id(shot.timestamp, created_ms),
                        timestamp=shot.timestamp,
                        image_url=image_url,
                        width=shot.width,
                        height=shot.height,
                    )
                )

            if result.frames:
                self.library.merge_and_save(project_id, result.frames, now_ms=created_ms)
        except SourceError as exc:
            logger.error("Frame capture for %s failed at %s: %s", project_id, exc.stage, exc)
            handle.finish(success=False, message=f"Failed to load video: {exc.message}")
            raise
        except PipelineError as exc:
            logger.error("Frame capture for %s failed at %s: %s", project_id, exc.stage, exc)
            handle.finish(success=False, message=str(exc))
            raise
        except Exception as exc:
            logger.exception("Frame capture for %s crashed", project_id)
            handle.finish(success=False, message=f"Unexpected error: {exc}")
            raise

        handle.finish(
            success=bool(result.frames) or not timestamps,
            message=f"Captured {len(result.frames)} of {len(timestamps)} frames",
        )
        return result
