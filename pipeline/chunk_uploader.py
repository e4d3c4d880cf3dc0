import io
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import numpy as np
import soundfile as sf

from pipeline.errors import ExtractionFailure, StorageError
from sources.audio_chunk import AudioChunk, ChunkBoundary
from storage.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def chunk_storage_path(project_id: str, index: int) -> str:
    return f"projects/{project_id}/audio/chunk_{index:03d}.wav"


@dataclass
class UploadResult:
    success: bool
    chunks: list[AudioChunk] = field(default_factory=list)
    failed_indices: list[int] = field(default_factory=list)


class ChunkUploader:
    def __init__(
        self,
        gateway: StorageGateway,
        cache_control: str = "3600",
    ):
        self.gateway = gateway
        self.cache_control = cache_control

    def upload(
        self,
        project_id: str,
        boundaries: list[ChunkBoundary],
        audio_bytes: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadResult:
        """
        Slice and upload every planned chunk, one at a time in index order.

        Every chunk is attempted. Chunks that were stored stay stored even
        when a later one fails; the caller decides what a failure means for
        the session.
        """
        if not boundaries:
            return UploadResult(success=True)

        audio, sample_rate, subtype = self._decode(audio_bytes)
        total = len(boundaries)

        chunks: list[AudioChunk] = []
        failed: list[int] = []

        for completed, boundary in enumerate(sorted(boundaries, key=lambda b: b.index), start=1):
            chunk = AudioChunk(
                index=boundary.index,
                start_time=boundary.start_time,
                end_time=boundary.end_time,
                storage_path=chunk_storage_path(project_id, boundary.index),
            )

            try:
                payload = self._encode_segment(audio, sample_rate, subtype, boundary)
                stored_path = self.gateway.upload(
                    chunk.storage_path,
                    payload,
                    cache_control=self.cache_control,
                    upsert=True,
                    content_type="audio/wav",
                )
                chunk.storage_path = stored_path or chunk.storage_path
                chunk.status = "uploaded"
                logger.info(
                    "Uploaded chunk %d/%d: %.2fs - %.2fs (%.2f MB)",
                    completed,
                    total,
                    boundary.start_time,
                    boundary.end_time,
                    len(payload) / 1024 / 1024,
                )
            except (StorageError, RuntimeError, ValueError) as exc:
                chunk.status = "failed"
                chunk.error = str(exc)
                failed.append(boundary.index)
                logger.error("Error uploading chunk %d: %s", boundary.index, exc)

            chunks.append(chunk)
            if on_progress is not None:
                on_progress(completed, total)

        return UploadResult(success=not failed, chunks=chunks, failed_indices=failed)

    def _decode(self, audio_bytes: bytes) -> tuple[np.ndarray, int, str]:
        try:
            with sf.SoundFile(io.BytesIO(audio_bytes)) as f:
                sample_rate = int(f.samplerate)
                subtype = f.subtype
                audio = f.read(dtype="float32")
        except RuntimeError as exc:
            raise ExtractionFailure(f"Unreadable audio buffer: {exc}") from exc
        return audio, sample_rate, subtype

    def _encode_segment(
        self,
        audio: np.ndarray,
        sample_rate: int,
        subtype: str,
        boundary: ChunkBoundary,
    ) -> bytes:
        start = int(round(boundary.start_time * sample_rate))
        end = min(int(round(boundary.end_time * sample_rate)), len(audio))
        if end <= start:
            raise ValueError(f"Chunk {boundary.index} has no samples")

        buffer = io.BytesIO()
        sf.write(buffer, audio[start:end], sample_rate, format="WAV", subtype=subtype)
        return buffer.getvalue()
