import logging

from pipeline.errors import ChunkPlanFailure
from sources.audio_chunk import ChunkBoundary

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_LENGTH_SECONDS = 60.0
DEFAULT_OVERLAP_SECONDS = 20.0


def plan_chunks(
    total_duration: float,
    chunk_length: float = DEFAULT_CHUNK_LENGTH_SECONDS,
    overlap: float = DEFAULT_OVERLAP_SECONDS,
) -> list[ChunkBoundary]:
    """
    Partition [0, total_duration] into windows of `chunk_length` seconds
    whose starts advance by (chunk_length - overlap).

    The last window is clamped to total_duration and may be shorter.
    No bytes are touched here.
    """
    if total_duration is None or total_duration <= 0:
        raise ChunkPlanFailure(
            "Audio duration must be positive",
            details={"total_duration": total_duration},
        )
    if chunk_length <= 0:
        raise ChunkPlanFailure(
            "Chunk length must be positive",
            details={"chunk_length": chunk_length},
        )
    if overlap < 0 or chunk_length <= overlap:
        raise ChunkPlanFailure(
            "Overlap must satisfy 0 <= overlap < chunk_length",
            details={"chunk_length": chunk_length, "overlap": overlap},
        )

    step = chunk_length - overlap
    boundaries: list[ChunkBoundary] = []

    index = 0
    start = 0.0
    while start < total_duration:
        end = min(start + chunk_length, float(total_duration))
        boundaries.append(ChunkBoundary(index=index, start_time=start, end_time=end))
        index += 1
        start = index * step

    logger.info(
        "Planned %d chunks over %.2fs (length=%.1fs, overlap=%.1fs)",
        len(boundaries),
        total_duration,
        chunk_length,
        overlap,
    )
    return boundaries
