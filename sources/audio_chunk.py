# sources/audio_chunk.py
from dataclasses import dataclass
from typing import Literal

ChunkStatus = Literal["pending", "uploaded", "failed"]


@dataclass(frozen=True)
class ChunkBoundary:
    index: int
    start_time: float        # seconds from the start of the track
    end_time: float          # exclusive, clamped to the track duration

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class AudioChunk:
    index: int
    start_time: float
    end_time: float
    storage_path: str        # deterministic, derived from project id + index
    status: ChunkStatus = "pending"
    error: str | None = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time
