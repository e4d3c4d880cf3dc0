from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pipeline.timestamps import timestamp_to_seconds

SCHEMA_VERSION = 1

ChunkState = Literal["pending", "processing", "complete", "error"]
ChunkingState = Literal["prepared", "processing", "complete", "error"]


class _Record(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ExtractedFrame(_Record):
    timestamp: str
    image_url: str = Field(min_length=1)
    id: str | None = None
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)

    @field_validator("timestamp")
    @classmethod
    def _check_timestamp(cls, value: str) -> str:
        timestamp_to_seconds(value)
        return value.strip()

    @property
    def seconds(self) -> float:
        return timestamp_to_seconds(self.timestamp)


class ChunkMetadata(_Record):
    index: int = Field(ge=0)
    start_time: float = Field(ge=0)
    end_time: float | None = None
    duration: float | None = Field(default=None, ge=0)
    video_path: str
    title: str | None = None
    status: ChunkState | None = None

    @model_validator(mode="after")
    def _check_range(self) -> "ChunkMetadata":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError(f"chunk {self.index} ends before it starts")
        return self


class ChunkingMetadata(_Record):
    is_chunked: bool
    chunks: list[ChunkMetadata]
    total_duration: float | None = Field(default=None, gt=0)
    status: ChunkingState | None = None
    processed_at: datetime | None = None

    @model_validator(mode="after")
    def _check_indices(self) -> "ChunkingMetadata":
        indices = [c.index for c in self.chunks]
        if indices != list(range(len(indices))):
            raise ValueError("chunk indices must be contiguous from 0 in order")
        return self


class VideoMetadata(_Record):
    duration: float | None = Field(default=None, gt=0)
    original_file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    chunking: ChunkingMetadata | None = None


class ProjectRecord(_Record):
    schema_version: Literal[1]
    id: str = Field(min_length=1)
    title: str
    source_video_path: str | None
    video_metadata: VideoMetadata
    extracted_frames: list[ExtractedFrame]

    @field_validator("extracted_frames")
    @classmethod
    def _check_frame_ids(cls, frames: list[ExtractedFrame]) -> list[ExtractedFrame]:
        seen: set[str] = set()
        for frame in frames:
            if not frame.id:
                raise ValueError(f"persisted frame at {frame.timestamp} has no id")
            if frame.id in seen:
                raise ValueError(f"duplicate frame id {frame.id}")
            seen.add(frame.id)
        return frames
