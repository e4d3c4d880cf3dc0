from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from pipeline.timestamps import timestamp_to_seconds
from services.operation_tracker import ProgressOperation
from storage.records import ExtractedFrame, VideoMetadata


class ErrorResponse(BaseModel):
    code: str
    message: str


class ProjectCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    source_video_path: str | None = Field(default=None, min_length=1)
    video_metadata: VideoMetadata | None = None


class ProjectResponse(BaseModel):
    id: str
    title: str
    source_video_path: str | None
    video_metadata: VideoMetadata
    extracted_frames: list[ExtractedFrame]


class FrameCaptureRequest(BaseModel):
    timestamps: list[str] = Field(min_length=1, max_length=500)

    @field_validator("timestamps")
    @classmethod
    def _check_timestamps(cls, values: list[str]) -> list[str]:
        for value in values:
            timestamp_to_seconds(value)
        return [value.strip() for value in values]


class QueuedResponse(BaseModel):
    operation_id: str
    project_id: str


class CancelResponse(BaseModel):
    project_id: str
    cancelled: int


class OperationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    progress: float
    status: Literal["pending", "running", "completed", "failed"]
    timestamp: datetime
    details: str | None = None

    @classmethod
    def from_operation(cls, op: ProgressOperation) -> "OperationResponse":
        return cls(**op.__dict__)
