from contextlib import asynccontextmanager
import logging
import os
import sys
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

load_dotenv(Path(ROOT_DIR) / ".env")

from backend import config
from backend.schemas import (
    CancelResponse,
    ErrorResponse,
    FrameCaptureRequest,
    OperationResponse,
    ProjectCreateRequest,
    ProjectResponse,
    QueuedResponse,
)
from backend.services.project_jobs import ProjectJobConflictError, ProjectJobs, ProjectQueueStatus
from backend.services.storage_backends import build_gateways
from pipeline.chunk_uploader import ChunkUploader
from pipeline.chunking_session import ChunkPreparationSession
from pipeline.errors import PersistFailure
from pipeline.frame_capture import FrameCaptureSession
from services.operation_tracker import OperationTracker
from sources.audio_extractor import AudioExtractor
from sources.media_downloader import MediaDownloader
from storage.frame_library import FrameLibrary, sorted_by_timestamp
from storage.project_store import ProjectStore
from storage.records import ExtractedFrame, ProjectRecord

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    os.makedirs(config.DATA_DIR, exist_ok=True)
    os.makedirs(config.TEMP_DIR, exist_ok=True)

    store = ProjectStore(db_path=config.DB_PATH)
    store.init_db()

    library = FrameLibrary(store)
    tracker = OperationTracker(max_history=config.OPERATIONS_MAX_HISTORY)
    video_gateway, audio_gateway, stills_gateway = build_gateways()

    chunking = ChunkPreparationSession(
        downloader=MediaDownloader(
            video_gateway,
            request_timeout=config.REQUEST_TIMEOUT_SECONDS,
            signed_url_ttl=config.SIGNED_URL_TTL_SECONDS,
        ),
        extractor=AudioExtractor(
            sample_rate=config.AUDIO_SAMPLE_RATE,
            channels=config.AUDIO_CHANNELS,
            temp_dir=config.TEMP_DIR,
        ),
        uploader=ChunkUploader(audio_gateway),
        store=store,
        tracker=tracker,
        chunk_length_seconds=config.CHUNK_LENGTH_SECONDS,
        overlap_seconds=config.CHUNK_OVERLAP_SECONDS,
    )

    capture = FrameCaptureSession(
        video_gateway=video_gateway,
        stills_gateway=stills_gateway,
        library=library,
        tracker=tracker,
        quality=config.FRAME_JPEG_QUALITY,
        max_retries=config.FRAME_MAX_RETRIES,
        signed_url_ttl=config.SIGNED_URL_TTL_SECONDS,
    )

    jobs = ProjectJobs(chunking=chunking, capture=capture)

    app.state.store = store
    app.state.library = library
    app.state.tracker = tracker
    app.state.jobs = jobs

    try:
        yield
    finally:
        jobs.shutdown()


app = FastAPI(title="Slidecast Media API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1|[0-9]{1,3}(?:\.[0-9]{1,3}){3})(:[0-9]+)?$",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_project(project_id: str) -> ProjectRecord:
    try:
        record = app.state.store.get_project(project_id)
    except PersistFailure as exc:
        raise HTTPException(
            status_code=500,
            detail={"code": "CORRUPT_PROJECT", "message": str(exc)},
        ) from exc

    if record is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "PROJECT_NOT_FOUND", "message": f"Project not found: {project_id}"},
        )
    return record


def _to_response(record: ProjectRecord) -> ProjectResponse:
    return ProjectResponse(
        id=record.id,
        title=record.title,
        source_video_path=record.source_video_path,
        video_metadata=record.video_metadata,
        extracted_frames=record.extracted_frames,
    )


@app.get("/api/health")
def health() -> dict[str, bool]:
    return {"ok": True}


@app.post(
    "/api/projects",
    response_model=ProjectResponse,
    status_code=201,
    responses={400: {"model": ErrorResponse}},
)
def create_project(payload: ProjectCreateRequest) -> ProjectResponse:
    try:
        record = app.state.store.create_project(
            title=payload.title,
            source_video_path=payload.source_video_path,
            video_metadata=payload.video_metadata,
        )
    except PersistFailure as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "INVALID_PROJECT", "message": str(exc)},
        ) from exc
    return _to_response(record)


@app.get(
    "/api/projects/{project_id}",
    response_model=ProjectResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_project(project_id: str) -> ProjectResponse:
    return _to_response(_require_project(project_id))


@app.post(
    "/api/projects/{project_id}/chunks",
    response_model=QueuedResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def prepare_chunks(project_id: str) -> QueuedResponse:
    record = _require_project(project_id)
    if not record.source_video_path:
        raise HTTPException(
            status_code=400,
            detail={"code": "NO_SOURCE_VIDEO", "message": "Project has no source video"},
        )

    try:
        op_id = app.state.jobs.submit_chunk_preparation(project_id)
    except ProjectJobConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "PROJECT_CANCELLING", "message": str(exc)},
        ) from exc
    return QueuedResponse(operation_id=op_id, project_id=project_id)


@app.post(
    "/api/projects/{project_id}/frames",
    response_model=QueuedResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def capture_frames(project_id: str, payload: FrameCaptureRequest) -> QueuedResponse:
    _require_project(project_id)

    try:
        op_id = app.state.jobs.submit_frame_capture(project_id, payload.timestamps)
    except ProjectJobConflictError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "PROJECT_CANCELLING", "message": str(exc)},
        ) from exc
    return QueuedResponse(operation_id=op_id, project_id=project_id)


@app.get(
    "/api/projects/{project_id}/frames",
    response_model=list[ExtractedFrame],
    responses={404: {"model": ErrorResponse}},
)
def list_frames(project_id: str) -> list[ExtractedFrame]:
    record = _require_project(project_id)
    return sorted_by_timestamp(record.extracted_frames)


@app.delete(
    "/api/projects/{project_id}/frames/{frame_id}",
    responses={404: {"model": ErrorResponse}},
)
def delete_frame(project_id: str, frame_id: str) -> dict[str, bool]:
    record = _require_project(project_id)
    if not any(frame.id == frame_id for frame in record.extracted_frames):
        raise HTTPException(
            status_code=404,
            detail={"code": "FRAME_NOT_FOUND", "message": f"Frame not found: {frame_id}"},
        )

    app.state.library.remove(project_id, [frame_id])
    return {"deleted": True}


@app.get("/api/projects/{project_id}/jobs", responses={404: {"model": ErrorResponse}})
def get_project_jobs(project_id: str) -> dict[str, object]:
    _require_project(project_id)
    status: ProjectQueueStatus = app.state.jobs.get_status(project_id)
    return status.__dict__


@app.delete(
    "/api/projects/{project_id}/jobs",
    response_model=CancelResponse,
    responses={404: {"model": ErrorResponse}},
)
def cancel_project_jobs(project_id: str) -> CancelResponse:
    _require_project(project_id)
    cancelled = app.state.jobs.cancel(project_id)
    return CancelResponse(project_id=project_id, cancelled=cancelled)


@app.get("/api/operations", response_model=list[OperationResponse])
def list_operations(active: bool = Query(default=False)) -> list[OperationResponse]:
    tracker: OperationTracker = app.state.tracker
    ops = tracker.active() if active else tracker.recent()
    return [OperationResponse.from_operation(op) for op in ops]


@app.get(
    "/api/operations/{op_id}",
    response_model=OperationResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_operation(op_id: str) -> OperationResponse:
    op = app.state.tracker.get(op_id)
    if op is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "OPERATION_NOT_FOUND", "message": f"Operation not found: {op_id}"},
        )
    return OperationResponse.from_operation(op)


@app.delete("/api/operations/completed")
def clear_completed_operations() -> dict[str, bool]:
    app.state.tracker.clear_completed()
    return {"ok": True}
