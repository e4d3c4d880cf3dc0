from dataclasses import asdict
from pathlib import Path
import argparse
import json
import logging
import mimetypes
import os
import sys

from tqdm import tqdm

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from dotenv import load_dotenv

load_dotenv(ROOT_DIR / ".env")

from backend import config
from backend.services.storage_backends import build_gateways
from pipeline.chunk_uploader import ChunkUploader
from pipeline.chunking_session import ChunkPreparationSession
from pipeline.errors import PipelineError, StorageError
from services.operation_tracker import get_tracker
from sources.audio_extractor import AudioExtractor
from sources.media_downloader import MediaDownloader
from storage.project_store import ProjectStore
from storage.records import VideoMetadata


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Split a project's audio into overlapping chunks")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--project-id", help="Existing project to prepare")
    target.add_argument("--video", help="Local video file; creates a new project first")
    parser.add_argument("--title", default=None, help="Title for a project created from --video")
    parser.add_argument("--chunk-length", type=float, default=config.CHUNK_LENGTH_SECONDS)
    parser.add_argument("--overlap", type=float, default=config.CHUNK_OVERLAP_SECONDS)
    return parser.parse_args()


def create_from_file(store: ProjectStore, video_gateway, video_path: str, title: str | None) -> str:
    data = Path(video_path).read_bytes()
    name = os.path.basename(video_path)
    stored = video_gateway.upload(f"uploads/{name}", data, content_type=mimetypes.guess_type(name)[0])

    record = store.create_project(
        title=title or Path(name).stem,
        source_video_path=stored,
        video_metadata=VideoMetadata(
            original_file_name=name,
            file_type=mimetypes.guess_type(name)[0],
            file_size=len(data),
        ),
    )
    print(f"Created project {record.id} from {name}")
    return record.id


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.WARNING)

    os.makedirs(config.DATA_DIR, exist_ok=True)
    store = ProjectStore(db_path=config.DB_PATH)
    store.init_db()
    video_gateway, audio_gateway, _ = build_gateways()

    try:
        if args.video:
            project_id = create_from_file(store, video_gateway, args.video, args.title)
        else:
            project_id = args.project_id

        session = ChunkPreparationSession(
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
            tracker=get_tracker(),
            chunk_length_seconds=args.chunk_length,
            overlap_seconds=args.overlap,
        )

        with tqdm(unit="chunk", desc="Uploading") as bar:

            def on_progress(done: int, total: int) -> None:
                bar.total = total
                bar.update(done - bar.n)

            result = session.run(project_id, on_progress=on_progress)

        print(
            json.dumps(
                {
                    "project_id": project_id,
                    "status": result.status,
                    "total_duration": result.total_duration,
                    "chunks": [asdict(chunk) for chunk in result.chunks],
                },
                indent=2,
            )
        )
        return 0
    except PipelineError as exc:
        print(json.dumps({"status": "error", "stage": exc.stage, "error": str(exc)}, indent=2))
        return 1
    except (StorageError, OSError) as exc:
        print(json.dumps({"status": "error", "error": str(exc)}, indent=2))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
