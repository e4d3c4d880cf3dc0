from pathlib import Path
import argparse
import json
import logging
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
from pipeline.errors import PipelineError
from pipeline.frame_capture import FrameCaptureSession
from services.operation_tracker import get_tracker
from storage.frame_library import FrameLibrary, sorted_by_timestamp
from storage.project_store import ProjectStore


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Capture slide stills from a project's video")
    parser.add_argument("--project-id", required=True)
    parser.add_argument(
        "timestamps",
        nargs="+",
        help="Positions to capture, as HH:MM:SS, MM:SS or seconds",
    )
    parser.add_argument("--quality", type=int, default=config.FRAME_JPEG_QUALITY)
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.WARNING)

    os.makedirs(config.DATA_DIR, exist_ok=True)
    store = ProjectStore(db_path=config.DB_PATH)
    store.init_db()
    library = FrameLibrary(store)
    video_gateway, _, stills_gateway = build_gateways()

    session = FrameCaptureSession(
        video_gateway=video_gateway,
        stills_gateway=stills_gateway,
        library=library,
        tracker=get_tracker(),
        quality=args.quality,
        max_retries=config.FRAME_MAX_RETRIES,
        signed_url_ttl=config.SIGNED_URL_TTL_SECONDS,
    )

    try:
        with tqdm(unit="frame", desc="Capturing") as bar:

            def on_progress(done: int, total: int) -> None:
                bar.total = total
                bar.update(done - bar.n)

            result = session.run(args.project_id, args.timestamps, on_progress=on_progress)

        frames = sorted_by_timestamp(library.load(args.project_id).values())
        print(
            json.dumps(
                {
                    "project_id": args.project_id,
                    "requested": result.requested,
                    "captured": len(result.frames),
                    "skipped": result.skipped,
                    "frames": [frame.model_dump(mode="json") for frame in frames],
                },
                indent=2,
            )
        )
        return 0 if result.frames or result.skipped else 1
    except PipelineError as exc:
        print(json.dumps({"status": "error", "stage": exc.stage, "error": str(exc)}, indent=2))
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
