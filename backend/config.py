import os
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT_DIR / "data"

DB_PATH = str(DATA_DIR / "projects.db")
LOCAL_STORAGE_DIR = str(DATA_DIR / "storage")
TEMP_DIR = str(DATA_DIR / "temp_extract")

CHUNK_LENGTH_SECONDS = 60
CHUNK_OVERLAP_SECONDS = 20
AUDIO_SAMPLE_RATE = 16000
AUDIO_CHANNELS = 1
FRAME_JPEG_QUALITY = 95
FRAME_MAX_RETRIES = 3
REQUEST_TIMEOUT_SECONDS = 60.0
SIGNED_URL_TTL_SECONDS = 3600
OPERATIONS_MAX_HISTORY = 30

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").strip().lower()
SUPABASE_VIDEO_BUCKET = os.getenv("SUPABASE_VIDEO_BUCKET", "videos")
SUPABASE_AUDIO_BUCKET = os.getenv("SUPABASE_AUDIO_BUCKET", "video-uploads")
SUPABASE_STILLS_BUCKET = os.getenv("SUPABASE_STILLS_BUCKET", "slide-stills")
