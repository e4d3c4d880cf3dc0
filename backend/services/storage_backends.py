import os

from backend import config
from services.supabase_storage import SupabaseStorageGateway
from storage.local_storage import LocalStorageGateway
from storage.storage_gateway import StorageGateway


def build_gateway(bucket: str, backend: str | None = None) -> StorageGateway:
    backend = (backend or config.STORAGE_BACKEND).strip().lower()

    if backend == "local":
        return LocalStorageGateway(os.path.join(config.LOCAL_STORAGE_DIR, bucket))

    if backend == "supabase":
        return SupabaseStorageGateway.from_env(
            bucket=bucket,
            request_timeout=config.REQUEST_TIMEOUT_SECONDS,
        )

    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")


def build_gateways(backend: str | None = None) -> tuple[StorageGateway, StorageGateway, StorageGateway]:
    """(video, audio, stills) gateways for the configured backend."""
    return (
        build_gateway(config.SUPABASE_VIDEO_BUCKET, backend),
        build_gateway(config.SUPABASE_AUDIO_BUCKET, backend),
        build_gateway(config.SUPABASE_STILLS_BUCKET, backend),
    )
