import os
from pathlib import Path
from typing import Optional

from pipeline.errors import StorageError
from storage.storage_gateway import StorageGateway


class LocalStorageGateway(StorageGateway):
    """Directory-backed storage; URLs are file:// URIs."""

    def __init__(self, root_dir: str):
        self.root_dir = Path(root_dir).resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        cleaned = (path or "").strip().lstrip("/")
        if not cleaned:
            raise StorageError("path is required")

        target = (self.root_dir / cleaned).resolve()
        if self.root_dir != target and self.root_dir not in target.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return target

    def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        # local files never expire; expires_in is accepted for interface parity
        target = self._resolve(path)
        if not target.is_file():
            raise StorageError(f"Object not found: {path}")
        return target.as_uri()

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def upload(
        self,
        path: str,
        data: bytes,
        cache_control: str = "3600",
        upsert: bool = True,
        content_type: Optional[str] = None,
    ) -> str:
        target = self._resolve(path)
        if target.exists() and not upsert:
            raise StorageError(f"Object already exists: {path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = target.with_name(target.name + ".part")
            tmp_path.write_bytes(data)
            os.replace(tmp_path, target)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc

        return str(target.relative_to(self.root_dir).as_posix())

    def list(self, directory: str) -> list[str]:
        target = self._resolve(directory)
        if not target.is_dir():
            return []
        return sorted(entry.name for entry in target.iterdir())

    def get_public_url(self, path: str) -> str:
        return self._resolve(path).as_uri()
