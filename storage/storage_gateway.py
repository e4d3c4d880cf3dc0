# storage/storage_gateway.py
from abc import ABC, abstractmethod
from typing import Optional


class StorageGateway(ABC):
    """
    Object storage used by the pipeline. Implementations raise
    pipeline.errors.StorageError on any failure.
    """

    @abstractmethod
    def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        """Return a time-limited URL granting read access to `path`."""
        pass

    @abstractmethod
    def download(self, path: str) -> bytes:
        pass

    @abstractmethod
    def upload(
        self,
        path: str,
        data: bytes,
        cache_control: str = "3600",
        upsert: bool = True,
        content_type: Optional[str] = None,
    ) -> str:
        """Store `data` at `path` and return the stored path."""
        pass

    @abstractmethod
    def list(self, directory: str) -> list[str]:
        """Names of the objects directly under `directory`."""
        pass

    @abstractmethod
    def get_public_url(self, path: str) -> str:
        """Durable URL for an object, used as a frame's image reference."""
        pass
