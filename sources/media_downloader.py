import logging
import urllib.error
import urllib.request

from pipeline.errors import DownloadFailure, StorageError
from storage.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)


class MediaDownloader:
    def __init__(
        self,
        gateway: StorageGateway,
        request_timeout: float = 60.0,
        signed_url_ttl: int = 3600,
    ):
        self.gateway = gateway
        self.request_timeout = request_timeout
        self.signed_url_ttl = signed_url_ttl

    def download(self, path: str) -> bytes:
        """
        Fetch the whole object at `path` through a signed URL.
        """
        path = (path or "").strip()
        if not path:
            raise DownloadFailure("Source path is required")

        try:
            url = self.gateway.get_signed_url(path, expires_in=self.signed_url_ttl)
        except StorageError as exc:
            raise DownloadFailure(f"Could not resolve signed URL for {path}: {exc}") from exc

        logger.info("Downloading %s", path)

        try:
            with urllib.request.urlopen(url, timeout=self.request_timeout) as resp:
                status = getattr(resp, "status", None)
                if status is not None and not 200 <= int(status) < 300:
                    raise DownloadFailure(
                        f"Download of {path} returned HTTP {status}",
                        details={"status": status},
                    )
                data = resp.read()
        except urllib.error.HTTPError as exc:
            raise DownloadFailure(
                f"Download of {path} returned HTTP {exc.code}",
                details={"status": exc.code},
            ) from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise DownloadFailure(f"Network error downloading {path}: {exc}") from exc

        if not data:
            raise DownloadFailure(f"Downloaded object is empty: {path}")

        logger.info("Downloaded %s (%.2f MB)", path, len(data) / 1024 / 1024)
        return data
