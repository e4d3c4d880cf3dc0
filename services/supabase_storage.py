import json
import os
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Optional

from pipeline.errors import StorageError
from storage.storage_gateway import StorageGateway


class SupabaseStorageGateway(StorageGateway):
    """Supabase Storage REST client scoped to a single bucket."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str,
        request_timeout: float = 60.0,
    ):
        if not base_url:
            raise ValueError("SUPABASE_URL is required")
        if not service_key:
            raise ValueError("SUPABASE_SERVICE_KEY is required")
        if not bucket:
            raise ValueError("bucket is required")

        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.request_timeout = request_timeout

    @classmethod
    def from_env(cls, bucket: str, request_timeout: float = 60.0) -> "SupabaseStorageGateway":
        return cls(
            base_url=os.getenv("SUPABASE_URL", "").strip(),
            service_key=os.getenv("SUPABASE_SERVICE_KEY", "").strip(),
            bucket=bucket,
            request_timeout=request_timeout,
        )

    def _object_url(self, kind: str, path: str) -> str:
        quoted = urllib.parse.quote(path.strip().lstrip("/"))
        if kind:
            return f"{self.base_url}/storage/v1/object/{kind}/{self.bucket}/{quoted}"
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quoted}"

    def _request(
        self,
        url: str,
        method: str,
        data: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        req = urllib.request.Request(
            url,
            data=data,
            method=method,
            headers={
                "apikey": self.service_key,
                "Authorization": f"Bearer {self.service_key}",
                **(headers or {}),
            },
        )

        try:
            with urllib.request.urlopen(req, timeout=self.request_timeout) as resp:
                return resp.read()
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace").strip()
            raise StorageError(f"{method} {url} failed with HTTP {exc.code}: {detail}") from exc
        except (urllib.error.URLError, TimeoutError, OSError) as exc:
            raise StorageError(f"{method} {url} failed: {exc}") from exc

    def _request_json(self, url: str, method: str, payload: dict[str, Any]) -> Any:
        body = self._request(
            url,
            method=method,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        try:
            return json.loads(body.decode("utf-8"))
        except ValueError as exc:
            raise StorageError(f"Invalid JSON from {url}") from exc

    def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        data = self._request_json(
            self._object_url("sign", path),
            method="POST",
            payload={"expiresIn": int(expires_in)},
        )
        signed = str((data or {}).get("signedURL") or (data or {}).get("signedUrl") or "").strip()
        if not signed:
            raise StorageError(f"No signed URL returned for {path}")

        if signed.startswith("http"):
            return signed
        return f"{self.base_url}/storage/v1{signed}"

    def download(self, path: str) -> bytes:
        return self._request(self._object_url("", path), method="GET")

    def upload(
        self,
        path: str,
        data: bytes,
        cache_control: str = "3600",
        upsert: bool = True,
        content_type: Optional[str] = None,
    ) -> str:
        body = self._request(
            self._object_url("", path),
            method="POST",
            data=data,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
        )

        try:
            parsed = json.loads(body.decode("utf-8"))
        except ValueError:
            parsed = {}
        key = str(parsed.get("Key", "")).strip() if isinstance(parsed, dict) else ""

        prefix = f"{self.bucket}/"
        if key.startswith(prefix):
            return key[len(prefix):]
        return path

    def list(self, directory: str) -> list[str]:
        rows = self._request_json(
            f"{self.base_url}/storage/v1/object/list/{self.bucket}",
            method="POST",
            payload={"prefix": directory.strip("/"), "limit": 1000, "offset": 0},
        )
        if not isinstance(rows, list):
            raise StorageError(f"Unexpected listing payload for {directory}")
        return [str(row.get("name")) for row in rows if row.get("name")]

    def get_public_url(self, path: str) -> str:
        return self._object_url("public", path)
