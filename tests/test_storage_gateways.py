import json
import tempfile
import unittest
from unittest.mock import patch
from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pipeline.errors import StorageError
from services.supabase_storage import SupabaseStorageGateway
from storage.local_storage import LocalStorageGateway


class TestLocalStorageGateway(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.gateway = LocalStorageGateway(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_upload_download_list(self) -> None:
        stored = self.gateway.upload("projects/p1/audio/chunk_000.wav", b"abc")

        self.assertEqual(stored, "projects/p1/audio/chunk_000.wav")
        self.assertEqual(self.gateway.download(stored), b"abc")
        self.assertEqual(self.gateway.list("projects/p1/audio"), ["chunk_000.wav"])
        self.assertEqual(self.gateway.list("projects/none"), [])

    def test_upsert_false_keeps_existing(self) -> None:
        self.gateway.upload("a.bin", b"one")

        with self.assertRaises(StorageError):
            self.gateway.upload("a.bin", b"two", upsert=False)

        self.gateway.upload("a.bin", b"three", upsert=True)
        self.assertEqual(self.gateway.download("a.bin"), b"three")

    def test_signed_url_requires_existing_object(self) -> None:
        with self.assertRaises(StorageError):
            self.gateway.get_signed_url("missing.mp4")

        self.gateway.upload("video.mp4", b"data")
        url = self.gateway.get_signed_url("video.mp4")

        self.assertTrue(url.startswith("file://"))
        self.assertTrue(url.endswith("/video.mp4"))

    def test_rejects_paths_outside_root(self) -> None:
        with self.assertRaises(StorageError):
            self.gateway.upload("../escape.bin", b"x")
        with self.assertRaises(StorageError):
            self.gateway.download("")


class TestSupabaseStorageGateway(unittest.TestCase):
    def setUp(self) -> None:
        self.gateway = SupabaseStorageGateway(
            base_url="https://proj.supabase.co/",
            service_key="key",
            bucket="video-uploads",
        )

    def test_requires_credentials(self) -> None:
        with self.assertRaises(ValueError):
            SupabaseStorageGateway(base_url="", service_key="key", bucket="b")
        with self.assertRaises(ValueError):
            SupabaseStorageGateway(base_url="https://x", service_key="", bucket="b")

    def test_relative_signed_url_is_made_absolute(self) -> None:
        body = json.dumps({"signedURL": "/object/sign/video-uploads/a.mp4?token=t"}).encode()

        with patch.object(self.gateway, "_request", return_value=body) as request:
            url = self.gateway.get_signed_url("a.mp4", expires_in=120)

        self.assertEqual(url, "https://proj.supabase.co/storage/v1/object/sign/video-uploads/a.mp4?token=t")
        args, kwargs = request.call_args
        self.assertEqual(args[0], "https://proj.supabase.co/storage/v1/object/sign/video-uploads/a.mp4")
        self.assertEqual(json.loads(kwargs["data"]), {"expiresIn": 120})

    def test_missing_signed_url_raises(self) -> None:
        with patch.object(self.gateway, "_request", return_value=b"{}"):
            with self.assertRaises(StorageError):
                self.gateway.get_signed_url("a.mp4")

    def test_upload_sends_cache_and_upsert_headers(self) -> None:
        body = json.dumps({"Key": "video-uploads/projects/p1/audio/chunk_000.wav"}).encode()

        with patch.object(self.gateway, "_request", return_value=body) as request:
            stored = self.gateway.upload(
                "projects/p1/audio/chunk_000.wav",
                b"RIFF",
                content_type="audio/wav",
            )

        self.assertEqual(stored, "projects/p1/audio/chunk_000.wav")
        headers = request.call_args.kwargs["headers"]
        self.assertEqual(headers["Cache-Control"], "max-age=3600")
        self.assertEqual(headers["x-upsert"], "true")
        self.assertEqual(headers["Content-Type"], "audio/wav")

    def test_list_and_public_url(self) -> None:
        rows = json.dumps([{"name": "chunk_000.wav"}, {"name": None}, {"name": "chunk_001.wav"}]).encode()

        with patch.object(self.gateway, "_request", return_value=rows):
            names = self.gateway.list("projects/p1/audio")

        self.assertEqual(names, ["chunk_000.wav", "chunk_001.wav"])
        self.assertEqual(
            self.gateway.get_public_url("p1/00_10-5.jpg"),
            "https://proj.supabase.co/storage/v1/object/public/video-uploads/p1/00_10-5.jpg",
        )


if __name__ == "__main__":
    unittest.main()
