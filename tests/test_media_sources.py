import io
import tempfile
import unittest
import urllib.error
from unittest.mock import patch
from pathlib import Path
import sys

import numpy as np
import soundfile as sf

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from pipeline.errors import DownloadFailure, ExtractionFailure, StorageError
from sources.audio_extractor import AudioExtractor
from sources.media_downloader import MediaDownloader
from storage.local_storage import LocalStorageGateway


class RemoteGateway(LocalStorageGateway):
    def get_signed_url(self, path: str, expires_in: int = 3600) -> str:
        if path == "unsignable.mp4":
            raise StorageError("bucket not found")
        return f"https://storage.test/{path}?token=abc"


class TestMediaDownloader(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.gateway = LocalStorageGateway(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_downloads_whole_object(self) -> None:
        self.gateway.upload("uploads/lecture.mp4", b"\x00\x01video-bytes")

        data = MediaDownloader(self.gateway).download("uploads/lecture.mp4")

        self.assertEqual(data, b"\x00\x01video-bytes")

    def test_missing_object_is_a_download_failure(self) -> None:
        with self.assertRaises(DownloadFailure) as ctx:
            MediaDownloader(self.gateway).download("uploads/missing.mp4")
        self.assertEqual(ctx.exception.stage, "download")

    def test_empty_body_is_a_download_failure(self) -> None:
        self.gateway.upload("uploads/empty.mp4", b"")

        with self.assertRaises(DownloadFailure):
            MediaDownloader(self.gateway).download("uploads/empty.mp4")

    def test_empty_path_is_rejected(self) -> None:
        with self.assertRaises(DownloadFailure):
            MediaDownloader(self.gateway).download("  ")

    def test_http_error_is_a_download_failure(self) -> None:
        gateway = RemoteGateway(self._tmp.name)
        error = urllib.error.HTTPError("https://storage.test/a.mp4", 503, "Unavailable", None, None)

        with patch("urllib.request.urlopen", side_effect=error) as urlopen:
            with self.assertRaises(DownloadFailure) as ctx:
                MediaDownloader(gateway, request_timeout=7).download("a.mp4")

        self.assertEqual(ctx.exception.details["status"], 503)
        self.assertEqual(urlopen.call_args.kwargs["timeout"], 7)

    def test_network_error_is_a_download_failure(self) -> None:
        gateway = RemoteGateway(self._tmp.name)

        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("timed out")):
            with self.assertRaises(DownloadFailure):
                MediaDownloader(gateway).download("a.mp4")

    def test_unsignable_path_is_a_download_failure(self) -> None:
        with self.assertRaises(DownloadFailure):
            MediaDownloader(RemoteGateway(self._tmp.name)).download("unsignable.mp4")


class TestAudioExtractor(unittest.TestCase):
    def test_probe_duration(self) -> None:
        buffer = io.BytesIO()
        sf.write(buffer, np.zeros(16000 * 3, dtype=np.float32), 16000, format="WAV")

        self.assertAlmostEqual(AudioExtractor.probe_duration(buffer.getvalue()), 3.0)

    def test_probe_duration_rejects_garbage(self) -> None:
        with self.assertRaises(ExtractionFailure):
            AudioExtractor.probe_duration(b"not audio at all")

    def test_empty_video_is_rejected(self) -> None:
        with self.assertRaises(ExtractionFailure):
            AudioExtractor().extract(b"")

    def test_missing_ffmpeg_is_an_extraction_failure(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            extractor = AudioExtractor(ffmpeg_bin="/nonexistent/ffmpeg", temp_dir=tmp)

            with self.assertRaises(ExtractionFailure) as ctx:
                extractor.extract(b"fake video")

            self.assertEqual(ctx.exception.stage, "extraction")
            self.assertEqual(list(Path(tmp).iterdir()), [])


if __name__ == "__main__":
    unittest.main()
