import io
import logging
import os
import subprocess
import tempfile

import soundfile as sf

from pipeline.errors import ExtractionFailure

logger = logging.getLogger(__name__)


class AudioExtractor:
    """
    Demux the audio track of an in-memory video into a standalone WAV.
    Scratch files live in a private temp directory that is always removed.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        ffmpeg_bin: str = "ffmpeg",
        temp_dir: str | None = None,
    ):
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.ffmpeg_bin = ffmpeg_bin
        self.temp_dir = temp_dir

    def extract(self, video_bytes: bytes) -> bytes:
        if not video_bytes:
            raise ExtractionFailure("Video buffer is empty")

        if self.temp_dir:
            os.makedirs(self.temp_dir, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="extract_", dir=self.temp_dir) as work_dir:
            input_path = os.path.join(work_dir, "source.bin")
            output_path = os.path.join(work_dir, "audio.wav")

            with open(input_path, "wb") as f:
                f.write(video_bytes)

            cmd = [
                self.ffmpeg_bin,
                "-loglevel",
                "error",
                "-i",
                input_path,
                "-vn",
                "-ar",
                str(self.sample_rate),
                "-ac",
                str(self.channels),
                "-y",
                output_path,
            ]

            try:
                result = subprocess.run(cmd, capture_output=True, text=True)
            except FileNotFoundError as exc:
                raise ExtractionFailure(f"ffmpeg not found: {self.ffmpeg_bin}") from exc

            if result.returncode != 0:
                message = result.stderr.strip() or "ffmpeg failed"
                raise ExtractionFailure(f"Failed to demux audio track: {message}")

            if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
                raise ExtractionFailure("Extracted audio is missing or empty")

            with open(output_path, "rb") as f:
                audio_bytes = f.read()

        logger.info("Extracted audio track (%.2f MB)", len(audio_bytes) / 1024 / 1024)
        return audio_bytes

    @staticmethod
    def probe_duration(audio_bytes: bytes) -> float:
        """Duration in seconds of a WAV buffer."""
        try:
            info = sf.info(io.BytesIO(audio_bytes))
        except RuntimeError as exc:
            raise ExtractionFailure(f"Unreadable audio buffer: {exc}") from exc

        if info.samplerate <= 0:
            raise ExtractionFailure("Audio buffer reports no sample rate")
        return info.frames / float(info.samplerate)
