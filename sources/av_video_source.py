import logging
import math
import urllib.parse
import urllib.request
from typing import Optional

import av
from PIL import Image

from pipeline.errors import SourceError
from sources.video_source import FrameReadError, VideoSource

logger = logging.getLogger(__name__)


def _open_target(location: str) -> str:
    parsed = urllib.parse.urlparse(location)
    if parsed.scheme == "file":
        return urllib.request.url2pathname(parsed.path)
    return location


class AVVideoSource(VideoSource):
    """PyAV-backed decode context over a local path or a (signed) URL."""

    def __init__(self, location: str, open_timeout: float = 30.0):
        self.location = location
        self.open_timeout = open_timeout

        self._container = None
        self._stream = None

    def open(self) -> None:
        if self._container is not None:
            return

        try:
            container = av.open(_open_target(self.location), timeout=self.open_timeout)
        except (av.error.FFmpegError, OSError) as exc:
            raise SourceError(f"Failed to load video: {exc}") from exc

        if not container.streams.video:
            container.close()
            raise SourceError("Container has no video stream")

        stream = container.streams.video[0]
        width = stream.codec_context.width
        height = stream.codec_context.height
        if not width or not height:
            container.close()
            raise SourceError(f"Invalid video dimensions: {width}x{height}")

        self._container = container
        self._stream = stream
        logger.info("Video loaded. Dimensions: %dx%d", width, height)

    def read_frame(self, seconds: float) -> Image.Image:
        if self._container is None or self._stream is None:
            raise FrameReadError("Video source is not open")

        if not math.isfinite(seconds):
            raise FrameReadError(f"Cannot seek to {seconds!r}")

        stream = self._stream
        time_base = float(stream.time_base) if stream.time_base else 1e-6
        target_pts = int(max(0.0, seconds) / time_base)
        if stream.start_time is not None:
            target_pts += int(stream.start_time)

        try:
            self._container.seek(target_pts, stream=stream, backward=True, any_frame=False)

            candidate = None
            for frame in self._container.decode(stream):
                if frame.time is None:
                    candidate = frame
                    continue
                candidate = frame
                if frame.time >= seconds:
                    break
        except av.error.FFmpegError as exc:
            raise FrameReadError(f"Seek failed at {seconds:.3f}s: {exc}") from exc

        if candidate is None:
            raise FrameReadError(f"No frame decoded at {seconds:.3f}s")

        try:
            return candidate.to_image()
        except (av.error.FFmpegError, ValueError, RuntimeError) as exc:
            raise FrameReadError(f"Could not convert frame at {seconds:.3f}s: {exc}") from exc

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
        self._container = None
        self._stream = None

    @property
    def duration(self) -> Optional[float]:
        if self._container is None:
            return None
        if self._stream is not None and self._stream.duration and self._stream.time_base:
            return float(self._stream.duration * self._stream.time_base)
        if self._container.duration:
            return self._container.duration / float(av.time_base)
        return None

    @property
    def size(self) -> tuple[int, int]:
        if self._stream is None:
            return (0, 0)
        return (self._stream.codec_context.width, self._stream.codec_context.height)
