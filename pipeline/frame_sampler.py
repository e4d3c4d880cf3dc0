import io
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import numpy as np
from PIL import Image

from pipeline.timestamps import timestamp_to_seconds
from sources.video_source import FrameReadError, VideoSource

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 95
DEFAULT_MAX_RETRIES = 3

BLACK_PIXEL_LEVEL = 20
BLACK_PIXEL_RATIO = 0.9
_PROBE_SIZE = (32, 32)


@dataclass
class CapturedFrame:
    timestamp: str
    seconds: float
    image_bytes: bytes
    width: int
    height: int


def is_black_frame(image: Image.Image) -> bool:
    probe = np.asarray(image.convert("L").resize(_PROBE_SIZE))
    return float((probe < BLACK_PIXEL_LEVEL).mean()) > BLACK_PIXEL_RATIO


def encode_jpeg(image: Image.Image, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    buffer = io.BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class FrameSampler:
    """
    Captures stills from one VideoSource at a batch of timestamps.

    The source holds a single decode context, so frames are taken one at a
    time in ascending order. Frames that cannot be read are skipped; the
    caller gets whatever succeeded.
    """

    def __init__(
        self,
        source: VideoSource,
        quality: int = DEFAULT_JPEG_QUALITY,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        if not 1 <= quality <= 100:
            raise ValueError("quality must be in [1, 100]")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")

        self.source = source
        self.quality = quality
        self.max_retries = max_retries

    @staticmethod
    def plan(timestamps: Iterable[str], duration: Optional[float] = None) -> list[tuple[str, float]]:
        """
        Deduplicate by position, sort ascending and drop anything that
        cannot be parsed or lies past `duration`.
        """
        by_seconds: dict[float, str] = {}
        unparseable = 0
        for ts in timestamps:
            try:
                seconds = timestamp_to_seconds(ts)
            except ValueError:
                unparseable += 1
                continue
            by_seconds.setdefault(seconds, ts.strip())

        if unparseable:
            logger.warning("Dropped %d unparseable timestamps", unparseable)

        planned = sorted(((ts, s) for s, ts in by_seconds.items()), key=lambda item: item[1])

        if duration is not None:
            in_range = [(ts, s) for ts, s in planned if s <= duration]
            dropped = len(planned) - len(in_range)
            if dropped:
                logger.warning(
                    "Dropped %d timestamps beyond video duration %.2fs", dropped, duration
                )
            planned = in_range

        return planned

    def sample(
        self,
        timestamps: Iterable[str],
        duration: Optional[float] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> list[CapturedFrame]:
        self.source.open()

        if duration is None:
            duration = self.source.duration

        planned = self.plan(timestamps, duration)
        total = len(planned)
        captured: list[CapturedFrame] = []

        logger.info("Capturing %d frames", total)

        for done, (ts, seconds) in enumerate(planned, start=1):
            if should_continue is not None and not should_continue():
                logger.info("Frame capture cancelled after %d of %d frames", done - 1, total)
                break

            image = self._read_with_retries(ts, seconds)
            if image is not None:
                try:
                    data = encode_jpeg(image, self.quality)
                except (OSError, ValueError) as exc:
                    logger.error("Failed to encode frame at %s: %s", ts, exc)
                else:
                    width, height = image.size
                    captured.append(
                        CapturedFrame(
                            timestamp=ts,
                            seconds=seconds,
                            image_bytes=data,
                            width=width,
                            height=height,
                        )
                    )

            if on_progress is not None:
                on_progress(done, total)

        logger.info("Captured %d of %d frames", len(captured), total)
        return captured

    def _read_with_retries(self, ts: str, seconds: float) -> Optional[Image.Image]:
        last: Optional[Image.Image] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                image = self.source.read_frame(seconds)
            except FrameReadError as exc:
                logger.warning("Seek to %s failed (attempt %d/%d): %s", ts, attempt, self.max_retries, exc)
                continue
            except Exception:
                # unknown decoder fault: skip this frame, keep the rest of the batch
                logger.exception("Unexpected error reading frame at %s", ts)
                return last

            last = image
            if not is_black_frame(image):
                return image
            logger.warning("Frame at %s appears black (attempt %d/%d)", ts, attempt, self.max_retries)

        if last is None:
            logger.error("Giving up on frame at %s", ts)
        return last

