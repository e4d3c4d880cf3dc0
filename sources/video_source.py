# sources/video_source.py
from abc import ABC, abstractmethod
from typing import Optional

from PIL import Image


class FrameReadError(Exception):
    pass


class VideoSource(ABC):
    """
    A single seekable decode context. Not safe for concurrent seeks:
    callers must finish one read_frame() before issuing the next.
    """

    @abstractmethod
    def open(self) -> None:
        """Load the container; raise pipeline.errors.SourceError if it never becomes readable."""
        pass

    @abstractmethod
    def read_frame(self, seconds: float) -> Image.Image:
        """
        Seek to `seconds` and return the decoded frame at native resolution.
        Raise FrameReadError if no frame can be produced.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        pass

    @property
    @abstractmethod
    def duration(self) -> Optional[float]:
        """Duration in seconds, if the container reports one."""
        pass

    @property
    @abstractmethod
    def size(self) -> tuple[int, int]:
        """(width, height) of decoded frames."""
        pass

    def __enter__(self) -> "VideoSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
