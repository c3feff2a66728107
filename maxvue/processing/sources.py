"""
Visual sources the pipeline can enhance.

A closed set of variants (image, video frame, pixel buffer) that expose
width, height and pixel reads uniformly. Readability is decided up front by
OriginPolicy.can_read_pixels so cross-origin content never has to be probed
by attempting a read.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urlparse

import numpy as np
from PIL import Image

from maxvue.config import OriginPolicyConfig
from maxvue.types import PixelBuffer
from maxvue.utils.exceptions import InvalidSourceError, SourceUnreadableError

logger = logging.getLogger(__name__)

# URL schemes whose content never taints a pixel buffer.
LOCAL_SCHEMES = ('data', 'blob', 'file')


class SourceKind(Enum):
    IMAGE = "image"
    VIDEO_FRAME = "video_frame"
    BUFFER = "buffer"


class VisualSource:
    """
    Base for all source variants.

    Subclasses provide width, height and _load_pixels(). read_pixels() adds
    the checks shared by every variant.
    """
    kind: SourceKind
    url: Optional[str] = None
    cors_enabled: bool = False
    tainted: bool = False

    @property
    def width(self) -> int:
        raise NotImplementedError

    @property
    def height(self) -> int:
        raise NotImplementedError

    def _load_pixels(self) -> PixelBuffer:
        raise NotImplementedError

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def read_pixels(self) -> PixelBuffer:
        """
        Read the source's current pixels as an RGBA buffer.

        Raises:
            SourceUnreadableError: If the source is tainted by cross-origin content
            InvalidSourceError: If the source has no pixels
        """
        if self.tainted:
            raise SourceUnreadableError(f"{self.describe()} is tainted; pixels cannot be read")
        if self.is_empty:
            raise InvalidSourceError(f"{self.describe()} has zero dimensions ({self.width}x{self.height})")
        return self._load_pixels()

    def describe(self) -> str:
        location = f" from {self.url}" if self.url else ""
        return f"{self.kind.value} source{location}"


@dataclass
class ImageSource(VisualSource):
    """A decoded still image, optionally loaded from a URL."""
    image: Optional[Image.Image] = None
    url: Optional[str] = None
    cors_enabled: bool = False
    tainted: bool = False
    kind: SourceKind = field(default=SourceKind.IMAGE, init=False)

    @classmethod
    def from_file(cls, path: Union[str, Path], url: Optional[str] = None) -> 'ImageSource':
        """Load an image file. The file is decoded immediately."""
        with Image.open(path) as img:
            img.load()
            image = img.copy()
        return cls(image=image, url=url)

    @property
    def width(self) -> int:
        return self.image.size[0] if self.image is not None else 0

    @property
    def height(self) -> int:
        return self.image.size[1] if self.image is not None else 0

    def _load_pixels(self) -> PixelBuffer:
        return PixelBuffer.from_image(self.image)


@dataclass
class VideoFrameSource(VisualSource):
    """
    A video stream positioned at one frame.

    Frames may be RGBA/RGB/grayscale arrays, PIL images or PixelBuffers.
    """
    frames: List[Union[np.ndarray, Image.Image, PixelBuffer]] = field(default_factory=list)
    frame_index: int = 0
    url: Optional[str] = None
    cors_enabled: bool = False
    tainted: bool = False
    kind: SourceKind = field(default=SourceKind.VIDEO_FRAME, init=False)

    def _current(self):
        if 0 <= self.frame_index < len(self.frames):
            return self.frames[self.frame_index]
        return None

    @property
    def width(self) -> int:
        frame = self._current()
        if frame is None:
            return 0
        if isinstance(frame, Image.Image):
            return frame.size[0]
        if isinstance(frame, PixelBuffer):
            return frame.width
        return int(np.asarray(frame).shape[1]) if np.asarray(frame).ndim >= 2 else 0

    @property
    def height(self) -> int:
        frame = self._current()
        if frame is None:
            return 0
        if isinstance(frame, Image.Image):
            return frame.size[1]
        if isinstance(frame, PixelBuffer):
            return frame.height
        return int(np.asarray(frame).shape[0]) if np.asarray(frame).ndim >= 2 else 0

    def advance(self) -> bool:
        """Move to the next frame. Returns False at the end of the stream."""
        if self.frame_index + 1 >= len(self.frames):
            return False
        self.frame_index += 1
        return True

    def _load_pixels(self) -> PixelBuffer:
        frame = self._current()
        if isinstance(frame, PixelBuffer):
            return frame.copy()
        if isinstance(frame, Image.Image):
            return PixelBuffer.from_image(frame)
        return PixelBuffer.from_array(np.asarray(frame))


@dataclass
class BufferSource(VisualSource):
    """An existing canvas-like pixel buffer. Tainted when cross-origin content was drawn into it."""
    buffer: Optional[PixelBuffer] = None
    tainted: bool = False
    kind: SourceKind = field(default=SourceKind.BUFFER, init=False)

    @property
    def width(self) -> int:
        return self.buffer.width if self.buffer is not None else 0

    @property
    def height(self) -> int:
        return self.buffer.height if self.buffer is not None else 0

    def _load_pixels(self) -> PixelBuffer:
        return self.buffer.copy()


@dataclass
class VisualElement:
    """A visual target identified by a stable id, independent of any document model."""
    element_id: str
    source: VisualSource


def as_source(obj: Union[VisualSource, PixelBuffer, np.ndarray, Image.Image]) -> VisualSource:
    """Wrap raw pixel inputs in the matching source variant."""
    if isinstance(obj, VisualSource):
        return obj
    if isinstance(obj, PixelBuffer):
        return BufferSource(buffer=obj)
    if isinstance(obj, Image.Image):
        return ImageSource(image=obj)
    if isinstance(obj, np.ndarray):
        return BufferSource(buffer=PixelBuffer.from_array(obj))
    raise InvalidSourceError(f"Unsupported source type: {type(obj).__name__}")


class OriginPolicy:
    """
    Decides whether a source's pixels may be read.

    Readable sources are local or same-origin, explicitly CORS-enabled, or
    hosted on a known CORS-permissive domain. Tainted sources are never readable.
    """

    def __init__(self, config: Optional[OriginPolicyConfig] = None):
        self.config = config or OriginPolicyConfig()

    def is_same_origin(self, url: Optional[str]) -> bool:
        if not url:
            return True
        parsed = urlparse(url)
        if not parsed.scheme or parsed.scheme in LOCAL_SCHEMES:
            return True
        if not self.config.page_origin:
            return False
        page = urlparse(self.config.page_origin)
        return (parsed.scheme, parsed.netloc) == (page.scheme, page.netloc)

    def is_cors_enabled_domain(self, url: str) -> bool:
        hostname = urlparse(url).hostname or ''
        return any(
            hostname == domain or hostname.endswith('.' + domain)
            for domain in self.config.cors_enabled_domains
        )

    def can_read_pixels(self, source: VisualSource) -> bool:
        if source.tainted:
            return False
        if self.is_same_origin(source.url):
            return True
        if source.cors_enabled:
            return True
        readable = self.is_cors_enabled_domain(source.url)
        if not readable:
            logger.debug(f"Cross-origin {source.describe()} without CORS permission")
        return readable
