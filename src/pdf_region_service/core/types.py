"""
Data types shared by the batch extraction stages.

Stages hand each other tagged outcomes (``Ok`` / ``Err``) instead of raising,
so the orchestrator can decide whether a failure is global, page-scoped or
item-scoped.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, Tuple, TypeVar, Union

import numpy as np


T = TypeVar("T")

# Fixed range of the normalized region descriptor on both axes
NORMALIZED_MAX = 1000.0

PNG_MIME_TYPE = "image/png"


class ErrorKind(str, Enum):
    """Per-item failure codes surfaced in the response."""
    SOURCE_FETCH_FAILED = "SOURCE_FETCH_FAILED"
    PAGE_INDEX_OUT_OF_BOUNDS = "PAGE_INDEX_OUT_OF_BOUNDS"
    PAGE_TOO_LARGE = "PAGE_TOO_LARGE"
    PAGE_RENDER_TIMEOUT = "PAGE_RENDER_TIMEOUT"
    PAGE_RENDER_FAILED = "PAGE_RENDER_FAILED"
    CROP_CONVERSION_FAILED = "CROP_CONVERSION_FAILED"
    CROP_TOO_LARGE = "CROP_TOO_LARGE"
    CROP_ENCODE_FAILED = "CROP_ENCODE_FAILED"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"


class RenderMode(str, Enum):
    """Render intent handed to the page renderer."""
    DISPLAY = "display"
    PRINT = "print"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str


Outcome = Union[Ok[T], Err]


@dataclass(frozen=True)
class ImageSpec:
    """One requested crop. ``position`` is its index in the request."""
    image_id: str
    page_index: int
    coordinates: Tuple[float, float, float, float]
    position: int = 0


@dataclass(frozen=True)
class PixelRect:
    """Pixel rectangle in page space, always non-degenerate."""
    min_y: int
    min_x: int
    max_y: int
    max_x: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def area(self) -> int:
        return self.width * self.height

    def as_list(self) -> List[int]:
        return [self.min_y, self.min_x, self.max_y, self.max_x]


@dataclass
class RenderedPage:
    """
    Rasterized page buffer.

    ``surface`` is an RGB ``uint8`` array of shape (height, width, 3). The
    orchestrator owns it while the page's crops are processed and calls
    ``release()`` before moving to the next page.
    """
    page_index: int
    width: int
    height: int
    surface: Optional[np.ndarray]
    mode: RenderMode = RenderMode.DISPLAY

    @property
    def released(self) -> bool:
        return self.surface is None

    def release(self) -> None:
        self.surface = None


@dataclass(frozen=True)
class EncodedImage:
    mime_type: str
    width: int
    height: int
    data: bytes


@dataclass(frozen=True)
class ExtractionResult:
    """Success-or-failure record for exactly one ImageSpec."""
    spec: ImageSpec
    image: Optional[EncodedImage] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.image is not None

    @classmethod
    def success(cls, spec: ImageSpec, image: EncodedImage) -> "ExtractionResult":
        return cls(spec=spec, image=image)

    @classmethod
    def failure(cls, spec: ImageSpec, kind: ErrorKind, message: str) -> "ExtractionResult":
        return cls(spec=spec, error_kind=kind, error_message=message)


@dataclass(frozen=True)
class ExtractionResponse:
    request_id: str
    results: List[ExtractionResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded


@dataclass(frozen=True)
class BatchLimits:
    """Limits and timings the orchestrator enforces for one batch."""
    deadline_ms: int = 20_000
    pdf_fetch_timeout_ms: int = 30_000
    page_render_timeout_ms: int = 7_500
    max_pdf_bytes: int = 50 * 1024 * 1024
    max_page_pixels: int = 20_000_000
    max_crop_pixels: int = 8_000_000
    crop_margin_px: int = 20
    target_width: Optional[int] = None
    max_render_scale: float = 2.0
    result_order: str = "page"


@dataclass(frozen=True)
class ExtractionRequest:
    """One batch: request id, source reference and ordered crop specs."""
    request_id: str
    source_url: str
    images: List[ImageSpec]
    source_size_bytes: Optional[int] = None
