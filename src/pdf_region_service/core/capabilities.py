"""
Collaborator contracts consumed by the batch orchestrator.

Concrete adapters live in ``pdf_region_service.utils``; they are built once at
process start and passed in explicitly.
"""

import threading
from typing import Any, Optional, Protocol, Tuple

import numpy as np

from .types import PixelRect, RenderMode


class SourceFetchError(RuntimeError):
    """The source document was unreachable, oversized or not a PDF."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RendererError(RuntimeError):
    """The renderer could not open or rasterize a document."""


class IncompatibleImageError(RendererError):
    """
    The renderer rejected an image drawing operation in the current render
    mode. Retrying in print mode usually routes around it.
    """


class RenderCancelled(RendererError):
    """A render stopped early because its cancellation token was set."""


class CanvasError(RuntimeError):
    """Surface allocation, copy or encode failed."""


class SourceFetcher(Protocol):
    async def fetch(self, url: str, timeout_ms: int, max_bytes: int,
                    size_hint: Optional[int] = None) -> bytes:
        """Return the raw PDF bytes or raise ``SourceFetchError``."""
        ...


class PageRenderer(Protocol):
    def open(self, data: bytes) -> Any:
        ...

    def page_count(self, handle: Any) -> int:
        ...

    def page_size(self, handle: Any, page_index: int) -> Tuple[float, float]:
        """Unscaled (width, height) of a page in points."""
        ...

    def render(
        self,
        handle: Any,
        page_index: int,
        width: int,
        height: int,
        mode: RenderMode,
        cancel: threading.Event,
    ) -> np.ndarray:
        """Rasterize a page into a (height, width, 3) RGB array."""
        ...

    def close(self, handle: Any) -> None:
        ...


class Canvas(Protocol):
    def create(self, width: int, height: int) -> np.ndarray:
        ...

    def fill(self, surface: np.ndarray, rect: Tuple[int, int, int, int],
             color: Tuple[int, int, int]) -> None:
        """Fill ``rect`` given as (x, y, w, h)."""
        ...

    def copy_region(self, src: np.ndarray, src_rect: PixelRect,
                    dst: np.ndarray, dst_offset: Tuple[int, int]) -> None:
        """Copy ``src_rect`` of ``src`` into ``dst`` at (x, y) ``dst_offset``."""
        ...

    def encode_png(self, surface: np.ndarray) -> bytes:
        ...
