"""
PyMuPDF page renderer.

Pages are rasterized from a display list in horizontal bands so a render can
stop between bands when its cancellation token is set.
"""

import logging
import math
import threading
from typing import Tuple

import fitz  # PyMuPDF
import numpy as np

from ..core.capabilities import IncompatibleImageError, RenderCancelled, RendererError
from ..core.types import RenderMode


logger = logging.getLogger(__name__)

# MuPDF diagnostics for image objects it cannot draw in the current mode
INCOMPATIBLE_IMAGE_MARKERS = (
    "unknown image",
    "unsupported image",
    "cannot load image",
)


def _is_incompatible_image(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in INCOMPATIBLE_IMAGE_MARKERS)


class PyMuPDFRenderer:
    """PageRenderer capability backed by PyMuPDF."""

    def __init__(self, band_height: int = 256):
        if band_height <= 0:
            raise ValueError(f"Band height must be positive, got {band_height}")
        self.band_height = band_height

    def open(self, data: bytes) -> fitz.Document:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise RendererError(f"Unable to open PDF: {e}") from e

        if doc.page_count == 0:
            doc.close()
            raise RendererError("PDF has no pages")
        return doc

    def page_count(self, handle: fitz.Document) -> int:
        try:
            return handle.page_count
        except ValueError as e:
            raise RendererError(str(e)) from e

    def page_size(self, handle: fitz.Document, page_index: int) -> Tuple[float, float]:
        try:
            rect = handle[page_index].rect
        except (IndexError, RuntimeError, ValueError) as e:
            raise RendererError(f"Unable to load page {page_index}: {e}") from e
        return rect.width, rect.height

    def render(
        self,
        handle: fitz.Document,
        page_index: int,
        width: int,
        height: int,
        mode: RenderMode,
        cancel: threading.Event,
    ) -> np.ndarray:
        """
        Rasterize a page to an RGB array of exactly ``height`` x ``width``.

        ``RenderMode.PRINT`` leaves out annotation appearances.

        Raises:
            RenderCancelled: ``cancel`` was set between bands
            IncompatibleImageError: MuPDF rejected an image object
            RendererError: any other MuPDF failure
        """
        try:
            page = handle[page_index]
            display_list = page.get_displaylist(annots=mode == RenderMode.DISPLAY)
        except (IndexError, RuntimeError, ValueError) as e:
            raise self._wrap(e, page_index, mode) from e

        bounds = display_list.rect
        sx = width / bounds.width
        sy = height / bounds.height
        matrix = fitz.Matrix(sx, sy)
        offset_x = math.floor(bounds.x0 * sx)
        offset_y = math.floor(bounds.y0 * sy)

        surface = np.full((height, width, 3), 255, dtype=np.uint8)

        for band_top in range(0, height, self.band_height):
            if cancel.is_set():
                raise RenderCancelled(f"Render of page {page_index} cancelled at row {band_top}")

            band_bottom = min(height, band_top + self.band_height)
            clip = fitz.Rect(
                bounds.x0,
                bounds.y0 + band_top / sy,
                bounds.x1,
                bounds.y0 + band_bottom / sy,
            )
            try:
                pix = display_list.get_pixmap(matrix=matrix, colorspace=fitz.csRGB,
                                              alpha=False, clip=clip)
            except (RuntimeError, ValueError) as e:
                raise self._wrap(e, page_index, mode) from e

            self._paste(surface, pix, pix.x - offset_x, pix.y - offset_y)

        logger.debug("Rendered page %s at %dx%d (%s)", page_index, width, height, mode.value)
        return surface

    def close(self, handle: fitz.Document) -> None:
        try:
            handle.close()
        except (RuntimeError, ValueError) as e:
            raise RendererError(f"Unable to close PDF: {e}") from e

    @staticmethod
    def _paste(surface: np.ndarray, pix: fitz.Pixmap, x: int, y: int) -> None:
        """Copy a band pixmap into the page surface, clipped to the surface."""
        if pix.width == 0 or pix.height == 0:
            return
        band = np.frombuffer(pix.samples, dtype=np.uint8).reshape(pix.height, pix.width, pix.n)

        height, width = surface.shape[:2]
        top, left = max(0, y), max(0, x)
        bottom = min(height, y + pix.height)
        right = min(width, x + pix.width)
        if top >= bottom or left >= right:
            return
        surface[top:bottom, left:right] = band[top - y:bottom - y, left - x:right - x, :3]

    @staticmethod
    def _wrap(error: Exception, page_index: int, mode: RenderMode) -> RendererError:
        if _is_incompatible_image(error):
            return IncompatibleImageError(f"Page {page_index} ({mode.value}): {error}")
        return RendererError(f"Page {page_index} render failed ({mode.value}): {error}")
