"""
Raster canvas backed by numpy arrays and OpenCV.

Surfaces are RGB ``uint8`` arrays of shape (height, width, 3), the same
layout the PDF renderer produces.
"""

import cv2
import numpy as np
from typing import Tuple

from ..core.capabilities import CanvasError
from ..core.types import PixelRect


class OpenCVCanvas:
    """Canvas capability: allocate, fill, copy regions and encode PNG."""

    def __init__(self, png_compression: int = 3):
        self.png_compression = png_compression

    def create(self, width: int, height: int) -> np.ndarray:
        if width <= 0 or height <= 0:
            raise CanvasError(f"Invalid canvas size: {width}x{height}")
        try:
            return np.zeros((height, width, 3), dtype=np.uint8)
        except MemoryError as e:
            raise CanvasError(f"Could not allocate {width}x{height} surface") from e

    def fill(self, surface: np.ndarray, rect: Tuple[int, int, int, int],
             color: Tuple[int, int, int]) -> None:
        x, y, w, h = rect
        if w <= 0 or h <= 0:
            return
        cv2.rectangle(surface, (x, y), (x + w - 1, y + h - 1), color, thickness=cv2.FILLED)

    def copy_region(self, src: np.ndarray, src_rect: PixelRect,
                    dst: np.ndarray, dst_offset: Tuple[int, int]) -> None:
        ox, oy = dst_offset
        region = src[src_rect.min_y:src_rect.max_y, src_rect.min_x:src_rect.max_x]
        target = dst[oy:oy + src_rect.height, ox:ox + src_rect.width]

        if region.shape != target.shape:
            raise CanvasError(
                f"Region {src_rect.as_list()} ({region.shape[1]}x{region.shape[0]}) does not fit "
                f"destination at {dst_offset} ({target.shape[1]}x{target.shape[0]})"
            )
        target[:] = region

    def encode_png(self, surface: np.ndarray) -> bytes:
        # OpenCV encoders expect BGR channel order
        bgr = cv2.cvtColor(surface, cv2.COLOR_RGB2BGR)
        success, buffer = cv2.imencode(
            ".png", bgr, [cv2.IMWRITE_PNG_COMPRESSION, self.png_compression]
        )
        if not success:
            raise CanvasError(f"PNG encode failed for {surface.shape[1]}x{surface.shape[0]} surface")
        return buffer.tobytes()
