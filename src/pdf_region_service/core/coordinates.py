"""
Region descriptor to pixel rectangle conversion.

Region descriptors come in as four numbers ``[y1, x1, y2, x2]`` in a fixed
0-1000 space on both axes. The corners may be given in either orientation.
"""

import math
from typing import Sequence, Tuple

from .types import NORMALIZED_MAX, Err, ErrorKind, Ok, Outcome, PixelRect


class CropConversionError(ValueError):
    """A region descriptor could not be turned into a usable pixel rectangle."""


class InvalidPageDimensions(CropConversionError):
    pass


class DegenerateCropRegion(CropConversionError):
    pass


def _clamp(value: float, upper: float) -> float:
    return min(upper, max(0.0, value))


def normalize_box(box: Sequence[float]) -> Tuple[float, float, float, float]:
    """Clamp into the normalized range and order as (minY, minX, maxY, maxX)."""
    if len(box) != 4:
        raise CropConversionError(f"Region descriptor needs 4 numbers, got {len(box)}")

    y1, x1, y2, x2 = (_clamp(float(v), NORMALIZED_MAX) for v in box)
    return (min(y1, y2), min(x1, x2), max(y1, y2), max(x1, x2))


def to_pixel_rect(box: Sequence[float], page_width: float, page_height: float) -> PixelRect:
    """
    Scale a normalized descriptor onto a page of the given pixel size.

    Minimum edges floor and maximum edges ceil so the requested region is
    never under-covered; every edge is then clamped into the page.

    Raises:
        InvalidPageDimensions: width/height not finite and positive
        DegenerateCropRegion: the rectangle collapsed to a line or point
    """
    if not (math.isfinite(page_width) and math.isfinite(page_height)):
        raise InvalidPageDimensions("Invalid page dimensions")
    if page_width <= 0 or page_height <= 0:
        raise InvalidPageDimensions(f"Invalid page dimensions: {page_width}x{page_height}")

    min_y_norm, min_x_norm, max_y_norm, max_x_norm = normalize_box(box)

    min_y = int(_clamp(math.floor(min_y_norm * page_height / NORMALIZED_MAX), page_height))
    min_x = int(_clamp(math.floor(min_x_norm * page_width / NORMALIZED_MAX), page_width))
    max_y = int(_clamp(math.ceil(max_y_norm * page_height / NORMALIZED_MAX), page_height))
    max_x = int(_clamp(math.ceil(max_x_norm * page_width / NORMALIZED_MAX), page_width))

    if min_y >= max_y or min_x >= max_x:
        raise DegenerateCropRegion(
            f"Invalid crop region after conversion: [{min_y}, {min_x}, {max_y}, {max_x}] "
            f"for {page_width}x{page_height}"
        )

    return PixelRect(min_y=min_y, min_x=min_x, max_y=max_y, max_x=max_x)


def convert_region(box: Sequence[float], page_width: float, page_height: float) -> Outcome[PixelRect]:
    """``to_pixel_rect`` as a tagged outcome for the orchestrator."""
    try:
        return Ok(to_pixel_rect(box, page_width, page_height))
    except CropConversionError as e:
        return Err(ErrorKind.CROP_CONVERSION_FAILED, str(e))
