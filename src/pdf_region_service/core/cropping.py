"""Crop extraction: margin-padded copy of a page region, encoded as PNG."""

import logging

from .capabilities import Canvas
from .types import (
    PNG_MIME_TYPE,
    EncodedImage,
    Err,
    ErrorKind,
    Ok,
    Outcome,
    PixelRect,
    RenderedPage,
)


logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)


class CropExtractor:
    """
    Copies a pixel rectangle of a rendered page onto a white surface padded by
    ``margin`` pixels on every side and encodes it.

    The rectangle is trusted to lie inside the page; geometry is validated
    before this stage.
    """

    def __init__(self, canvas: Canvas, margin: int = 20):
        if margin < 0:
            raise ValueError(f"Crop margin must be non-negative, got {margin}")
        self.canvas = canvas
        self.margin = margin

    def extract(self, page: RenderedPage, rect: PixelRect) -> Outcome[EncodedImage]:
        crop_width, crop_height = rect.width, rect.height
        out_width = crop_width + 2 * self.margin
        out_height = crop_height + 2 * self.margin

        try:
            if page.surface is None:
                raise ValueError(f"Page {page.page_index} surface was already released")

            surface = self.canvas.create(out_width, out_height)
            self.canvas.fill(surface, (0, 0, out_width, out_height), WHITE)
            self.canvas.copy_region(page.surface, rect, surface, (self.margin, self.margin))
            data = self.canvas.encode_png(surface)
        except Exception as e:
            return Err(
                ErrorKind.CROP_ENCODE_FAILED,
                f"crop={crop_width}x{crop_height} output={out_width}x{out_height} "
                f"{type(e).__name__}: {e}",
            )

        logger.debug(
            "Cropped page %s region %s -> %dx%d (%d bytes)",
            page.page_index, rect.as_list(), out_width, out_height, len(data),
        )
        return Ok(EncodedImage(mime_type=PNG_MIME_TYPE, width=out_width,
                               height=out_height, data=data))
