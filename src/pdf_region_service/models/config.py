"""Configuration models for the API."""

import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..core.types import BatchLimits


def setup_logging(level: str) -> None:
    """Configure root + uvicorn loggers once."""
    if getattr(setup_logging, "_configured", False):
        return
    lvl = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        level=lvl,
    )
    # keep uvicorn loggers aligned
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(lvl)
    setup_logging._configured = True


class APIConfig(BaseModel):
    """API configuration settings."""

    # Server settings
    host: str = Field(default="0.0.0.0", description="Host to bind to")
    port: int = Field(default=8000, description="Port to bind to")
    log_level: str = Field(default="INFO", description="Root log level")

    # Security
    processor_secret: str = Field(default="", description="Shared secret expected in x-image-processor-secret")
    cors_origins: list = Field(default=["*"], description="CORS allowed origins")

    # Request size limits
    max_images_per_request: int = Field(default=500, gt=0, description="Maximum images per batch")
    max_pdf_bytes: int = Field(default=50 * 1024 * 1024, gt=0, description="Maximum source PDF size in bytes")

    # Timing limits
    pdf_fetch_timeout_ms: int = Field(default=30_000, gt=0, description="Source fetch timeout")
    page_render_timeout_ms: int = Field(default=7_500, gt=0, description="Per-page render timeout")
    request_deadline_ms: int = Field(default=20_000, gt=0, description="Total deadline for one batch")

    # Rendering limits
    render_target_width: int = Field(default=0, ge=0, description="Target render width in pixels, 0 renders at scale 1")
    max_render_scale: float = Field(default=2.0, gt=0, description="Upper bound on the render scale")
    max_page_pixels: int = Field(default=20_000_000, gt=0, description="Maximum rendered page area")
    max_crop_pixels: int = Field(default=8_000_000, gt=0, description="Maximum crop area")

    # Output shaping
    crop_margin_px: int = Field(default=20, ge=0, description="White margin around each crop")
    result_order: Literal["page", "input"] = Field(default="page", description="Order of results in the response")

    @classmethod
    def from_env(cls) -> "APIConfig":
        """Create config from environment variables."""
        return cls(
            host=os.getenv("API_HOST", "0.0.0.0"),
            port=int(os.getenv("API_PORT", "8000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            processor_secret=os.getenv("PROCESSOR_SECRET", ""),
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(","),
            max_images_per_request=int(os.getenv("MAX_IMAGES_PER_REQUEST", "500")),
            max_pdf_bytes=int(os.getenv("MAX_PDF_BYTES", str(50 * 1024 * 1024))),
            pdf_fetch_timeout_ms=int(os.getenv("PDF_FETCH_TIMEOUT_MS", "30000")),
            page_render_timeout_ms=int(os.getenv("PAGE_RENDER_TIMEOUT_MS", "7500")),
            request_deadline_ms=int(os.getenv("REQUEST_DEADLINE_MS", "20000")),
            render_target_width=int(os.getenv("RENDER_TARGET_WIDTH", "0")),
            max_render_scale=float(os.getenv("MAX_RENDER_SCALE", "2")),
            max_page_pixels=int(os.getenv("MAX_PAGE_PIXELS", "20000000")),
            max_crop_pixels=int(os.getenv("MAX_CROP_PIXELS", "8000000")),
            crop_margin_px=int(os.getenv("CROP_MARGIN_PX", "20")),
            result_order=os.getenv("RESULT_ORDER", "page"),
        )

    def batch_limits(self, target_width: Optional[int] = None,
                     deadline_ms: Optional[int] = None) -> BatchLimits:
        """Limits for one batch; per-request overrides never exceed the configured deadline."""
        effective_deadline = self.request_deadline_ms
        if deadline_ms is not None:
            effective_deadline = min(deadline_ms, self.request_deadline_ms)

        return BatchLimits(
            deadline_ms=effective_deadline,
            pdf_fetch_timeout_ms=self.pdf_fetch_timeout_ms,
            page_render_timeout_ms=self.page_render_timeout_ms,
            max_pdf_bytes=self.max_pdf_bytes,
            max_page_pixels=self.max_page_pixels,
            max_crop_pixels=self.max_crop_pixels,
            crop_margin_px=self.crop_margin_px,
            target_width=target_width or self.render_target_width or None,
            max_render_scale=self.max_render_scale,
            result_order=self.result_order,
        )
