"""Extraction service that adapts API models to the batch orchestrator."""

import base64
import logging
from typing import Callable, Optional

from ..core import BatchOrchestrator, Canvas, PageRenderer, SourceFetcher
from ..core.types import ExtractionRequest as BatchRequest
from ..core.types import ExtractionResponse as BatchResponse
from ..core.types import ExtractionResult, ImageSpec
from ..models.config import APIConfig
from ..models.requests import ExtractionRequest
from ..models.responses import ExtractionResponse, ImageResult


logger = logging.getLogger(__name__)


class TooManyImagesError(ValueError):
    def __init__(self, count: int, limit: int):
        super().__init__(f"Too many images in request ({count} > {limit})")
        self.count = count
        self.limit = limit


def to_batch_request(request: ExtractionRequest) -> BatchRequest:
    """Build the core request; each image keeps its input position."""
    return BatchRequest(
        request_id=request.request_id,
        source_url=str(request.file.url),
        source_size_bytes=request.file.size_bytes,
        images=[
            ImageSpec(
                image_id=image.image_id,
                page_index=image.page_index,
                coordinates=tuple(image.coordinates),
                position=position,
            )
            for position, image in enumerate(request.images)
        ],
    )


def to_image_result(result: ExtractionResult) -> ImageResult:
    if result.image is not None:
        return ImageResult(
            image_id=result.spec.image_id,
            status="success",
            mime_type=result.image.mime_type,
            width=result.image.width,
            height=result.image.height,
            bytes_base64=base64.b64encode(result.image.data).decode("ascii"),
        )
    return ImageResult(
        image_id=result.spec.image_id,
        status="failed",
        error_code=result.error_kind.value,
        error_message=result.error_message,
    )


def to_response_model(response: BatchResponse) -> ExtractionResponse:
    return ExtractionResponse(
        request_id=response.request_id,
        results=[to_image_result(r) for r in response.results],
    )


class ExtractionService:
    """Service for running one extraction batch per request."""

    def __init__(
        self,
        config: APIConfig,
        renderer: PageRenderer,
        canvas: Canvas,
        fetcher: SourceFetcher,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config
        self.renderer = renderer
        self.canvas = canvas
        self.fetcher = fetcher
        self.clock = clock

    def validate(self, request: ExtractionRequest) -> None:
        """Whole-batch checks; a violation rejects the request before any work."""
        if len(request.images) > self.config.max_images_per_request:
            raise TooManyImagesError(len(request.images), self.config.max_images_per_request)

    async def run_batch(self, request: ExtractionRequest) -> BatchResponse:
        self.validate(request)
        limits = self.config.batch_limits(
            target_width=request.target_width, deadline_ms=request.deadline_ms
        )
        orchestrator = BatchOrchestrator(
            self.renderer, self.canvas, self.fetcher, limits=limits, clock=self.clock
        )
        logger.info(
            "Batch %s accepted: images=%d deadlineMs=%d",
            request.request_id, len(request.images), limits.deadline_ms,
        )
        return await orchestrator.run(to_batch_request(request))

    async def process(self, request: ExtractionRequest) -> ExtractionResponse:
        return to_response_model(await self.run_batch(request))
