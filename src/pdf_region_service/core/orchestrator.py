"""
Batch extraction orchestrator.

Drives one request through fetch -> group -> per-page render -> per-image
crop under a single deadline. Every failure is recorded against the images
it affects, so the response always carries one result per requested image:

- fetch failures fail every image
- render failures fail only the images of that page
- conversion, size and encode failures fail only the image concerned
"""

import asyncio
import itertools
import logging
from typing import Any, Callable, List, Optional

from .aggregator import ResultAggregator
from .capabilities import Canvas, PageRenderer, RendererError, SourceFetcher, SourceFetchError
from .coordinates import convert_region
from .cropping import CropExtractor
from .deadline import DeadlineBudget
from .grouping import PageGroupEntry, group_by_page
from .rendering import PageRenderOrchestrator
from .types import (
    BatchLimits,
    Err,
    ErrorKind,
    ExtractionRequest,
    ExtractionResponse,
    ImageSpec,
    RenderedPage,
)


logger = logging.getLogger(__name__)


class BatchOrchestrator:
    """Runs extraction batches against injected renderer, canvas and fetcher."""

    def __init__(
        self,
        renderer: PageRenderer,
        canvas: Canvas,
        fetcher: SourceFetcher,
        limits: Optional[BatchLimits] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.renderer = renderer
        self.fetcher = fetcher
        self.limits = limits or BatchLimits()
        self.clock = clock
        self.page_renderer = PageRenderOrchestrator(
            renderer,
            max_page_pixels=self.limits.max_page_pixels,
            target_width=self.limits.target_width,
            max_render_scale=self.limits.max_render_scale,
        )
        self.crop_extractor = CropExtractor(canvas, margin=self.limits.crop_margin_px)

    async def run(self, request: ExtractionRequest) -> ExtractionResponse:
        budget = DeadlineBudget(self.limits.deadline_ms, clock=self.clock)
        aggregator = ResultAggregator(request.request_id, request.images)

        groups = group_by_page(request.images)

        handle = await self._open_source(request, budget, aggregator)
        if handle is not None:
            try:
                await self._process_pages(handle, groups, budget, aggregator)
            finally:
                self._close_source(handle)

        response = aggregator.assemble(order=self.limits.result_order)
        logger.info(
            "Batch %s done: images=%d pages=%d succeeded=%d failed=%d elapsedMs=%d",
            request.request_id, len(request.images), len(groups), response.succeeded,
            response.failed, budget.elapsed_ms(),
        )
        return response

    async def _open_source(self, request: ExtractionRequest, budget: DeadlineBudget,
                           aggregator: ResultAggregator) -> Optional[Any]:
        """Fetch and open the source document, or fail the whole batch."""
        if budget.exhausted():
            aggregator.fail_remaining(
                ErrorKind.DEADLINE_EXCEEDED,
                f"stage=deadline_before_fetch elapsedMs={budget.elapsed_ms()} "
                f"deadlineMs={budget.deadline_ms}",
            )
            return None

        timeout_ms = budget.bound_ms(self.limits.pdf_fetch_timeout_ms)
        try:
            data = await asyncio.wait_for(
                self.fetcher.fetch(
                    request.source_url,
                    timeout_ms=timeout_ms,
                    max_bytes=self.limits.max_pdf_bytes,
                    size_hint=request.source_size_bytes,
                ),
                timeout=timeout_ms / 1000,
            )
            return self.renderer.open(data)
        except (SourceFetchError, RendererError, asyncio.TimeoutError) as e:
            kind = ErrorKind.DEADLINE_EXCEEDED if budget.exhausted() else ErrorKind.SOURCE_FETCH_FAILED
            reason = str(e) or f"Source fetch timed out after {timeout_ms}ms"
            logger.warning("Batch %s source fetch failed: %s", request.request_id, reason)
            aggregator.fail_remaining(
                kind,
                f"stage=pdf_fetch elapsedMs={budget.elapsed_ms()} timeoutMs={timeout_ms} {reason}",
            )
            return None

    def _close_source(self, handle: Any) -> None:
        try:
            self.renderer.close(handle)
        except RendererError:
            logger.exception("Failed to close source document")

    async def _process_pages(self, handle: Any, groups: List[PageGroupEntry],
                             budget: DeadlineBudget, aggregator: ResultAggregator) -> None:
        for pointer, group in enumerate(groups):
            if budget.exhausted():
                remaining = itertools.chain.from_iterable(g.images for g in groups[pointer:])
                marked = aggregator.fail_all(
                    remaining,
                    ErrorKind.DEADLINE_EXCEEDED,
                    f"stage=deadline_before_page elapsedMs={budget.elapsed_ms()} "
                    f"deadlineMs={budget.deadline_ms} pageIndex={group.page_index}",
                )
                logger.warning("Deadline exhausted before page %s, %d images skipped",
                               group.page_index, marked)
                return

            await self._process_page(handle, group, budget, aggregator)

    async def _process_page(self, handle: Any, group: PageGroupEntry,
                            budget: DeadlineBudget, aggregator: ResultAggregator) -> None:
        timeout_ms = budget.bound_ms(self.limits.page_render_timeout_ms)
        outcome = await self.page_renderer.render(handle, group.page_index, timeout_ms)

        if isinstance(outcome, Err):
            kind = ErrorKind.DEADLINE_EXCEEDED if budget.exhausted() else outcome.kind
            logger.warning("Page %s render failed (%s): %s",
                           group.page_index, outcome.kind.value, outcome.detail)
            aggregator.fail_all(
                group.images,
                kind,
                f"stage=page_render elapsedMs={budget.elapsed_ms()} pageIndex={group.page_index} "
                f"timeoutMs={timeout_ms} {outcome.detail}",
            )
            return

        page = outcome.value
        try:
            for image in group.images:
                if budget.exhausted():
                    aggregator.record_failure(
                        image,
                        ErrorKind.DEADLINE_EXCEEDED,
                        f"stage=deadline_during_page elapsedMs={budget.elapsed_ms()} "
                        f"deadlineMs={budget.deadline_ms} pageIndex={group.page_index}",
                    )
                    continue
                self._process_image(page, image, budget, aggregator)
        finally:
            page.release()

    def _process_image(self, page: RenderedPage, image: ImageSpec,
                       budget: DeadlineBudget, aggregator: ResultAggregator) -> None:
        rect_outcome = convert_region(image.coordinates, page.width, page.height)
        if isinstance(rect_outcome, Err):
            aggregator.record_failure(
                image,
                rect_outcome.kind,
                f"stage=crop_convert elapsedMs={budget.elapsed_ms()} pageIndex={page.page_index} "
                f"{rect_outcome.detail}",
            )
            return

        rect = rect_outcome.value
        if rect.area > self.limits.max_crop_pixels:
            aggregator.record_failure(
                image,
                ErrorKind.CROP_TOO_LARGE,
                f"stage=crop_validate elapsedMs={budget.elapsed_ms()} pageIndex={page.page_index} "
                f"crop={rect.width}x{rect.height} cropPixels={rect.area} "
                f"maxCropPixels={self.limits.max_crop_pixels}",
            )
            return

        crop_outcome = self.crop_extractor.extract(page, rect)
        if isinstance(crop_outcome, Err):
            aggregator.record_failure(
                image,
                crop_outcome.kind,
                f"stage=crop_encode elapsedMs={budget.elapsed_ms()} pageIndex={page.page_index} "
                f"{crop_outcome.detail}",
            )
            return

        aggregator.record_success(image, crop_outcome.value)
