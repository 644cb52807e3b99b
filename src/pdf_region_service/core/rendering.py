"""
Page rendering under a timeout.

Each page group gets at most one rendered page. The render runs in a worker
thread and is raced against a timer; when the timer wins the render is told
to stop through its cancellation token rather than simply being abandoned.
"""

import asyncio
import logging
import math
import threading
from typing import Any, Optional, Tuple

import numpy as np

from .capabilities import IncompatibleImageError, PageRenderer, RendererError
from .types import Err, ErrorKind, Ok, Outcome, RenderedPage, RenderMode


logger = logging.getLogger(__name__)


class PageRenderTimeout(Exception):
    pass


def render_scale(page_width: float, target_width: Optional[int], max_scale: float) -> float:
    """Scale 1 unless a target width is requested, capped at ``max_scale``."""
    if not target_width or page_width <= 0:
        return 1.0
    return min(max_scale, target_width / page_width)


def page_dimensions(page_size: Tuple[float, float], scale: float) -> Tuple[int, int]:
    width, height = page_size
    return max(1, math.ceil(width * scale)), max(1, math.ceil(height * scale))


class PageRenderOrchestrator:
    """Produces one RenderedPage per call, or a typed failure."""

    def __init__(
        self,
        renderer: PageRenderer,
        max_page_pixels: int,
        target_width: Optional[int] = None,
        max_render_scale: float = 2.0,
    ):
        self.renderer = renderer
        self.max_page_pixels = max_page_pixels
        self.target_width = target_width
        self.max_render_scale = max_render_scale

    async def render(self, handle: Any, page_index: int, timeout_ms: int) -> Outcome[RenderedPage]:
        try:
            page_count = self.renderer.page_count(handle)
            if page_index < 0 or page_index >= page_count:
                return Err(
                    ErrorKind.PAGE_INDEX_OUT_OF_BOUNDS,
                    f"Page index {page_index} is out of bounds for PDF with {page_count} pages",
                )

            page_size = self.renderer.page_size(handle, page_index)
            scale = render_scale(page_size[0], self.target_width, self.max_render_scale)
            width, height = page_dimensions(page_size, scale)
            if width * height > self.max_page_pixels:
                return Err(
                    ErrorKind.PAGE_TOO_LARGE,
                    f"Rendered page exceeds max pixels: {width}x{height} > {self.max_page_pixels}",
                )

            return Ok(await self._render_with_fallback(handle, page_index, width, height, timeout_ms))

        except PageRenderTimeout as e:
            return Err(ErrorKind.PAGE_RENDER_TIMEOUT, str(e))
        except RendererError as e:
            return Err(ErrorKind.PAGE_RENDER_FAILED, str(e) or type(e).__name__)
        except Exception as e:
            logger.exception("Unexpected render failure on page %s", page_index)
            return Err(ErrorKind.PAGE_RENDER_FAILED, f"{type(e).__name__}: {e}")

    async def _render_with_fallback(self, handle: Any, page_index: int, width: int,
                                    height: int, timeout_ms: int) -> RenderedPage:
        loop = asyncio.get_running_loop()
        expires_at = loop.time() + timeout_ms / 1000

        try:
            surface = await self._render_with_timeout(
                handle, page_index, width, height, RenderMode.DISPLAY, timeout_ms / 1000, timeout_ms
            )
            mode = RenderMode.DISPLAY
        except IncompatibleImageError as e:
            logger.warning(
                "Page %s rejected an image in display mode (%s), retrying in print mode",
                page_index, e,
            )
            remaining = expires_at - loop.time()
            if remaining <= 0:
                raise PageRenderTimeout(f"Page render timeout after {timeout_ms}ms")
            surface = await self._render_with_timeout(
                handle, page_index, width, height, RenderMode.PRINT, remaining, timeout_ms
            )
            mode = RenderMode.PRINT

        if surface.shape[:2] != (height, width):
            raise RendererError(
                f"Renderer returned {surface.shape[1]}x{surface.shape[0]}, expected {width}x{height}"
            )
        return RenderedPage(page_index=page_index, width=width, height=height,
                            surface=surface, mode=mode)

    async def _render_with_timeout(self, handle: Any, page_index: int, width: int, height: int,
                                   mode: RenderMode, timeout_s: float, timeout_ms: int) -> np.ndarray:
        """
        Race one render against a timer. On expiry, or when the calling task
        is cancelled, the render's cancellation token is set and the worker is
        awaited until it winds down, so the document is never touched by two
        threads at once.

        ``timeout_s`` is what this attempt may still spend; ``timeout_ms`` is
        the page timeout reported on expiry.
        """
        cancel = threading.Event()
        render_task = asyncio.ensure_future(asyncio.to_thread(
            self.renderer.render, handle, page_index, width, height, mode, cancel
        ))
        timer_task = asyncio.ensure_future(asyncio.sleep(timeout_s))

        try:
            done, _ = await asyncio.wait(
                {render_task, timer_task}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            cancel.set()
            await self._wind_down(render_task)
            raise
        finally:
            timer_task.cancel()

        if render_task in done:
            return render_task.result()

        cancel.set()
        await self._wind_down(render_task)
        raise PageRenderTimeout(f"Page render timeout after {timeout_ms}ms")

    @staticmethod
    async def _wind_down(render_task: "asyncio.Future[np.ndarray]") -> None:
        """
        Wait for a cancelled render's worker thread to return. A cancellation
        arriving meanwhile is held until the thread is done, then re-raised.
        """
        interrupted = False
        while not render_task.done():
            try:
                await asyncio.wait({render_task})
            except asyncio.CancelledError:
                interrupted = True
        if not render_task.cancelled():
            # RenderCancelled, or a surface that finished too late; both are dropped
            render_task.exception()
        if interrupted:
            raise asyncio.CancelledError()
