import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF
import numpy as np
import pytest

from pdf_region_service.core.capabilities import RenderCancelled, SourceFetchError
from pdf_region_service.core.types import ImageSpec, RenderMode


PNG_SIGNATURE = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])


def make_pdf(pages: Sequence[Tuple[float, float, List[Tuple[Tuple[float, float, float, float], Tuple[float, float, float]]]]]) -> bytes:
    """Build a PDF in memory. Each page is (width, height, [(rect, rgb), ...])."""
    doc = fitz.open()
    for width, height, shapes in pages:
        page = doc.new_page(width=width, height=height)
        for rect, color in shapes:
            page.draw_rect(fitz.Rect(*rect), color=color, fill=color)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def two_page_pdf() -> bytes:
    return make_pdf([
        (600, 800, [((100, 250, 400, 500), (0.3, 0.6, 0.9))]),
        (500, 700, [((120, 380, 320, 580), (0.8, 0.2, 0.2))]),
    ])


def spec(image_id: str, page_index: int, coordinates, position: int = 0) -> ImageSpec:
    return ImageSpec(image_id=image_id, page_index=page_index,
                     coordinates=tuple(coordinates), position=position)


def specs(*items) -> List[ImageSpec]:
    """specs(("a", 0, [..]), ("b", 1, [..])) with positions in argument order."""
    return [spec(image_id, page, coords, position=i)
            for i, (image_id, page, coords) in enumerate(items)]


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRenderer:
    """
    In-memory PageRenderer. Pages are (width, height) in points; renders are
    solid grey surfaces unless a page has a configured failure.
    """

    def __init__(self, pages: Sequence[Tuple[float, float]] = ((600, 800), (500, 700)),
                 clock: Optional[FakeClock] = None, render_advance: float = 0.0):
        self.pages = list(pages)
        self.clock = clock
        self.render_advance = render_advance
        self.failures: Dict[Tuple[int, RenderMode], Exception] = {}
        self.delays: Dict[int, float] = {}
        self.open_error: Optional[Exception] = None
        self.renders: List[Tuple[int, RenderMode]] = []
        self.cancelled: List[int] = []
        self.opened = 0
        self.closed = 0

    def open(self, data: bytes):
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1
        return {"data": data}

    def page_count(self, handle) -> int:
        return len(self.pages)

    def page_size(self, handle, page_index: int) -> Tuple[float, float]:
        return self.pages[page_index]

    def render(self, handle, page_index, width, height, mode, cancel: threading.Event) -> np.ndarray:
        self.renders.append((page_index, mode))
        if self.clock is not None:
            self.clock.advance(self.render_advance)

        delay = self.delays.get(page_index, 0.0)
        started = time.monotonic()
        while time.monotonic() - started < delay:
            if cancel.is_set():
                self.cancelled.append(page_index)
                raise RenderCancelled(f"page {page_index} cancelled")
            time.sleep(0.005)

        failure = self.failures.get((page_index, mode))
        if failure is not None:
            raise failure
        return np.full((height, width, 3), 200, dtype=np.uint8)

    def close(self, handle) -> None:
        self.closed += 1


class StaticFetcher:
    """SourceFetcher returning fixed bytes, or raising a fixed error."""

    def __init__(self, data: bytes = b"%PDF-1.7 fake", error: Optional[Exception] = None,
                 clock: Optional[FakeClock] = None, advance: float = 0.0):
        self.data = data
        self.error = error
        self.clock = clock
        self.advance = advance
        self.calls: List[dict] = []

    async def fetch(self, url, timeout_ms, max_bytes, size_hint=None) -> bytes:
        self.calls.append({"url": url, "timeout_ms": timeout_ms,
                           "max_bytes": max_bytes, "size_hint": size_hint})
        if self.clock is not None:
            self.clock.advance(self.advance)
        if self.error is not None:
            raise self.error
        return self.data


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def failing_fetcher() -> StaticFetcher:
    return StaticFetcher(error=SourceFetchError("Unable to fetch PDF: HTTP 404", status_code=404))
