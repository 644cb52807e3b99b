"""Source document fetchers: remote over HTTP, or a local file for the CLI."""

import logging
from pathlib import Path
from typing import Optional

import httpx

from ..core.capabilities import SourceFetchError


logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF"


def check_pdf_bytes(data: bytes, max_bytes: int) -> bytes:
    """Reject empty, oversized or non-PDF payloads."""
    if not data:
        raise SourceFetchError("Downloaded PDF is empty")
    if len(data) > max_bytes:
        raise SourceFetchError(f"PDF exceeds max size ({len(data)} > {max_bytes})")
    if not data.startswith(PDF_SIGNATURE):
        raise SourceFetchError("Invalid PDF signature")
    return data


class HttpSourceFetcher:
    """Streams the source PDF through a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def fetch(self, url: str, timeout_ms: int, max_bytes: int,
                    size_hint: Optional[int] = None) -> bytes:
        if size_hint is not None and size_hint > max_bytes:
            raise SourceFetchError(f"PDF exceeds max size ({size_hint} > {max_bytes})")

        body = bytearray()
        try:
            async with self.client.stream(
                "GET", url, timeout=httpx.Timeout(timeout_ms / 1000), follow_redirects=True
            ) as response:
                if not response.is_success:
                    raise SourceFetchError(
                        f"Unable to fetch PDF: HTTP {response.status_code}",
                        status_code=response.status_code,
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > max_bytes:
                    raise SourceFetchError(f"PDF exceeds max size ({declared} > {max_bytes})")

                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > max_bytes:
                        raise SourceFetchError(f"PDF exceeds max size (>{max_bytes} bytes)")
        except httpx.TimeoutException as e:
            raise SourceFetchError(f"PDF fetch timed out after {timeout_ms}ms") from e
        except httpx.HTTPError as e:
            raise SourceFetchError(f"Unable to fetch PDF: {e}") from e

        logger.debug("Fetched %d bytes from %s", len(body), url)
        return check_pdf_bytes(bytes(body), max_bytes)


class LocalSourceFetcher:
    """Reads the source PDF from disk regardless of the requested URL."""

    def __init__(self, path: Path):
        self.path = Path(path)

    async def fetch(self, url: str, timeout_ms: int, max_bytes: int,
                    size_hint: Optional[int] = None) -> bytes:
        try:
            size = self.path.stat().st_size
            if size > max_bytes:
                raise SourceFetchError(f"PDF exceeds max size ({size} > {max_bytes})")
            data = self.path.read_bytes()
        except OSError as e:
            raise SourceFetchError(f"Unable to read PDF {self.path}: {e}") from e
        return check_pdf_bytes(data, max_bytes)
