#!/usr/bin/env python3
"""
PDF Region Extraction Tool

Runs one extraction batch offline: reads a request JSON (same shape as the
POST /v1/extract body), writes every successful crop as a PNG and a
manifest.json describing all results.
"""

import argparse
import asyncio
import json
import logging
import re
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .core.types import ExtractionResponse as BatchResponse
from .models.config import APIConfig, setup_logging
from .models.requests import ExtractionRequest
from .services.extraction import ExtractionService, TooManyImagesError
from .services.source_fetcher import HttpSourceFetcher, LocalSourceFetcher
from .utils.image_utils import OpenCVCanvas
from .utils.pdf_renderer import PyMuPDFRenderer


logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Crop regions out of PDF pages into PNG files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pdf-region-extract request.json ./out/
  pdf-region-extract request.json ./out/ --pdf local.pdf --verbose
        """
    )

    parser.add_argument('request_file', help='Request JSON file path')
    parser.add_argument('output_dir', help='Output directory path')
    parser.add_argument(
        '--pdf',
        dest='pdf_path',
        help='Read the source PDF from this file instead of the request URL'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    return parser.parse_args(argv)


def output_filename(image_id: str, position: int, used: set) -> str:
    """Filesystem-safe PNG name for an image id, unique within one run."""
    stem = _UNSAFE_FILENAME_CHARS.sub("_", image_id).strip("._") or "image"
    filename = f"{stem}.png"
    if filename in used:
        filename = f"{stem}_{position}.png"
        counter = 1
        while filename in used:
            filename = f"{stem}_{position}_{counter}.png"
            counter += 1
    used.add(filename)
    return filename


def build_manifest(response: BatchResponse, files: Dict[int, str],
                   source: str, config: Dict[str, Any]) -> Dict[str, Any]:
    total = len(response.results)
    return {
        "request_id": response.request_id,
        "source": source,
        "results": [
            {
                "image_id": result.spec.image_id,
                "page_index": result.spec.page_index,
                "coordinates": list(result.spec.coordinates),
                "status": "success" if result.succeeded else "failed",
                "file": files.get(result.spec.position),
                "width": result.image.width if result.image else None,
                "height": result.image.height if result.image else None,
                "error_code": result.error_kind.value if result.error_kind else None,
                "error_message": result.error_message,
            }
            for result in response.results
        ],
        "processing_info": {
            "extraction_summary": {
                "total_images": total,
                "successful_extractions": response.succeeded,
                "failed_extractions": response.failed,
                "success_rate": response.succeeded / total if total else 0,
            },
            "config": config,
        },
    }


async def run(request: ExtractionRequest, output_path: Path, config: APIConfig,
              pdf_path: Optional[Path] = None) -> Dict[str, Any]:
    """Run one batch and write its PNGs and manifest into ``output_path``."""
    renderer = PyMuPDFRenderer()
    canvas = OpenCVCanvas()

    if pdf_path is not None:
        service = ExtractionService(config, renderer, canvas, LocalSourceFetcher(pdf_path))
        response = await service.run_batch(request)
        source = str(pdf_path)
    else:
        async with httpx.AsyncClient() as client:
            service = ExtractionService(config, renderer, canvas, HttpSourceFetcher(client))
            response = await service.run_batch(request)
        source = str(request.file.url)

    files: Dict[int, str] = {}
    used: set = set()
    for result in response.results:
        if result.image is None:
            continue
        filename = output_filename(result.spec.image_id, result.spec.position, used)
        (output_path / filename).write_bytes(result.image.data)
        files[result.spec.position] = filename

    limits = config.batch_limits(target_width=request.target_width, deadline_ms=request.deadline_ms)
    manifest = build_manifest(response, files, source, asdict(limits))
    with open(output_path / "manifest.json", 'w') as f:
        json.dump(manifest, f, indent=2)
    return manifest


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    config = APIConfig.from_env()
    setup_logging("DEBUG" if args.verbose else config.log_level)

    request_path = Path(args.request_file)
    if not request_path.exists():
        print(f"Error: Request file does not exist: {request_path}", file=sys.stderr)
        return 1

    pdf_path = Path(args.pdf_path) if args.pdf_path else None
    if pdf_path is not None and not pdf_path.exists():
        print(f"Error: PDF file does not exist: {pdf_path}", file=sys.stderr)
        return 1

    try:
        request = ExtractionRequest.model_validate_json(request_path.read_text())
    except ValidationError as e:
        print(f"Error: Invalid request file {request_path}:\n{e}", file=sys.stderr)
        return 1

    output_path = Path(args.output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    try:
        manifest = asyncio.run(run(request, output_path, config, pdf_path))
    except TooManyImagesError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = manifest["processing_info"]["extraction_summary"]
    print(f"Extracted {summary['successful_extractions']}/{summary['total_images']} images "
          f"into {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
