"""Extraction endpoints for cropping regions out of remote PDFs."""

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from ..models.config import APIConfig
from ..models.requests import ExtractionRequest
from ..models.responses import ExtractionResponse
from ..services.extraction import ExtractionService, TooManyImagesError


router = APIRouter(prefix="/v1")

SECRET_HEADER = "x-image-processor-secret"


def get_config(request: Request) -> APIConfig:
    """Get API configuration."""
    return request.app.state.config


def get_extraction_service(request: Request, config: APIConfig = Depends(get_config)) -> ExtractionService:
    """Get extraction service wired to the process-wide renderer, canvas and fetcher."""
    state = request.app.state
    return ExtractionService(
        config,
        renderer=state.renderer,
        canvas=state.canvas,
        fetcher=state.fetcher,
        clock=getattr(state, "clock", None),
    )


def secret_matches(config: APIConfig, provided: Optional[str]) -> bool:
    """Constant-time check of the shared secret. An unset secret matches nothing."""
    expected = config.processor_secret
    if not expected or not provided:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


@router.post("/extract", response_model=ExtractionResponse)
@router.post("/process-document-images", response_model=ExtractionResponse)
async def extract_images(
    body: ExtractionRequest,
    extraction_service: ExtractionService = Depends(get_extraction_service),
):
    """
    Crop every requested region out of the source PDF.

    The shared secret is checked by middleware before the body is read.
    Always answers 200 with one result per requested image once the batch
    is accepted; per-image failures are reported in the results.
    """
    try:
        return await extraction_service.process(body)
    except TooManyImagesError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "TOO_MANY_IMAGES",
                "message": str(e),
                "details": {"count": e.count, "limit": e.limit}
            }
        )
