"""Main FastAPI application for the PDF region extraction API."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .core.capabilities import Canvas, PageRenderer, SourceFetcher
from .models.config import APIConfig, setup_logging
from .models.responses import ErrorResponse
from .routes import extract, health
from .services.source_fetcher import HttpSourceFetcher
from .utils.image_utils import OpenCVCanvas
from .utils.pdf_renderer import PyMuPDFRenderer


logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 409, 425, 429, 500, 502, 503, 504})


def retryable_status(exc: BaseException) -> Optional[int]:
    """First retryable status code found on the exception or its causes."""
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        status = getattr(current, "status_code", None)
        if status is None and isinstance(current, httpx.HTTPStatusError):
            status = current.response.status_code
        if isinstance(status, int) and status in RETRYABLE_STATUS_CODES:
            return status
        current = current.__cause__ or current.__context__
    return None


def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(
            error={"code": code, "message": message, "details": details},
            timestamp=datetime.now()
        ))
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    config: APIConfig = app.state.config
    logger.info("Starting PDF Region Extraction API v%s", app.version)
    if not config.processor_secret:
        logger.warning("PROCESSOR_SECRET is not set; every extraction request will be rejected")

    http_client = None
    if app.state.fetcher is None:
        http_client = httpx.AsyncClient()
        app.state.fetcher = HttpSourceFetcher(http_client)

    yield

    # Shutdown
    if http_client is not None:
        await http_client.aclose()
        app.state.fetcher = None
    logger.info("API shutdown complete")


def create_app(
    config: Optional[APIConfig] = None,
    renderer: Optional[PageRenderer] = None,
    canvas: Optional[Canvas] = None,
    fetcher: Optional[SourceFetcher] = None,
) -> FastAPI:
    """Build the app; collaborators are created once here and shared by every request."""
    config = config or APIConfig.from_env()
    setup_logging(config.log_level)

    app = FastAPI(
        title="PDF Region Extraction API",
        description="HTTP API for cropping regions out of remotely hosted PDF pages",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )
    app.state.config = config
    app.state.renderer = renderer or PyMuPDFRenderer()
    app.state.canvas = canvas or OpenCVCanvas()
    app.state.fetcher = fetcher

    @app.middleware("http")
    async def require_processor_secret(request: Request, call_next):
        """Reject extraction calls without the shared secret before the body is parsed."""
        if request.method != "OPTIONS" and request.url.path.startswith(extract.router.prefix + "/"):
            provided = request.headers.get(extract.SECRET_HEADER)
            if not extract.secret_matches(request.app.state.config, provided):
                return error_response(401, "UNAUTHORIZED", "Unauthorized")
        return await call_next(request)

    # CORS must stay outside the secret check
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with structured error responses."""
        if isinstance(exc.detail, dict):
            error_detail = exc.detail
        else:
            error_detail = {
                "code": "HTTP_ERROR",
                "message": str(exc.detail),
                "details": None
            }
        return error_response(exc.status_code, **error_detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed JSON and schema violations reject the whole batch."""
        return error_response(400, "INVALID_REQUEST", "Invalid request payload",
                              details=jsonable_encoder(exc.errors()))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions; upstream retryable statuses map to 503."""
        logger.exception("Unexpected error handling %s %s", request.method, request.url.path)

        status = retryable_status(exc)
        if status is not None:
            return error_response(503, "UPSTREAM_UNAVAILABLE", str(exc),
                                  details={"upstreamStatus": status})
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred",
                              details=str(exc))

    app.include_router(health.router)
    app.include_router(extract.router)

    @app.get("/")
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "PDF Region Extraction API",
            "version": __version__,
            "description": "HTTP API for cropping regions out of remotely hosted PDF pages",
            "docs": "/docs",
            "health": "/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "pdf_region_service.main:app",
        host=app.state.config.host,
        port=app.state.config.port,
        log_level="info"
    )
