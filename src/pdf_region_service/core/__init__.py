"""Batch extraction core: framework-free, driven through injected capabilities."""

from .aggregator import ResultAggregator
from .capabilities import (
    Canvas,
    CanvasError,
    IncompatibleImageError,
    PageRenderer,
    RenderCancelled,
    RendererError,
    SourceFetcher,
    SourceFetchError,
)
from .coordinates import (
    CropConversionError,
    DegenerateCropRegion,
    InvalidPageDimensions,
    convert_region,
    normalize_box,
    to_pixel_rect,
)
from .cropping import CropExtractor
from .deadline import DeadlineBudget
from .grouping import PageGroupEntry, group_by_page
from .orchestrator import BatchOrchestrator
from .rendering import PageRenderOrchestrator
from .types import (
    BatchLimits,
    EncodedImage,
    Err,
    ErrorKind,
    ExtractionRequest,
    ExtractionResponse,
    ExtractionResult,
    ImageSpec,
    Ok,
    PixelRect,
    RenderedPage,
    RenderMode,
)
