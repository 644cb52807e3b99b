"""Response models for the API."""

from typing import List, Literal, Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ImageResult(BaseModel):
    """Outcome for one requested image. Success fields and error fields are exclusive."""
    model_config = ConfigDict(populate_by_name=True)

    image_id: str = Field(alias="imageId")
    status: Literal["success", "failed"]
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    width: Optional[int] = None
    height: Optional[int] = None
    bytes_base64: Optional[str] = Field(default=None, alias="bytesBase64")
    error_code: Optional[str] = Field(default=None, alias="errorCode")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class ExtractionResponse(BaseModel):
    """Response from the extraction endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(alias="requestId")
    results: List[ImageResult]


class ErrorResponse(BaseModel):
    """Error response model."""
    success: bool = False
    error: Dict[str, Any]
    timestamp: datetime
