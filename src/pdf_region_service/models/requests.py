"""Request models for the API."""

from typing import Annotated, List, Optional

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field


FiniteFloat = Annotated[float, Field(allow_inf_nan=False)]


class SourceFile(BaseModel):
    """Where to fetch the source PDF from."""
    model_config = ConfigDict(populate_by_name=True)

    url: AnyHttpUrl
    size_bytes: Optional[int] = Field(default=None, ge=0, alias="sizeBytes")


class ImageRequest(BaseModel):
    """One requested crop: page index plus normalized [y1, x1, y2, x2] region."""
    model_config = ConfigDict(populate_by_name=True)

    image_id: str = Field(min_length=1, alias="imageId")
    page_index: int = Field(ge=0, alias="pageIndex")
    coordinates: List[FiniteFloat] = Field(min_length=4, max_length=4)


class ExtractionRequest(BaseModel):
    """Body of POST /v1/extract."""
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(min_length=1, alias="requestId")
    file: SourceFile
    images: List[ImageRequest]
    target_width: Optional[int] = Field(default=None, gt=0, alias="targetWidth")
    deadline_ms: Optional[int] = Field(default=None, gt=0, alias="deadlineMs")
