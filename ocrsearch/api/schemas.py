"""Pydantic request/response schemas for the FastAPI endpoints.

Field names are snake_case in Python and camelCase on the wire
(``createdAt``), matching what the web front end reads.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing field names in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadItemResponse(CamelModel):
    """A file whose text was extracted and saved."""

    id: str
    image: str
    text: str
    saved: bool = True
    confidence: float | None = None


class FileOutcomeResponse(CamelModel):
    """Terminal state of one uploaded file."""

    filename: str
    image: str | None = None
    status: str
    error: str | None = None
    details: str | None = None


class UploadResponse(CamelModel):
    """Response schema for a batch upload."""

    message: str
    results: list[UploadItemResponse]
    outcomes: list[FileOutcomeResponse]


class RecordResponse(CamelModel):
    """A stored image record."""

    id: str
    image: str
    text: str
    created_at: datetime
    updated_at: datetime | None = None
    confidence: float | None = None


class SearchItemResponse(CamelModel):
    """A record returned by list/search."""

    id: str
    image: str
    text: str
    matched: bool
    created_at: datetime


class SearchResponse(CamelModel):
    """Response schema for ``GET /image``."""

    query: str | None
    count: int
    results: list[SearchItemResponse]


class UpdateTextRequest(CamelModel):
    """Body of ``PATCH /image/{id}``."""

    text: str | None = None


class RecordMessageResponse(CamelModel):
    """A message plus the affected record."""

    message: str
    result: RecordResponse


class DeletedRecord(CamelModel):
    id: str
    image: str


class DeleteResponse(CamelModel):
    """Response schema for ``DELETE /image/{id}``."""

    message: str
    deleted: DeletedRecord


class OcrPreviewResponse(CamelModel):
    """Response schema for the non-persisting ``GET /ocr`` endpoint."""

    image: str
    text: str
    confidence: float | None = None
    lines: list[str]
    found: bool | None
    match: str | None
    timestamp: datetime


class HealthResponse(CamelModel):
    """Response schema for the health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    tesseract_available: bool


class ErrorResponse(CamelModel):
    """Body returned for every handled error."""

    error: str
    details: str | None = None
