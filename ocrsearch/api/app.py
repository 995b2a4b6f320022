"""FastAPI application for the image text search API.

Provides REST endpoints for uploading images, listing and searching
their extracted text, editing, regenerating and deleting records, and
health checks. Uploaded images are served back under ``/images``.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from ocrsearch import __version__
from ocrsearch.errors import OCRSearchError, RecordNotFoundError
from ocrsearch.ocr.tesseract_engine import TesseractEngine
from ocrsearch.processing.pipeline import FileOutcome, UploadedFile
from ocrsearch.services import Services, build_services
from ocrsearch.storage.models import ImageRecord
from ocrsearch.utils.config import AppConfig, load_config
from ocrsearch.utils.logger import get_logger

from .schemas import (
    DeletedRecord,
    DeleteResponse,
    FileOutcomeResponse,
    HealthResponse,
    OcrPreviewResponse,
    RecordMessageResponse,
    RecordResponse,
    SearchItemResponse,
    SearchResponse,
    UpdateTextRequest,
    UploadItemResponse,
    UploadResponse,
)

logger = get_logger(__name__)

DEFAULT_PREVIEW_IMAGE = "test.png"


def get_services(request: Request) -> Services:
    """Return the services created by the application lifespan."""
    return request.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]


def _error_body(exc: OCRSearchError) -> dict[str, str | None]:
    return {"error": exc.message, "details": exc.detail}


def _record_response(record: ImageRecord) -> RecordResponse:
    return RecordResponse(
        id=record.id,
        image=record.image_ref,
        text=record.text,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _outcome_response(outcome: FileOutcome) -> FileOutcomeResponse:
    return FileOutcomeResponse(
        filename=outcome.filename,
        image=outcome.image_ref,
        status=outcome.status.value,
        error=outcome.error.message if outcome.error else None,
        details=outcome.error.detail if outcome.error else None,
    )


def create_app(
    config: AppConfig | None = None, ocr_engine: TesseractEngine | None = None
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Application configuration; loaded from disk when omitted.
        ocr_engine: Optional engine replacing the Tesseract-backed default.

    Returns:
        Configured application. Services are created on startup and
        closed on shutdown.
    """
    config = config or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        services = build_services(config, ocr_engine=ocr_engine)
        app.state.services = services
        try:
            yield
        finally:
            services.close()

    app = FastAPI(
        title="Image Text Search API",
        description="Extract text from uploaded images and search it",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount(
        "/images",
        StaticFiles(directory=config.storage.images_dir, check_dir=False),
        name="images",
    )

    @app.exception_handler(OCRSearchError)
    async def handle_service_error(
        request: Request, exc: OCRSearchError
    ) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s crashed", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )

    @app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return "Hello World"

    @app.get("/health", response_model=HealthResponse)
    async def health_check(services: ServicesDep) -> HealthResponse:
        """Return system health status."""
        return HealthResponse(
            status="OK",
            timestamp=datetime.now(timezone.utc),
            version=__version__,
            tesseract_available=services.ocr_engine.is_available(),
        )

    @app.post("/image", response_model=UploadResponse)
    async def upload_images(
        services: ServicesDep,
        images: Annotated[list[UploadFile] | None, File()] = None,
    ) -> UploadResponse | JSONResponse:
        """Upload up to ten images, extract their text and save it.

        Every file is reported in ``outcomes``; only saved files appear
        in ``results``.
        """
        files = [
            UploadedFile(
                filename=upload.filename or "unknown",
                content_type=upload.content_type,
                content=await upload.read(),
            )
            for upload in images or []
        ]
        batch = await run_in_threadpool(services.pipeline.process_upload, files)

        outcomes = [_outcome_response(o) for o in batch.outcomes]
        if batch.persistence_errors:
            first = batch.persistence_errors[0]
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Upload/OCR failed",
                    "details": first.detail or first.message,
                    "outcomes": [o.model_dump(by_alias=True) for o in outcomes],
                },
            )

        return UploadResponse(
            message=(
                f"{len(files)} images processed, {len(batch.completed)} saved"
            ),
            results=[
                UploadItemResponse(
                    id=o.record.id, image=o.image_ref, text=o.text, saved=True
                )
                for o in batch.completed
            ],
            outcomes=outcomes,
        )

    @app.get("/image", response_model=SearchResponse)
    async def search_images(
        services: ServicesDep,
        search: Annotated[str | None, Query()] = None,
    ) -> SearchResponse:
        """List the latest records, or those whose text contains ``search``."""
        result = await run_in_threadpool(services.search.search, search)
        return SearchResponse(
            query=result.query,
            count=result.count,
            results=[
                SearchItemResponse(
                    id=hit.record.id,
                    image=hit.record.image_ref,
                    text=hit.record.text,
                    matched=hit.matched,
                    created_at=hit.record.created_at,
                )
                for hit in result.hits
            ],
        )

    @app.patch("/image/{record_id}", response_model=RecordMessageResponse)
    async def update_image_text(
        record_id: str, body: UpdateTextRequest, services: ServicesDep
    ) -> RecordMessageResponse:
        """Replace a record's text."""
        record = await run_in_threadpool(
            services.pipeline.update_text, record_id, body.text or ""
        )
        return RecordMessageResponse(
            message="Image text updated successfully",
            result=_record_response(record),
        )

    @app.post("/image/{record_id}/regenerate", response_model=RecordMessageResponse)
    async def regenerate_image_text(
        record_id: str, services: ServicesDep
    ) -> RecordMessageResponse | JSONResponse:
        """Re-run OCR on a stored image and overwrite its text."""
        outcome = await run_in_threadpool(services.pipeline.regenerate, record_id)
        if not outcome.updated:
            return JSONResponse(
                status_code=400,
                content={
                    "error": "No text could be extracted from the image",
                    "message": "OCR did not detect any text. Try with a clearer image.",
                },
            )
        return RecordMessageResponse(
            message="Text regenerated successfully",
            result=_record_response(outcome.record),
        )

    @app.delete("/image/{record_id}", response_model=DeleteResponse)
    async def delete_image(record_id: str, services: ServicesDep) -> DeleteResponse:
        """Delete a record and its image file."""
        record = await run_in_threadpool(services.pipeline.delete, record_id)
        return DeleteResponse(
            message="Image deleted successfully",
            deleted=DeletedRecord(id=record.id, image=record.image_ref),
        )

    @app.get("/ocr", response_model=OcrPreviewResponse)
    async def ocr_preview(
        services: ServicesDep,
        image: Annotated[str, Query()] = DEFAULT_PREVIEW_IMAGE,
        q: Annotated[str | None, Query()] = None,
    ) -> OcrPreviewResponse:
        """OCR a stored image without saving, optionally testing for ``q``."""
        if not services.asset_store.exists(image):
            raise RecordNotFoundError("Image not found", detail=image)

        text = await run_in_threadpool(
            services.pipeline.extract_text, services.asset_store.path(image)
        )
        needle = (q or "").strip().lower()
        return OcrPreviewResponse(
            image=image,
            text=text,
            lines=[line for line in text.splitlines() if line.strip()],
            found=(needle in text.lower()) if needle else None,
            match=needle or None,
            timestamp=datetime.now(timezone.utc),
        )

    return app
