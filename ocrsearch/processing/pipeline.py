"""Image-to-searchable-text processing pipeline.

Each file moves through preprocessing, recognition and persistence on
its own and ends ``completed``, ``skipped`` (OCR found no text) or
``failed``. A failing file never stops the rest of its batch. The
preprocessed artifact of every OCR call is removed afterwards, whatever
the outcome; removal errors are ignored.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from ocrsearch.errors import (
    OCRSearchError,
    PersistenceError,
    RecordNotFoundError,
    ValidationFailureError,
)
from ocrsearch.ocr.tesseract_engine import TesseractEngine
from ocrsearch.preprocessing.pipeline import Preprocessor
from ocrsearch.storage.assets import AssetStore
from ocrsearch.storage.models import ImageRecord
from ocrsearch.storage.record_store import RecordStore
from ocrsearch.utils.config import UploadConfig
from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)


class FileStatus(StrEnum):
    """Terminal state of one file in a batch."""

    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UploadedFile:
    """A file received in an upload request."""

    filename: str
    content_type: str | None
    content: bytes


@dataclass
class FileOutcome:
    """What happened to a single file."""

    filename: str
    status: FileStatus
    image_ref: str | None = None
    text: str = ""
    record: ImageRecord | None = None
    error: OCRSearchError | None = None

    @property
    def saved(self) -> bool:
        return self.status == FileStatus.COMPLETED


@dataclass
class BatchResult:
    """Per-file outcomes of a batch, in upload order."""

    outcomes: list[FileOutcome] = field(default_factory=list)

    def _with_status(self, status: FileStatus) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def completed(self) -> list[FileOutcome]:
        return self._with_status(FileStatus.COMPLETED)

    @property
    def skipped(self) -> list[FileOutcome]:
        return self._with_status(FileStatus.SKIPPED)

    @property
    def failed(self) -> list[FileOutcome]:
        return self._with_status(FileStatus.FAILED)

    @property
    def persistence_errors(self) -> list[PersistenceError]:
        return [o.error for o in self.outcomes if isinstance(o.error, PersistenceError)]


@dataclass
class RegenerationResult:
    """Outcome of re-running OCR on a stored record's image.

    ``updated`` is False when OCR found no text; ``record`` then holds the
    untouched existing record.
    """

    record: ImageRecord
    updated: bool


def is_image_type(content_type: str | None) -> bool:
    return bool(content_type) and content_type.lower().startswith("image/")


class ProcessingPipeline:
    """Orchestrates Preprocessor, OCR engine and record store per file.

    Args:
        preprocessor: Produces OCR-ready scratch copies of images.
        ocr_engine: Recognizes text in a preprocessed image.
        record_store: Persists extracted text.
        asset_store: Holds the uploaded image files.
        upload_config: Batch size and file size limits.
    """

    def __init__(
        self,
        preprocessor: Preprocessor,
        ocr_engine: TesseractEngine,
        record_store: RecordStore,
        asset_store: AssetStore,
        upload_config: UploadConfig | None = None,
    ) -> None:
        self.preprocessor = preprocessor
        self.ocr_engine = ocr_engine
        self.record_store = record_store
        self.asset_store = asset_store
        self.upload_config = upload_config or UploadConfig()

    def extract_text(self, source: Path) -> str:
        """Preprocess ``source`` and run OCR on the result.

        Raises:
            InvalidImageError: If the image cannot be preprocessed.
            OcrFailureError: If the OCR engine fails.
        """
        artifact = self.preprocessor.prepare(source)
        try:
            return self.ocr_engine.recognize(artifact)
        finally:
            _discard_artifact(artifact)

    def process_file(
        self, filename: str, image_ref: str, discard_unsaved: bool = True
    ) -> FileOutcome:
        """Run one stored asset through the pipeline and persist its text.

        Args:
            filename: Original name, used for reporting.
            image_ref: Stored asset reference.
            discard_unsaved: Remove the asset when no record is created.

        Returns:
            The file's terminal outcome. Never raises for per-file errors.
        """
        outcome = self._run(filename, image_ref)

        if outcome.status == FileStatus.COMPLETED:
            logger.info("Saved text for %s as record %s", image_ref, outcome.record.id)
        elif outcome.status == FileStatus.SKIPPED:
            logger.info("No text extracted from %s", image_ref)
        else:
            logger.warning(
                "Processing %s failed: %s", filename, outcome.error.message
            )

        if discard_unsaved and not outcome.saved:
            self.asset_store.delete(image_ref)
        return outcome

    def _run(self, filename: str, image_ref: str) -> FileOutcome:
        try:
            text = self.extract_text(self.asset_store.path(image_ref))
        except OCRSearchError as exc:
            return FileOutcome(filename, FileStatus.FAILED, image_ref, error=exc)

        if not text:
            return FileOutcome(filename, FileStatus.SKIPPED, image_ref)

        try:
            record = self.record_store.create(image_ref, text)
        except PersistenceError as exc:
            return FileOutcome(filename, FileStatus.FAILED, image_ref, text, error=exc)
        return FileOutcome(filename, FileStatus.COMPLETED, image_ref, text, record)

    def process_upload(self, files: list[UploadedFile]) -> BatchResult:
        """Validate, store and process an upload batch in upload order.

        Files with a non-image type or over the size limit are reported as
        failed without being stored.

        Raises:
            ValidationFailureError: If the batch is empty, too large, or
                contains no acceptable file.
        """
        if not files:
            raise ValidationFailureError("No images uploaded")
        if len(files) > self.upload_config.max_files:
            raise ValidationFailureError(
                f"Too many files: at most {self.upload_config.max_files} per upload",
                detail=f"received {len(files)}",
            )

        rejected = {i: self._reject_reason(f) for i, f in enumerate(files)}
        if all(reason is not None for reason in rejected.values()):
            raise ValidationFailureError(
                "No valid images uploaded",
                detail="; ".join(
                    f"{f.filename}: {rejected[i]}" for i, f in enumerate(files)
                ),
            )

        result = BatchResult()
        for i, upload in enumerate(files):
            filename = upload.filename or "unknown"
            if rejected[i] is not None:
                logger.warning("Rejected %s: %s", filename, rejected[i])
                result.outcomes.append(
                    FileOutcome(
                        filename,
                        FileStatus.FAILED,
                        error=ValidationFailureError(rejected[i]),
                    )
                )
                continue

            try:
                image_ref = self.asset_store.save(filename, upload.content)
            except OSError as exc:
                result.outcomes.append(
                    FileOutcome(
                        filename,
                        FileStatus.FAILED,
                        error=PersistenceError("Could not store upload", str(exc)),
                    )
                )
                continue

            logger.info("Processing uploaded image: %s", image_ref)
            result.outcomes.append(self.process_file(filename, image_ref))

        logger.info(
            "Batch done: %d completed, %d skipped, %d failed",
            len(result.completed),
            len(result.skipped),
            len(result.failed),
        )
        return result

    def _reject_reason(self, upload: UploadedFile) -> str | None:
        if not is_image_type(upload.content_type):
            return "Only image files allowed"
        if len(upload.content) > self.upload_config.max_file_bytes:
            return f"File exceeds {self.upload_config.max_file_bytes} bytes"
        return None

    def regenerate(self, record_id: str) -> RegenerationResult:
        """Re-run OCR on a record's image and overwrite its text.

        Empty OCR output leaves the record untouched.

        Raises:
            RecordNotFoundError: If the record or its image file is missing.
            InvalidImageError: If the image cannot be preprocessed.
            OcrFailureError: If the OCR engine fails.
            PersistenceError: If the store cannot be read or written.
        """
        record = self.record_store.find_by_id(record_id)
        if not self.asset_store.exists(record.image_ref):
            raise RecordNotFoundError(
                "Image file not found on server", detail=record.image_ref
            )

        logger.info("Regenerating text for: %s", record.image_ref)
        text = self.extract_text(self.asset_store.path(record.image_ref))
        if not text:
            logger.info("Regeneration of %s found no text", record.image_ref)
            return RegenerationResult(record=record, updated=False)

        updated = self.record_store.update(record_id, text)
        logger.info("Regenerated text for: %s", record.image_ref)
        return RegenerationResult(record=updated, updated=True)

    def update_text(self, record_id: str, text: str) -> ImageRecord:
        """Manually replace a record's text."""
        record = self.record_store.update(record_id, text)
        logger.info("Updated image: %s", record.image_ref)
        return record

    def delete(self, record_id: str) -> ImageRecord:
        """Delete a record and its image file."""
        record = self.record_store.delete(record_id)
        self.asset_store.delete(record.image_ref)
        logger.info("Deleted image from DB: %s", record.image_ref)
        return record


def _discard_artifact(path: Path) -> None:
    try:
        Path(path).unlink()
    except OSError as exc:
        logger.debug("Ignoring cleanup failure for %s: %s", path, exc)
