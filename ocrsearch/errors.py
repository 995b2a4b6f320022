"""Error taxonomy shared by the pipeline, the stores and the API."""


class OCRSearchError(Exception):
    """Base exception for all service errors.

    Args:
        message: Human-readable summary.
        detail: Underlying diagnostic detail (engine or driver message).
    """

    status_code = 500

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class InvalidImageError(OCRSearchError):
    """Raised when a source file is unreadable or not a valid image."""

    status_code = 400


class OcrFailureError(OCRSearchError):
    """Raised when the OCR engine fails or times out."""


class PersistenceError(OCRSearchError):
    """Raised when the record store cannot read or write."""


class RecordNotFoundError(OCRSearchError):
    """Raised when a record or its image asset does not exist."""

    status_code = 404


class ValidationFailureError(OCRSearchError):
    """Raised for empty or invalid input payloads."""

    status_code = 400
