"""Tesseract OCR engine wrapper.

Runs Tesseract with a fixed configuration (English, LSTM engine, fully
automatic page segmentation) on a preprocessed image file and returns
the whitespace-trimmed text.
"""

import shutil
from pathlib import Path

import pytesseract

from ocrsearch.errors import OcrFailureError
from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)

OCR_LANGUAGE = "eng"
OCR_ENGINE_MODE = 1  # LSTM only
OCR_PAGE_SEGMENTATION_MODE = 3  # fully automatic, no OSD


def tesseract_config() -> str:
    """Return the command-line flags passed to Tesseract."""
    return f"--oem {OCR_ENGINE_MODE} --psm {OCR_PAGE_SEGMENTATION_MODE}"


class TesseractEngine:
    """Wrapper around Tesseract for whole-image text recognition.

    The engine never retries and never inspects the recognized text; an
    empty string is a valid result.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses the system default.
        timeout_seconds: Upper bound for a single recognition call.
            ``0`` disables the limit.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.tesseract_cmd = tesseract_cmd or "tesseract"
        self.timeout_seconds = timeout_seconds
        self.language = OCR_LANGUAGE

    def is_available(self) -> bool:
        """Return whether the Tesseract executable can be found."""
        return shutil.which(self.tesseract_cmd) is not None

    def recognize(self, image_path: Path) -> str:
        """Extract text from an image file.

        Args:
            image_path: Path to a (preprocessed) image.

        Returns:
            Recognized text with surrounding whitespace removed.

        Raises:
            OcrFailureError: If Tesseract fails, is missing or times out.
        """
        try:
            text = pytesseract.image_to_string(
                str(image_path),
                lang=self.language,
                config=tesseract_config(),
                timeout=self.timeout_seconds,
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as exc:
            message = getattr(exc, "message", None) or str(exc)
            logger.error("OCR failed for %s: %s", Path(image_path).name, message)
            raise OcrFailureError(
                f"OCR processing failed: {message}", detail=message
            ) from exc

        text = text.strip()
        logger.info(
            "OCR extracted %d characters from %s", len(text), Path(image_path).name
        )
        return text
