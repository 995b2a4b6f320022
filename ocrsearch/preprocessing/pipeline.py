"""Image preprocessing pass that prepares uploads for OCR.

Upscales narrow images, converts to grayscale, normalizes contrast,
sharpens and binarizes, then writes the result as an uncompressed PNG
into the scratch directory. The source image is never modified.
"""

import time
import uuid
from pathlib import Path

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from ocrsearch.errors import InvalidImageError
from ocrsearch.utils.config import PreprocessingConfig
from ocrsearch.utils.logger import get_logger

from .binarize import binarize_fixed, normalize_contrast, to_gray
from .resize import upscale_if_small
from .sharpen import sharpen

logger = get_logger(__name__)


def load_image(path: Path) -> np.ndarray:
    """Read an image from disk.

    Raises:
        InvalidImageError: If the file is missing, unreadable or not an image.
    """
    if not path.is_file():
        raise InvalidImageError(f"Image not found: {path.name}")

    image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
    if image is None or image.size == 0:
        image = _load_with_pillow(path)
    if image.dtype != np.uint8:
        scale = 255.0 / max(float(image.max()), 1.0)
        image = cv2.convertScaleAbs(image, alpha=scale)
    return image


def _load_with_pillow(path: Path) -> np.ndarray:
    # GIF and a few other formats are only readable through Pillow.
    try:
        with Image.open(path) as img:
            rgb = np.array(img.convert("RGB"))
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise InvalidImageError(
            f"Unreadable or unsupported image: {path.name}", detail=str(exc)
        ) from exc
    if rgb.size == 0:
        raise InvalidImageError(f"Empty image: {path.name}")
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)


def scratch_filename() -> str:
    """Build a collision-resistant name for a preprocessed artifact."""
    return f"processed_{time.time_ns()}_{uuid.uuid4().hex[:8]}.png"


class Preprocessor:
    """OCR-oriented preprocessing pass.

    Args:
        config: Preprocessing configuration (thresholds and scratch area).
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        self.config = config
        self.scratch_dir = Path(config.scratch_dir)

    def process(self, image: np.ndarray) -> np.ndarray:
        """Run every preprocessing step on an in-memory image.

        Args:
            image: Input image (BGR, BGRA or grayscale).

        Returns:
            Binary single-channel image.
        """
        result = upscale_if_small(
            image,
            min_width=self.config.upscale_min_width,
            factor=self.config.upscale_factor,
        )
        result = to_gray(result)
        result = normalize_contrast(result)
        result = sharpen(result, sigma=self.config.sharpen_sigma)
        return binarize_fixed(result, threshold=self.config.threshold)

    def prepare(self, source: Path) -> Path:
        """Produce an OCR-ready copy of ``source`` in the scratch directory.

        Args:
            source: Path to the original image.

        Returns:
            Path of the newly written preprocessed PNG.

        Raises:
            InvalidImageError: If the source cannot be decoded or the
                artifact cannot be written.
        """
        image = load_image(Path(source))
        try:
            processed = self.process(image)
        except cv2.error as exc:
            raise InvalidImageError(
                f"Could not preprocess {Path(source).name}", detail=str(exc)
            ) from exc

        output_path = self.scratch_dir / scratch_filename()
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
            written = cv2.imwrite(
                str(output_path), processed, [cv2.IMWRITE_PNG_COMPRESSION, 0]
            )
        except (OSError, cv2.error) as exc:
            raise InvalidImageError(
                f"Could not write preprocessed image for {Path(source).name}",
                detail=str(exc),
            ) from exc
        if not written:
            raise InvalidImageError(
                f"Could not write preprocessed image for {Path(source).name}",
                detail=str(output_path),
            )

        logger.info("Preprocessed %s -> %s", Path(source).name, output_path.name)
        return output_path
