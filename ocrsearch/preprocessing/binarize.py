"""Grayscale conversion, contrast normalization and binarization.

The OCR pass works on pure black/white images produced by a fixed
threshold after the contrast has been stretched to the full range.
"""

import cv2
import numpy as np

from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an image to grayscale if it has color channels.

    Args:
        image: Input image (BGR, BGRA or grayscale).

    Returns:
        Grayscale image.
    """
    if len(image.shape) == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def normalize_contrast(
    image: np.ndarray, low_percentile: float = 1.0, high_percentile: float = 99.0
) -> np.ndarray:
    """Stretch intensities so the given percentiles map to 0 and 255.

    Args:
        image: Input image (BGR or grayscale).
        low_percentile: Percentile mapped to black.
        high_percentile: Percentile mapped to white.

    Returns:
        Contrast-normalized grayscale image.
    """
    gray = to_gray(image)
    low, high = np.percentile(gray, (low_percentile, high_percentile))
    if high <= low:
        logger.debug("Flat image, skipping contrast normalization")
        return gray

    stretched = (gray.astype(np.float32) - low) * (255.0 / (high - low))
    result = np.clip(stretched, 0, 255).astype(np.uint8)
    logger.debug("Normalized contrast (low=%.1f, high=%.1f)", low, high)
    return result


def binarize_fixed(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Binarize an image with a fixed global threshold.

    Pixels at or above ``threshold`` become white, the rest black.

    Args:
        image: Input image (BGR or grayscale).
        threshold: Cutoff intensity in the 0-255 range.

    Returns:
        Binary image with pixel values 0 or 255.
    """
    gray = to_gray(image)
    # cv2.THRESH_BINARY keeps pixels strictly above the cutoff.
    _, binary = cv2.threshold(gray, threshold - 1, 255, cv2.THRESH_BINARY)
    logger.debug("Applied fixed binarization at %d", threshold)
    return binary
