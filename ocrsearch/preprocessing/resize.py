"""Upscaling of small images before OCR.

Tesseract struggles with glyphs only a few pixels tall, so narrow images
are enlarged with a Lanczos kernel before any other step.
"""

import cv2
import numpy as np

from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)


def needs_upscale(image: np.ndarray, min_width: int = 1000) -> bool:
    """Return whether an image is narrower than ``min_width`` pixels."""
    return image.shape[1] < min_width


def upscale(image: np.ndarray, factor: int = 2) -> np.ndarray:
    """Enlarge an image by an integer factor using Lanczos resampling.

    Args:
        image: Input image (BGR or grayscale).
        factor: Scale factor applied to both dimensions.

    Returns:
        Upscaled image.
    """
    h, w = image.shape[:2]
    result = cv2.resize(
        image, (w * factor, h * factor), interpolation=cv2.INTER_LANCZOS4
    )
    logger.debug("Upscaled image %dx%d -> %dx%d", w, h, w * factor, h * factor)
    return result


def upscale_if_small(
    image: np.ndarray, min_width: int = 1000, factor: int = 2
) -> np.ndarray:
    """Upscale an image only when it is narrower than ``min_width``.

    Args:
        image: Input image (BGR or grayscale).
        min_width: Width threshold in pixels.
        factor: Scale factor applied when the image is too narrow.

    Returns:
        The upscaled image, or the input unchanged.
    """
    if not needs_upscale(image, min_width):
        return image
    return upscale(image, factor)
