"""Edge sharpening for text images."""

import cv2
import numpy as np

from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)


def sharpen(image: np.ndarray, sigma: float = 1.0, amount: float = 0.5) -> np.ndarray:
    """Sharpen an image with an unsharp mask.

    Args:
        image: Input image (BGR or grayscale).
        sigma: Standard deviation of the Gaussian used for the mask.
        amount: Weight of the high-frequency detail added back.

    Returns:
        Sharpened image with the same shape and dtype as the input.
    """
    if sigma <= 0:
        return image
    blurred = cv2.GaussianBlur(image, (0, 0), sigma)
    result = cv2.addWeighted(image, 1.0 + amount, blurred, -amount, 0)
    logger.debug("Applied unsharp mask (sigma=%.1f, amount=%.1f)", sigma, amount)
    return result
