"""On-disk storage for uploaded image assets.

Assets live flat in a single directory and are addressed by their stored
filename, which is also the public path under ``/images``.
"""

import random
import time
from pathlib import Path

from ocrsearch.errors import RecordNotFoundError
from ocrsearch.utils.logger import get_logger

logger = get_logger(__name__)

ASSET_PREFIX = "images"


def unique_asset_name(original_filename: str) -> str:
    """Build a unique stored name keeping the upload's extension."""
    suffix = Path(original_filename or "").suffix.lower()
    stamp = int(time.time() * 1000)
    return f"{ASSET_PREFIX}-{stamp}-{random.randint(0, 10**9 - 1):09d}{suffix}"


class AssetStore:
    """Save, resolve and delete uploaded images.

    Args:
        images_dir: Directory holding stored assets. Created if missing.
    """

    def __init__(self, images_dir: Path | str) -> None:
        self.images_dir = Path(images_dir)
        self.images_dir.mkdir(parents=True, exist_ok=True)

    def save(self, original_filename: str, content: bytes) -> str:
        """Write uploaded bytes under a fresh unique name.

        Returns:
            The stored filename (the asset reference).
        """
        image_ref = unique_asset_name(original_filename)
        (self.images_dir / image_ref).write_bytes(content)
        logger.debug("Stored asset %s (%d bytes)", image_ref, len(content))
        return image_ref

    def path(self, image_ref: str) -> Path:
        """Resolve an asset reference to its path inside the images directory.

        Raises:
            RecordNotFoundError: If the reference points outside the directory.
        """
        candidate = (self.images_dir / image_ref).resolve()
        if candidate.parent != self.images_dir.resolve():
            raise RecordNotFoundError(f"Image not found: {image_ref}")
        return candidate

    def exists(self, image_ref: str) -> bool:
        try:
            return self.path(image_ref).is_file()
        except RecordNotFoundError:
            return False

    def delete(self, image_ref: str) -> bool:
        """Remove an asset. Missing or undeletable files are not an error.

        Returns:
            True if a file was removed.
        """
        try:
            self.path(image_ref).unlink()
        except (FileNotFoundError, RecordNotFoundError):
            return False
        except OSError as exc:
            logger.warning("Could not delete asset %s: %s", image_ref, exc)
            return False
        logger.info("Deleted asset %s", image_ref)
        return True
