from dataclasses import dataclass
from datetime import datetime


@dataclass
class ImageRecord:
    """Represents a row from the images table."""

    id: str
    image_ref: str
    text: str
    created_at: datetime
    updated_at: datetime | None = None
