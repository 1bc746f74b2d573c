"""
Image Record Store
In-memory, append-only catalog of generated images for the process lifetime.
"""

import itertools
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from imagestudio.schemas.image import ImageRecord

logger = logging.getLogger(__name__)


class ImageStore:
    """Stores ImageRecords; records are never updated or deleted."""

    def __init__(self):
        self._images: Dict[int, ImageRecord] = {}
        self._ids = itertools.count(1)

    def create(self, prompt: str, url: str, size: str, user_id: Optional[int] = None) -> ImageRecord:
        """Create and store a new image record."""
        record = ImageRecord(
            id=next(self._ids),
            prompt=prompt,
            url=url,
            size=size,
            userId=user_id,
            createdAt=datetime.now(timezone.utc),
        )
        self._images[record.id] = record
        logger.info(f"Stored image {record.id} ({size})")
        return record

    def get(self, image_id: int) -> Optional[ImageRecord]:
        return self._images.get(image_id)

    def list(self) -> List[ImageRecord]:
        """All records, newest first."""
        return sorted(
            self._images.values(),
            key=lambda record: (record.createdAt, record.id),
            reverse=True,
        )

    def count(self) -> int:
        return len(self._images)
