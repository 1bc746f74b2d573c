"""
Image Schemas
Pydantic models for image generation requests and stored image records.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ImageSize(str, Enum):
    """Dimensions accepted by the remote image service."""
    SQUARE = "1024x1024"
    PORTRAIT = "1024x1792"
    LANDSCAPE = "1792x1024"


class ImageQuality(str, Enum):
    STANDARD = "standard"
    HD = "hd"


class ImageStyle(str, Enum):
    VIVID = "vivid"
    NATURAL = "natural"


class GenerateImageRequest(BaseModel):
    """Schema for text-to-image generation request."""
    prompt: str = Field(..., min_length=1, max_length=4000)
    size: ImageSize = ImageSize.SQUARE
    quality: Optional[ImageQuality] = None
    style: Optional[ImageStyle] = None


class ImageRecord(BaseModel):
    """Immutable description of one produced image."""

    model_config = ConfigDict(frozen=True)

    id: int
    prompt: str
    url: str
    size: str
    userId: Optional[int] = None
    createdAt: datetime
