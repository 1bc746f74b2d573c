# Pydantic schemas package
from imagestudio.schemas.image import (
    ImageSize, ImageQuality, ImageStyle, GenerateImageRequest, ImageRecord
)
from imagestudio.schemas.job import (
    JobStatus, JobCreatedResponse, JobStatusResponse, ErrorResponse
)

__all__ = [
    "ImageSize", "ImageQuality", "ImageStyle", "GenerateImageRequest", "ImageRecord",
    "JobStatus", "JobCreatedResponse", "JobStatusResponse", "ErrorResponse",
]
