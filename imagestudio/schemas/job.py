"""
Job Schemas
Pydantic models for job API responses.
"""

from datetime import datetime
from typing import Any, List, Optional
from enum import Enum
from pydantic import BaseModel

from imagestudio.schemas.image import ImageRecord


class JobStatus(str, Enum):
    """Job status enum."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobCreatedResponse(BaseModel):
    """Returned by create-job before any work has run."""
    jobId: str
    status: JobStatus = JobStatus.PENDING
    message: str = "Image edit job created. You can check the status using the /api/jobs/:id endpoint"


class JobStatusResponse(BaseModel):
    """Point-in-time snapshot of a job."""
    jobId: str
    status: JobStatus
    created: datetime
    completed: Optional[datetime] = None
    result: Optional[ImageRecord] = None
    error: Optional[str] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""
    message: str
    errors: Optional[List[Any]] = None
    error: Optional[Any] = None
    api_configured: Optional[bool] = None
    jobId: Optional[str] = None
