"""
Job Model
In-process representation of an asynchronous image job.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from imagestudio.schemas.image import ImageRecord
from imagestudio.schemas.job import JobStatus, JobStatusResponse
from imagestudio.services.staging import StagedBatch

TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

_PROGRESS_MESSAGES = {
    JobStatus.PENDING: "Job is waiting to be processed",
    JobStatus.PROCESSING: "Job is currently processing",
}


class Capability(str, Enum):
    """Which remote call a job makes; chosen by the submitter."""
    EDIT = "edit"          # text + reference image(s)
    GENERATE = "generate"  # text only


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    """Generation job; owns its staged files until cleanup."""

    id: str
    prompt: str
    capability: Capability = Capability.EDIT
    status: JobStatus = JobStatus.PENDING
    created: datetime = field(default_factory=utcnow)
    completed: Optional[datetime] = None
    result: Optional[ImageRecord] = None
    error: Optional[str] = None
    staged: Optional[StagedBatch] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> JobStatusResponse:
        """Client-facing view; result and error only appear once terminal."""
        return JobStatusResponse(
            jobId=self.id,
            status=self.status,
            created=self.created,
            completed=self.completed,
            result=self.result if self.status == JobStatus.COMPLETED else None,
            error=self.error if self.status == JobStatus.FAILED else None,
            message=_PROGRESS_MESSAGES.get(self.status),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "capability": self.capability.value,
            "status": self.status.value,
            "created": self.created.isoformat(),
            "completed": self.completed.isoformat() if self.completed else None,
            "result": self.result.model_dump(mode="json") if self.result else None,
            "error": self.error,
            "staged": self.staged.to_list() if self.staged else None,
            "options": self.options,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            id=data["id"],
            prompt=data["prompt"],
            capability=Capability(data.get("capability", Capability.EDIT.value)),
            status=JobStatus(data["status"]),
            created=datetime.fromisoformat(data["created"]),
            completed=datetime.fromisoformat(data["completed"]) if data.get("completed") else None,
            result=ImageRecord.model_validate(data["result"]) if data.get("result") else None,
            error=data.get("error"),
            staged=StagedBatch.from_list(data["staged"]) if data.get("staged") else None,
            options=data.get("options") or {},
        )
