# Domain models package
from imagestudio.models.job import Job, Capability, TERMINAL_STATUSES

__all__ = [
    "Job",
    "Capability",
    "TERMINAL_STATUSES",
]
