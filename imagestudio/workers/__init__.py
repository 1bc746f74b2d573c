# Workers package - async job processing on the event loop

from imagestudio.workers.base import (
    InvalidStagedFileError,
    RetryPolicy,
)
from imagestudio.workers.repository import (
    JobRepository,
    InMemoryJobRepository,
    RedisJobRepository,
    build_job_repository,
)
from imagestudio.workers.queue import JobQueue

__all__ = [
    # Base
    "InvalidStagedFileError",
    "RetryPolicy",
    # Repository
    "JobRepository",
    "InMemoryJobRepository",
    "RedisJobRepository",
    "build_job_repository",
    # Queue
    "JobQueue",
]
