"""
Job Repository
Storage boundary for the job table. The queue only talks to this interface,
so the in-memory table can be swapped for Redis without touching it.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from redis.exceptions import RedisError

from imagestudio.core.config import Settings
from imagestudio.core.redis import RedisManager, masked_url
from imagestudio.models.job import Job

logger = logging.getLogger(__name__)


class JobRepository(ABC):
    """Async CRUD over jobs keyed by id."""

    kind: str = "abstract"

    @abstractmethod
    async def add(self, job: Job) -> None:
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    async def save(self, job: Job) -> None:
        ...

    @abstractmethod
    async def delete(self, job_id: str) -> None:
        """Remove a job; unknown ids are ignored."""

    @abstractmethod
    async def all(self) -> List[Job]:
        ...

    async def ping(self) -> bool:
        """Whether the backing store is reachable."""
        return True

    async def close(self) -> None:
        pass


class InMemoryJobRepository(JobRepository):
    """Process-lifetime job table."""

    kind = "memory"

    def __init__(self):
        self._jobs: Dict[str, Job] = {}

    async def add(self, job: Job) -> None:
        self._jobs[job.id] = job

    async def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def save(self, job: Job) -> None:
        self._jobs[job.id] = job

    async def delete(self, job_id: str) -> None:
        self._jobs.pop(job_id, None)

    async def all(self) -> List[Job]:
        return list(self._jobs.values())


class RedisJobRepository(JobRepository):
    """
    Jobs stored as JSON strings under `<prefix><job_id>`.

    Expects a `redis.asyncio.Redis` client created with decode_responses=True.
    """

    kind = "redis"

    def __init__(self, client, prefix: str = "imagestudio:job:", manager=None):
        self.client = client
        self.prefix = prefix
        self._manager = manager

    def _key(self, job_id: str) -> str:
        return f"{self.prefix}{job_id}"

    async def add(self, job: Job) -> None:
        await self.save(job)

    async def get(self, job_id: str) -> Optional[Job]:
        raw = await self.client.get(self._key(job_id))
        if raw is None:
            return None
        return Job.from_dict(json.loads(raw))

    async def save(self, job: Job) -> None:
        await self.client.set(self._key(job.id), json.dumps(job.to_dict()))

    async def delete(self, job_id: str) -> None:
        await self.client.delete(self._key(job_id))

    async def all(self) -> List[Job]:
        jobs = []
        async for key in self.client.scan_iter(match=f"{self.prefix}*"):
            raw = await self.client.get(key)
            if raw is None:
                continue  # Deleted between SCAN and GET
            try:
                jobs.append(Job.from_dict(json.loads(raw)))
            except (ValueError, KeyError) as e:
                logger.error(f"Skipping unreadable job record {key}: {e}")
        return jobs

    async def ping(self) -> bool:
        if self._manager is not None:
            return await self._manager.ping()
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as e:
            logger.error(f"Redis job store unreachable: {e}")
            return False

    async def close(self) -> None:
        if self._manager is not None:
            await self._manager.close()


def build_job_repository(settings: Settings) -> JobRepository:
    """Repository selected by JOB_STORE."""
    if settings.JOB_STORE == "redis":
        manager = RedisManager(settings.REDIS_URL)
        logger.info(f"Using Redis job repository at {masked_url(settings.REDIS_URL)}")
        return RedisJobRepository(manager.client, settings.REDIS_JOB_PREFIX, manager=manager)
    return InMemoryJobRepository()


__all__ = ["JobRepository", "InMemoryJobRepository", "RedisJobRepository", "build_job_repository"]
