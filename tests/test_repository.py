"""Tests for the job repositories."""

import asyncio
import fnmatch
from datetime import timedelta

import pytest

from imagestudio.core.config import Settings
from imagestudio.core.redis import masked_url
from imagestudio.models.job import Capability, Job, utcnow
from imagestudio.schemas.image import ImageRecord
from imagestudio.schemas.job import JobStatus
from imagestudio.services.staging import StagedBatch, StagedImage
from imagestudio.workers.repository import (
    InMemoryJobRepository,
    RedisJobRepository,
    build_job_repository,
)


class FakeAsyncRedis:
    """The subset of redis.asyncio.Redis the repository uses (decode_responses=True)."""

    def __init__(self, down=False):
        self.data = {}
        self.down = down

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value):
        self.data[key] = value
        return True

    async def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    async def scan_iter(self, match="*"):
        for key in list(self.data):
            if fnmatch.fnmatch(key, match):
                yield key

    async def ping(self):
        if self.down:
            raise ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")
        return True


def completed_job(tmp_path) -> Job:
    created = utcnow() - timedelta(minutes=3)
    return Job(
        id="a" * 32,
        prompt="add a hat",
        capability=Capability.EDIT,
        status=JobStatus.COMPLETED,
        created=created,
        completed=created + timedelta(seconds=40),
        result=ImageRecord(
            id=7,
            prompt="Edit: add a hat",
            url="https://cdn.example.com/7.png",
            size="1024x1024",
            createdAt=created + timedelta(seconds=40),
        ),
        staged=StagedBatch([StagedImage(raw_path=tmp_path / "raw", normalized_path=tmp_path / "raw.png")]),
        options={"mask_strength": 0.5},
    )


class TestInMemoryJobRepository:
    def test_crud(self):
        async def scenario():
            repo = InMemoryJobRepository()
            job = Job(id="j1", prompt="p")
            await repo.add(job)
            fetched = await repo.get("j1")
            job.status = JobStatus.PROCESSING
            await repo.save(job)
            listed = await repo.all()
            await repo.delete("j1")
            await repo.delete("j1")
            return fetched, listed, await repo.get("j1")

        fetched, listed, gone = asyncio.run(scenario())

        assert fetched.prompt == "p"
        assert [job.status for job in listed] == [JobStatus.PROCESSING]
        assert gone is None


class TestRedisJobRepository:
    def test_round_trip(self, tmp_path):
        client = FakeAsyncRedis()
        job = completed_job(tmp_path)

        async def scenario():
            repo = RedisJobRepository(client, prefix="test:job:")
            await repo.add(job)
            return await repo.get(job.id)

        restored = asyncio.run(scenario())

        assert list(client.data) == [f"test:job:{job.id}"]
        assert restored.id == job.id
        assert restored.status == JobStatus.COMPLETED
        assert restored.capability == Capability.EDIT
        assert restored.created == job.created
        assert restored.completed == job.completed
        assert restored.result == job.result
        assert restored.options == {"mask_strength": 0.5}
        assert restored.staged.normalized_paths == [tmp_path / "raw.png"]

    def test_all_and_delete(self):
        client = FakeAsyncRedis()
        client.data["other:key"] = "not a job"

        async def scenario():
            repo = RedisJobRepository(client, prefix="test:job:")
            await repo.add(Job(id="j1", prompt="one"))
            await repo.add(Job(id="j2", prompt="two", capability=Capability.GENERATE))
            before = sorted(job.id for job in await repo.all())
            await repo.delete("j1")
            after = [job.id for job in await repo.all()]
            return before, after, await repo.get("j1")

        before, after, gone = asyncio.run(scenario())

        assert before == ["j1", "j2"]
        assert after == ["j2"]
        assert gone is None
        assert "other:key" in client.data

    def test_unreadable_record_skipped(self):
        client = FakeAsyncRedis()
        client.data["test:job:broken"] = "{not json"

        async def scenario():
            repo = RedisJobRepository(client, prefix="test:job:")
            await repo.add(Job(id="ok", prompt="p"))
            return await repo.all()

        assert [job.id for job in asyncio.run(scenario())] == ["ok"]


class TestBuildJobRepository:
    def test_memory_by_default(self):
        repo = build_job_repository(Settings(_env_file=None, JOB_STORE="memory"))
        assert isinstance(repo, InMemoryJobRepository)
        assert repo.kind == "memory"

    def test_redis_store(self):
        settings = Settings(_env_file=None, JOB_STORE="redis", REDIS_URL="redis://localhost:6399/0")
        repo = build_job_repository(settings)
        assert isinstance(repo, RedisJobRepository)
        assert repo.prefix == settings.REDIS_JOB_PREFIX


@pytest.mark.parametrize("status, has_result, has_error", [
    (JobStatus.PENDING, False, False),
    (JobStatus.PROCESSING, False, False),
    (JobStatus.COMPLETED, True, False),
    (JobStatus.FAILED, False, True),
])
def test_snapshot_exposes_outcome_only_when_terminal(tmp_path, status, has_result, has_error):
    job = completed_job(tmp_path)
    job.status = status
    job.error = "rejected"

    snapshot = job.snapshot()

    assert (snapshot.result is not None) == has_result
    assert (snapshot.error is not None) == has_error


class TestPing:
    def test_in_memory_always_reachable(self):
        assert asyncio.run(InMemoryJobRepository().ping()) is True

    @pytest.mark.parametrize("down, expected", [(False, True), (True, False)])
    def test_redis_ping(self, down, expected):
        repo = RedisJobRepository(FakeAsyncRedis(down=down), prefix="test:job:")
        assert asyncio.run(repo.ping()) is expected


@pytest.mark.parametrize("url, expected", [
    ("redis://localhost:6379", "redis://localhost:6379"),
    ("redis://:s3cret@cache.internal:6380/2", "redis://***@cache.internal:6380/2"),
    ("rediss://user:pw@cache.internal/0", "rediss://***@cache.internal/0"),
])
def test_masked_url(url, expected):
    assert masked_url(url) == expected
