"""
Job Queue
Decouples image job submission from execution. Submissions return a job id
immediately; a fixed pool of worker tasks runs the remote calls and a
periodic sweeper drops jobs past the retention window.

Lifecycle: pending -> processing -> completed | failed. Terminal states are
never left. Staged files are released exactly once, after the terminal
state is recorded or when the sweeper removes the job.
"""

import asyncio
import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from imagestudio.core.errors import ImageStudioError, NotFoundError
from imagestudio.models.job import Capability, Job, utcnow
from imagestudio.schemas.image import ImageRecord, ImageSize
from imagestudio.schemas.job import JobStatus
from imagestudio.services.image_provider import ImageProvider
from imagestudio.services.image_store import ImageStore
from imagestudio.services.results import extract_image_url
from imagestudio.services.staging import StagedBatch, is_png
from imagestudio.workers.base import InvalidStagedFileError, RetryPolicy
from imagestudio.workers.repository import JobRepository

logger = logging.getLogger(__name__)

INTERRUPTED_ERROR = "Job was interrupted before it finished; please submit it again"


class JobQueue:
    """
    Manages asynchronous image jobs.

    Features:
    - Bounded worker pool (no more than `concurrency` remote calls in flight)
    - Retry of transient remote failures
    - Age-based garbage collection of jobs and their staged files
    """

    def __init__(
        self,
        repository: JobRepository,
        provider: ImageProvider,
        image_store: ImageStore,
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = 2,
        retention_seconds: float = 24 * 60 * 60,
        sweep_interval: float = 60 * 60,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.repository = repository
        self.provider = provider
        self.image_store = image_store
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = concurrency
        self.retention = timedelta(seconds=retention_seconds)
        self.sweep_interval = sweep_interval

        self._pending: "asyncio.Queue[str]" = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []
        self.in_flight = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Pick up jobs left over in the repository, then spawn the worker pool and the sweeper."""
        if self._tasks:
            return
        await self.recover()
        for idx in range(self.concurrency):
            self._tasks.append(asyncio.create_task(self._worker(idx), name=f"job-worker-{idx}"))
        self._tasks.append(asyncio.create_task(self._sweeper(), name="job-sweeper"))
        logger.info(f"Job queue started: {self.concurrency} worker(s), retention {self.retention}")

    async def recover(self) -> int:
        """
        Resume jobs a previous process left behind in a durable repository.

        Pending jobs go back on the work queue. Jobs caught mid-flight are
        failed rather than run a second time.

        Returns:
            Number of jobs resumed or failed
        """
        recovered = 0
        for job in await self.repository.all():
            if job.status == JobStatus.PENDING:
                self._pending.put_nowait(job.id)
                logger.info(f"Re-queued pending job {job.id}")
            elif job.status == JobStatus.PROCESSING:
                logger.warning(f"Job {job.id} was interrupted while processing; marking failed")
                await self._finish(job, error=INTERRUPTED_ERROR)
            else:
                continue
            recovered += 1
        return recovered

    async def stop(self) -> None:
        """Cancel workers and sweeper. Jobs still pending stay pending."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Job queue stopped")

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        staged: Optional[StagedBatch],
        prompt: str,
        capability: Capability = Capability.EDIT,
        options: Optional[Dict[str, Any]] = None,
    ) -> Job:
        """
        Register a job and hand it to the worker pool.

        Args:
            staged: Normalized upload(s); the job owns them from here on
            prompt: Instruction text for the remote service
            capability: EDIT (text + references) or GENERATE (text only)
            options: Extra request fields kept with the job

        Returns:
            The new job, still pending
        """
        job = Job(
            id=secrets.token_hex(16),
            prompt=prompt,
            capability=capability,
            staged=staged,
            options=dict(options or {}),
        )
        await self.repository.add(job)
        self._pending.put_nowait(job.id)
        logger.info(f"Enqueued {capability.value} job {job.id}: \"{prompt[:30]}...\"")
        return job

    async def status(self, job_id: str) -> Job:
        job = await self.repository.get(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        return job

    async def wait_for(self, job_id: str, timeout: float, poll_interval: float = 2.0) -> Job:
        """
        Poll until the job is terminal.

        Raises:
            asyncio.TimeoutError: the job is still running after `timeout`
            NotFoundError: the job disappeared while waiting
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            job = await self.status(job_id)
            if job.is_terminal:
                return job
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError(f"Job {job_id} did not finish within {timeout:g}s")
            await asyncio.sleep(min(poll_interval, remaining))

    async def counts(self) -> Dict[str, int]:
        """Number of jobs per status."""
        result = {status.value: 0 for status in JobStatus}
        for job in await self.repository.all():
            result[job.status.value] += 1
        return result

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_job(self, job_id: str) -> Optional[Job]:
        """Execute one pending job to a terminal state."""
        job = await self.repository.get(job_id)
        if job is None:
            logger.warning(f"Job {job_id} vanished before processing")
            return None
        if job.status != JobStatus.PENDING:
            logger.warning(f"Job {job_id} is {job.status.value}; not processing again")
            return job

        job.status = JobStatus.PROCESSING
        await self.repository.save(job)
        logger.info(f"Processing job {job.id} with prompt: \"{job.prompt[:30]}...\"")

        self.in_flight += 1
        try:
            record = await self._execute(job)
        except Exception as e:
            if isinstance(e, ImageStudioError):
                logger.error(f"Job {job.id} failed: {e}")
            else:
                logger.exception(f"Job {job.id} failed")
            await self._finish(job, error=str(e) or "Unknown error")
        else:
            await self._finish(job, result=record)
            logger.info(f"Job {job.id} completed successfully")
        finally:
            self.in_flight -= 1
        return job

    async def _execute(self, job: Job) -> ImageRecord:
        if job.capability == Capability.EDIT:
            paths = job.staged.normalized_paths if job.staged else []
            if not paths:
                raise InvalidStagedFileError("Edit job has no staged image")
            for path in paths:
                if not await asyncio.to_thread(is_png, path):
                    raise InvalidStagedFileError(f"Staged image is not a valid PNG file: {path.name}")

            async def operation():
                return await self.provider.edit(paths, job.prompt)

            prompt = f"Edit: {job.prompt}"
            size = ImageSize.SQUARE.value
        else:
            size = job.options.get("size", ImageSize.SQUARE.value)

            async def operation():
                return await self.provider.generate(
                    job.prompt,
                    size=size,
                    quality=job.options.get("quality"),
                    style=job.options.get("style"),
                )

            prompt = job.prompt

        response = await self.retry_policy.run(operation, label=f"Job {job.id}")
        url = extract_image_url(response)
        return self.image_store.create(prompt=prompt, url=url, size=size)

    async def _finish(self, job: Job, result: Optional[ImageRecord] = None, error: Optional[str] = None) -> None:
        job.completed = utcnow()
        if result is not None:
            job.status = JobStatus.COMPLETED
            job.result = result
            job.error = None
        else:
            job.status = JobStatus.FAILED
            job.result = None
            job.error = error or "Unknown error"

        try:
            if await self.repository.get(job.id) is None:
                logger.warning(f"Job {job.id} was swept while processing; outcome dropped")
            else:
                await self.repository.save(job)
        finally:
            self._release(job)

    def _release(self, job: Job) -> None:
        """Best-effort deletion of the job's staged files."""
        if job.staged is None:
            return
        try:
            job.staged.cleanup()
        except Exception:
            logger.exception(f"Error cleaning up files for job: {job.id}")

    # ------------------------------------------------------------------
    # Garbage collection
    # ------------------------------------------------------------------

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Drop every job created more than the retention window ago,
        whatever its state, and release its staged files.

        Returns:
            Number of jobs removed
        """
        cutoff = (now or utcnow()) - self.retention
        removed = 0
        for job in await self.repository.all():
            if job.created < cutoff:
                self._release(job)
                await self.repository.delete(job.id)
                removed += 1
                logger.info(f"Cleaned up old job: {job.id}")
        return removed

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    async def _worker(self, idx: int) -> None:
        while True:
            job_id = await self._pending.get()
            try:
                await self.run_job(job_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Unhandled error in job {job_id} (worker {idx})")
            finally:
                self._pending.task_done()

    async def _sweeper(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Job sweep failed")


__all__ = ["JobQueue"]
