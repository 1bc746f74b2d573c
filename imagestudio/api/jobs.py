"""
Jobs API Routes
Handles job status queries.
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from imagestudio.api.deps import get_job_queue
from imagestudio.core.errors import NotFoundError
from imagestudio.schemas.job import ErrorResponse, JobStatusResponse
from imagestudio.workers.queue import JobQueue

router = APIRouter()


@router.get(
    "/{job_id}",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}},
)
async def get_job_status(job_id: str, queue: JobQueue = Depends(get_job_queue)):
    """Get job status and, once finished, its result or error."""
    try:
        job = await queue.status(job_id)
    except NotFoundError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"message": "Job not found", "jobId": job_id},
        )
    return job.snapshot()
