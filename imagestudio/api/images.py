"""
Image API Routes
Text-to-image generation, edit job submission, two-image combine and the
image catalog.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import JSONResponse

from imagestudio.api.deps import (
    get_image_store,
    get_job_queue,
    get_provider,
    get_stager,
    require_credentials,
)
from imagestudio.core.config import Settings
from imagestudio.core.errors import NotFoundError, ValidationError
from imagestudio.models.job import Capability, Job
from imagestudio.schemas.image import GenerateImageRequest, ImageRecord, ImageSize
from imagestudio.schemas.job import ErrorResponse, JobCreatedResponse, JobStatus
from imagestudio.services.image_provider import ImageProvider, build_combine_prompt
from imagestudio.services.image_store import ImageStore
from imagestudio.services.results import extract_image_url
from imagestudio.services.staging import Upload, UploadStager
from imagestudio.workers.queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_upload(upload: UploadFile, stager: UploadStager) -> Upload:
    """Read at most one byte past the ceiling so oversize files are still detected."""
    data = await upload.read(stager.max_bytes + 1)
    return data, upload.content_type, upload.filename


def _require_prompt(prompt: Optional[str]) -> str:
    if prompt is None or not prompt.strip():
        raise ValidationError("Prompt is required")
    return prompt


async def _submit_edit_job(
    image: Optional[UploadFile],
    prompt: Optional[str],
    mask_strength: Optional[float],
    stager: UploadStager,
    queue: JobQueue,
) -> Job:
    if image is None:
        raise ValidationError("No image uploaded")
    prompt = _require_prompt(prompt)
    if mask_strength is not None and not 0.0 <= mask_strength <= 1.0:
        raise ValidationError("mask_strength must be between 0 and 1")

    staged = await stager.stage_many([await _read_upload(image, stager)])
    options = {"mask_strength": mask_strength} if mask_strength is not None else {}
    try:
        return await queue.enqueue(staged, prompt, Capability.EDIT, options)
    except BaseException:
        staged.cleanup()
        raise


@router.get("/images", response_model=List[ImageRecord])
async def list_images(store: ImageStore = Depends(get_image_store)):
    """All generated images, newest first."""
    return store.list()


@router.get(
    "/images/{image_id}",
    response_model=ImageRecord,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_image(image_id: str, store: ImageStore = Depends(get_image_store)):
    try:
        numeric_id = int(image_id)
    except ValueError:
        raise ValidationError("Invalid image ID")

    image = store.get(numeric_id)
    if image is None:
        raise NotFoundError("Image not found")
    return image


@router.post(
    "/images/generate",
    response_model=ImageRecord,
    dependencies=[Depends(require_credentials)],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def generate_image(
    request: GenerateImageRequest,
    provider: ImageProvider = Depends(get_provider),
    store: ImageStore = Depends(get_image_store),
):
    """
    Generate an image from text.
    Runs synchronously; the remote call is fast enough to hold the request.
    """
    logger.info(f"Generating image with provider={provider.name}, prompt: \"{request.prompt[:30]}...\"")

    response = await provider.generate(
        request.prompt,
        size=request.size.value,
        quality=request.quality.value if request.quality else None,
        style=request.style.value if request.style else None,
    )
    url = extract_image_url(response)
    return store.create(prompt=request.prompt, url=url, size=request.size.value)


@router.post(
    "/images/edit/create-job",
    response_model=JobCreatedResponse,
    dependencies=[Depends(require_credentials)],
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_edit_job(
    image: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    mask_strength: Optional[float] = Form(None),
    stager: UploadStager = Depends(get_stager),
    queue: JobQueue = Depends(get_job_queue),
):
    """
    Create an asynchronous image edit job.
    Returns immediately; poll /api/jobs/{id} for the outcome.
    """
    job = await _submit_edit_job(image, prompt, mask_strength, stager, queue)
    return JobCreatedResponse(jobId=job.id)


@router.post(
    "/images/edit",
    response_model=ImageRecord,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def edit_image(
    image: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    mask_strength: Optional[float] = Form(None),
    settings: Settings = Depends(require_credentials),
    stager: UploadStager = Depends(get_stager),
    queue: JobQueue = Depends(get_job_queue),
):
    """
    Legacy blocking edit endpoint.
    Runs the same job as create-job and holds the request until it ends.
    """
    job = await _submit_edit_job(image, prompt, mask_strength, stager, queue)

    try:
        job = await queue.wait_for(
            job.id,
            timeout=settings.LEGACY_EDIT_TIMEOUT_SECONDS,
            poll_interval=settings.LEGACY_EDIT_POLL_INTERVAL,
        )
    except asyncio.TimeoutError:
        minutes = settings.LEGACY_EDIT_TIMEOUT_SECONDS / 60
        return JSONResponse(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            content={
                "message": f"Request timed out after {minutes:g} minutes. Try again with a smaller image or simpler prompt.",
                "jobId": job.id,
            },
        )
    except NotFoundError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": "Job was unexpectedly removed from the queue", "jobId": job.id},
        )

    if job.status == JobStatus.FAILED:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"message": f"Image service error: {job.error}", "jobId": job.id},
        )
    return job.result


@router.post(
    "/images/combine",
    response_model=ImageRecord,
    dependencies=[Depends(require_credentials)],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def combine_images(
    image1: Optional[UploadFile] = File(None),
    image2: Optional[UploadFile] = File(None),
    prompt: Optional[str] = Form(None),
    stager: UploadStager = Depends(get_stager),
    provider: ImageProvider = Depends(get_provider),
    queue: JobQueue = Depends(get_job_queue),
    store: ImageStore = Depends(get_image_store),
):
    """Combine the characters of two images into one scene."""
    if image1 is None or image2 is None:
        raise ValidationError("Two images are required (image1 and image2)")
    prompt = _require_prompt(prompt)

    batch = await stager.stage_many([
        await _read_upload(image1, stager),
        await _read_upload(image2, stager),
    ])
    combine_prompt = build_combine_prompt(prompt)

    async def operation():
        return await provider.edit(batch.normalized_paths, combine_prompt)

    try:
        response = await queue.retry_policy.run(operation, label="Combine")
        url = extract_image_url(response)
    finally:
        batch.cleanup()

    return store.create(prompt=f"Combine: {prompt}", url=url, size=ImageSize.SQUARE.value)
