"""
API Dependencies
Common dependencies for FastAPI routes. Everything is built once in the
application lifespan and read back from `app.state`.
"""

from fastapi import Depends, Request

from imagestudio.core.config import Settings, credential_problem
from imagestudio.core.errors import ConfigurationError
from imagestudio.services.image_provider import ImageProvider
from imagestudio.services.image_store import ImageStore
from imagestudio.services.staging import UploadStager
from imagestudio.workers.queue import JobQueue


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store


def get_stager(request: Request) -> UploadStager:
    return request.app.state.stager


def get_provider(request: Request) -> ImageProvider:
    return request.app.state.provider


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def require_credentials(settings: Settings = Depends(get_app_settings)) -> Settings:
    """Fail fast with a configuration error before any upload work."""
    problem = credential_problem(settings)
    if problem:
        raise ConfigurationError(problem)
    return settings
