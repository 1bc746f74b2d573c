import time

import pytest
from fastapi.testclient import TestClient

from imagestudio.core.config import Settings
from imagestudio.main import create_app
from imagestudio.services.staging import UploadStager
from tests.helpers import ScriptedProvider, VALID_OPENAI_KEY


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def settings(upload_dir):
    return Settings(
        _env_file=None,
        IMAGE_PROVIDER="openai",
        OPENAI_API_KEY=VALID_OPENAI_KEY,
        UPLOAD_DIR=str(upload_dir),
        JOB_STORE="memory",
        JOB_RETRY_BASE_DELAY=0.0,
        JOB_WORKER_CONCURRENCY=2,
        LEGACY_EDIT_TIMEOUT_SECONDS=5.0,
        LEGACY_EDIT_POLL_INTERVAL=0.01,
    )


@pytest.fixture
def stager(upload_dir):
    return UploadStager(upload_dir=upload_dir, max_bytes=10 * 1024 * 1024, max_dimension=512)


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def client(settings, provider):
    app = create_app(settings=settings, provider=provider)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def wait_for_job(client):
    def _wait(job_id: str, timeout: float = 5.0) -> dict:
        deadline = time.monotonic() + timeout
        while True:
            body = client.get(f"/api/jobs/{job_id}").json()
            if body["status"] in ("completed", "failed"):
                return body
            if time.monotonic() > deadline:
                raise AssertionError(f"job {job_id} still {body['status']} after {timeout}s")
            time.sleep(0.01)

    return _wait
