"""
OpenAI Image Service
Talks to the OpenAI Images API directly over httpx.
Documentation: https://platform.openai.com/docs/api-reference/images
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

import httpx

from imagestudio.core.config import Settings
from imagestudio.core.errors import PermanentRemoteError, TransientRemoteError
from imagestudio.services.image_provider import ImageProvider

logger = logging.getLogger(__name__)

# Upstream statuses that mean the connection was dropped on the way
TRANSIENT_STATUS_CODES = {502, 503, 504}


class OpenAIImageService(ImageProvider):
    """Service for image generation and editing using OpenAI image models."""

    name = "openai"

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.api_key = settings.OPENAI_API_KEY
        self.generate_model = settings.OPENAI_GENERATE_MODEL
        self.edit_model = settings.OPENAI_EDIT_MODEL
        self._client = client or httpx.AsyncClient(
            base_url=settings.OPENAI_BASE_URL.rstrip("/"),
            timeout=httpx.Timeout(settings.OPENAI_TIMEOUT, connect=15.0),
        )
        logger.info(f"[OpenAIImageService] Generate model: {self.generate_model}, edit model: {self.edit_model}")

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def generate(
        self,
        prompt: str,
        size: str = "1024x1024",
        quality: Optional[str] = None,
        style: Optional[str] = None,
    ) -> Any:
        payload = {
            "model": self.generate_model,
            "prompt": prompt,
            "n": 1,
            "size": size,
        }
        # Only include optional params when the caller asked for them
        if quality:
            payload["quality"] = quality
        if style:
            payload["style"] = style

        logger.info(f"[OpenAI] Generating image with model={self.generate_model}, size={size}")
        return await self._post("/images/generations", json=payload)

    async def edit(self, image_paths: Sequence[Path], prompt: str) -> Any:
        if not image_paths:
            raise PermanentRemoteError("At least one reference image is required")

        # A single image goes in `image`, several go in repeated `image[]`
        field = "image" if len(image_paths) == 1 else "image[]"
        files = []
        for idx, path in enumerate(image_paths):
            data = await asyncio.to_thread(Path(path).read_bytes)
            files.append((field, (f"image{idx}.png", data, "image/png")))

        form = {"model": self.edit_model, "prompt": prompt}
        if self.edit_model == "gpt-image-1":
            form["quality"] = "low"
        else:
            form["n"] = "1"

        logger.info(f"[OpenAI] Editing {len(files)} image(s) with model={self.edit_model}")
        return await self._post("/images/edits", data=form, files=files)

    async def check_connection(self) -> bool:
        try:
            response = await self._client.get("/models", headers=self._headers)
            if response.status_code == 200:
                return True
            logger.warning(f"[OpenAI] Connection test returned HTTP {response.status_code}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"[OpenAI] Connection test failed: {e}")
            return False

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, **kwargs) -> Any:
        try:
            response = await self._client.post(path, headers=self._headers, **kwargs)
        except httpx.TransportError as e:
            raise TransientRemoteError(f"Connection error: {e}") from e

        logger.info(f"[OpenAI] {path} -> HTTP {response.status_code}")

        if response.status_code >= 400:
            payload = self._error_payload(response)
            message = self._error_message(payload) or f"OpenAI image request failed with status {response.status_code}"
            error_cls = TransientRemoteError if response.status_code in TRANSIENT_STATUS_CODES else PermanentRemoteError
            raise error_cls(message, status_code=response.status_code, payload=payload)

        try:
            return response.json()
        except ValueError as e:
            raise PermanentRemoteError(f"OpenAI image returned non-JSON: {response.text[:200]}") from e

    @staticmethod
    def _error_payload(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text[:500]

    @staticmethod
    def _error_message(payload: Any) -> Optional[str]:
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        return None


__all__ = ["OpenAIImageService", "TRANSIENT_STATUS_CODES"]
