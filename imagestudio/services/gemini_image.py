"""
Gemini "Nano Banana" Image Service
Uses native Gemini image generation models (gemini-2.5-flash-image).
Documentation: https://ai.google.dev/gemini-api/docs/image-generation
"""

import asyncio
import base64
import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from imagestudio.core.config import Settings
from imagestudio.core.errors import PermanentRemoteError, TransientRemoteError
from imagestudio.services.image_provider import ImageProvider
from imagestudio.services.openai_image import TRANSIENT_STATUS_CODES

logger = logging.getLogger(__name__)

ASPECT_RATIOS = {
    "1024x1024": "1:1",
    "1024x1792": "9:16",
    "1792x1024": "16:9",
}


class GeminiImageService(ImageProvider):
    """Service for image generation and editing using Gemini models."""

    name = "gemini"

    def __init__(self, settings: Settings, client: Optional[genai.Client] = None):
        self.client = client or genai.Client(api_key=settings.GEMINI_API_KEY)
        # Use model from config, fallback to gemini-2.5-flash-image
        self.model_name = settings.GEMINI_MODEL or "gemini-2.5-flash-image"
        logger.info(f"[GeminiImageService] Initialized with model: {self.model_name}")

    async def generate(
        self,
        prompt: str,
        size: str = "1024x1024",
        quality: Optional[str] = None,
        style: Optional[str] = None,
    ) -> Any:
        # Gemini has no quality/style switches; style goes into the prompt
        if style:
            prompt = f"{prompt}\n\nStyle: {style}"
        config = types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=ASPECT_RATIOS.get(size, "1:1")),
        )
        return await self._generate_content([prompt], config)

    async def edit(self, image_paths: Sequence[Path], prompt: str) -> Any:
        if not image_paths:
            raise PermanentRemoteError("At least one reference image is required")

        contents = []
        for path in image_paths:
            data = await asyncio.to_thread(Path(path).read_bytes)
            contents.append(types.Part.from_bytes(data=data, mime_type="image/png"))
        contents.append(prompt)

        # TEXT and IMAGE are both required when editing from references
        config = types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"])
        return await self._generate_content(contents, config)

    async def check_connection(self) -> bool:
        try:
            await self.client.aio.models.get(model=self.model_name)
            return True
        except Exception as e:
            logger.warning(f"[Gemini] Connection test failed: {e}")
            return False

    async def _generate_content(self, contents: list, config: types.GenerateContentConfig) -> dict:
        logger.info(f"[Gemini] Generating with model={self.model_name}, parts={len(contents)}")
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model_name,
                contents=contents,
                config=config,
            )
        except genai_errors.APIError as e:
            code = getattr(e, "code", None)
            error_cls = TransientRemoteError if code in TRANSIENT_STATUS_CODES else PermanentRemoteError
            raise error_cls(str(e), status_code=code, payload=getattr(e, "details", None)) from e

        return self._to_images_response(response)

    def _to_images_response(self, response: Any) -> dict:
        """
        Re-shape a Gemini response like an Images API response.

        Inline image bytes become `{"data": [{"b64_json": ...}]}`; when no
        image was produced `data` is empty so result normalization reports it.
        """
        parts = list(getattr(response, "parts", None) or [])
        candidates = getattr(response, "candidates", None) or []
        if not parts and candidates and getattr(candidates[0], "content", None):
            parts = list(candidates[0].content.parts or [])

        for part in parts:
            if getattr(part, "text", None):
                logger.debug(f"[Gemini] Text part: {part.text[:200]}")
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                # inline_data.data is already decoded bytes
                return {"data": [{"b64_json": base64.b64encode(inline.data).decode("ascii")}]}

        finish_reason = candidates[0].finish_reason if candidates else "Unknown"
        logger.warning(f"[Gemini] No image generated. Finish Reason: {finish_reason}")
        return {"data": []}


__all__ = ["GeminiImageService", "ASPECT_RATIOS"]
