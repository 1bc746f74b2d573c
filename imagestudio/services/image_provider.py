"""
Image Provider Interface
Contract of the remote image service and the factory that picks one.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Sequence

from imagestudio.core.config import Settings

logger = logging.getLogger(__name__)

# Character-preservation guidance used for two-image composites
COMBINE_GUIDANCE = (
    "Create a photorealistic composite image that seamlessly combines the two distinct "
    "characters from the reference images into one natural scene. The characters should "
    "maintain their exact original appearance, facial features, clothing, hairstyles, and "
    "all visual characteristics. Place them together in a realistic setting such as standing "
    "side by side, sitting on a bench, in a car, at a diner, or another natural environment. "
    "The lighting and perspective should be consistent across both characters so they look "
    "like they naturally belong together while their distinctive features stay unchanged."
)


def build_combine_prompt(prompt: str) -> str:
    """User instruction first, then the composite guidance."""
    prompt = (prompt or "").strip()
    if not prompt:
        return COMBINE_GUIDANCE
    return f"{prompt}\n\n{COMBINE_GUIDANCE}"


class ImageProvider(ABC):
    """
    Remote image service.

    Both calls return the provider's raw response; turning it into an
    image URL is the job of `services.results.extract_image_url`.
    Failures raise `RemoteServiceError` subclasses or transport errors.
    """

    name: str = "provider"

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        size: str = "1024x1024",
        quality: Optional[str] = None,
        style: Optional[str] = None,
    ) -> Any:
        """Text-to-image."""

    @abstractmethod
    async def edit(self, image_paths: Sequence[Path], prompt: str) -> Any:
        """Text plus 1-5 reference PNGs to image."""

    async def check_connection(self) -> bool:
        """Startup probe. Must not raise."""
        return True

    async def aclose(self) -> None:
        """Release network resources."""


def get_image_provider(settings: Settings) -> ImageProvider:
    """Build the provider selected by IMAGE_PROVIDER."""
    if settings.IMAGE_PROVIDER == "gemini":
        from imagestudio.services.gemini_image import GeminiImageService
        return GeminiImageService(settings)

    from imagestudio.services.openai_image import OpenAIImageService
    return OpenAIImageService(settings)


__all__ = ["COMBINE_GUIDANCE", "build_combine_prompt", "ImageProvider", "get_image_provider"]
