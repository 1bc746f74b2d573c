"""Shared test doubles and image builders."""

import io
from pathlib import Path
from typing import Any, List, Optional

from PIL import Image

from imagestudio.core.errors import TransientRemoteError
from imagestudio.services.image_provider import ImageProvider

VALID_OPENAI_KEY = "sk-test-" + "x" * 32
STUB_URL = "https://images.example.com/result.png"
STUB_RESPONSE = {"data": [{"url": STUB_URL}]}


def image_bytes(size=(64, 48), color=(255, 0, 0), mode="RGB", fmt="PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def connection_reset() -> TransientRemoteError:
    return TransientRemoteError("Connection error: read ECONNRESET")


class ScriptedProvider(ImageProvider):
    """
    Remote image service double.

    Each call pops the next scripted item: exceptions are raised, anything
    else is returned. An empty script answers with STUB_RESPONSE.
    """

    name = "scripted"

    def __init__(self, generate_script: Optional[List[Any]] = None, edit_script: Optional[List[Any]] = None):
        self.generate_script = list(generate_script or [])
        self.edit_script = list(edit_script or [])
        self.generate_calls: List[dict] = []
        self.edit_calls: List[dict] = []

    async def generate(self, prompt, size="1024x1024", quality=None, style=None):
        self.generate_calls.append({"prompt": prompt, "size": size, "quality": quality, "style": style})
        return self._next(self.generate_script)

    async def edit(self, image_paths, prompt):
        paths = [Path(p) for p in image_paths]
        self.edit_calls.append({
            "paths": paths,
            "prompt": prompt,
            "existed": [p.exists() for p in paths],
        })
        return self._next(self.edit_script)

    @staticmethod
    def _next(script):
        if not script:
            return STUB_RESPONSE
        item = script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
