"""
Upload Staging
Validates image uploads and normalizes them into the PNG form the remote
image service expects (RGBA, bounded dimensions).

Every successful stage writes exactly two files to the scratch directory:
the raw upload and its normalized `.png` derivative. Ownership of both
passes to the caller through `StagedImage.cleanup()`.
"""

import asyncio
import io
import logging
import re
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from imagestudio.core.errors import ValidationError

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
MAX_REFERENCE_IMAGES = 5

# (bytes, declared content type, original filename)
Upload = Tuple[Optional[bytes], Optional[str], Optional[str]]


def is_png(path) -> bool:
    """Check the file's byte signature, not its extension."""
    try:
        with open(path, "rb") as f:
            return f.read(len(PNG_SIGNATURE)) == PNG_SIGNATURE
    except OSError:
        return False


def _safe_filename(filename: Optional[str]) -> str:
    name = Path(filename or "").name
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)[-100:]
    return name or "upload"


def _remove(path: Path) -> None:
    """Delete a file; an already-missing file is not an error."""
    path.unlink(missing_ok=True)


@dataclass
class StagedImage:
    """A raw upload plus its normalized PNG, owned by whoever holds this."""

    raw_path: Path
    normalized_path: Path
    original_filename: str = "upload"
    _cleaned: bool = field(default=False, repr=False)

    @property
    def paths(self) -> List[Path]:
        return [self.raw_path, self.normalized_path]

    def cleanup(self) -> None:
        """
        Delete both staged files.

        Safe to call more than once. Errors are logged, not raised:
        cleanup never changes the outcome of the work that used the files.
        """
        if self._cleaned:
            return
        self._cleaned = True
        for path in self.paths:
            try:
                _remove(path)
            except OSError as e:
                logger.error(f"Error cleaning up staged file {path}: {e}")

    def to_dict(self) -> dict:
        return {
            "raw_path": str(self.raw_path),
            "normalized_path": str(self.normalized_path),
            "original_filename": self.original_filename,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StagedImage":
        return cls(
            raw_path=Path(data["raw_path"]),
            normalized_path=Path(data["normalized_path"]),
            original_filename=data.get("original_filename", "upload"),
        )


class StagedBatch:
    """Several staged images released together (combine, multi-reference edits)."""

    def __init__(self, images: Sequence[StagedImage]):
        self.images = list(images)

    @property
    def normalized_paths(self) -> List[Path]:
        return [image.normalized_path for image in self.images]

    def cleanup(self) -> None:
        for image in self.images:
            image.cleanup()

    def to_list(self) -> List[dict]:
        return [image.to_dict() for image in self.images]

    @classmethod
    def from_list(cls, items: Sequence[dict]) -> "StagedBatch":
        return cls([StagedImage.from_dict(item) for item in items])


class UploadStager:
    """Service that writes uploads into the scratch directory."""

    def __init__(self, upload_dir, max_bytes: int, max_dimension: int):
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes
        self.max_dimension = max_dimension

    def validate(self, data: Optional[bytes], content_type: Optional[str], filename: Optional[str] = None) -> None:
        """Reject anything that is not a reasonably sized image upload."""
        if not data:
            raise ValidationError("No image uploaded")
        if not content_type or not content_type.lower().startswith("image/"):
            logger.info(f"Rejected file: {filename} - not an image ({content_type})")
            raise ValidationError("Only image files are allowed")
        if len(data) > self.max_bytes:
            limit_mb = self.max_bytes / (1024 * 1024)
            raise ValidationError(f"File too large: maximum upload size is {limit_mb:g}MB")

    async def stage(self, data: Optional[bytes], content_type: Optional[str], filename: Optional[str] = None) -> StagedImage:
        """
        Validate and normalize one upload.

        Returns:
            StagedImage whose normalized_path is an RGBA PNG no larger than
            max_dimension on either side

        Raises:
            ValidationError: nothing is left on disk in that case
        """
        self.validate(data, content_type, filename)
        return await asyncio.to_thread(self._write, data, filename)

    async def stage_many(self, uploads: Sequence[Upload]) -> StagedBatch:
        """Stage 1-5 uploads; on failure the already staged ones are removed."""
        if not uploads:
            raise ValidationError("No image uploaded")
        if len(uploads) > MAX_REFERENCE_IMAGES:
            raise ValidationError(f"At most {MAX_REFERENCE_IMAGES} images can be uploaded")

        staged: List[StagedImage] = []
        try:
            for data, content_type, filename in uploads:
                staged.append(await self.stage(data, content_type, filename))
        except BaseException:
            StagedBatch(staged).cleanup()
            raise
        return StagedBatch(staged)

    def _write(self, data: bytes, filename: Optional[str]) -> StagedImage:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        safe_name = _safe_filename(filename)
        raw_path = self.upload_dir / f"{secrets.token_hex(16)}-{safe_name}"
        normalized_path = raw_path.with_name(raw_path.name + ".png")

        raw_path.write_bytes(data)
        try:
            encoded = self._normalize(raw_path)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
            _remove(raw_path)
            logger.info(f"Rejected file: {safe_name} - could not decode image: {e}")
            raise ValidationError("Uploaded file is not a readable image")
        except BaseException:
            _remove(raw_path)
            raise

        try:
            normalized_path.write_bytes(encoded)
        except BaseException:
            _remove(raw_path)
            _remove(normalized_path)
            raise

        logger.info(f"Staged upload {raw_path.name} -> {normalized_path.name}")
        return StagedImage(raw_path=raw_path, normalized_path=normalized_path, original_filename=safe_name)

    def _normalize(self, source: Path) -> bytes:
        """Convert to RGBA PNG, shrinking to fit inside the square bound."""
        with Image.open(source) as img:
            img.load()
            rgba = img.convert("RGBA")
        rgba.thumbnail((self.max_dimension, self.max_dimension))
        buffer = io.BytesIO()
        rgba.save(buffer, format="PNG")
        return buffer.getvalue()


__all__ = [
    "PNG_SIGNATURE",
    "MAX_REFERENCE_IMAGES",
    "Upload",
    "is_png",
    "StagedImage",
    "StagedBatch",
    "UploadStager",
]
