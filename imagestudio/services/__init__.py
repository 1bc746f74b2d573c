# Services package
from imagestudio.services.image_store import ImageStore
from imagestudio.services.staging import StagedImage, StagedBatch, UploadStager, is_png
from imagestudio.services.results import NoResultError, extract_image_url
from imagestudio.services.image_provider import ImageProvider, build_combine_prompt, get_image_provider

__all__ = [
    "ImageStore",
    "StagedImage",
    "StagedBatch",
    "UploadStager",
    "is_png",
    "NoResultError",
    "extract_image_url",
    "ImageProvider",
    "build_combine_prompt",
    "get_image_provider",
]
