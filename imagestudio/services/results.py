"""
Result Normalization
Single place that turns a remote image service response into a usable URL.

The service may answer with a dereferenceable URL or with inline base64
data, wrapped in a `data` list, a `data` object, a bare list or a bare
object. Matchers are tried in a fixed order; the first hit wins.
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, List, Optional

from imagestudio.core.errors import PermanentRemoteError

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = "data:image/png;base64,"


class NoResultError(PermanentRemoteError):
    """The response contained neither a URL nor inline image data."""

    def __init__(self, message: str = "No image URL found in response"):
        super().__init__(message)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _from_item(item: Any) -> Optional[str]:
    """url first, then b64_json."""
    if item is None:
        return None
    url = _field(item, "url")
    if isinstance(url, str) and url:
        return url
    b64 = _field(item, "b64_json")
    if isinstance(b64, str) and b64:
        return f"{DATA_URI_PREFIX}{b64}"
    return None


def _is_list(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _data_list(response: Any) -> Optional[str]:
    data = _field(response, "data")
    if _is_list(data) and data:
        return _from_item(data[0])
    return None


def _data_object(response: Any) -> Optional[str]:
    data = _field(response, "data")
    if data is not None and not _is_list(data) and not isinstance(data, (str, bytes)):
        return _from_item(data)
    return None


def _bare_list(response: Any) -> Optional[str]:
    if _is_list(response) and response:
        return _from_item(response[0])
    return None


def _bare_object(response: Any) -> Optional[str]:
    if response is None or _is_list(response) or isinstance(response, (str, bytes)):
        return None
    return _from_item(response)


SHAPE_MATCHERS: List[Callable[[Any], Optional[str]]] = [
    _data_list,
    _data_object,
    _bare_list,
    _bare_object,
]


def _describe(response: Any) -> dict:
    """Structure of a response for logs: types and keys, never payloads."""
    data = _field(response, "data") if not _is_list(response) else None
    if isinstance(response, Mapping):
        keys = list(response.keys())
    else:
        keys = list(vars(response)) if hasattr(response, "__dict__") else []
    return {
        "responseType": type(response).__name__,
        "isArray": _is_list(response),
        "hasData": data is not None,
        "dataType": "array" if _is_list(data) else ("object" if data is not None else "none"),
        "keys": keys,
    }


def extract_image_url(response: Any) -> str:
    """
    Find the produced image in a remote service response.

    Returns:
        An https URL, or a PNG data URI when the service returned base64

    Raises:
        NoResultError: when no known shape matches
    """
    for matcher in SHAPE_MATCHERS:
        url = matcher(response)
        if url:
            return url

    logger.error(f"No image URL found in response. Response structure: {_describe(response)}")
    raise NoResultError()


__all__ = ["DATA_URI_PREFIX", "NoResultError", "SHAPE_MATCHERS", "extract_image_url"]
