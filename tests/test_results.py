"""Tests for remote response normalization."""

from types import SimpleNamespace

import pytest

from imagestudio.core.errors import PermanentRemoteError
from imagestudio.services.results import DATA_URI_PREFIX, NoResultError, extract_image_url

URL = "https://cdn.example.com/out.png"


class TestExtractImageUrl:
    @pytest.mark.parametrize("response", [
        {"data": [{"url": URL}]},
        {"data": {"url": URL}},
        [{"url": URL}],
        {"url": URL},
    ])
    def test_url_shapes(self, response):
        assert extract_image_url(response) == URL

    def test_base64_becomes_data_uri(self):
        assert extract_image_url({"data": [{"b64_json": "iVBORw0KGgo="}]}) == f"{DATA_URI_PREFIX}iVBORw0KGgo="

    def test_url_preferred_over_base64(self):
        assert extract_image_url({"data": [{"url": URL, "b64_json": "abc"}]}) == URL

    def test_sdk_style_objects(self):
        response = SimpleNamespace(data=[SimpleNamespace(url=None, b64_json="abc")])
        assert extract_image_url(response) == f"{DATA_URI_PREFIX}abc"

    def test_first_item_of_data_list_wins(self):
        response = {"data": [{"url": URL}, {"url": "https://other.example.com/2.png"}]}
        assert extract_image_url(response) == URL

    @pytest.mark.parametrize("response", [
        {"data": []},
        {"data": [{"revised_prompt": "a cat"}]},
        {"created": 1700000000},
        [],
        None,
        "https://not-structured.example.com",
    ])
    def test_no_result(self, response):
        with pytest.raises(NoResultError) as exc:
            extract_image_url(response)

        assert exc.value.message == "No image URL found in response"

    def test_no_result_is_permanent(self):
        assert issubclass(NoResultError, PermanentRemoteError)
        assert NoResultError().retryable is False
