"""Tests for RunRequest input validation."""

import pytest
from pydantic import ValidationError

from keyprobe.models import ProviderType, RunRequest


def make(**kwargs):
    return RunRequest(provider="openai", model="gpt-4o", keys="k1", **kwargs)


class TestRunRequest:
    """Tests for RunRequest."""

    def test_provider_normalized(self):
        request = RunRequest(provider=" Gemini ", model="m", keys="k")
        assert request.provider == ProviderType.GEMINI

    def test_missing_model_becomes_empty(self):
        assert RunRequest(provider="openai", model=None, keys="k").model == ""

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_proxy_base_url(self, value):
        assert make(proxy_base_url=value).proxy_base_url is None

    def test_proxy_base_url_trailing_slash_dropped(self):
        request = make(proxy_base_url=" https://proxy.local/v1/ ")
        assert request.proxy_base_url == "https://proxy.local/v1"

    @pytest.mark.parametrize("value", [5, 1.5, ["https://proxy.local"], {"url": "x"}])
    def test_non_string_proxy_base_url_rejected(self, value):
        with pytest.raises(ValidationError):
            make(proxy_base_url=value)

    @pytest.mark.parametrize(
        "value", ["proxy.local/v1", "ftp://proxy.local", "http://", "not a url"]
    )
    def test_malformed_proxy_base_url_rejected(self, value):
        with pytest.raises(ValidationError, match="http\\(s\\) URL"):
            make(proxy_base_url=value)

    @pytest.mark.parametrize("value", [0, -3])
    def test_concurrency_limit_lower_bound(self, value):
        with pytest.raises(ValidationError):
            make(concurrency_limit=value)
