"""Tests for settings loading and the credential check."""

import pytest

from imagestudio.core.config import Settings, credential_problem
from tests.helpers import VALID_OPENAI_KEY


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestCredentialProblem:
    def test_valid_openai_key(self):
        assert credential_problem(make_settings(OPENAI_API_KEY=VALID_OPENAI_KEY)) is None

    def test_missing_key(self):
        problem = credential_problem(make_settings(OPENAI_API_KEY=""))
        assert problem == "OPENAI_API_KEY is not configured"

    def test_key_without_sk_prefix(self):
        problem = credential_problem(make_settings(OPENAI_API_KEY="pk-" + "a" * 30))
        assert "does not start with sk-" in problem

    def test_short_key(self):
        problem = credential_problem(make_settings(OPENAI_API_KEY="sk-short"))
        assert "too short" in problem

    def test_key_whitespace_is_stripped(self):
        settings = make_settings(OPENAI_API_KEY=f"  {VALID_OPENAI_KEY}\n")
        assert settings.OPENAI_API_KEY == VALID_OPENAI_KEY
        assert credential_problem(settings) is None

    def test_gemini_key_needs_no_prefix(self):
        settings = make_settings(IMAGE_PROVIDER="gemini", GEMINI_API_KEY="AIza" + "b" * 30)
        assert credential_problem(settings) is None

    def test_gemini_key_missing(self):
        settings = make_settings(IMAGE_PROVIDER="Gemini", OPENAI_API_KEY=VALID_OPENAI_KEY)
        assert settings.IMAGE_PROVIDER == "gemini"
        assert credential_problem(settings) == "GEMINI_API_KEY is not configured"

    def test_unknown_provider(self):
        problem = credential_problem(make_settings(IMAGE_PROVIDER="stable", OPENAI_API_KEY=VALID_OPENAI_KEY))
        assert problem == "Unknown image provider: stable"


class TestSettingsFromEnvironment:
    def test_env_overrides_defaults(self, monkeypatch):
        monkeypatch.setenv("JOB_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("JOB_STORE", "REDIS")
        settings = make_settings()
        assert settings.JOB_MAX_ATTEMPTS == 5
        assert settings.JOB_STORE == "redis"

    def test_defaults(self, monkeypatch):
        for name in ("MAX_UPLOAD_BYTES", "NORMALIZED_MAX_DIMENSION", "JOB_RETENTION_SECONDS"):
            monkeypatch.delenv(name, raising=False)
        settings = make_settings()
        assert settings.MAX_UPLOAD_BYTES == 10 * 1024 * 1024
        assert settings.NORMALIZED_MAX_DIMENSION == 512
        assert settings.JOB_RETENTION_SECONDS == 86400

    @pytest.mark.parametrize("provider", ["openai", "gemini"])
    def test_provider_api_key_follows_provider(self, provider):
        settings = make_settings(IMAGE_PROVIDER=provider, OPENAI_API_KEY="sk-open", GEMINI_API_KEY="gem")
        expected = "gem" if provider == "gemini" else "sk-open"
        assert settings.provider_api_key == expected
