"""Tests for application settings."""

import os
import tempfile

import pytest
from pydantic import ValidationError

from libs.common.settings import Settings, get_settings


class TestSettings:
    """Test settings configuration."""

    def test_defaults(self):
        """Defaults match the documented stage budgets and cache TTLs."""
        settings = Settings()

        assert settings.document_retrieval_timeout == 60.0
        assert settings.web_augmentation_timeout == 60.0
        assert settings.general_fallback_timeout == 30.0
        assert settings.retrieval_max_retries == 3
        assert settings.retryable_status_codes == {429, 500, 503}
        assert settings.web_requests_per_minute == 10
        assert settings.min_web_confidence == 0.3
        assert settings.min_web_answer_length == 100
        assert settings.system_prompt_ttl == 3600.0
        assert settings.conversation_ttl == 1800.0
        assert settings.context_cache_ttl == 3600
        assert settings.google_api_key is None

    def test_settings_from_env_file(self):
        """Prefixed variables are read from an env file."""
        env_vars = {
            "HYBRIDQA_RETRIEVAL_MODEL": "gemini-2.5-flash",
            "HYBRIDQA_WEB_REQUESTS_PER_MINUTE": "5",
            "HYBRIDQA_RETRYABLE_STATUS_CODES": "[429, 502]",
        }

        with tempfile.NamedTemporaryFile(mode="w", suffix=".env", delete=False) as f:
            for key, value in env_vars.items():
                f.write(f"{key}={value}\n")
            env_file = f.name

        try:
            settings = Settings(_env_file=env_file)
            assert settings.retrieval_model == "gemini-2.5-flash"
            assert settings.web_requests_per_minute == 5
            assert settings.retryable_status_codes == {429, 502}
        finally:
            os.unlink(env_file)

    def test_api_key_read_without_prefix(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEY", "test-key")
        assert Settings().google_api_key == "test-key"

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(document_retrieval_timeout=0)
        assert "must be greater than zero" in str(exc_info.value)

    def test_rejects_confidence_out_of_range(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(min_web_confidence=1.5)
        assert "min_web_confidence must be within [0, 1]" in str(exc_info.value)

    def test_settings_environment_properties(self):
        """Test environment detection properties."""
        assert Settings(app_env="development").is_development
        assert Settings(app_env="production").is_production
        test_settings = Settings(app_env="test")
        assert not test_settings.is_development
        assert not test_settings.is_production

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
        assert get_settings().app_env == "test"
