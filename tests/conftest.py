"""
Pytest configuration and fixtures for the answering tests.

Provides shared fixtures for:
- Deterministic clock with instant sleep
- Scriptable generative provider
- Isolated environment and settings cache
"""

import pytest

from libs.common.settings import get_settings
from tests.fakes import FakeClock, FakeProvider


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("HYBRIDQA_APP_ENV", "test")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
