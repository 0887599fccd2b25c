"""Root conftest — shared test configuration."""

import os

import pytest

# Ensure tests never touch a developer database
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test_entity_service.db",
)

from entity_service.config import get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are re-read per test so monkeypatched env vars apply."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
