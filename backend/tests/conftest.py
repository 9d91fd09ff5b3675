import os

import pytest

from app.core.config import get_settings

# Tests never call the real vision backend unless a test wires one explicitly.
os.environ.setdefault("ROOM_SCAN_PROVIDER", "mock")


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Some tests mutate env vars and clear the settings cache. Ensure we don't leak
    # a cached Settings instance (e.g. with different daily caps) across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
