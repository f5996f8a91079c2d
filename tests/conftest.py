import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from murph.config import get_client_settings, get_settings  # noqa: E402


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Drop cached settings so environment overrides apply per test."""
    get_settings.cache_clear()
    get_client_settings.cache_clear()
    yield
    get_settings.cache_clear()
    get_client_settings.cache_clear()
