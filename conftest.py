"""
Root pytest configuration.

Puts src/ on sys.path before collection and resets the engine's cached
settings, reference data and service singleton around every test.
"""

import sys
from pathlib import Path

import pytest

SRC_DIR = str((Path(__file__).parent / "src").absolute())

if SRC_DIR in sys.path:
    sys.path.remove(SRC_DIR)
sys.path.insert(0, SRC_DIR)


def _reset_cached_config():
    from config.settings import get_settings
    from config.reference_loader import clear_reference_cache
    import services.eligibility_service as eligibility_service

    get_settings.cache_clear()
    clear_reference_cache()
    eligibility_service._eligibility_service = None


@pytest.fixture(autouse=True)
def _reset_engine_singletons():
    """WOTC_* environment changes made by one test must not leak into the next."""
    _reset_cached_config()
    yield
    _reset_cached_config()
