"""
Pytest configuration and fixtures for geofence tests.

Provides shared fixtures for:
- Clean GEOFENCE_* environment
- Settings/config factories
- Mocked geolocation providers
- In-memory cache with a controllable clock
"""

import os
from unittest.mock import AsyncMock

import pytest

from geofence.src.config.settings import GeofenceSettings
from geofence.src.config.validation import validate_config
from geofence.src.services.engine import GeofenceEngine
from geofence.src.services.providers.base import ProximityProvider
from geofence.src.services.proximity_cache import InMemoryProximityCache


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_geofence_env(monkeypatch):
    """Remove GEOFENCE_* variables so tests only see what they set."""
    for name in list(os.environ):
        if name.startswith("GEOFENCE_") and not name.startswith("GEOFENCE_LOG"):
            monkeypatch.delenv(name, raising=False)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def make_settings():
    """Factory for settings with a freegeoip token preset."""

    def _make(**options) -> GeofenceSettings:
        options.setdefault("freegeoip_api_token", "test-token")
        return GeofenceSettings(_env_file=None, **options)

    return _make


@pytest.fixture
def make_config(make_settings):
    """Factory for validated configurations."""

    def _make(**options):
        return validate_config(make_settings(**options))

    return _make


# ============================================================================
# Provider / Cache Fixtures
# ============================================================================


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_cache(clock) -> InMemoryProximityCache:
    return InMemoryProximityCache(clock=clock)


@pytest.fixture
def mock_provider() -> AsyncMock:
    """Provider whose verdict defaults to 'not near'."""
    provider = AsyncMock(spec=ProximityProvider)
    provider.name = "mock"
    provider.is_near.return_value = False
    return provider


@pytest.fixture
def make_engine(make_config, mock_provider, memory_cache):
    """Factory for engines wired to the mock provider and in-memory cache."""

    def _make(**options) -> GeofenceEngine:
        return GeofenceEngine.from_config(
            make_config(**options), provider=mock_provider, cache=memory_cache
        )

    return _make
