"""
FastAPI application entry point for the geofence filter.

This module provides:
- MODULE_INFO: Descriptor registering the filter as the
  ``http.handlers.geofence`` handler
- install_geofence: Explicit registration of the middleware on any
  Starlette/FastAPI application
- create_app: A FastAPI application guarded by the geofence

Configuration is validated exactly once, when the application is created;
the process must be restarted to pick up changes.

Run with:
    uvicorn geofence.src.main:create_app --factory

Environment Variables:
    GEOFENCE_CONFIG_PATH: YAML configuration file (optional)
    GEOFENCE_ENV: Environment (production/development, default: development)
    GEOFENCE_LOG_LEVEL: Log level (DEBUG/INFO/WARNING/ERROR/CRITICAL, default: INFO)
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import FastAPI
from starlette.applications import Starlette

from geofence.src import __version__
from geofence.src.config.settings import GeofenceSettings, load_settings
from geofence.src.config.validation import GeofenceConfig, validate_config
from geofence.src.middleware.geofence import GeofenceMiddleware
from geofence.src.services.engine import GeofenceEngine
from geofence.src.services.providers import ProximityProvider
from geofence.src.services.proximity_cache import InMemoryProximityCache, ProximityCache
from geofence.src.utils.logging_config import init_logging, get_logger


# Seconds between sweeps of the in-process cache
CACHE_SWEEP_INTERVAL = 60.0


@dataclass(frozen=True)
class ModuleInfo:
    """Capability descriptor of a request handler module."""

    id: str
    new: Callable[..., GeofenceEngine]


MODULE_INFO = ModuleInfo(id="http.handlers.geofence", new=GeofenceEngine.from_config)


def install_geofence(
    app: Starlette,
    config: GeofenceConfig,
    provider: Optional[ProximityProvider] = None,
    cache: Optional[ProximityCache] = None,
) -> GeofenceEngine:
    """
    Register the geofence middleware on an application.

    Args:
        app: Starlette or FastAPI application
        config: Validated configuration
        provider: Provider overriding the configured one
        cache: Cache overriding the configured backend

    Returns:
        The engine the middleware uses (also stored on app.state.geofence_engine)
    """
    engine = MODULE_INFO.new(config, provider=provider, cache=cache)
    app.add_middleware(GeofenceMiddleware, engine=engine)
    app.state.geofence_engine = engine
    get_logger("api").info(
        "Geofence installed (provider: %s, reference: %s, allowlist: %d entries)",
        config.provider.value,
        config.reference_address or "this host",
        len(config.allowlist),
    )
    return engine


def create_app(
    settings: Optional[GeofenceSettings] = None,
    provider: Optional[ProximityProvider] = None,
    cache: Optional[ProximityCache] = None,
) -> FastAPI:
    """
    Create a FastAPI application guarded by the geofence.

    Args:
        settings: Raw settings (loaded from file/environment if omitted)
        provider: Provider overriding the configured one
        cache: Cache overriding the configured backend

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    init_logging()
    logger = get_logger("api")

    config = validate_config(settings if settings is not None else load_settings())
    engine_holder = {}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine: GeofenceEngine = engine_holder["engine"]
        logger.info("Resolving geofence reference location")
        await engine.start()

        cache_backend = engine.resolver.cache
        if isinstance(cache_backend, InMemoryProximityCache) and config.cache_ttl is not None:
            cache_backend.start_sweeper(CACHE_SWEEP_INTERVAL)

        logger.info("Geofence started")

        yield

        logger.info("Shutting down geofence")
        await engine.aclose()

    app = FastAPI(
        title="Geofence Gate",
        description="Only lets clients near a reference location through.",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/")
    async def root():
        return {"status": "allowed"}

    engine_holder["engine"] = install_geofence(app, config, provider=provider, cache=cache)
    return app
