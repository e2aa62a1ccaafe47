"""
Configuration module for the geofence filter.

Provides:
- GeofenceSettings: Raw options from YAML, environment or keyword arguments
- validate_config: One-time validation producing an immutable GeofenceConfig
"""

from geofence.src.config.settings import GeofenceSettings, load_settings
from geofence.src.config.validation import (
    GeofenceConfig,
    ProviderName,
    RadiusMode,
    RedisConfig,
    SensitivityMode,
    parse_duration,
    validate_config,
)

__all__ = [
    "GeofenceSettings",
    "load_settings",
    "GeofenceConfig",
    "ProviderName",
    "RadiusMode",
    "RedisConfig",
    "SensitivityMode",
    "parse_duration",
    "validate_config",
]
