"""
Interchangeable geolocation providers.

Each provider implements ProximityProvider; the decision engine is written
against that interface only. build_provider picks the implementation named
in the configuration.
"""

from geofence.src.config.validation import GeofenceConfig, ProviderName
from geofence.src.services.providers.base import (
    Coordinates,
    CoordinateProvider,
    ProximityProvider,
)
from geofence.src.services.providers.freegeoip import FreeGeoIPProvider
from geofence.src.services.providers.ipbase import IPBaseProvider
from geofence.src.services.providers.maxmind import MaxMindProvider


def build_provider(config: GeofenceConfig) -> ProximityProvider:
    """Create the provider selected by the configuration."""
    if config.provider is ProviderName.IPBASE:
        return IPBaseProvider(
            api_key=config.provider_credential,
            reference_address=config.reference_address,
            proximity_mode=config.proximity_mode,
            timeout=config.provider_timeout,
        )
    if config.provider is ProviderName.MAXMIND:
        return MaxMindProvider(
            account_id=config.maxmind_account_id,
            license_key=config.provider_credential,
            reference_address=config.reference_address,
            proximity_mode=config.proximity_mode,
            timeout=config.provider_timeout,
        )
    return FreeGeoIPProvider(
        api_token=config.provider_credential,
        reference_address=config.reference_address,
        proximity_mode=config.proximity_mode,
        timeout=config.provider_timeout,
    )


__all__ = [
    "Coordinates",
    "CoordinateProvider",
    "ProximityProvider",
    "FreeGeoIPProvider",
    "IPBaseProvider",
    "MaxMindProvider",
    "build_provider",
]
