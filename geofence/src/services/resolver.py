"""
Cache-backed proximity resolution.

ProximityResolver answers "is this address near?" by consulting the
proximity cache first and the geolocation provider on a miss. Concurrent
misses for the same address each call the provider; the verdicts are
identical, so the duplicate writes are harmless.
"""

from datetime import timedelta
from typing import Optional

from geofence.src.services.exceptions import AddressRejectedByProviderError, CacheBackendError
from geofence.src.services.providers.base import ProximityProvider
from geofence.src.services.proximity_cache import ProximityCache
from geofence.src.utils.logging_config import get_logger


logger = get_logger("geofence")


class ProximityResolver:
    """
    Resolves proximity verdicts through the cache and provider.

    Args:
        provider: Geolocation provider
        cache: Verdict cache shared by all requests
        ttl: Verdict lifetime; None keeps verdicts until evicted
    """

    def __init__(self, provider: ProximityProvider, cache: ProximityCache, ttl: Optional[timedelta] = None):
        self._provider = provider
        self._cache = cache
        self._ttl = ttl

    @property
    def provider(self) -> ProximityProvider:
        return self._provider

    @property
    def cache(self) -> ProximityCache:
        return self._cache

    async def is_near(self, address: str) -> bool:
        """
        Check whether an address is near the reference location.

        Args:
            address: Normalized address

        Returns:
            True if near. Addresses the provider refuses to locate resolve
            to False without being cached.

        Raises:
            ProviderError: If the provider call fails
        """
        cached = await self._cache.get(address)
        if cached is not None:
            return cached

        try:
            is_near = await self._provider.is_near(address)
        except AddressRejectedByProviderError as e:
            logger.debug(
                "Provider rejected address",
                extra={"extra_fields": {"remote_addr": address, "provider": e.provider}},
            )
            return False

        try:
            await self._cache.put(address, is_near, self._ttl)
        except CacheBackendError as e:
            logger.warning("Verdict for %s not cached: %s", address, e)

        return is_near

    async def aclose(self) -> None:
        await self._provider.aclose()
        await self._cache.aclose()
