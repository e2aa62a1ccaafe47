"""
freegeoip.app provider (sensitivity-based geofencing).

GET https://api.freegeoip.app/json/{ip}?apikey={token}
Free tier includes 15000 requests per hour.
"""

from typing import Optional

import httpx

from geofence.src.config.validation import ProximityMode
from geofence.src.services.providers.base import (
    DEFAULT_TIMEOUT,
    Coordinates,
    HttpCoordinateProvider,
)


FREEGEOIP_URL = "https://api.freegeoip.app/json"


class FreeGeoIPProvider(HttpCoordinateProvider):
    """Looks addresses up with the freegeoip.app JSON API."""

    name = "freegeoip"
    base_url = FREEGEOIP_URL

    def __init__(
        self,
        api_token: str,
        reference_address: str = "",
        proximity_mode: Optional[ProximityMode] = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_token:
            raise ValueError("api_token is required")
        super().__init__(reference_address, proximity_mode, timeout, base_url, client)
        self._api_token = api_token

    async def _lookup(self, address: Optional[str]) -> Coordinates:
        # No address: the API answers with the caller's own location
        path = f"/{address}" if address else "/"
        body = await self._get(path, {"apikey": self._api_token}, address)
        return self._coordinates(body, lambda b: b)
