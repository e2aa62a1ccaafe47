"""
ipbase.com provider.

GET https://api.ipbase.com/v2/info?ip={ip}&apikey={key}
Coordinates live under data.location.
"""

from typing import Optional

import httpx

from geofence.src.config.validation import ProximityMode
from geofence.src.services.providers.base import (
    DEFAULT_TIMEOUT,
    Coordinates,
    HttpCoordinateProvider,
)


IPBASE_URL = "https://api.ipbase.com/v2"


class IPBaseProvider(HttpCoordinateProvider):
    """Looks addresses up with the ipbase.com v2 API."""

    name = "ipbase"
    base_url = IPBASE_URL

    def __init__(
        self,
        api_key: str,
        reference_address: str = "",
        proximity_mode: Optional[ProximityMode] = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        super().__init__(reference_address, proximity_mode, timeout, base_url, client)
        self._api_key = api_key

    async def _lookup(self, address: Optional[str]) -> Coordinates:
        params = {"apikey": self._api_key}
        if address:
            params["ip"] = address
        body = await self._get("/info", params, address)
        return self._coordinates(body, lambda b: b["data"]["location"])
