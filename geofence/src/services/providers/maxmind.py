"""
MaxMind GeoIP2 web service provider.

Uses the City endpoint of the GeoIP2/GeoLite2 web services through
geoip2.webservice.AsyncClient. The special address "me" resolves the
requesting host.
"""

from typing import Optional

import geoip2.errors
import geoip2.webservice

from geofence.src.config.validation import ProximityMode
from geofence.src.services.exceptions import AddressRejectedByProviderError, ProviderError
from geofence.src.services.providers.base import DEFAULT_TIMEOUT, Coordinates, CoordinateProvider


MAXMIND_HOST = "geoip.maxmind.com"


class MaxMindProvider(CoordinateProvider):
    """Looks addresses up with the MaxMind GeoIP2 City web service."""

    name = "maxmind"

    def __init__(
        self,
        account_id: int,
        license_key: str,
        reference_address: str = "",
        proximity_mode: Optional[ProximityMode] = None,
        timeout: float = DEFAULT_TIMEOUT,
        host: str = MAXMIND_HOST,
        client: Optional[geoip2.webservice.AsyncClient] = None,
    ):
        super().__init__(reference_address, proximity_mode)
        self._client = client or geoip2.webservice.AsyncClient(
            account_id, license_key, host=host, timeout=timeout
        )

    async def _lookup(self, address: Optional[str]) -> Coordinates:
        try:
            response = await self._client.city(address or "me")
        except geoip2.errors.AddressNotFoundError:
            # Reserved and unknown addresses
            raise AddressRejectedByProviderError(address or "me", provider=self.name)
        except geoip2.errors.InvalidRequestError as e:
            if address and "IP_ADDRESS" in str(getattr(e, "code", "") or e):
                raise AddressRejectedByProviderError(address, provider=self.name)
            raise ProviderError(f"maxmind rejected the request: {e}", provider=self.name)
        except geoip2.errors.HTTPError as e:
            raise ProviderError(
                f"maxmind request failed: {e}",
                provider=self.name,
                status_code=getattr(e, "http_status", None),
            )
        except geoip2.errors.GeoIP2Error as e:
            # AuthenticationError, OutOfQueriesError, PermissionRequiredError
            raise ProviderError(f"maxmind lookup failed: {e}", provider=self.name)

        location = response.location
        if location.latitude is None or location.longitude is None:
            raise ProviderError(
                f"maxmind has no coordinates for {address or 'this host'}", provider=self.name
            )
        return Coordinates(latitude=location.latitude, longitude=location.longitude)

    async def aclose(self) -> None:
        await self._client.close()
