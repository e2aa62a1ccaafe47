"""
Geolocation provider interface.

A provider answers one question: is this address near the reference
location? Coordinate-based providers resolve both the client and the
reference to latitude/longitude and compare them under the configured
proximity mode:

- SensitivityMode(level): coordinates rounded to ``level`` decimal places
  must be equal (0 - 111 km, 1 - 11.1 km, ... 5 - 1.11 m)
- RadiusMode(kilometers): geodesic distance must not exceed the radius
"""

import asyncio
import ipaddress
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from geopy.distance import geodesic

from geofence.src import __version__
from geofence.src.config.validation import ProximityMode, SensitivityMode
from geofence.src.services.exceptions import AddressRejectedByProviderError, ProviderError
from geofence.src.utils.logging_config import get_logger


logger = get_logger("providers")

DEFAULT_TIMEOUT = 10.0  # seconds
USER_AGENT = f"geofence-gate/{__version__}"


@dataclass(frozen=True)
class Coordinates:
    """A point in decimal degrees."""

    latitude: float
    longitude: float

    def as_tuple(self):
        return (self.latitude, self.longitude)


class ProximityProvider(ABC):
    """Decides whether an address is near the reference location."""

    name: str = "provider"

    @abstractmethod
    async def is_near(self, address: str) -> bool:
        """
        Args:
            address: Normalized IP address (no port)

        Raises:
            AddressRejectedByProviderError: If the provider refuses the address
            ProviderError: If the lookup fails
        """

    async def warm_up(self) -> None:
        """Resolve anything needed before the first request."""

    async def aclose(self) -> None:
        """Release provider resources."""


def check_lookup_address(address: str, provider: str) -> None:
    """
    Reject addresses no provider can locate.

    Raises:
        AddressRejectedByProviderError: If the address is not an IP literal
            or is a loopback address
    """
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        raise AddressRejectedByProviderError(address, provider=provider)
    if ip.is_loopback:
        raise AddressRejectedByProviderError(address, provider=provider)


def round_coordinate(value: float, sensitivity: int) -> float:
    """Round a coordinate to the sensitivity's number of decimal places."""
    return round(value, sensitivity)


class CoordinateProvider(ProximityProvider):
    """
    Provider that compares looked-up coordinates with the reference location.

    The reference location is looked up once and memoized. An empty
    reference address asks the provider for the requesting host's own
    location.
    """

    def __init__(self, reference_address: str = "", proximity_mode: Optional[ProximityMode] = None):
        self._reference_address = reference_address
        self._mode = proximity_mode or SensitivityMode()
        self._reference: Optional[Coordinates] = None
        self._reference_lock = asyncio.Lock()

    @property
    def proximity_mode(self) -> ProximityMode:
        return self._mode

    async def reference_location(self) -> Coordinates:
        """
        Get the reference coordinates, looking them up on first use.

        Raises:
            ProviderError: If the reference cannot be located. Never the
                suppressible AddressRejectedByProviderError kind.
        """
        if self._reference is None:
            async with self._reference_lock:
                if self._reference is None:
                    try:
                        location = await self._lookup(self._reference_address or None)
                    except AddressRejectedByProviderError as e:
                        raise ProviderError(
                            f"{self.name} cannot locate the reference address "
                            f"{self._reference_address or 'of this host'}",
                            provider=self.name,
                        ) from e
                    self._reference = location
                    logger.info(
                        "%s: reference location for %s is %.4f, %.4f",
                        self.name,
                        self._reference_address or "this host",
                        self._reference.latitude,
                        self._reference.longitude,
                    )
        return self._reference

    async def warm_up(self) -> None:
        await self.reference_location()

    async def is_near(self, address: str) -> bool:
        check_lookup_address(address, self.name)
        reference = await self.reference_location()
        location = await self._lookup(address)
        return self.compare(location, reference)

    def compare(self, location: Coordinates, reference: Coordinates) -> bool:
        """Apply the proximity mode to two points."""
        if isinstance(self._mode, SensitivityMode):
            level = self._mode.level
            return (
                round_coordinate(location.latitude, level) == round_coordinate(reference.latitude, level)
                and round_coordinate(location.longitude, level) == round_coordinate(reference.longitude, level)
            )
        distance_km = geodesic(location.as_tuple(), reference.as_tuple()).km
        return distance_km <= self._mode.kilometers

    @abstractmethod
    async def _lookup(self, address: Optional[str]) -> Coordinates:
        """Look up coordinates; None means the requesting host."""


class HttpCoordinateProvider(CoordinateProvider):
    """
    Coordinate provider reached with a JSON-over-HTTP GET.

    Subclasses supply the request and how to read coordinates from the body.
    """

    base_url: str = ""

    def __init__(
        self,
        reference_address: str = "",
        proximity_mode: Optional[ProximityMode] = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(reference_address, proximity_mode)
        self._client = client or httpx.AsyncClient(
            base_url=base_url or self.base_url,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            timeout=timeout,
        )

    async def _get(self, path: str, params: dict, address: Optional[str]) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} request timed out: {e}", provider=self.name)
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name)

        if response.status_code == 200:
            try:
                return response.json()
            except ValueError:
                raise ProviderError(
                    f"{self.name} returned a non-JSON response", provider=self.name, status_code=200
                )
        if response.status_code in (400, 422) and address:
            raise AddressRejectedByProviderError(address, provider=self.name)
        if response.status_code in (401, 403):
            raise ProviderError(
                f"{self.name} rejected the API credential",
                provider=self.name,
                status_code=response.status_code,
            )
        if response.status_code == 429:
            raise ProviderError(
                f"{self.name} rate limit exceeded", provider=self.name, status_code=429
            )
        raise ProviderError(
            f"{self.name} lookup failed with status {response.status_code}",
            provider=self.name,
            status_code=response.status_code,
        )

    def _coordinates(self, body: Any, extract: Callable[[Any], Any]) -> Coordinates:
        try:
            location = extract(body)
            return Coordinates(
                latitude=float(location["latitude"]),
                longitude=float(location["longitude"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProviderError(
                f"{self.name} returned an unexpected payload: {e!r}", provider=self.name
            )

    async def aclose(self) -> None:
        await self._client.aclose()
