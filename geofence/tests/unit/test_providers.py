"""
Unit tests for geolocation providers.

HTTP providers run against httpx.MockTransport; the MaxMind provider uses a
mocked geoip2 web service client.
"""

from unittest.mock import AsyncMock, MagicMock

import geoip2.errors
import httpx
import pytest

from geofence.src.config.validation import RadiusMode, SensitivityMode
from geofence.src.services.exceptions import AddressRejectedByProviderError, ProviderError
from geofence.src.services.providers import (
    Coordinates,
    FreeGeoIPProvider,
    IPBaseProvider,
    MaxMindProvider,
    build_provider,
)
from geofence.src.services.providers.freegeoip import FREEGEOIP_URL
from geofence.src.services.providers.ipbase import IPBASE_URL


NEW_YORK = {"latitude": 40.7128, "longitude": -74.0060}
# ~30 m from the reference: same 3-decimal bucket
NEARBY = {"latitude": 40.7131, "longitude": -74.0059}
# ~14 km from the reference
NEWARK = {"latitude": 40.7357, "longitude": -74.1724}


def _freegeoip(handler, **kwargs) -> FreeGeoIPProvider:
    client = httpx.AsyncClient(base_url=FREEGEOIP_URL, transport=httpx.MockTransport(handler))
    return FreeGeoIPProvider(api_token="test-token", client=client, **kwargs)


def _ipbase(handler, **kwargs) -> IPBaseProvider:
    client = httpx.AsyncClient(base_url=IPBASE_URL, transport=httpx.MockTransport(handler))
    return IPBaseProvider(api_key="test-key", client=client, **kwargs)


def _located(locations: dict, reference: dict = NEW_YORK):
    """freegeoip handler answering from a table; the bare /json/ path is the reference."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        ip = request.url.path[len("/json/"):]
        location = locations.get(ip) if ip else reference
        if location is None:
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(200, json={"ip": ip, **location})

    handler.requests = requests
    return handler


# ============================================================================
# Proximity Comparison
# ============================================================================


class TestProximityComparison:
    """Tests for sensitivity and radius comparison."""

    @pytest.mark.asyncio
    async def test_same_sensitivity_bucket_is_near(self):
        provider = _freegeoip(_located({"203.0.113.9": NEARBY}), proximity_mode=SensitivityMode(level=3))
        assert await provider.is_near("203.0.113.9") is True

    @pytest.mark.asyncio
    async def test_finer_sensitivity_is_not_near(self):
        provider = _freegeoip(_located({"203.0.113.9": NEARBY}), proximity_mode=SensitivityMode(level=4))
        assert await provider.is_near("203.0.113.9") is False

    @pytest.mark.asyncio
    async def test_coarse_sensitivity_covers_the_city(self):
        provider = _freegeoip(_located({"203.0.113.9": NEWARK}), proximity_mode=SensitivityMode(level=0))
        assert await provider.is_near("203.0.113.9") is True

    @pytest.mark.asyncio
    async def test_radius(self):
        handler = _located({"203.0.113.9": NEWARK})
        assert await _freegeoip(handler, proximity_mode=RadiusMode(kilometers=5.0)).is_near("203.0.113.9") is False
        assert await _freegeoip(handler, proximity_mode=RadiusMode(kilometers=20.0)).is_near("203.0.113.9") is True

    def test_compare_zero_radius_only_matches_same_point(self):
        provider = FreeGeoIPProvider(api_token="t", proximity_mode=RadiusMode(kilometers=0))
        point = Coordinates(**NEW_YORK)
        assert provider.compare(point, point) is True
        assert provider.compare(Coordinates(**NEARBY), point) is False


# ============================================================================
# freegeoip
# ============================================================================


class TestFreeGeoIPProvider:
    """Tests for the freegeoip.app provider."""

    @pytest.mark.asyncio
    async def test_explicit_reference_address(self):
        handler = _located({"8.8.8.8": NEW_YORK, "203.0.113.9": NEARBY}, reference=NEWARK)
        provider = _freegeoip(handler, reference_address="8.8.8.8")

        assert await provider.is_near("203.0.113.9") is True
        assert handler.requests[0].url.path == "/json/8.8.8.8"

    @pytest.mark.asyncio
    async def test_reference_looked_up_once(self):
        handler = _located({"203.0.113.9": NEARBY, "198.51.100.2": NEWARK})
        provider = _freegeoip(handler)

        await provider.is_near("203.0.113.9")
        await provider.is_near("198.51.100.2")

        paths = [r.url.path for r in handler.requests]
        assert paths == ["/json/", "/json/203.0.113.9", "/json/198.51.100.2"]
        assert all(r.url.params["apikey"] == "test-token" for r in handler.requests)

    @pytest.mark.asyncio
    async def test_warm_up_resolves_reference(self):
        handler = _located({})
        provider = _freegeoip(handler)

        await provider.warm_up()

        assert await provider.reference_location() == Coordinates(**NEW_YORK)
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("address", ["::1", "127.0.0.1", "not-an-ip", "[::1]"])
    async def test_loopback_and_non_literal_rejected(self, address):
        handler = _located({})
        provider = _freegeoip(handler)

        with pytest.raises(AddressRejectedByProviderError) as exc_info:
            await provider.is_near(address)

        assert exc_info.value.provider == "freegeoip"
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_invalid_ip_response_rejected(self):
        def handler(request):
            if request.url.path == "/json/":
                return httpx.Response(200, json=NEW_YORK)
            return httpx.Response(400, json={"message": "invalid IP"})

        with pytest.raises(AddressRejectedByProviderError):
            await _freegeoip(handler).is_near("203.0.113.9")

    @pytest.mark.asyncio
    async def test_rejected_reference_is_provider_error(self):
        def handler(request):
            return httpx.Response(400, json={"message": "invalid IP"})

        provider = _freegeoip(handler, reference_address="8.8.4.4")

        with pytest.raises(ProviderError, match="reference") as exc_info:
            await provider.is_near("203.0.113.9")
        assert not isinstance(exc_info.value, AddressRejectedByProviderError)

        with pytest.raises(ProviderError) as exc_info:
            await provider.warm_up()
        assert not isinstance(exc_info.value, AddressRejectedByProviderError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403, 429, 500, 503])
    async def test_error_status(self, status):
        provider = _freegeoip(lambda request: httpx.Response(status, json={}))

        with pytest.raises(ProviderError) as exc_info:
            await provider.is_near("203.0.113.9")

        assert not isinstance(exc_info.value, AddressRejectedByProviderError)
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        provider = _freegeoip(lambda request: httpx.Response(200, json={"ip": "x"}))
        with pytest.raises(ProviderError, match="unexpected payload"):
            await provider.is_near("203.0.113.9")

    @pytest.mark.asyncio
    async def test_non_json_payload(self):
        provider = _freegeoip(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError, match="non-JSON"):
            await provider.is_near("203.0.113.9")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderError, match="timed out"):
            await _freegeoip(handler).is_near("203.0.113.9")

    @pytest.mark.asyncio
    async def test_connect_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ProviderError, match="request failed"):
            await _freegeoip(handler).is_near("203.0.113.9")

    def test_token_required(self):
        with pytest.raises(ValueError):
            FreeGeoIPProvider(api_token="")


# ============================================================================
# ipbase
# ============================================================================


class TestIPBaseProvider:
    """Tests for the ipbase.com provider."""

    @pytest.mark.asyncio
    async def test_lookup(self):
        requests = []

        def handler(request):
            requests.append(request)
            location = NEARBY if request.url.params.get("ip") else NEW_YORK
            return httpx.Response(200, json={"data": {"ip": "x", "location": location}})

        provider = _ipbase(handler, proximity_mode=RadiusMode(kilometers=1.0))

        assert await provider.is_near("203.0.113.9") is True
        assert [r.url.path for r in requests] == ["/v2/info", "/v2/info"]
        assert "ip" not in requests[0].url.params
        assert requests[1].url.params["ip"] == "203.0.113.9"
        assert requests[1].url.params["apikey"] == "test-key"

    @pytest.mark.asyncio
    async def test_missing_location(self):
        provider = _ipbase(lambda request: httpx.Response(200, json={"data": {}}))
        with pytest.raises(ProviderError):
            await provider.is_near("203.0.113.9")


# ============================================================================
# MaxMind
# ============================================================================


class TestMaxMindProvider:
    """Tests for the MaxMind web service provider."""

    @staticmethod
    def _city(latitude, longitude):
        response = MagicMock()
        response.location.latitude = latitude
        response.location.longitude = longitude
        return response

    @pytest.mark.asyncio
    async def test_lookup(self):
        client = AsyncMock()
        client.city.side_effect = [self._city(**NEW_YORK), self._city(**NEARBY)]
        provider = MaxMindProvider(account_id=42, license_key="lic", client=client)

        assert await provider.is_near("203.0.113.9") is True
        assert [c.args[0] for c in client.city.await_args_list] == ["me", "203.0.113.9"]

    @pytest.mark.asyncio
    async def test_reserved_address_rejected(self):
        client = AsyncMock()
        client.city.side_effect = [
            self._city(**NEW_YORK),
            geoip2.errors.AddressNotFoundError("The IP address is reserved"),
        ]
        provider = MaxMindProvider(account_id=42, license_key="lic", client=client)

        with pytest.raises(AddressRejectedByProviderError):
            await provider.is_near("10.0.0.1")

    @pytest.mark.asyncio
    async def test_unknown_reference_is_provider_error(self):
        client = AsyncMock()
        client.city.side_effect = geoip2.errors.AddressNotFoundError("The address is not in the database")
        provider = MaxMindProvider(
            account_id=42, license_key="lic", reference_address="8.8.4.4", client=client
        )

        with pytest.raises(ProviderError) as exc_info:
            await provider.is_near("203.0.113.9")
        assert not isinstance(exc_info.value, AddressRejectedByProviderError)

    @pytest.mark.asyncio
    async def test_authentication_failure(self):
        client = AsyncMock()
        client.city.side_effect = geoip2.errors.AuthenticationError("bad license key")
        provider = MaxMindProvider(account_id=42, license_key="lic", client=client)

        with pytest.raises(ProviderError) as exc_info:
            await provider.is_near("203.0.113.9")
        assert not isinstance(exc_info.value, AddressRejectedByProviderError)

    @pytest.mark.asyncio
    async def test_no_coordinates(self):
        client = AsyncMock()
        client.city.side_effect = [self._city(**NEW_YORK), self._city(None, None)]
        provider = MaxMindProvider(account_id=42, license_key="lic", client=client)

        with pytest.raises(ProviderError, match="no coordinates"):
            await provider.is_near("203.0.113.9")

    @pytest.mark.asyncio
    async def test_aclose(self):
        client = AsyncMock()
        provider = MaxMindProvider(account_id=42, license_key="lic", client=client)
        await provider.aclose()
        client.close.assert_awaited_once()


# ============================================================================
# Provider Selection
# ============================================================================


class TestBuildProvider:
    """Tests for choosing the provider from configuration."""

    def test_freegeoip_default(self, make_config):
        provider = build_provider(make_config(remote_ip="8.8.8.8", sensitivity=2))
        assert isinstance(provider, FreeGeoIPProvider)
        assert provider.proximity_mode == SensitivityMode(level=2)

    def test_ipbase(self, make_config):
        provider = build_provider(make_config(provider="ipbase", ipbase_api_key="k", radius=5.0))
        assert isinstance(provider, IPBaseProvider)
        assert provider.proximity_mode == RadiusMode(kilometers=5.0)

    def test_maxmind(self, make_config):
        config = make_config(provider="maxmind", maxmind_account_id="42", maxmind_license_key="lic")
        assert isinstance(build_provider(config), MaxMindProvider)
