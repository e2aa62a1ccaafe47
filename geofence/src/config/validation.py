"""
One-time validation of geofence settings.

``validate_config`` turns the raw ``GeofenceSettings`` into an immutable
``GeofenceConfig``: it resolves the provider credential, applies defaults,
and parses durations and addresses. It is called once at setup; a changed
configuration needs a restart.
"""

import ipaddress
import re
from datetime import timedelta
from enum import Enum
from typing import FrozenSet, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from geofence.src.config.settings import GeofenceSettings
from geofence.src.services.exceptions import ConfigurationError, MissingCredentialError


# ============================================================================
# Constants
# ============================================================================

DEFAULT_SENSITIVITY = 3  # ~111 m
DEFAULT_STATUS_CODE = 403
DEFAULT_REDIS_ADDR = "localhost:6379"

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class ProviderName(str, Enum):
    """Supported geolocation providers."""

    FREEGEOIP = "freegeoip"
    IPBASE = "ipbase"
    MAXMIND = "maxmind"


# Option holding the credential of each provider
CREDENTIAL_OPTIONS = {
    ProviderName.FREEGEOIP: "freegeoip_api_token",
    ProviderName.IPBASE: "ipbase_api_key",
    ProviderName.MAXMIND: "maxmind_license_key",
}


# ============================================================================
# Validated Models
# ============================================================================


class SensitivityMode(BaseModel):
    """Proximity as matching coordinates rounded to ``level`` decimal places."""

    model_config = ConfigDict(frozen=True)

    level: int = Field(default=DEFAULT_SENSITIVITY, ge=0, le=5)


class RadiusMode(BaseModel):
    """Proximity as a maximum distance from the reference location."""

    model_config = ConfigDict(frozen=True)

    kilometers: float = Field(..., ge=0)


ProximityMode = Union[SensitivityMode, RadiusMode]


class RedisConfig(BaseModel):
    """Connection parameters of the shared Redis cache."""

    model_config = ConfigDict(frozen=True)

    address: str = DEFAULT_REDIS_ADDR
    username: str = ""
    password: str = ""
    db_index: int = Field(default=0, ge=0)

    @property
    def host(self) -> str:
        host, _, _ = self.address.rpartition(":")
        return host.strip("[]") or "localhost"

    @property
    def port(self) -> int:
        _, _, port = self.address.rpartition(":")
        return int(port)


class GeofenceConfig(BaseModel):
    """
    Validated, immutable geofence configuration.

    Attributes:
        provider: Geolocation provider to query
        provider_credential: Token/key of the selected provider (never empty)
        maxmind_account_id: Account ID, only for the MaxMind provider
        reference_address: IP to geofence against; empty = this host's public IP
        proximity_mode: SensitivityMode or RadiusMode
        cache_ttl: Verdict lifetime; None means entries never expire
        allow_private_addresses: Let private/loopback addresses through unchecked
        allowlist: Addresses exempt from the proximity check
        deny_status_code: HTTP status returned for rejected requests
        redis: Shared cache parameters; None selects the in-process cache
        provider_timeout: Seconds allowed per provider call
        exempt_paths: Request paths never geofenced
    """

    model_config = ConfigDict(frozen=True)

    provider: ProviderName = ProviderName.FREEGEOIP
    provider_credential: str = Field(..., min_length=1, repr=False)
    maxmind_account_id: Optional[int] = None
    reference_address: str = ""
    proximity_mode: ProximityMode = Field(default_factory=SensitivityMode)
    cache_ttl: Optional[timedelta] = None
    allow_private_addresses: bool = False
    allowlist: FrozenSet[str] = frozenset()
    deny_status_code: int = DEFAULT_STATUS_CODE
    redis: Optional[RedisConfig] = None
    provider_timeout: float = 10.0
    exempt_paths: FrozenSet[str] = frozenset({"/health"})

    @property
    def sensitivity(self) -> Optional[int]:
        if isinstance(self.proximity_mode, SensitivityMode):
            return self.proximity_mode.level
        return None

    @property
    def radius_km(self) -> Optional[float]:
        if isinstance(self.proximity_mode, RadiusMode):
            return self.proximity_mode.kilometers
        return None


# ============================================================================
# Parsing Helpers
# ============================================================================


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a duration such as ``300ms``, ``10s``, ``1h30m`` or ``-1s``.

    Numbers are taken as seconds. Strings follow the usual unit-suffixed
    syntax; a bare ``0`` is the only string accepted without a unit.

    Raises:
        ValueError: If the value is not a valid duration
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * total)


def normalize_ttl(ttl: Optional[timedelta]) -> Optional[timedelta]:
    """Map zero and negative lifetimes to None (never expire)."""
    if ttl is None or ttl <= timedelta(0):
        return None
    return ttl


def _validate_remote_ip(remote_ip: str) -> str:
    remote_ip = remote_ip.strip()
    if not remote_ip:
        return ""
    try:
        ip = ipaddress.ip_address(remote_ip)
    except ValueError:
        raise ConfigurationError("invalid IP address provided", option="remote_ip")
    if ip.is_loopback or ip.is_private or ip.is_unspecified:
        raise ConfigurationError(
            f"{remote_ip} is not a public address and cannot be geolocated", option="remote_ip"
        )
    return remote_ip


def _validate_proximity(settings: GeofenceSettings) -> ProximityMode:
    if settings.sensitivity is not None and settings.radius is not None:
        raise ConfigurationError(
            "sensitivity and radius are mutually exclusive", option="radius"
        )
    if settings.radius is not None:
        if settings.radius < 0:
            raise ConfigurationError("radius must not be negative", option="radius")
        return RadiusMode(kilometers=settings.radius)
    if settings.sensitivity is None:
        return SensitivityMode()
    if not 0 <= settings.sensitivity <= 5:
        raise ConfigurationError("sensitivity must be between 0 and 5", option="sensitivity")
    return SensitivityMode(level=settings.sensitivity)


def _validate_redis(settings: GeofenceSettings) -> Optional[RedisConfig]:
    if not settings.redis_enabled:
        return None
    address = settings.redis_addr.strip() or DEFAULT_REDIS_ADDR
    _, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigurationError(f"invalid address {address!r}, expected host:port", option="redis_addr")
    if settings.redis_db_index < 0:
        raise ConfigurationError("database index must not be negative", option="redis_db_index")
    return RedisConfig(
        address=address,
        username=settings.redis_username,
        password=settings.redis_password,
        db_index=settings.redis_db_index,
    )


# ============================================================================
# Validation Entry Point
# ============================================================================


def validate_config(settings: GeofenceSettings) -> GeofenceConfig:
    """
    Validate raw settings and apply defaults.

    Args:
        settings: Raw options

    Returns:
        Immutable GeofenceConfig

    Raises:
        MissingCredentialError: If the selected provider has no credential
        ConfigurationError: For any other unusable option
    """
    try:
        provider = ProviderName(settings.provider)
    except ValueError:
        valid = ", ".join(p.value for p in ProviderName)
        raise ConfigurationError(
            f"unknown provider {settings.provider!r} (valid: {valid})", option="provider"
        )

    credential_option = CREDENTIAL_OPTIONS[provider]
    credential = getattr(settings, credential_option).strip()
    if not credential:
        raise MissingCredentialError(credential_option)

    account_id = None
    if provider is ProviderName.MAXMIND:
        raw_account = settings.maxmind_account_id.strip()
        if not raw_account:
            raise MissingCredentialError("maxmind_account_id")
        if not raw_account.isdigit():
            raise ConfigurationError("account ID must be numeric", option="maxmind_account_id")
        account_id = int(raw_account)

    cache_ttl = None
    if settings.cache_ttl != "":
        try:
            cache_ttl = normalize_ttl(parse_duration(settings.cache_ttl))
        except ValueError as e:
            raise ConfigurationError(str(e), option="cache_ttl")

    # 0 means unset
    status_code = settings.status_code or DEFAULT_STATUS_CODE
    if not 200 <= status_code <= 599:
        raise ConfigurationError(f"invalid HTTP status code {status_code}", option="status_code")

    return GeofenceConfig(
        provider=provider,
        provider_credential=credential,
        maxmind_account_id=account_id,
        reference_address=_validate_remote_ip(settings.remote_ip),
        proximity_mode=_validate_proximity(settings),
        cache_ttl=cache_ttl,
        allow_private_addresses=settings.allow_private_ip_addresses,
        allowlist=frozenset(settings.allowlist),
        deny_status_code=status_code,
        redis=_validate_redis(settings),
        provider_timeout=settings.provider_timeout,
        exempt_paths=frozenset(settings.exempt_paths),
    )
