"""
Geofence admission decisions.

GeofenceEngine turns a raw peer address into an allow/deny verdict:

1. Normalize the address (strip the port); malformed addresses raise.
2. Private/loopback address and private addresses allowed -> allow.
3. Address on the allowlist -> allow.
4. Ask the proximity resolver: near -> allow, otherwise deny with the
   configured status code.

The cheap checks run first so that a provider failure can never shadow
them. Provider errors are not turned into denials; they propagate so the
host can tell "not nearby" apart from "system malfunction".
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from geofence.src.config.validation import GeofenceConfig
from geofence.src.services.address import is_private_address, normalize_address
from geofence.src.services.allowlist import Allowlist
from geofence.src.services.providers import ProximityProvider, build_provider
from geofence.src.services.proximity_cache import ProximityCache, build_cache
from geofence.src.services.resolver import ProximityResolver
from geofence.src.utils.logging_config import get_logger


logger = get_logger("geofence")

# Fixed message of every decision record
LOG_NAMESPACE = "geofence"

ALLOWED_STATUS_CODE = 200


class DecisionReason(str, Enum):
    """Why a request was allowed or denied."""

    PRIVATE_ADDRESS = "private_address"
    ALLOWLISTED = "allowlisted"
    NEAR = "near"
    NOT_NEAR = "not_near"


@dataclass(frozen=True)
class DecisionResult:
    """Per-request verdict."""

    allowed: bool
    status_code: int
    address: str
    reason: DecisionReason


class GeofenceEngine:
    """
    Admission decision engine.

    Built once from a validated GeofenceConfig; afterwards only ``decide``
    is called, concurrently, for every request. The configuration is frozen
    and the proximity cache is the only shared mutable state.

    Usage:
        >>> engine = GeofenceEngine.from_config(validate_config(settings))
        >>> result = await engine.decide("203.0.113.9:443")
        >>> result.allowed
        True
    """

    __slots__ = ("_config", "_allowlist", "_resolver")

    def __init__(self, config: GeofenceConfig, resolver: ProximityResolver):
        self._config = config
        self._allowlist = Allowlist(config.allowlist)
        self._resolver = resolver

    @classmethod
    def from_config(
        cls,
        config: GeofenceConfig,
        provider: Optional[ProximityProvider] = None,
        cache: Optional[ProximityCache] = None,
    ) -> "GeofenceEngine":
        """
        Build an engine, creating the configured provider and cache unless given.

        Args:
            config: Validated configuration
            provider: Provider to use instead of the configured one
            cache: Cache to use instead of the configured backend
        """
        # An empty in-memory cache is falsy
        if provider is None:
            provider = build_provider(config)
        if cache is None:
            cache = build_cache(config)
        resolver = ProximityResolver(provider=provider, cache=cache, ttl=config.cache_ttl)
        return cls(config, resolver)

    @property
    def config(self) -> GeofenceConfig:
        return self._config

    @property
    def resolver(self) -> ProximityResolver:
        return self._resolver

    async def decide(self, raw_address: str) -> DecisionResult:
        """
        Decide whether a request from ``raw_address`` may proceed.

        Args:
            raw_address: Peer address including the port

        Returns:
            DecisionResult; denied results carry the configured status code

        Raises:
            MalformedAddressError: If the address has no host:port form
            ProviderError: If the proximity lookup fails
        """
        address = normalize_address(raw_address)
        is_private = is_private_address(address)

        logger.debug(
            LOG_NAMESPACE,
            extra={"extra_fields": {
                "remote_addr": address,
                "is_private_address": is_private,
                "is_private_address_allowed": self._config.allow_private_addresses,
            }},
        )

        if is_private and self._config.allow_private_addresses:
            return self._allow(address, DecisionReason.PRIVATE_ADDRESS)

        is_allowlisted = self._allowlist.contains(address)
        logger.debug(
            LOG_NAMESPACE,
            extra={"extra_fields": {"remote_addr": address, "is_allowlisted": is_allowlisted}},
        )
        if is_allowlisted:
            return self._allow(address, DecisionReason.ALLOWLISTED)

        is_near = await self._resolver.is_near(address)
        logger.debug(
            LOG_NAMESPACE,
            extra={"extra_fields": {"remote_addr": address, "is_ip_address_near": is_near}},
        )
        if is_near:
            return self._allow(address, DecisionReason.NEAR)

        return DecisionResult(
            allowed=False,
            status_code=self._config.deny_status_code,
            address=address,
            reason=DecisionReason.NOT_NEAR,
        )

    @staticmethod
    def _allow(address: str, reason: DecisionReason) -> DecisionResult:
        return DecisionResult(
            allowed=True, status_code=ALLOWED_STATUS_CODE, address=address, reason=reason
        )

    async def start(self) -> None:
        """Resolve the reference location before serving."""
        await self._resolver.provider.warm_up()

    async def aclose(self) -> None:
        await self._resolver.aclose()
