"""
Custom exceptions for the geofence filter.

Configuration errors abort setup. Every other error is raised per request
and propagates to the host, which answers with its own failure response
rather than the configured denial status.
"""

from typing import Optional


class GeofenceError(Exception):
    """Base exception for geofence errors."""
    pass


class ConfigurationError(GeofenceError):
    """Raised at setup time when the configuration is unusable."""

    def __init__(self, message: str, option: Optional[str] = None):
        self.message = message
        self.option = option
        super().__init__(f"{option}: {message}" if option else message)


class MissingCredentialError(ConfigurationError):
    """Raised when the selected provider has no credential configured."""

    def __init__(self, option: str):
        super().__init__("provider credential not set", option=option)


class MalformedAddressError(GeofenceError):
    """Raised when a peer address cannot be split into host and port."""

    def __init__(self, address: str, reason: str = "missing port in address"):
        self.address = address
        self.reason = reason
        super().__init__(f"malformed address {address!r}: {reason}")


class ProviderError(GeofenceError):
    """Raised when the geolocation provider call fails."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class AddressRejectedByProviderError(ProviderError):
    """
    Raised when a provider refuses to locate an address.

    Loopback and non-literal addresses fall in this category. The resolver
    suppresses this kind instead of failing the request.
    """

    def __init__(self, address: str, provider: Optional[str] = None):
        self.address = address
        super().__init__(f"invalid IP address: {address}", provider=provider)


class CacheBackendError(GeofenceError):
    """Raised when the external cache backend cannot be written."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.message = message
        self.key = key
        super().__init__(message)
