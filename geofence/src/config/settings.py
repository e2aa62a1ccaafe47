"""
Raw geofence settings.

Options are read, in priority order, from keyword arguments (or a YAML
configuration file), ``GEOFENCE_``-prefixed environment variables and a
``.env`` file. Nothing is defaulted or cross-checked here; that happens once
in ``validate_config``.

Environment Variables:
    GEOFENCE_CONFIG_PATH: YAML configuration file (optional)
    GEOFENCE_PROVIDER: freegeoip, ipbase or maxmind (default: freegeoip)
    GEOFENCE_FREEGEOIP_API_TOKEN: freegeoip.app API token
    GEOFENCE_IPBASE_API_KEY: ipbase.com API key
    GEOFENCE_MAXMIND_ACCOUNT_ID / GEOFENCE_MAXMIND_LICENSE_KEY: MaxMind web service credentials
    GEOFENCE_REMOTE_IP: IP address to geofence against (default: this host's public address)
    GEOFENCE_CACHE_TTL: Duration such as 10s, 10m, 1h or a number of seconds (default: never expire)
    GEOFENCE_SENSITIVITY: 0-5 proximity bucket (default: 3)
    GEOFENCE_RADIUS: Radius in kilometers (alternative to sensitivity)
    GEOFENCE_ALLOW_PRIVATE_IP_ADDRESSES: Let 192.*, 172.*, 10.* and ::1 through (default: False)
    GEOFENCE_ALLOWLIST: Comma-separated addresses exempt from the proximity check
    GEOFENCE_STATUS_CODE: Status code for rejected requests (default: 403)
    GEOFENCE_REDIS_ENABLED: Share the proximity cache through Redis (default: False)
    GEOFENCE_REDIS_USERNAME / GEOFENCE_REDIS_PASSWORD: Redis credentials
    GEOFENCE_REDIS_ADDR: Redis host:port (default: localhost:6379)
    GEOFENCE_REDIS_DB_INDEX: Redis database index (default: 0)
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from geofence.src.services.exceptions import ConfigurationError


ENV_CONFIG_PATH = "GEOFENCE_CONFIG_PATH"

# Top-level YAML key that may wrap the options
CONFIG_SECTION = "geofence"

_PLAIN_NUMBER = re.compile(r"[+-]?\d+(\.\d+)?")


class GeofenceSettings(BaseSettings):
    """Un-validated geofence options as an operator wrote them."""

    model_config = SettingsConfigDict(
        env_prefix="GEOFENCE_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    provider: str = Field(default="freegeoip")

    freegeoip_api_token: str = Field(
        default="",
        description="freegeoip.app API token (free tier: 15000 requests per hour)"
    )
    ipbase_api_key: str = Field(default="", description="ipbase.com API key")
    maxmind_account_id: str = Field(default="", description="MaxMind account ID")
    maxmind_license_key: str = Field(default="", description="MaxMind license key")

    remote_ip: str = Field(
        default="",
        description="IP address to geofence against. Empty = public address of this host."
    )

    cache_ttl: Union[str, float] = Field(
        default="",
        description="How long verdicts are cached. Valid units are ns, us, ms, s, m, h."
    )

    # 0 - 111 km, 1 - 11.1 km, 2 - 1.11 km, 3 - 111 m, 4 - 11.1 m, 5 - 1.11 m
    sensitivity: Optional[int] = None
    radius: Optional[float] = Field(default=None, description="Radius in kilometers")

    # Some cellular networks NAT with 172.X addresses, in which case
    # you may not want to allow them
    allow_private_ip_addresses: bool = False

    allowlist: Union[List[str], str] = Field(default_factory=list)
    status_code: Optional[int] = None

    redis_enabled: bool = False
    redis_username: str = ""
    redis_password: str = ""
    redis_addr: str = ""
    redis_db_index: int = 0

    provider_timeout: float = Field(default=10.0, gt=0, description="Seconds per provider call")
    exempt_paths: Union[List[str], str] = Field(default_factory=lambda: ["/health"])

    @field_validator("allowlist", "exempt_paths")
    @classmethod
    def split_comma_separated(cls, v: Union[List[str], str]) -> List[str]:
        """Accept both YAML lists and comma-separated environment values."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return [str(item).strip() for item in v if str(item).strip()]

    @field_validator("cache_ttl")
    @classmethod
    def numeric_cache_ttl(cls, v: Union[str, float]) -> Union[str, float]:
        """Treat a bare number as seconds whether it came from YAML or the environment."""
        if isinstance(v, str) and _PLAIN_NUMBER.fullmatch(v.strip()):
            return float(v)
        return v

    @field_validator("provider")
    @classmethod
    def lowercase_provider(cls, v: str) -> str:
        return v.strip().lower()

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any) -> "GeofenceSettings":
        """
        Load settings from a YAML file.

        Options may sit at the top level or under a ``geofence:`` section.
        Values from the file take precedence over environment variables.

        Args:
            path: YAML configuration file
            **overrides: Options that take precedence over the file

        Raises:
            ConfigurationError: If the file cannot be read or parsed, or an
                option has the wrong type
        """
        data = _read_yaml(Path(path))
        data.update(overrides)
        try:
            return cls(**data)
        except ValidationError as e:
            raise _configuration_error(e) from e


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"cannot read configuration file {path}: {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration file {path} must contain a mapping")
    section = data.get(CONFIG_SECTION)
    if isinstance(section, dict):
        return dict(section)
    return data


def _configuration_error(e: ValidationError) -> ConfigurationError:
    first = e.errors()[0]
    option = ".".join(str(part) for part in first.get("loc", ())) or None
    return ConfigurationError(first.get("msg", str(e)), option=option)


def load_settings(config_path: Optional[Union[str, Path]] = None) -> GeofenceSettings:
    """
    Load settings from a YAML file when one is given (or named by
    GEOFENCE_CONFIG_PATH), otherwise from the environment alone.

    Raises:
        ConfigurationError: If any source holds an unusable value
    """
    config_path = config_path or os.environ.get(ENV_CONFIG_PATH)
    if config_path:
        return GeofenceSettings.from_yaml(config_path)
    try:
        return GeofenceSettings()
    except ValidationError as e:
        raise _configuration_error(e) from e
