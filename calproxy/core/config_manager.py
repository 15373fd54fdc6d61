"""Configuration management for the calproxy server.

Settings come from three layers, later layers winning:

1. a ``.env`` file (only fills variables missing from the environment)
2. environment variables
3. command-line flags
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from calproxy.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Environment variable -> settings key
ENV_STRING_KEYS: dict[str, str] = {
    "TARGET": "target",
    "AUTH_USER": "user",
    "AUTH_PASS": "password",
    "CALPROXY_WEB_HOST": "server_bind",
}
ENV_INT_KEYS: dict[str, str] = {
    "CALPROXY_WEB_PORT": "server_port",
    "CALPROXY_REFRESH_INTERVAL": "refresh_interval_seconds",
    "CALPROXY_REQUEST_TIMEOUT": "request_timeout",
}
TRUTHY = ("1", "true", "yes", "on")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=value`` pairs from a .env file.

    Blank lines, ``#`` comments and lines without ``=`` are skipped, an
    ``export`` prefix is accepted, and one pair of matching quotes around a
    value is removed. A missing or unreadable file yields an empty dict.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}
    except OSError:
        logger.warning("Cannot read %s, ignoring it", path, exc_info=True)
        return {}

    pairs: dict[str, str] = {}
    for line in map(str.strip, lines):
        if line.startswith("#"):
            continue
        name, sep, value = line.removeprefix("export ").partition("=")
        name = name.strip()
        if sep and name:
            pairs[name] = _unquote(value.strip())
    return pairs


class ProxySettings(BaseModel):
    """Validated runtime settings."""

    target: str = Field(..., description="Index page URL listing the source feeds")
    user: str = Field(default="", description="Basic auth user for upstream requests")
    password: str = Field(default="", repr=False, description="Basic auth password")

    server_bind: str = Field(default="0.0.0.0", description="Address the HTTP server binds")  # nosec B104
    server_port: int = Field(default=8080, ge=0, le=65535)

    refresh_interval_seconds: int = Field(default=7200, ge=1)
    request_timeout: int = Field(default=30, ge=1, description="Per-request timeout in seconds")

    debug_logging: bool = False
    log_level: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("target")
    @classmethod
    def _validate_target(cls, value: str) -> str:
        value = value.strip()
        parsed = urlsplit(value)
        if parsed.scheme not in ("http", "https"):
            raise ValueError(f"target must be an http(s) URL, got {value!r}")
        if not parsed.hostname:
            raise ValueError(f"target has no host: {value!r}")
        return value

    def redacted(self) -> dict[str, Any]:
        """Settings safe to log."""
        data = self.model_dump()
        if data.get("password"):
            data["password"] = "<redacted>"
        return data


class ConfigManager:
    """Builds ProxySettings from .env, environment and CLI flags."""

    def __init__(self, env_file_path: Optional[Path] = None):
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Copy .env values into os.environ without overriding existing keys.

        Returns:
            Keys that were set from the file
        """
        missing = {
            name: value
            for name, value in parse_env_file(self.env_file_path).items()
            if name not in os.environ
        }
        os.environ.update(missing)
        if missing:
            logger.debug("%s supplied: %s", self.env_file_path, ", ".join(missing))
        return list(missing)

    def build_config_from_env(self) -> dict[str, Any]:
        """Map recognized environment variables onto settings keys.

        Unparsable integers are logged and ignored so the default applies.
        """
        cfg: dict[str, Any] = {}

        for env_key, cfg_key in ENV_STRING_KEYS.items():
            value = os.environ.get(env_key)
            if value is not None:
                cfg[cfg_key] = value

        for env_key, cfg_key in ENV_INT_KEYS.items():
            value = os.environ.get(env_key)
            if not value:
                continue
            try:
                cfg[cfg_key] = int(value)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, value)

        if os.environ.get("CALPROXY_DEBUG", "").strip().lower() in TRUTHY:
            cfg["debug_logging"] = True

        log_level = os.environ.get("CALPROXY_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        return cfg

    def build_settings(self, args: Optional[object] = None) -> ProxySettings:
        """Load every layer and validate.

        Args:
            args: argparse namespace; attributes that are None are ignored

        Raises:
            ConfigError: If the target is missing or invalid, or any value
                fails validation
        """
        self.load_env_file()
        cfg = self.build_config_from_env()
        cfg.update(_flag_overrides(args))

        if not cfg.get("target"):
            raise ConfigError("target URL is required (--target or TARGET)")

        try:
            return ProxySettings(**cfg)
        except ValidationError as e:
            raise ConfigError(f"invalid configuration: {e}") from e


def _flag_overrides(args: Optional[object]) -> dict[str, Any]:
    if args is None:
        return {}

    mapping = {
        "target": "target",
        "user": "user",
        "password": "password",
        "host": "server_bind",
        "port": "server_port",
        "refresh_interval": "refresh_interval_seconds",
    }
    overrides: dict[str, Any] = {}
    for attr, cfg_key in mapping.items():
        value = getattr(args, attr, None)
        if value is not None:
            overrides[cfg_key] = value

    if getattr(args, "debug", False):
        overrides["debug_logging"] = True

    return overrides
