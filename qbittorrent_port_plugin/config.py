import os
from dataclasses import dataclass, replace
from typing import List, Mapping, Optional

import dotenv

from .exceptions import ConfigError


dotenv.load_dotenv()


ENV_PREFIX = "QBITTORRENT_PORT_PLUGIN_"

# Defaults
LOG_LEVEL = "INFO"
LOG_PATH = ""
LOG_ROTATION = "1 week"
LOG_RETENTION = "1 month"

REFRESH_INTERVAL_SECONDS = 5
QBITTORRENT_USERNAME = "admin"
ALLOW_PORT_FILE_NOT_EXIST = True

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off")


class Config:
    LOG_LEVEL = os.getenv("LOG_LEVEL", LOG_LEVEL)
    LOG_PATH = os.getenv("LOG_PATH", LOG_PATH)
    LOG_ROTATION = os.getenv("LOG_ROTATION", LOG_ROTATION)
    LOG_RETENTION = os.getenv("LOG_RETENTION", LOG_RETENTION)


@dataclass(frozen=True)
class PluginConfig:
    """Validated settings handed to the client and the syncer."""
    port_file: str
    qbittorrent_api_netloc: str
    qbittorrent_password: str
    qbittorrent_username: str = QBITTORRENT_USERNAME
    refresh_interval_seconds: int = REFRESH_INTERVAL_SECONDS
    allow_port_file_not_exist: bool = ALLOW_PORT_FILE_NOT_EXIST

    def redacted(self) -> "PluginConfig":
        """Copy that is safe to log."""
        return replace(self, qbittorrent_password="Redacted")


def parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be one of {', '.join(TRUE_VALUES + FALSE_VALUES)}, got '{value}'")


def load_config(environ: Optional[Mapping[str, str]] = None, prefix: str = ENV_PREFIX) -> PluginConfig:
    """
    Build a PluginConfig from prefixed environment variables.

    Args:
        environ: Mapping to read from, defaults to os.environ
        prefix: Prefix shared by every variable name

    Returns:
        The validated configuration

    Raises:
        ConfigError: If any variable is missing or malformed. Every problem
            found is listed in the message, not just the first one.
    """
    if environ is None:
        environ = os.environ

    errors: List[str] = []

    def get(name: str, required: bool = False) -> Optional[str]:
        value = environ.get(prefix + name, "").strip()
        if not value:
            if required:
                errors.append(f"{prefix + name} is required")
            return None
        return value

    port_file = get("PORT_FILE", required=True)
    netloc = get("QBITTORRENT_API_NETLOC", required=True)
    password = get("QBITTORRENT_PASSWORD", required=True)
    username = get("QBITTORRENT_USERNAME") or QBITTORRENT_USERNAME

    interval = REFRESH_INTERVAL_SECONDS
    raw_interval = get("REFRESH_INTERVAL_SECONDS")
    if raw_interval is not None:
        try:
            interval = int(raw_interval)
        except ValueError:
            errors.append(f"{prefix}REFRESH_INTERVAL_SECONDS must be an integer, got '{raw_interval}'")
        else:
            if interval <= 0:
                errors.append(f"{prefix}REFRESH_INTERVAL_SECONDS must be positive, got {interval}")

    allow_missing = ALLOW_PORT_FILE_NOT_EXIST
    raw_allow = get("ALLOW_PORT_FILE_NOT_EXIST")
    if raw_allow is not None:
        try:
            allow_missing = parse_bool(prefix + "ALLOW_PORT_FILE_NOT_EXIST", raw_allow)
        except ValueError as e:
            errors.append(str(e))

    if errors:
        raise ConfigError("failed to load configuration from env vars: " + "; ".join(errors))

    return PluginConfig(
        port_file=port_file,
        qbittorrent_api_netloc=netloc,
        qbittorrent_password=password,
        qbittorrent_username=username,
        refresh_interval_seconds=interval,
        allow_port_file_not_exist=allow_missing,
    )
