"""
Configuration management for Herald.

This module loads the database location, scanner options and web server
settings from a TOML file. The default file ships next to this module.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Path to the config directory
CONFIG_DIR = Path(__file__).parent
DEFAULT_CONFIG_PATH = CONFIG_DIR / "herald.toml"


@dataclass
class DatabaseConfig:
    path: Path = Path("herald.db")


@dataclass
class ScannerConfig:
    """Options for library scans."""

    ffprobe: str = "ffprobe"
    probe_timeout: float = 30.0
    follow_symlinks: bool = False


@dataclass
class WebConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclass
class HeraldConfig:
    """Loaded configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    web: WebConfig = field(default_factory=WebConfig)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{name}] must be a table")
    return section


def _value(section: dict[str, Any], where: str, key: str, kind: type | tuple[type, ...], default: Any) -> Any:
    """`section[key]` checked against `kind`; bools are never accepted as numbers."""
    if key not in section:
        return default
    value = section[key]
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ValueError(f"{where}.{key} has the wrong type: {value!r}")
    if not isinstance(value, kind):
        raise ValueError(f"{where}.{key} has the wrong type: {value!r}")
    return value


def parse_config(data: dict[str, Any]) -> HeraldConfig:
    """Build a `HeraldConfig` from parsed TOML. Unknown keys are ignored."""
    database = _section(data, "database")
    scanner = _section(data, "scanner")
    web = _section(data, "web")

    timeout = _value(scanner, "scanner", "probe_timeout", (int, float), 30.0)
    port = _value(web, "web", "port", int, 8080)
    if not 0 < port < 65536:
        raise ValueError(f"web.port out of range: {port}")

    return HeraldConfig(
        database=DatabaseConfig(
            path=Path(_value(database, "database", "path", str, "herald.db")),
        ),
        scanner=ScannerConfig(
            ffprobe=_value(scanner, "scanner", "ffprobe", str, "ffprobe"),
            probe_timeout=float(timeout),
            follow_symlinks=_value(scanner, "scanner", "follow_symlinks", bool, False),
        ),
        web=WebConfig(
            host=_value(web, "web", "host", str, "127.0.0.1"),
            port=port,
        ),
    )


def load_config(config_path: Path | None = None) -> HeraldConfig:
    """
    Load configuration from a TOML file.

    Args:
        config_path: Path to herald.toml. If None, uses default location.

    Returns:
        Loaded HeraldConfig instance.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    logger.debug("Loading config from %s", config_path)

    with config_path.open("rb") as f:
        data = tomllib.load(f)

    return parse_config(data)


# Global singleton instance (lazy loaded)
_config: HeraldConfig | None = None


def get_config() -> HeraldConfig:
    """
    Get the global configuration (lazy loaded singleton).

    Returns:
        The HeraldConfig instance.
    """
    global _config

    if _config is None:
        _config = load_config()

    return _config


def reload_config(config_path: Path | None = None) -> HeraldConfig:
    """
    Force reload of the configuration, optionally from another file.

    Returns:
        The newly loaded HeraldConfig instance.
    """
    global _config
    _config = load_config(config_path)
    return _config
