"""Configuration loading for the TP358 scanner service."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from tp358.shared.config import get_config_path, get_log_level, load_yaml_config
from tp358.shared.database import DBConfig
from tp358.shared.models import canonical_address
from tp358.shared.mqtt import MQTTConfig
from tp358.sources import SOURCE_MODES


@dataclass
class HTTPConfig:
    """HTTP/WebSocket server configuration."""
    host: str = "0.0.0.0"
    port: int = 5055


@dataclass
class BLEConfig:
    """Advertisement source configuration."""
    scan_mode: str = "active"
    fake_interval: float = 1.0


@dataclass
class IntervalsConfig:
    """Initial throttle and liveness intervals, in seconds."""
    broadcast_seconds: int = 60
    storage_seconds: int = 180
    warning_threshold_seconds: int = 300


@dataclass
class Config:
    """Main configuration."""
    mqtt: MQTTConfig
    db: DBConfig
    http: HTTPConfig = field(default_factory=HTTPConfig)
    ble: BLEConfig = field(default_factory=BLEConfig)
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    source: str = "auto"
    database_enabled: bool = True
    sink_timeout: float = 5.0
    device_names: Dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"
    config_path: Optional[Path] = None


def parse_config(data: dict, config_path: Optional[Path] = None) -> Config:
    """Build a Config from a parsed YAML dictionary.

    Args:
        data: Configuration dictionary.
        config_path: File the dictionary was loaded from, used to persist
            interval changes.

    Returns:
        Config object.

    Raises:
        ValueError: If a value is invalid.
    """
    source = data.get("source", "auto")
    if source not in SOURCE_MODES:
        raise ValueError(f"source must be one of {SOURCE_MODES}, got '{source}'")

    http_data = data.get("http", {}) or {}
    http_config = HTTPConfig(
        host=http_data.get("host", "0.0.0.0"),
        port=int(http_data.get("port", 5055)),
    )

    ble_data = data.get("ble", {}) or {}
    scan_mode = ble_data.get("scan_mode", "active")
    if scan_mode not in ("active", "passive"):
        raise ValueError(f"ble.scan_mode must be 'active' or 'passive', got '{scan_mode}'")
    ble_config = BLEConfig(
        scan_mode=scan_mode,
        fake_interval=float(ble_data.get("fake_interval", 1.0)),
    )

    intervals_data = data.get("intervals", {}) or {}
    intervals = IntervalsConfig(
        broadcast_seconds=int(intervals_data.get("broadcast_seconds", 60)),
        storage_seconds=int(intervals_data.get("storage_seconds", 180)),
        warning_threshold_seconds=int(intervals_data.get("warning_threshold_seconds", 300)),
    )

    # Device names: MAC -> display name
    raw_names = data.get("device_names", {}) or {}
    if not isinstance(raw_names, dict):
        raise ValueError("device_names must be a mapping of MAC address to name")
    device_names = {
        canonical_address(str(mac)): str(name).strip()
        for mac, name in raw_names.items()
        if str(mac).strip() and name is not None and str(name).strip()
    }

    database_data = data.get("database", {}) or {}

    return Config(
        mqtt=MQTTConfig.from_dict(data.get("mqtt", {}) or {}),
        db=DBConfig.from_env(),
        http=http_config,
        ble=ble_config,
        intervals=intervals,
        source=source,
        database_enabled=bool(database_data.get("enabled", True)),
        sink_timeout=float(data.get("sink_timeout", 5.0)),
        device_names=device_names,
        log_level=get_log_level(data),
        config_path=config_path,
    )


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Args:
        config_path: Path to config file. If None, uses TP358_CONFIG or
            config/tp358.yaml at the repo root.

    Returns:
        Config object with loaded settings.
    """
    path = Path(config_path) if config_path else get_config_path()
    data = load_yaml_config(path)

    config = parse_config(data, config_path=path)

    if log_level := os.environ.get("LOG_LEVEL"):
        config.log_level = log_level.upper()

    return config
