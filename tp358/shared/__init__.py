"""Shared utilities for TP358 services."""

from .models import AdvertisementFrame, Reading, ReadingEvent, canonical_address
from .database import DBConfig, MeasurementStorage
from .config import load_yaml_config, get_config_path
from .mqtt import MQTTConfig
from .logging import setup_logging

__all__ = [
    "AdvertisementFrame",
    "Reading",
    "ReadingEvent",
    "canonical_address",
    "DBConfig",
    "MeasurementStorage",
    "load_yaml_config",
    "get_config_path",
    "MQTTConfig",
    "setup_logging",
]
