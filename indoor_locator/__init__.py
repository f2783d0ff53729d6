"""Indoor Locator package.

This package provides:
- ScanSession: scan lifecycle state machine publishing immutable EngineSnapshots
- classify / estimate_position / estimate_distance: floor, proximity and position estimation
- BeaconCatalog: reference beacon catalog loading (JSON assets / CSV)
- ConfigManager: YAML-based configuration management
- MQTTDataProcessor: MQTT observation source and snapshot publisher
"""

from .config_manager import ConfigManager
from .calculator import estimate_distance, estimate_position
from .classifier import classify
from .beacon_store import BeaconCatalog, CatalogLoadError, load_catalog
from .engine import ScanSession
from .mqtt_processor import MQTTDataProcessor

__all__ = [
    "ConfigManager",
    "estimate_distance",
    "estimate_position",
    "classify",
    "BeaconCatalog",
    "CatalogLoadError",
    "load_catalog",
    "ScanSession",
    "MQTTDataProcessor",
]
