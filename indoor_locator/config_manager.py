from __future__ import annotations

import logging
import os
import yaml

from typing import Callable, Any, List

from .models import CalibrationModel, EngineSettings


logger = logging.getLogger(__name__)


def _env_or_default(env_key: str, default: Any, cast: Callable[[str], Any] = str) -> Any:
    v = os.environ.get(env_key)
    if v is not None:
        try:
            return cast(v)
        except Exception:
            return v
    return default


def _as_bool(v: str) -> bool:
    return v.lower() in ("1", "true", "yes")


def _as_list(v: str) -> List[str]:
    return [p.strip() for p in v.split(",") if p.strip()]


DEFAULT_CONFIG_PATH = _env_or_default(
    "INDOOR_LOCATOR_CONFIG",
    os.path.join(".", "config", "config.yaml"),
)


class ConfigManager:
    """配置管理类，负责读写YAML配置文件"""

    def __init__(self, config_file: str | None = None):
        self.config_file = config_file or DEFAULT_CONFIG_PATH
        self.default_config = {
            "mqtt": {
                "ip": _env_or_default("INDOOR_MQTT_IP", "localhost"),
                "port": _env_or_default("INDOOR_MQTT_PORT", 1883, int),
                "uplink_topic": _env_or_default("INDOOR_MQTT_UPLINK_TOPIC", "/device/indoor/{deviceId}"),
                "downlink_topic": _env_or_default("INDOOR_MQTT_DOWNLINK_TOPIC", "/device/blueTooth/station/+"),
            },
            "rssi_model": {
                "tx_power": _env_or_default("INDOOR_RSSI_TX_POWER", -59.0, float),
                "path_loss_exponent": _env_or_default("INDOOR_RSSI_PATH_LOSS", 4.0, float),
            },
            "engine": {
                "min_distance": _env_or_default("INDOOR_MIN_DISTANCE", 0.1, float),
                "max_relevant_distance": _env_or_default("INDOOR_MAX_RELEVANT_DISTANCE", 50.0, float),
                "weight_power": _env_or_default("INDOOR_WEIGHT_POWER", 2, int),
                "single_beacon_policy": _env_or_default("INDOOR_SINGLE_BEACON_POLICY", "hold"),
                "floor_strategy": _env_or_default("INDOOR_FLOOR_STRATEGY", "closest"),
                "prefer_reported_distance": _env_or_default(
                    "INDOOR_PREFER_REPORTED_DISTANCE", False, _as_bool
                ),
                "initial_latitude": _env_or_default("INDOOR_INITIAL_LATITUDE", 52.2204685, float),
                "initial_longitude": _env_or_default("INDOOR_INITIAL_LONGITUDE", 21.0101522, float),
            },
            "paths": {
                "catalog_files": _env_or_default(
                    "INDOOR_PATH_CATALOG",
                    [os.path.join(".", "beacons", "beacons.json")],
                    _as_list,
                ),
            },
        }
        self.load_config()

    def load_config(self) -> None:
        """加载配置文件，如果不存在则创建默认配置"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r", encoding="utf-8") as f:
                    self.config = yaml.safe_load(f) or {}
                self._merge_default_config()
            else:
                self.config = self.default_config.copy()
                self.save_config()
        except Exception as e:
            # 发生异常时回退到默认配置
            logger.warning("读取配置文件失败，使用默认配置: %s", e)
            self.config = self.default_config.copy()
            self.save_config()

    def _merge_default_config(self) -> None:
        def merge_dict(default, current):
            for key, value in default.items():
                if key not in current:
                    current[key] = value
                elif isinstance(value, dict) and isinstance(current[key], dict):
                    merge_dict(value, current[key])

        merge_dict(self.default_config, self.config)

    def save_config(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.config_file) or ".", exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as f:
                yaml.dump(
                    self.config,
                    f,
                    default_flow_style=False,
                    allow_unicode=True,
                    indent=2,
                )
        except Exception as e:
            # 保存失败不影响运行
            logger.warning("保存配置文件失败: %s", e)

    # ---------- Accessors ----------
    def get_mqtt_config(self):
        return self.config["mqtt"]

    def get_rssi_model_config(self):
        return self.config["rssi_model"]

    def get_engine_config(self):
        return self.config["engine"]

    def get_paths(self):
        return self.config.get("paths", {})

    def get_catalog_files(self) -> List[str]:
        files = self.get_paths().get("catalog_files", [])
        if isinstance(files, str):
            return [files]
        return list(files)

    def get_calibration_model(self) -> CalibrationModel:
        return CalibrationModel.from_config(self.get_rssi_model_config())

    def get_engine_settings(self) -> EngineSettings:
        return EngineSettings.from_config(self.get_engine_config())

    def set_rssi_model_config(self, tx_power: float, path_loss_exponent: float):
        self.config["rssi_model"]["tx_power"] = tx_power
        self.config["rssi_model"]["path_loss_exponent"] = path_loss_exponent
        self.save_config()
