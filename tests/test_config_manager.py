import yaml

from indoor_locator.config_manager import ConfigManager
from indoor_locator.models import CalibrationModel, FloorStrategy, SingleBeaconPolicy


def test_missing_file_writes_defaults(tmp_path) -> None:
    path = tmp_path / "config" / "config.yaml"
    config = ConfigManager(str(path))
    assert path.exists()
    assert config.get_calibration_model() == CalibrationModel(-59.0, 4.0)
    settings = config.get_engine_settings()
    assert settings.min_distance == 0.1
    assert settings.max_relevant_distance == 50.0
    assert settings.weight_power == 2
    assert settings.single_beacon_policy is SingleBeaconPolicy.HOLD
    assert settings.floor_strategy is FloorStrategy.CLOSEST


def test_partial_file_is_merged_with_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.dump({"rssi_model": {"path_loss_exponent": 3.5}, "engine": {"floor_strategy": "majority"}}),
        encoding="utf-8",
    )
    config = ConfigManager(str(path))
    model = config.get_calibration_model()
    assert model.path_loss_exponent == 3.5
    assert model.tx_power_at_1m == -59.0
    assert config.get_engine_settings().floor_strategy is FloorStrategy.MAJORITY
    assert config.get_mqtt_config()["port"] == 1883


def test_broken_file_falls_back_to_defaults(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("rssi_model: [unclosed", encoding="utf-8")
    config = ConfigManager(str(path))
    assert config.get_calibration_model().path_loss_exponent == 4.0


def test_environment_overrides(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("INDOOR_RSSI_PATH_LOSS", "2.5")
    monkeypatch.setenv("INDOOR_PATH_CATALOG", "a.txt, b.csv")
    config = ConfigManager(str(tmp_path / "config.yaml"))
    assert config.get_calibration_model().path_loss_exponent == 2.5
    assert config.get_catalog_files() == ["a.txt", "b.csv"]


def test_set_rssi_model_is_saved(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    config = ConfigManager(str(path))
    config.set_rssi_model_config(-65.0, 3.0)
    reloaded = ConfigManager(str(path))
    assert reloaded.get_calibration_model() == CalibrationModel(-65.0, 3.0)
