import pytest

from indoor_locator.models import (
    BeaconClassification,
    BeaconTag,
    EngineSettings,
    EngineSnapshot,
    Notice,
    NoticeKind,
    Position,
    ScanRecord,
    SingleBeaconPolicy,
)


def test_parse_scan_record() -> None:
    record = ScanRecord.parse("AA:01,-60;AA:02,-75,3.5;bad;AA:03,x;42")
    assert record.device_id == "42"
    assert [o.beacon_id for o in record] == ["AA:01", "AA:02"]
    assert record.observations[0].reported_distance is None
    assert record.observations[1].rssi == -75
    assert record.observations[1].reported_distance == 3.5


def test_parse_rejects_payload_without_device() -> None:
    assert ScanRecord.parse("no-separator") is None
    assert ScanRecord.parse("AA:01,-60;") is None


def test_parse_empty_record() -> None:
    record = ScanRecord.parse(";7")
    assert record.device_id == "7"
    assert record.is_empty


def test_classification_is_read_only() -> None:
    tags = {"A": BeaconTag.DETECTED, "B": BeaconTag.OTHER}
    classification = BeaconClassification(tags)
    tags["A"] = BeaconTag.OTHER
    assert classification["A"] is BeaconTag.DETECTED
    with pytest.raises(TypeError):
        classification["B"] = BeaconTag.SAME_FLOOR  # type: ignore[index]


def test_snapshot_to_dict() -> None:
    snapshot = EngineSnapshot(
        position=Position(1.0, 2.0),
        floor=3,
        classification=BeaconClassification(
            {"B": BeaconTag.SAME_FLOOR, "A": BeaconTag.DETECTED, "C": BeaconTag.OTHER}
        ),
        scanning=False,
        notice=Notice(NoticeKind.INTERRUPTED, "location disabled"),
        sequence=5,
    )
    d = snapshot.to_dict()
    assert d["detected"] == ["A"]
    assert d["same_floor"] == ["B"]
    assert d["other"] == ["C"]
    assert d["floor"] == 3
    assert d["notice"] == {"kind": "interrupted", "message": "location disabled"}


def test_engine_settings_from_config() -> None:
    settings = EngineSettings.from_config(
        {"single_beacon_policy": "snap", "initial_latitude": 1.0, "initial_longitude": 2.0}
    )
    assert settings.single_beacon_policy is SingleBeaconPolicy.SNAP
    assert settings.initial_position == Position(1.0, 2.0)
    assert settings.weight_power == 2
