import io
import json

from indoor_locator.cli import iter_recorded_batches, main, replay
from indoor_locator.engine import ScanSession


RECORDING = """batch,beacon_id,rssi,distance
1,A,-59,
1,B,-69,
2,Z,-70,
3,C,-60,1.2
"""


def test_iter_recorded_batches(tmp_path) -> None:
    path = tmp_path / "rec.csv"
    path.write_text(RECORDING, encoding="utf-8")
    batches = list(iter_recorded_batches(str(path)))
    assert [[o.beacon_id for o in b] for b in batches] == [["A", "B"], ["Z"], ["C"]]
    assert batches[0][0].reported_distance is None
    assert batches[2][0].reported_distance == 1.2


def test_replay_prints_one_line_per_snapshot(tmp_path, catalog, model) -> None:
    path = tmp_path / "rec.csv"
    path.write_text(RECORDING, encoding="utf-8")
    out = io.StringIO()
    snapshots = replay(ScanSession(catalog, model), str(path), out)

    lines = [json.loads(line) for line in out.getvalue().splitlines()]
    # start, three batches, stop
    assert len(lines) == len(snapshots) == 5
    assert lines[1]["detected"] == ["A", "B"]
    assert lines[1]["floor"] == 1
    assert lines[2]["detected"] == []
    assert lines[2]["floor"] == 1
    assert lines[3]["floor"] == 2
    assert lines[-1]["scanning"] is False


def test_catalog_command(tmp_path, monkeypatch, capsys) -> None:
    monkeypatch.delenv("INDOOR_PATH_CATALOG", raising=False)
    beacons = tmp_path / "beacons.csv"
    beacons.write_text("mac,latitude,longitude,floor_id\nA,1,1,1\nB,2,2,2\n", encoding="utf-8")
    config = tmp_path / "config.yaml"
    config.write_text(f"paths:\n  catalog_files:\n    - {beacons}\n", encoding="utf-8")
    assert main(["--config", str(config), "catalog"]) == 0
    assert "2" in capsys.readouterr().out
