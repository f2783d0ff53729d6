from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from typing import Iterator, List, Optional, TextIO

import pandas as pd

from .beacon_store import BeaconCatalog
from .config_manager import ConfigManager
from .engine import ScanSession
from .models import EngineSnapshot, Observation
from .mqtt_processor import MQTTDataProcessor


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )


def _load_catalog_from_config(config: ConfigManager) -> BeaconCatalog:
    return BeaconCatalog(config).load()


def iter_recorded_batches(csv_path: str) -> Iterator[List[Observation]]:
    """读取录制的观测 CSV（batch, beacon_id, rssi[, distance]），按批次首次出现的顺序输出"""
    df = pd.read_csv(csv_path, dtype={"beacon_id": str})
    for col in ("batch", "beacon_id", "rssi"):
        if col not in df.columns:
            raise KeyError(f"录制文件缺少列: {col}")
    df["rssi"] = pd.to_numeric(df["rssi"], errors="coerce")
    has_distance = "distance" in df.columns
    if has_distance:
        df["distance"] = pd.to_numeric(df["distance"], errors="coerce")

    for _, group in df.groupby("batch", sort=False):
        batch: List[Observation] = []
        for row in group.itertuples(index=False):
            if pd.isna(row.rssi) or pd.isna(row.beacon_id):
                continue
            distance = getattr(row, "distance") if has_distance else None
            batch.append(
                Observation(
                    beacon_id=str(row.beacon_id),
                    rssi=int(row.rssi),
                    reported_distance=None if distance is None or pd.isna(distance) else float(distance),
                )
            )
        yield batch


def replay(session: ScanSession, csv_path: str, out: TextIO) -> List[EngineSnapshot]:
    snapshots: List[EngineSnapshot] = []

    def emit(snapshot: EngineSnapshot) -> None:
        snapshots.append(snapshot)
        out.write(json.dumps(snapshot.to_dict(), ensure_ascii=False) + "\n")

    session.subscribe(emit)
    try:
        if not session.start(ready=True):
            return snapshots
        for batch in iter_recorded_batches(csv_path):
            session.on_observation_batch(batch)
        session.stop()
    finally:
        session.unsubscribe(emit)
    return snapshots


def run_mqtt(args):
    config = ConfigManager(args.config)
    catalog = _load_catalog_from_config(config)
    processor = MQTTDataProcessor(config, catalog.all(), catalog.advisories)

    t = threading.Thread(target=processor.start_mqtt_client, daemon=True)
    t.start()

    # graceful shutdown
    def handle_sigint(sig, frame):
        processor.stop_mqtt_client()
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigint)
    signal.signal(signal.SIGTERM, handle_sigint)

    t.join()


def run_replay(args):
    config = ConfigManager(args.config)
    catalog = _load_catalog_from_config(config)
    session = ScanSession(
        catalog.all(),
        config.get_calibration_model(),
        config.get_engine_settings(),
        catalog.advisories,
    )
    replay(session, args.recording, sys.stdout)
    return 0


def run_catalog(args):
    config = ConfigManager(args.config)
    catalog = _load_catalog_from_config(config)
    print(f"信标总数: {len(catalog)}")
    for floor, count in catalog.floors().items():
        print(f"  楼层 {floor}: {count}")
    for message in catalog.advisories:
        print(f"  告警: {message}")
    return 0 if len(catalog) else 1


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="indoor-locator", description="Indoor beacon locator CLI")
    parser.add_argument("--config", default=None, help="配置文件路径，默认读取 ./config/config.yaml 或环境变量 INDOOR_LOCATOR_CONFIG")
    parser.add_argument("--log-level", default="INFO", help="日志级别")
    sub = parser.add_subparsers(dest="cmd")

    p_run = sub.add_parser("run", help="运行 MQTT 服务端监听")
    p_run.set_defaults(func=run_mqtt)

    p_replay = sub.add_parser("replay", help="回放录制的观测 CSV，逐行输出快照 JSON")
    p_replay.add_argument("recording", help="CSV 文件，列: batch, beacon_id, rssi[, distance]")
    p_replay.set_defaults(func=run_replay)

    p_catalog = sub.add_parser("catalog", help="加载并汇总信标目录")
    p_catalog.set_defaults(func=run_catalog)

    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    # 无子命令/无参数时默认启动服务器
    if not hasattr(args, "func"):
        return run_mqtt(args)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
