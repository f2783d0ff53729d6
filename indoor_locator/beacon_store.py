from __future__ import annotations

import json
import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .config_manager import ConfigManager
from .models import BeaconRecord


logger = logging.getLogger(__name__)

# JSON 资源文件字段 -> 内部列名
JSON_COLUMNS = {
    "beaconUid": "beacon_id",
    "latitude": "latitude",
    "longitude": "longitude",
    "floorId": "floor_id",
    "buildingShortName": "building",
    "txPowerToSet": "tx_power",
    "numberOnFloor": "number_on_floor",
    "roomPlaced": "room_placed",
    "nearFloorChange": "near_floor_change",
}

REQUIRED_COLUMNS = ["beacon_id", "latitude", "longitude", "floor_id"]
OPTIONAL_COLUMNS = ["building", "tx_power", "number_on_floor", "room_placed", "near_floor_change"]


def _as_bool(value) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return False
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


class CatalogLoadError(Exception):
    """所有信标目录文件都无法读取"""


class BeaconCatalog:
    """参考信标目录的加载（pandas，支持 JSON 资源文件与 CSV）"""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self._df = pd.DataFrame(columns=REQUIRED_COLUMNS + OPTIONAL_COLUMNS).set_index("beacon_id")
        self._config = config_manager
        self.advisories: List[str] = []

    # ---- Utils ----
    @staticmethod
    def _read_file(path: str) -> pd.DataFrame:
        if path.lower().endswith(".csv"):
            df = pd.read_csv(path, dtype=str)
            if "beacon_id" not in df.columns and "mac" in df.columns:
                df = df.rename(columns={"mac": "beacon_id"})
            return df
        # 其余按 JSON 资源文件处理：{"items": [...], "totalPages": ...}
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
        items = payload.get("items", []) if isinstance(payload, dict) else payload
        return pd.DataFrame(items).rename(columns=JSON_COLUMNS)

    def _normalize_df(self, df: pd.DataFrame, source: str) -> pd.DataFrame:
        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise KeyError(f"{source} 缺少列: {', '.join(missing)}")
        df = df.copy()
        for col in OPTIONAL_COLUMNS:
            if col not in df.columns:
                df[col] = None
        for col in ["latitude", "longitude", "floor_id", "tx_power", "number_on_floor"]:
            # 转为数值，非法值为 NaN
            df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)
        for col in ["tx_power", "number_on_floor"]:
            # inf 等非有限值视为缺失
            df[col] = df[col].where(np.isfinite(df[col]))

        valid = df[REQUIRED_COLUMNS].notna().all(axis=1)
        valid &= df["latitude"].abs().le(90) & df["longitude"].abs().le(180)
        # 楼层必须是有限整数
        valid &= np.isfinite(df["floor_id"]) & (df["floor_id"] % 1 == 0)
        dropped = int((~valid).sum())
        if dropped:
            self._advise(f"{source}: 丢弃 {dropped} 条无效信标记录")
        df = df[valid]

        df = df[REQUIRED_COLUMNS + OPTIONAL_COLUMNS]
        df = df.astype({"beacon_id": str}).drop_duplicates(subset=["beacon_id"], keep="last")
        df = df.set_index("beacon_id")
        df.index.name = "beacon_id"
        return df

    def _advise(self, message: str) -> None:
        logger.warning("%s", message)
        self.advisories.append(message)

    # ---- Load ----
    def load(self, paths: Optional[Iterable[str]] = None, strict: bool = False) -> "BeaconCatalog":
        """
        依次加载多个目录文件并合并；单个文件失败时记录告警并跳过。
        strict=True 且所有文件都失败时抛出 CatalogLoadError。
        """
        if paths is None:
            paths = self._config.get_catalog_files() if self._config else []
        paths = list(paths)
        self.advisories = []

        frames: List[pd.DataFrame] = []
        for path in paths:
            try:
                if not os.path.exists(path):
                    raise FileNotFoundError(path)
                frames.append(self._normalize_df(self._read_file(path), os.path.basename(path)))
            except Exception as e:
                self._advise(f"加载信标文件出错 {path}: {e}")

        if not frames:
            if strict:
                raise CatalogLoadError(f"无法加载任何信标文件: {paths}")
            self._advise("未加载到任何信标")
            return self

        df = pd.concat(frames)
        self._df = df[~df.index.duplicated(keep="last")].sort_index()
        logger.info("已加载 %s 个参考信标", len(self._df))
        return self

    # ---- Accessors ----
    def __len__(self) -> int:
        return len(self._df)

    def has(self, beacon_id: str) -> bool:
        return beacon_id in self._df.index

    @staticmethod
    def _to_record(beacon_id: str, row: pd.Series) -> BeaconRecord:
        def optional_int(value) -> Optional[int]:
            return None if pd.isna(value) else int(value)

        building = row.at["building"]
        return BeaconRecord(
            id=beacon_id,
            latitude=float(row.at["latitude"]),
            longitude=float(row.at["longitude"]),
            floor_id=int(row.at["floor_id"]),
            building=None if pd.isna(building) else str(building),
            tx_power=optional_int(row.at["tx_power"]),
            number_on_floor=optional_int(row.at["number_on_floor"]),
            room_placed=_as_bool(row.at["room_placed"]),
            near_floor_change=_as_bool(row.at["near_floor_change"]),
        )

    def get(self, beacon_id: str) -> Optional[BeaconRecord]:
        if beacon_id not in self._df.index:
            return None
        return self._to_record(beacon_id, self._df.loc[beacon_id])

    def all(self) -> Dict[str, BeaconRecord]:
        return {str(k): self._to_record(str(k), row) for k, row in self._df.iterrows()}

    def floors(self) -> Dict[int, int]:
        """各楼层信标数量"""
        if self._df.empty:
            return {}
        counts = self._df["floor_id"].astype(int).value_counts().sort_index()
        return {int(floor): int(n) for floor, n in counts.items()}


def load_catalog(
    paths: Iterable[str], strict: bool = False
) -> Tuple[Dict[str, BeaconRecord], List[str]]:
    """一次性加载信标目录，返回 (id -> BeaconRecord, 告警列表)"""
    catalog = BeaconCatalog().load(paths, strict=strict)
    return catalog.all(), list(catalog.advisories)
