from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class BeaconRecord:
    """参考信标（来自信标目录，加载后只读）"""

    id: str
    latitude: float
    longitude: float
    floor_id: int
    building: Optional[str] = None
    tx_power: Optional[int] = None
    number_on_floor: Optional[int] = None
    room_placed: bool = False
    near_floor_change: bool = False


@dataclass(frozen=True)
class Observation:
    beacon_id: str
    rssi: int
    reported_distance: Optional[float] = None


@dataclass(frozen=True)
class CalibrationModel:
    # 1米处的RSSI值 (dBm)
    tx_power_at_1m: float = -59.0
    # 路径损耗指数
    path_loss_exponent: float = 4.0

    @classmethod
    def from_config(cls, rssi_config: Mapping[str, Any]) -> "CalibrationModel":
        return cls(
            tx_power_at_1m=float(rssi_config.get("tx_power", -59.0)),
            path_loss_exponent=float(rssi_config.get("path_loss_exponent", 4.0)),
        )


class BeaconTag(Enum):
    DETECTED = "detected"
    SAME_FLOOR = "same_floor"
    OTHER = "other"


class ScanState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class FloorStrategy(Enum):
    CLOSEST = "closest"
    MAJORITY = "majority"


class SingleBeaconPolicy(Enum):
    HOLD = "hold"
    SNAP = "snap"


class NoticeKind(Enum):
    INTERRUPTED = "interrupted"
    CATALOG_ADVISORY = "catalog_advisory"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    message: str


class BeaconClassification(Mapping[str, BeaconTag]):
    """
    信标状态划分：目录中每个信标恰好对应一个标签。
    创建后不可修改。
    """

    def __init__(self, tags: Mapping[str, BeaconTag]):
        self._tags: Mapping[str, BeaconTag] = MappingProxyType(dict(tags))

    @classmethod
    def all_other(cls, beacon_ids: Iterable[str]) -> "BeaconClassification":
        return cls({beacon_id: BeaconTag.OTHER for beacon_id in beacon_ids})

    def __getitem__(self, beacon_id: str) -> BeaconTag:
        return self._tags[beacon_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tags)

    def __len__(self) -> int:
        return len(self._tags)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._tags) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._tags.items()))

    def __repr__(self) -> str:
        return (
            f"BeaconClassification(detected={sorted(self.detected)}, "
            f"same_floor={sorted(self.same_floor)}, other={len(self.other)})"
        )

    def _with_tag(self, tag: BeaconTag) -> FrozenSet[str]:
        return frozenset(k for k, v in self._tags.items() if v is tag)

    @property
    def detected(self) -> FrozenSet[str]:
        return self._with_tag(BeaconTag.DETECTED)

    @property
    def same_floor(self) -> FrozenSet[str]:
        return self._with_tag(BeaconTag.SAME_FLOOR)

    @property
    def other(self) -> FrozenSet[str]:
        return self._with_tag(BeaconTag.OTHER)


@dataclass(frozen=True)
class ClassificationResult:
    detected: FrozenSet[str]
    floor: Optional[int]
    classification: BeaconClassification
    # 过滤、去重后每个信标的估算距离（米）
    distances: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class EngineSettings:
    min_distance: float = 0.1
    max_relevant_distance: float = 50.0
    weight_power: int = 2
    single_beacon_policy: SingleBeaconPolicy = SingleBeaconPolicy.HOLD
    floor_strategy: FloorStrategy = FloorStrategy.CLOSEST
    prefer_reported_distance: bool = False
    initial_position: Position = Position(latitude=52.2204685, longitude=21.0101522)

    @classmethod
    def from_config(cls, engine_config: Mapping[str, Any]) -> "EngineSettings":
        defaults = cls()
        return cls(
            min_distance=float(engine_config.get("min_distance", defaults.min_distance)),
            max_relevant_distance=float(
                engine_config.get("max_relevant_distance", defaults.max_relevant_distance)
            ),
            weight_power=int(engine_config.get("weight_power", defaults.weight_power)),
            single_beacon_policy=SingleBeaconPolicy(
                engine_config.get("single_beacon_policy", defaults.single_beacon_policy.value)
            ),
            floor_strategy=FloorStrategy(
                engine_config.get("floor_strategy", defaults.floor_strategy.value)
            ),
            prefer_reported_distance=bool(
                engine_config.get("prefer_reported_distance", defaults.prefer_reported_distance)
            ),
            initial_position=Position(
                latitude=float(
                    engine_config.get("initial_latitude", defaults.initial_position.latitude)
                ),
                longitude=float(
                    engine_config.get("initial_longitude", defaults.initial_position.longitude)
                ),
            ),
        )


@dataclass(frozen=True)
class EngineSnapshot:
    """
    引擎输出快照：每次更新整体替换，交给展示层后只读
    """

    position: Position
    floor: Optional[int]
    classification: BeaconClassification
    scanning: bool
    notice: Optional[Notice] = None
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "sequence": self.sequence,
            "scanning": self.scanning,
            "latitude": self.position.latitude,
            "longitude": self.position.longitude,
            "floor": self.floor,
            "detected": sorted(self.classification.detected),
            "same_floor": sorted(self.classification.same_floor),
            "other": sorted(self.classification.other),
        }
        if self.notice is not None:
            d["notice"] = {"kind": self.notice.kind.value, "message": self.notice.message}
        return d


@dataclass(frozen=True)
class ScanRecord:
    """
    扫描端上报的一批观测
    格式：mac,rssi[,distance];mac,rssi[,distance];...;设备ID
    """

    device_id: str
    observations: List[Observation]

    def __len__(self) -> int:
        return len(self.observations)

    def __iter__(self) -> Iterator[Observation]:
        return iter(self.observations)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @classmethod
    def parse(cls, data_str: str) -> Optional["ScanRecord"]:
        parts = data_str.strip().split(";")
        if not parts or len(parts) < 2 or not parts[-1].strip():
            return None
        device_id = parts[-1].strip()
        observations: List[Observation] = []
        for item in parts[:-1]:
            fields = [f.strip() for f in item.split(",")]
            if len(fields) not in (2, 3) or not fields[0]:
                continue
            try:
                rssi = int(float(fields[1]))
                distance = float(fields[2]) if len(fields) == 3 and fields[2] else None
            except (ValueError, OverflowError):
                continue
            observations.append(
                Observation(beacon_id=fields[0], rssi=rssi, reported_distance=distance)
            )
        return cls(device_id=device_id, observations=observations)
