from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, Mapping, Optional

from .calculator import observation_distance
from .models import (
    BeaconClassification,
    BeaconRecord,
    BeaconTag,
    CalibrationModel,
    ClassificationResult,
    FloorStrategy,
    Observation,
)

DEFAULT_MAX_RELEVANT_DISTANCE = 50.0


def _relevant_distances(
    observations: Iterable[Observation],
    catalog: Mapping[str, BeaconRecord],
    model: CalibrationModel,
    max_relevant_distance: float,
    prefer_reported: bool,
) -> Dict[str, float]:
    """过滤未知信标与超出范围的读数；同一信标多次出现时保留最近的一次。"""
    distances: Dict[str, float] = {}
    for obs in observations:
        if obs.beacon_id not in catalog:
            continue
        d = observation_distance(obs, model, prefer_reported)
        # NaN 与 inf 都不满足该条件
        if not (0 <= d <= max_relevant_distance):
            continue
        if obs.beacon_id not in distances or d < distances[obs.beacon_id]:
            distances[obs.beacon_id] = d
    return distances


def _closest_floor(
    distances: Mapping[str, float], catalog: Mapping[str, BeaconRecord]
) -> Optional[int]:
    if not distances:
        return None
    # 距离相同时按 id 排序，保证结果确定
    closest = min(distances, key=lambda beacon_id: (distances[beacon_id], beacon_id))
    return catalog[closest].floor_id


def _majority_floor(
    distances: Mapping[str, float], catalog: Mapping[str, BeaconRecord]
) -> Optional[int]:
    if not distances:
        return None
    votes = Counter(catalog[beacon_id].floor_id for beacon_id in distances)
    top = max(votes.values())
    tied = {floor for floor, count in votes.items() if count == top}
    if len(tied) == 1:
        return tied.pop()
    return _closest_floor(
        {k: v for k, v in distances.items() if catalog[k].floor_id in tied}, catalog
    )


def classify(
    observations: Iterable[Observation],
    catalog: Mapping[str, BeaconRecord],
    model: CalibrationModel,
    previous_floor: Optional[int],
    max_relevant_distance: float = DEFAULT_MAX_RELEVANT_DISTANCE,
    strategy: FloorStrategy = FloorStrategy.CLOSEST,
    prefer_reported: bool = False,
) -> ClassificationResult:
    """
    楼层判定与信标状态划分（纯函数）：
    1. 过滤未知信标、超出 max_relevant_distance 的读数
    2. 候选楼层：最近信标所在楼层（MAJORITY 策略为多数楼层）
    3. 候选楼层上的存活信标标记为 DETECTED；无候选楼层时全部存活信标为 DETECTED
    4. 有候选楼层则更新当前楼层，否则沿用 previous_floor
    5. 其余与当前楼层相同的信标为 SAME_FLOOR，剩下为 OTHER
    """
    distances = _relevant_distances(
        observations, catalog, model, max_relevant_distance, prefer_reported
    )

    if strategy is FloorStrategy.MAJORITY:
        candidate = _majority_floor(distances, catalog)
    else:
        candidate = _closest_floor(distances, catalog)

    if candidate is None:
        detected = frozenset(distances)
        floor = previous_floor
    else:
        detected = frozenset(k for k in distances if catalog[k].floor_id == candidate)
        floor = candidate

    tags: Dict[str, BeaconTag] = {}
    for beacon_id, record in catalog.items():
        if beacon_id in detected:
            tags[beacon_id] = BeaconTag.DETECTED
        elif floor is not None and record.floor_id == floor:
            tags[beacon_id] = BeaconTag.SAME_FLOOR
        else:
            tags[beacon_id] = BeaconTag.OTHER

    return ClassificationResult(
        detected=detected,
        floor=floor,
        classification=BeaconClassification(tags),
        distances=dict(distances),
    )
