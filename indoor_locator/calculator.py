from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np

from .models import CalibrationModel, Observation, Position, SingleBeaconPolicy


# (纬度, 经度, 距离)
Sample = Tuple[float, float, float]

DEFAULT_MIN_DISTANCE = 0.1


def estimate_distance(rssi: float, model: CalibrationModel) -> float:
    """
    基于对数距离路径损耗模型，由RSSI估算距离 (单位: 米)
    path_loss_exponent 为 0 时返回 inf，由调用方丢弃该读数
    """
    if model.path_loss_exponent == 0:
        return math.inf
    try:
        rssi = float(rssi)
    except (TypeError, ValueError):
        return math.inf
    if not math.isfinite(rssi):
        return math.inf
    exponent = (model.tx_power_at_1m - rssi) / (10.0 * model.path_loss_exponent)
    try:
        return math.pow(10, exponent)
    except OverflowError:
        return math.inf


def observation_distance(
    observation: Observation, model: CalibrationModel, prefer_reported: bool = False
) -> float:
    """优先使用扫描端上报的距离（需开启且为有限非负数），否则按RSSI估算。"""
    reported = observation.reported_distance
    if prefer_reported and reported is not None:
        try:
            reported = float(reported)
        except (TypeError, ValueError):
            reported = math.nan
        if math.isfinite(reported) and reported >= 0:
            return reported
    return estimate_distance(observation.rssi, model)


def estimate_position(
    samples: Sequence[Sample],
    previous: Position,
    min_distance: float = DEFAULT_MIN_DISTANCE,
    power: int = 2,
    single_beacon_policy: SingleBeaconPolicy = SingleBeaconPolicy.HOLD,
) -> Position:
    """
    反距离（平方）加权质心：
    - 0 个样本：返回上一次位置
    - 1 个样本：HOLD 保持上一次位置（单个读数无法判断方向），SNAP 直接取该信标位置
    - >=2 个样本：weight = 1 / max(d, min_distance) ** power
    """
    usable = [
        (lat, lon, d)
        for lat, lon, d in samples
        if math.isfinite(lat) and math.isfinite(lon) and math.isfinite(d) and d >= 0
    ]
    if not usable:
        return previous

    if len(usable) == 1:
        if single_beacon_policy is SingleBeaconPolicy.SNAP:
            lat, lon, _ = usable[0]
            return Position(latitude=lat, longitude=lon)
        return previous

    data = np.asarray(usable, dtype=float)
    floor = max(float(min_distance), np.finfo(float).tiny)
    distances = np.maximum(data[:, 2], floor)
    weights = 1.0 / np.power(distances, power)

    total_weight = float(weights.sum())
    if not math.isfinite(total_weight) or total_weight <= 0:
        # 权重溢出，无法加权
        return previous

    lat = float(np.dot(data[:, 0], weights) / total_weight)
    lon = float(np.dot(data[:, 1], weights) / total_weight)
    return Position(latitude=lat, longitude=lon)
