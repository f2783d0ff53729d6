from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, List, Mapping, Optional, Sequence

from .calculator import estimate_position
from .classifier import classify
from .models import (
    BeaconClassification,
    BeaconRecord,
    CalibrationModel,
    EngineSettings,
    EngineSnapshot,
    Notice,
    NoticeKind,
    Observation,
    Position,
    ScanState,
)


logger = logging.getLogger(__name__)

SnapshotListener = Callable[[EngineSnapshot], None]


class ScanSession:
    """
    扫描会话状态机（IDLE / SCANNING）

    所有状态变更与批次处理都在同一把锁内串行执行；
    current_snapshot() 只读取不可变快照引用，不加锁。
    """

    def __init__(
        self,
        catalog: Mapping[str, BeaconRecord],
        model: Optional[CalibrationModel] = None,
        settings: Optional[EngineSettings] = None,
        advisories: Sequence[str] = (),
    ):
        self.lock = threading.RLock()
        self.catalog: Mapping[str, BeaconRecord] = dict(catalog)
        self.model = model or CalibrationModel()
        self.settings = settings or EngineSettings()
        self._state = ScanState.IDLE
        self._listeners: List[SnapshotListener] = []

        notice = None
        messages = list(advisories)
        if not self.catalog:
            messages.append("信标目录为空，无法定位")
        if messages:
            for message in messages:
                logger.warning("信标目录告警: %s", message)
            notice = Notice(kind=NoticeKind.CATALOG_ADVISORY, message="; ".join(messages))

        self._snapshot = EngineSnapshot(
            position=self.settings.initial_position,
            floor=None,
            classification=BeaconClassification.all_other(self.catalog),
            scanning=False,
            notice=notice,
        )
        logger.info("扫描会话已创建，信标数: %s", len(self.catalog))

    # ---------- Accessors ----------
    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def scanning(self) -> bool:
        return self._state is ScanState.SCANNING

    def current_snapshot(self) -> EngineSnapshot:
        return self._snapshot

    # ---------- Listeners ----------
    def subscribe(self, listener: SnapshotListener) -> None:
        with self.lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self.lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _publish(
        self,
        *,
        position: Optional[Position] = None,
        floor: Optional[int] = None,
        classification: Optional[BeaconClassification] = None,
        notice: Optional[Notice] = None,
    ) -> EngineSnapshot:
        # 调用方已持有锁
        previous = self._snapshot
        snapshot = EngineSnapshot(
            position=previous.position if position is None else position,
            floor=floor,
            classification=previous.classification if classification is None else classification,
            scanning=self.scanning,
            notice=notice,
            sequence=previous.sequence + 1,
        )
        self._snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.exception("快照回调出错: %s", e)
        return snapshot

    # ---------- Lifecycle ----------
    def start(self, ready: bool) -> bool:
        with self.lock:
            if self._state is ScanState.SCANNING:
                logger.warning("已在扫描中，忽略 start()")
                return False
            if not ready:
                logger.warning("蓝牙或定位不可用，无法开始扫描")
                return False
            self._state = ScanState.SCANNING
            logger.info("开始扫描信标")
            self._publish(floor=self._snapshot.floor)
            return True

    def stop(self) -> None:
        with self.lock:
            self._leave_scanning(notice=None)

    def interrupt(self, reason: str) -> None:
        with self.lock:
            notice = Notice(kind=NoticeKind.INTERRUPTED, message=reason)
            if self._leave_scanning(notice=notice):
                logger.warning("扫描被中断: %s", reason)

    def _leave_scanning(self, notice: Optional[Notice]) -> bool:
        if self._state is not ScanState.SCANNING:
            return False
        self._state = ScanState.IDLE
        logger.info("停止扫描信标")
        # 位置与楼层保留为最后已知值
        self._publish(
            floor=self._snapshot.floor,
            classification=BeaconClassification.all_other(self.catalog),
            notice=notice,
        )
        return True

    # ---------- Observations ----------
    def on_observation_batch(self, batch: Iterable[Observation]) -> Optional[EngineSnapshot]:
        """处理一批观测；非扫描状态下直接丢弃（stop() 之后迟到的回调）。"""
        with self.lock:
            if self._state is not ScanState.SCANNING:
                logger.debug("未在扫描，丢弃观测批次")
                return None

            settings = self.settings
            previous = self._snapshot
            result = classify(
                batch,
                self.catalog,
                self.model,
                previous.floor,
                max_relevant_distance=settings.max_relevant_distance,
                strategy=settings.floor_strategy,
                prefer_reported=settings.prefer_reported_distance,
            )

            samples = [
                (self.catalog[k].latitude, self.catalog[k].longitude, result.distances[k])
                for k in sorted(result.detected)
            ]
            position = estimate_position(
                samples,
                previous.position,
                min_distance=settings.min_distance,
                power=settings.weight_power,
                single_beacon_policy=settings.single_beacon_policy,
            )

            if result.floor != previous.floor:
                logger.info("楼层变化: %s -> %s", previous.floor, result.floor)
            logger.debug(
                "位置更新: (%.7f, %.7f), 楼层: %s, 检测到信标数: %s",
                position.latitude,
                position.longitude,
                result.floor,
                len(result.detected),
            )
            return self._publish(
                position=position,
                floor=result.floor,
                classification=result.classification,
            )
