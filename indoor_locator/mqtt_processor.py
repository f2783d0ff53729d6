from __future__ import annotations

import json
import logging
import threading
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import paho.mqtt.client as mqtt
from paho.mqtt.client import MQTTMessage

from .config_manager import ConfigManager
from .dispatcher import BatchDispatcher
from .engine import ScanSession
from .models import BeaconRecord, EngineSnapshot, Observation, ScanRecord


logger = logging.getLogger(__name__)


class MQTTDataProcessor:
    """
    MQTT 观测源：订阅扫描端上报，按设备分发到各自的 ScanSession，
    并将每个快照以 JSON 发布到 uplink 主题
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        catalog: Mapping[str, BeaconRecord],
        advisories: Sequence[str] = (),
    ):
        self.lock = threading.Lock()
        self.config_manager = config_manager
        self.catalog = catalog
        self.advisories = list(advisories)
        self.model = config_manager.get_calibration_model()
        self.settings = config_manager.get_engine_settings()

        # 每个设备独立的扫描会话
        self.sessions: Dict[str, ScanSession] = {}
        self.connected = False
        self.client: Optional[mqtt.Client] = None
        self.dispatcher = BatchDispatcher(self._handle_batch)

    # ---------- Sessions ----------
    def get_session(self, device_id: str) -> ScanSession:
        with self.lock:
            session = self.sessions.get(device_id)
            if session is None:
                session = ScanSession(self.catalog, self.model, self.settings, self.advisories)
                session.subscribe(lambda snapshot, d=device_id: self.publish_snapshot(d, snapshot))
                self.sessions[device_id] = session
                logger.info("为设备 %s 创建扫描会话", device_id)
                if self.connected:
                    session.start(ready=True)
            return session

    def _handle_batch(self, item: Tuple[str, List[Observation]]) -> None:
        device_id, batch = item
        self.get_session(device_id).on_observation_batch(batch)

    def _set_ready(self, ready: bool, reason: str = "") -> None:
        with self.lock:
            self.connected = ready
            sessions = list(self.sessions.values())
        for session in sessions:
            if ready:
                if not session.scanning:
                    session.start(ready=True)
            else:
                session.interrupt(reason)

    # ---------- Output ----------
    def publish_snapshot(self, device_id: str, snapshot: EngineSnapshot) -> None:
        if self.client is None or not self.connected:
            return
        mqtt_config = self.config_manager.get_mqtt_config()
        topic = mqtt_config.get("uplink_topic", "/device/indoor/{deviceId}")
        payload = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        self.client.publish(topic.format(deviceId=device_id), payload)

    # ---------- MQTT ----------
    def start_mqtt_client(self):
        self.dispatcher.start()
        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        self.client.on_connect = self.on_connect
        self.client.on_disconnect = self.on_disconnect
        self.client.on_message = self.on_message
        try:
            mqtt_config = self.config_manager.get_mqtt_config()
            self.client.connect(mqtt_config["ip"], mqtt_config["port"], 60)
            logger.info("连接到MQTT服务器 %s:%s", mqtt_config["ip"], mqtt_config["port"])
            self.client.loop_forever()
        except Exception as e:
            logger.error("MQTT连接错误: %s", e)

    def stop_mqtt_client(self):
        with self.lock:
            sessions = list(self.sessions.values())
        for session in sessions:
            session.stop()
        if self.client:
            try:
                self.client.disconnect()
                self.client.loop_stop()
                logger.info("MQTT连接已断开")
            except Exception as e:
                logger.error("断开MQTT连接时出错: %s", e)
        self.dispatcher.stop(timeout=5.0)

    # ---------- MQTT handlers ----------
    def on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            logger.info("成功连接到MQTT服务器")
            mqtt_config = self.config_manager.get_mqtt_config()
            topic = mqtt_config.get("downlink_topic", "/device/blueTooth/station/+")
            client.subscribe(topic)
            logger.info("已订阅主题: %s", topic)
            self._set_ready(True)
        else:
            logger.error("连接失败，返回码: %s", reason_code)

    def on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        logger.warning("MQTT连接断开，返回码: %s", reason_code)
        self._set_ready(False, f"MQTT连接断开: {reason_code}")

    def on_message(self, client, userdata, msg: MQTTMessage):
        try:
            payload = msg.payload.decode("utf-8")
            record = ScanRecord.parse(payload)
            if record is None:
                logger.warning("消息解析失败: %s", payload)
                return
            self.dispatcher.submit((record.device_id, list(record)))
        except Exception as e:
            logger.exception("处理消息时出错: %s", e)
