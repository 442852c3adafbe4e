"""Cliente MQTT (paho) para los topics de los Raspberry Pi.

paho entrega los mensajes en su propio hilo de red; cada mensaje se
reprograma en el event loop con run_coroutine_threadsafe para que el
estado compartido (baseline, umbrales, dispositivos) solo se toque
desde un hilo.
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import Future
from typing import Optional

import paho.mqtt.client as mqtt

from ..ingest.messages import SUBSCRIPTIONS
from .handler import BrokerMessageHandler

logger = logging.getLogger(__name__)


class MqttTelemetryClient:
    """Suscriptor MQTT que reenvía cada mensaje al BrokerMessageHandler."""

    def __init__(
        self,
        handler: BrokerMessageHandler,
        loop: asyncio.AbstractEventLoop,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "motor-ingest",
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"

        self._handler = handler
        self._loop = loop
        self._client: Optional[mqtt.Client] = None
        self._connected = False
        self._received = 0

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def received(self) -> int:
        return self._received

    def status(self) -> dict:
        return {"mqtt_status": "connected" if self._connected else "disconnected"}

    def start(self) -> None:
        """Conecta en background; paho reintenta la conexión por su cuenta."""
        self._client = mqtt.Client(
            client_id=self.client_id,
            protocol=mqtt.MQTTv311,
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        )
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_message = self._on_message

        if self.username and self.password:
            self._client.username_pw_set(self.username, self.password)

        logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
        self._client.connect_async(self.broker_host, self.broker_port, keepalive=60)
        self._client.loop_start()

    def stop(self) -> None:
        if self._client is None:
            return
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.warning("[MQTT] Error stopping: %s", e)
        self._connected = False
        logger.info("[MQTT] Stopped. received=%d dropped=%d", self._received, self._handler.dropped)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected = True
            logger.info("[MQTT] Connected to broker")
            for topic in SUBSCRIPTIONS:
                client.subscribe(topic, qos=1)
                logger.info("[MQTT] Subscribed to %s", topic)
        else:
            self._connected = False
            logger.error("[MQTT] Connection failed: rc=%s", reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        logger.warning("[MQTT] Disconnected (rc=%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        self._received += 1
        future = asyncio.run_coroutine_threadsafe(
            self._handler.handle(msg.topic, msg.payload),
            self._loop,
        )
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("[MQTT] Handler failed: %s", error)
