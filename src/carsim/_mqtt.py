"""Internal MQTT bridge mirroring the realtime channel on a broker."""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from carsim._constants import PLUG_CONNECTION_EVENT, SET_MOTOR_SPEED_EVENT, STATE_UPDATE_EVENT
from carsim.config import SimulatorConfig
from carsim.simulator import CarSimulator


@dataclass(frozen=True)
class MqttTopics:
    """Topic layout under a common prefix."""

    state: str
    set_motor_speed: str
    plug_connection: str

    @classmethod
    def from_prefix(cls, prefix: str) -> MqttTopics:
        base = prefix.strip("/")
        return cls(
            state=f"{base}/{STATE_UPDATE_EVENT}",
            set_motor_speed=f"{base}/{SET_MOTOR_SPEED_EVENT}",
            plug_connection=f"{base}/{PLUG_CONNECTION_EVENT}",
        )

    @property
    def commands(self) -> dict[str, str]:
        """Command topic -> event name."""
        return {
            self.set_motor_speed: SET_MOTOR_SPEED_EVENT,
            self.plug_connection: PLUG_CONNECTION_EVENT,
        }


def decode_command_payload(payload: bytes) -> Any:
    """Parse a command payload; an empty payload means "no data"."""
    text = payload.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    return json.loads(text)


class MqttBridge:
    """Threaded paho-mqtt client that publishes state and forwards commands.

    Acts as a broadcast subscriber: every state update is published to the
    state topic. Messages on command topics are handed to the simulator on
    the asyncio loop.
    """

    def __init__(
        self,
        simulator: CarSimulator,
        *,
        loop: asyncio.AbstractEventLoop,
        host: str,
        port: int = 1883,
        topic_prefix: str = "carsim",
        keepalive: int = 120,
        client_id: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._simulator = simulator
        self._loop = loop
        self._host = host
        self._port = port
        self._keepalive = keepalive
        self._client_id = client_id or f"carsim_{secrets.token_hex(4)}"
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False
        self.topics = MqttTopics.from_prefix(topic_prefix)

    @classmethod
    def from_config(
        cls,
        simulator: CarSimulator,
        config: SimulatorConfig,
        *,
        loop: asyncio.AbstractEventLoop,
    ) -> MqttBridge:
        return cls(
            simulator,
            loop=loop,
            host=config.mqtt_host,
            port=config.mqtt_port,
            topic_prefix=config.mqtt_topic_prefix,
            keepalive=config.mqtt_keepalive,
        )

    @property
    def is_running(self) -> bool:
        """Whether the MQTT network loop is active."""
        return self._running

    def start(self) -> None:
        """Connect to the broker and start the network thread.

        Raises ``OSError`` when the broker cannot be reached.
        """
        self.stop()
        self._logger.debug(
            "MQTT bridge start requested host=%s port=%s client_id=%s",
            self._host,
            self._port,
            self._client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=self._client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            topics = list(self.topics.commands)
            self._logger.debug("MQTT connected, subscribing topics=%s", topics)
            c.subscribe([(topic, 0) for topic in topics])

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            self.handle_message(msg.topic, msg.payload)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(self._host, self._port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.info("MQTT bridge connected to %s:%s", self._host, self._port)

    def stop(self) -> None:
        """Disconnect and stop the network thread if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")

    def handle_message(self, topic: str, payload: bytes) -> concurrent.futures.Future[Any] | None:
        """Forward a command message to the simulator (called from the MQTT thread)."""
        event = self.topics.commands.get(topic)
        if event is None:
            self._logger.debug("Ignoring message on unexpected topic %s", topic)
            return None
        try:
            data = decode_command_payload(payload)
        except ValueError:
            self._logger.debug("Ignoring undecodable payload on %s", topic, exc_info=True)
            return None
        future = asyncio.run_coroutine_threadsafe(self._simulator.dispatch(event, data), self._loop)
        future.add_done_callback(self._log_dispatch_failure)
        return future

    def _log_dispatch_failure(self, future: concurrent.futures.Future[Any]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._logger.warning("MQTT command dispatch failed: %s", exc)

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        client = self._client
        if client is None or not self._running or event != STATE_UPDATE_EVENT:
            return
        info = client.publish(self.topics.state, json.dumps(payload, separators=(",", ":")), qos=0)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            self._logger.debug("MQTT publish failed rc=%s", info.rc)
