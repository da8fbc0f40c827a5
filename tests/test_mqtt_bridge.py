from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import paho.mqtt.client as mqtt
import pytest

from carsim._mqtt import MqttBridge, MqttTopics, decode_command_payload
from carsim.config import SimulatorConfig
from carsim.models.car_state import CarState
from carsim.simulator import CarSimulator
from carsim.state.backends import MemoryBackend


@dataclass
class _PublishInfo:
    rc: int = mqtt.MQTT_ERR_SUCCESS


class _FakeClient:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, int]] = []

    def publish(self, topic: str, payload: str, qos: int = 0) -> _PublishInfo:
        self.published.append((topic, payload, qos))
        return _PublishInfo()


async def _bridge(state: CarState | None = None) -> tuple[MqttBridge, CarSimulator]:
    initial = {"carState": state.to_record()} if state is not None else None
    simulator = CarSimulator(SimulatorConfig(), backend=MemoryBackend(initial))
    await simulator.start(run_loop=False)
    bridge = MqttBridge(simulator, loop=asyncio.get_running_loop(), host="broker.invalid", topic_prefix="/garage/")
    return bridge, simulator


def test_topics_from_prefix() -> None:
    topics = MqttTopics.from_prefix("/garage/")

    assert topics.state == "garage/car_state_update"
    assert topics.commands == {
        "garage/set_motor_speed": "set_motor_speed",
        "garage/plug_connection": "plug_connection",
    }


def test_decode_command_payload() -> None:
    assert decode_command_payload(b"") is None
    assert decode_command_payload(b"  \n") is None
    assert decode_command_payload(b'{"speed": 2}') == {"speed": 2}
    with pytest.raises(ValueError):
        decode_command_payload(b"{speed")


@pytest.mark.asyncio
async def test_speed_command_is_dispatched_to_simulator() -> None:
    bridge, simulator = await _bridge()

    future = bridge.handle_message("garage/set_motor_speed", b'{"speed": 4}')
    assert future is not None
    await asyncio.wrap_future(future)

    state = await simulator.holder.get()
    assert state.is_running is True
    assert state.gear == "1:1"


@pytest.mark.asyncio
async def test_plug_command_accepts_empty_payload() -> None:
    bridge, simulator = await _bridge()

    future = bridge.handle_message("garage/plug_connection", b"")
    assert future is not None
    await asyncio.wrap_future(future)

    assert (await simulator.holder.get()).charging is True


@pytest.mark.asyncio
async def test_unexpected_topic_and_bad_payload_are_ignored() -> None:
    bridge, simulator = await _bridge()

    assert bridge.handle_message("garage/honk", b"{}") is None
    assert bridge.handle_message("garage/set_motor_speed", b"{speed") is None
    assert (await simulator.holder.get()).is_running is False


@pytest.mark.asyncio
async def test_state_updates_are_published_when_connected() -> None:
    bridge, simulator = await _bridge(CarState(battery=77.77))
    client = _FakeClient()
    bridge._client = client  # type: ignore[assignment]  # noqa: SLF001
    bridge._running = True  # noqa: SLF001

    await simulator.connect(bridge)
    await simulator.plug_connection()

    assert [topic for topic, _, _ in client.published] == ["garage/car_state_update"] * 2
    last = json.loads(client.published[-1][1])
    assert last["battery"] == 77.8
    assert last["charging"] is True


@pytest.mark.asyncio
async def test_send_is_a_no_op_when_not_running() -> None:
    bridge, _ = await _bridge()

    await bridge.send("car_state_update", {"rpm": 0})

    assert not bridge.is_running
