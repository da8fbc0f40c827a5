from __future__ import annotations

from typing import Any

import pytest

from carsim.commands import set_motor_speed, toggle_charging
from carsim.config import SimulatorConfig
from carsim.models.car_state import CarState
from carsim.simulator import CarSimulator
from carsim.state.backends import MemoryBackend


class _RecordingSubscriber:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))


async def _started(state: CarState | None = None) -> tuple[CarSimulator, _RecordingSubscriber]:
    initial = {"carState": state.to_record()} if state is not None else None
    simulator = CarSimulator(SimulatorConfig(), backend=MemoryBackend(initial))
    await simulator.start(run_loop=False)
    subscriber = _RecordingSubscriber()
    await simulator.connect(subscriber)
    subscriber.events.clear()
    return simulator, subscriber


# ---------------------------------------------------------------------------
# set_motor_speed
# ---------------------------------------------------------------------------


def test_set_speed_from_rest_starts_the_car() -> None:
    after = set_motor_speed(CarState(), 2)

    assert after is not None
    assert after.is_running is True
    assert after.motor_speed == 2
    assert after.gear == "1:3"
    assert after.charging is False


def test_set_speed_unplugs_the_charger() -> None:
    after = set_motor_speed(CarState(charging=True, battery=60.0), 1)

    assert after is not None
    assert after.charging is False
    assert after.gear == "1:4"


def test_set_speed_clears_check_engine() -> None:
    after = set_motor_speed(CarState(check_engine=True), 3)

    assert after is not None
    assert after.check_engine is False


def test_set_speed_zero_is_a_full_stop() -> None:
    state = CarState(is_running=True, motor_speed=4, rpm=700, power=88, temperature=60.0)

    after = set_motor_speed(state, 0)

    assert after is not None
    assert after.is_running is False
    assert after.motor_speed == 0
    assert after.rpm == 0
    assert after.power == 0
    assert after.temperature == 25.0
    assert after.gear == "N/N"
    assert after.motor_warning is False


def test_set_speed_ignored_with_parking_brake() -> None:
    assert set_motor_speed(CarState(parking_brake=True), 1) is None
    assert set_motor_speed(CarState(parking_brake=True, is_running=True, motor_speed=2), 0) is None


def test_set_speed_ignored_with_empty_battery() -> None:
    assert set_motor_speed(CarState(battery=0.0), 1) is None


def test_stop_allowed_with_empty_battery() -> None:
    after = set_motor_speed(CarState(battery=0.0, motor_speed=2), 0)

    assert after is not None
    assert after.motor_speed == 0


# ---------------------------------------------------------------------------
# plug_connection
# ---------------------------------------------------------------------------


def test_toggle_charging_ignored_while_running() -> None:
    assert toggle_charging(CarState(is_running=True, motor_speed=1)) is None


def test_toggle_charging_twice_restores_original_value() -> None:
    state = CarState(battery=40.0)

    once = toggle_charging(state)
    assert once is not None
    assert once.charging is True

    twice = toggle_charging(once)
    assert twice is not None
    assert twice.charging is state.charging


# ---------------------------------------------------------------------------
# Through the simulator: persistence + broadcast
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_applied_command_is_stored_and_broadcast() -> None:
    simulator, subscriber = await _started()

    result = await simulator.set_motor_speed(2)

    assert result is not None
    stored = await simulator.holder.get()
    assert stored.motor_speed == 2
    assert len(subscriber.events) == 1
    event, payload = subscriber.events[0]
    assert event == "car_state_update"
    assert payload["gear"] == "1:3"
    assert payload["is_running"] is True


@pytest.mark.asyncio
async def test_rejected_command_leaves_state_and_subscribers_untouched() -> None:
    simulator, subscriber = await _started(CarState(parking_brake=True))
    before = await simulator.holder.get()

    result = await simulator.set_motor_speed(1)

    assert result is None
    assert subscriber.events == []
    assert await simulator.holder.get() == before


@pytest.mark.asyncio
async def test_plug_connection_rejected_while_running() -> None:
    simulator, subscriber = await _started(CarState(is_running=True, motor_speed=1))

    assert await simulator.plug_connection() is None
    assert (await simulator.holder.get()).charging is False
    assert subscriber.events == []


@pytest.mark.asyncio
async def test_dispatch_routes_known_events() -> None:
    simulator, subscriber = await _started()

    await simulator.dispatch("plug_connection")
    assert (await simulator.holder.get()).charging is True

    await simulator.dispatch("set_motor_speed", {"speed": 3})
    state = await simulator.holder.get()
    assert state.motor_speed == 3
    assert state.charging is False
    assert len(subscriber.events) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [None, {}, {"speed": 5}, {"speed": -1}, {"speed": "2"}, {"speed": 1.5}])
async def test_dispatch_ignores_malformed_speed(payload: Any) -> None:
    simulator, subscriber = await _started()

    assert await simulator.dispatch("set_motor_speed", payload) is None
    assert subscriber.events == []
    assert (await simulator.holder.get()).is_running is False


@pytest.mark.asyncio
async def test_dispatch_ignores_unknown_event() -> None:
    simulator, subscriber = await _started()

    assert await simulator.dispatch("honk", {"times": 3}) is None
    assert subscriber.events == []
