"""Per-tick state transition rules.

:func:`step` is pure: it maps the current :class:`CarState` to the next one
and never touches storage or subscribers. Branches are evaluated in
priority order:

1. force stop (battery depleted while running)
2. driving (running, unplugged, parking brake released)
3. charging
4. idle
"""

from __future__ import annotations

import math

from carsim._constants import (
    BASE_DRAIN_RATE,
    CHARGE_RATE,
    CHARGE_TAPER_FACTOR,
    CHARGE_TAPER_THRESHOLD,
    LOW_BATTERY_DRAIN_FACTOR,
    LOW_BATTERY_THRESHOLD,
    MAX_BATTERY,
    MAX_MOTOR_SPEED,
    MAX_RPM,
    MAX_TEMPERATURE,
    MIN_TEMPERATURE,
    RPM_STEP,
    TEMPERATURE_DECAY,
    TEMPERATURE_LAG,
    TEMPERATURE_SPAN,
)
from carsim.models.car_state import CarState


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positive values."""
    return math.floor(value + 0.5)


def target_rpm(motor_speed: int) -> int:
    return round_half_up(motor_speed / MAX_MOTOR_SPEED * MAX_RPM)


def ramp_rpm(rpm: int, target: int) -> int:
    """Move *rpm* one step toward *target* without overshooting."""
    if rpm < target:
        return min(rpm + RPM_STEP, target)
    return max(rpm - RPM_STEP, target)


def power_for(rpm: int) -> int:
    return round_half_up(rpm / MAX_RPM * 100)


def drain_for(battery: float, power: float) -> float:
    rate = BASE_DRAIN_RATE
    if battery < LOW_BATTERY_THRESHOLD:
        rate *= LOW_BATTERY_DRAIN_FACTOR
    return rate * (power / 100)


def decay_temperature(temperature: float) -> float:
    return max(MIN_TEMPERATURE, temperature - TEMPERATURE_DECAY)


def ease_temperature(temperature: float, rpm: int) -> float:
    """First-order lag toward the steady-state temperature for *rpm*."""
    if rpm <= 0:
        return decay_temperature(temperature)
    target = MIN_TEMPERATURE + (rpm / MAX_RPM) * TEMPERATURE_SPAN
    eased = temperature + (target - temperature) * TEMPERATURE_LAG
    return max(MIN_TEMPERATURE, min(MAX_TEMPERATURE, eased))


def charge_rate(battery: float) -> float:
    if battery > CHARGE_TAPER_THRESHOLD:
        return CHARGE_RATE * CHARGE_TAPER_FACTOR
    return CHARGE_RATE


def force_stop(state: CarState) -> CarState:
    """Shut the motor down after the battery is depleted.

    The battery is always floored to exactly zero here.
    """
    return state.merge(
        is_running=False,
        motor_speed=0,
        rpm=0,
        power=0,
        battery=0.0,
        check_engine=False,
    )


def drive(state: CarState) -> CarState:
    rpm = ramp_rpm(state.rpm, target_rpm(state.motor_speed))
    power = power_for(rpm)
    battery = max(0.0, state.battery - drain_for(state.battery, power))
    updated = state.merge(
        rpm=rpm,
        power=power,
        battery=battery,
        temperature=ease_temperature(state.temperature, rpm),
    )
    if updated.battery <= 0:
        return force_stop(updated)
    return updated


def charge(state: CarState) -> CarState:
    if state.battery >= MAX_BATTERY:
        return state.merge(charging=False)
    return state.merge(battery=min(MAX_BATTERY, state.battery + charge_rate(state.battery)))


def idle(state: CarState) -> CarState:
    changes: dict[str, float] = {}
    if state.rpm > 0 or state.power > 0:
        changes["rpm"] = 0
        changes["power"] = 0
    if state.temperature > MIN_TEMPERATURE:
        changes["temperature"] = decay_temperature(state.temperature)
    if not changes:
        return state
    return state.merge(**changes)


def step(state: CarState) -> CarState:
    """Advance the simulation by one tick."""
    if state.battery <= 0 and state.is_running:
        return force_stop(state)
    if state.is_driving:
        return drive(state)
    if state.charging:
        return charge(state)
    return idle(state)
