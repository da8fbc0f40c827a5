"""Command transitions.

Each function maps the current state to the next one, or returns ``None``
when the command is out of policy. Rejections are silent towards the
caller; the only feedback channel is the state broadcast.
"""

from __future__ import annotations

import logging

from carsim._constants import MIN_TEMPERATURE
from carsim.models.car_state import CarState

_logger = logging.getLogger(__name__)


def set_motor_speed(state: CarState, speed: int) -> CarState | None:
    """Change the motor speed (0 stops the car)."""
    if state.battery <= 0 and speed > 0:
        _logger.debug("Ignoring set_motor_speed(%d): battery depleted", speed)
        return None
    if state.parking_brake:
        _logger.debug("Ignoring set_motor_speed(%d): parking brake engaged", speed)
        return None

    if speed == 0:
        return state.merge(
            motor_speed=0,
            is_running=False,
            check_engine=False,
            power=0,
            rpm=0,
            temperature=MIN_TEMPERATURE,
        )
    if state.battery > 0:
        # Plugging in and driving are mutually exclusive.
        return state.merge(
            motor_speed=speed,
            is_running=True,
            check_engine=False,
            charging=False,
        )
    return None


def toggle_charging(state: CarState) -> CarState | None:
    """Plug the charger in or out."""
    if state.is_running:
        _logger.debug("Ignoring plug_connection: car is running")
        return None
    return state.merge(charging=not state.charging)
