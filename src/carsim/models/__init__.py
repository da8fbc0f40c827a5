"""Data models for the simulated car and its commands."""

from carsim.models.car_state import GEAR_RATIOS, NEUTRAL_GEAR, CarState, CarStateView, Indicators, gear_for
from carsim.models.commands import SetMotorSpeed

__all__ = [
    "CarState",
    "CarStateView",
    "GEAR_RATIOS",
    "Indicators",
    "NEUTRAL_GEAR",
    "SetMotorSpeed",
    "gear_for",
]
