"""Simulation constants.

Rates are per tick, not per second; changing the tick interval changes how
fast the simulated car responds.
"""

from __future__ import annotations

STATE_UPDATE_EVENT = "car_state_update"
SET_MOTOR_SPEED_EVENT = "set_motor_speed"
PLUG_CONNECTION_EVENT = "plug_connection"

DEFAULT_STATE_KEY = "carState"
DEFAULT_TICK_INTERVAL = 0.1

MAX_MOTOR_SPEED = 4
MAX_RPM = 800
RPM_STEP = 10

MIN_TEMPERATURE = 25.0
MAX_TEMPERATURE = 80.0
TEMPERATURE_SPAN = MAX_TEMPERATURE - MIN_TEMPERATURE
TEMPERATURE_LAG = 0.1
TEMPERATURE_DECAY = 0.5

MAX_BATTERY = 100.0
LOW_BATTERY_THRESHOLD = 25.0
BASE_DRAIN_RATE = 0.02
LOW_BATTERY_DRAIN_FACTOR = 1.5

CHARGE_RATE = 0.5
CHARGE_TAPER_THRESHOLD = 75.0
CHARGE_TAPER_FACTOR = 0.7

MOTOR_WARNING_RPM = 600
