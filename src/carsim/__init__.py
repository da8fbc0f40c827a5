"""carsim - Async vehicle telemetry simulator with a realtime broadcast channel."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("carsim")
except PackageNotFoundError:
    __version__ = "0+local"
from carsim.broadcast import Broadcaster, Subscriber, format_state
from carsim.config import SimulatorConfig
from carsim.exceptions import (
    CarSimConfigError,
    CarSimError,
    StateRecordError,
    StateStoreError,
    StateStoreUnavailableError,
)
from carsim.models import GEAR_RATIOS, CarState, CarStateView, Indicators, SetMotorSpeed
from carsim.simulator import CarSimulator

__all__ = [
    "__version__",
    "Broadcaster",
    "CarSimConfigError",
    "CarSimError",
    "CarSimulator",
    "CarState",
    "CarStateView",
    "GEAR_RATIOS",
    "Indicators",
    "SetMotorSpeed",
    "SimulatorConfig",
    "StateRecordError",
    "StateStoreError",
    "StateStoreUnavailableError",
    "Subscriber",
    "format_state",
]
