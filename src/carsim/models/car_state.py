"""Car state record and its broadcast view.

:class:`CarState` is the single persisted record. It is frozen; every
change produces a new instance through :meth:`CarState.merge`, which
re-runs validation so the derived fields (``gear``, ``motor_warning``,
``battery_low``) always match the values they are derived from.

:class:`CarStateView` is what subscribers receive: rounded gauges and
the indicator booleans grouped under ``indicators``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from carsim._constants import (
    LOW_BATTERY_THRESHOLD,
    MAX_BATTERY,
    MAX_MOTOR_SPEED,
    MAX_RPM,
    MAX_TEMPERATURE,
    MIN_TEMPERATURE,
    MOTOR_WARNING_RPM,
)

GEAR_RATIOS: dict[int, str] = {
    0: "N/N",
    1: "1:4",
    2: "1:3",
    3: "1:2",
    4: "1:1",
}
NEUTRAL_GEAR = GEAR_RATIOS[0]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def gear_for(motor_speed: int) -> str:
    """Return the gear ratio label for *motor_speed*."""
    return GEAR_RATIOS[motor_speed]


class CarState(BaseModel):
    """The simulated car's telemetry record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    power: float = Field(default=0.0, ge=0)
    """Motor power in kW."""
    rpm: int = Field(default=0, ge=0, le=MAX_RPM)
    battery: float = Field(default=MAX_BATTERY, ge=0, le=MAX_BATTERY)
    """State of charge (0-100 percent)."""
    temperature: float = Field(default=MIN_TEMPERATURE, ge=MIN_TEMPERATURE, le=MAX_TEMPERATURE)
    """Motor temperature in degrees Celsius."""
    charging: bool = False
    motor_speed: int = Field(default=0, ge=0, le=MAX_MOTOR_SPEED)
    is_running: bool = False
    gear: str = NEUTRAL_GEAR
    parking_brake: bool = False
    check_engine: bool = False
    motor_warning: bool = False
    battery_low: bool = False
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _derive_fields(self) -> CarState:
        """Recompute gear and indicator flags from their source fields."""
        object.__setattr__(self, "gear", gear_for(self.motor_speed))
        object.__setattr__(self, "motor_warning", self.rpm > MOTOR_WARNING_RPM)
        object.__setattr__(self, "battery_low", self.battery < LOW_BATTERY_THRESHOLD)
        if self.updated_at.tzinfo is None:
            object.__setattr__(self, "updated_at", self.updated_at.replace(tzinfo=UTC))
        return self

    @property
    def is_driving(self) -> bool:
        """Running with the charger unplugged and the parking brake released."""
        return self.is_running and not self.charging and not self.parking_brake

    def merge(self, **changes: Any) -> CarState:
        """Return a validated copy with *changes* applied on top of this state."""
        return CarState.model_validate({**self.model_dump(), **changes})

    def same_as(self, other: CarState) -> bool:
        """Compare two states ignoring ``updated_at``."""
        exclude = {"updated_at"}
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)

    def to_record(self) -> dict[str, Any]:
        """Serialize for a persistence backend."""
        return self.model_dump(mode="json")


class Indicators(BaseModel):
    """Dashboard warning lights."""

    model_config = ConfigDict(frozen=True)

    parking_brake: bool
    check_engine: bool
    motor_warning: bool
    battery_low: bool


class CarStateView(BaseModel):
    """Broadcast representation of :class:`CarState`."""

    model_config = ConfigDict(frozen=True)

    power: float
    rpm: int
    battery: float
    temperature: float
    charging: bool
    motor_speed: int
    is_running: bool
    gear: str
    parking_brake: bool
    check_engine: bool
    motor_warning: bool
    battery_low: bool
    updated_at: datetime
    indicators: Indicators

    @classmethod
    def from_state(cls, state: CarState) -> CarStateView:
        return cls(
            **state.model_dump(exclude={"power", "battery", "temperature"}),
            power=round(state.power, 1),
            battery=round(state.battery, 1),
            temperature=round(state.temperature, 1),
            indicators=Indicators(
                parking_brake=state.parking_brake,
                check_engine=state.check_engine,
                motor_warning=state.motor_warning,
                battery_low=state.battery_low,
            ),
        )
