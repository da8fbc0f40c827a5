"""Inbound command payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from carsim._constants import MAX_MOTOR_SPEED


class SetMotorSpeed(BaseModel):
    """Payload of the ``set_motor_speed`` command."""

    model_config = ConfigDict(frozen=True, extra="ignore", strict=True)

    speed: int = Field(..., ge=0, le=MAX_MOTOR_SPEED)
