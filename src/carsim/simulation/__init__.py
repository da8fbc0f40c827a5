"""Tick engine: transition rules and the loop that drives them."""

from carsim.simulation.engine import step
from carsim.simulation.loop import TickLoop

__all__ = ["TickLoop", "step"]
