"""Fixed-rate simulation loop."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from carsim._constants import DEFAULT_TICK_INTERVAL
from carsim.broadcast import Broadcaster
from carsim.exceptions import CarSimError
from carsim.models.car_state import CarState
from carsim.simulation.engine import step
from carsim.state.holder import CarStateHolder

_logger = logging.getLogger(__name__)


class TickLoop:
    """Runs one tick, broadcasts, sleeps, repeats; until :meth:`stop`.

    Iterations never overlap: each tick (store round trip included) completes
    before the loop sleeps. A failing tick is logged and the loop carries on
    with the next one.
    """

    def __init__(
        self,
        holder: CarStateHolder,
        broadcaster: Broadcaster,
        *,
        interval: float = DEFAULT_TICK_INTERVAL,
        transition: Callable[[CarState], CarState] = step,
    ) -> None:
        self._holder = holder
        self._broadcaster = broadcaster
        self._interval = interval
        self._transition = transition
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> CarState:
        """Run a single iteration: transition, persist, broadcast."""
        state, revision = await self._holder.update_with_revision(self._transition)
        if state is None:
            raise CarSimError("Tick transition returned no state")
        self.ticks += 1
        await self._broadcaster.publish(state, revision=revision)
        return state

    async def _run(self) -> None:
        _logger.info("Simulation loop started (interval=%.3fs)", self._interval)
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception:
                _logger.exception("Simulation tick failed")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="carsim-tick-loop")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        _logger.info("Simulation loop stopped after %d ticks", self.ticks)
