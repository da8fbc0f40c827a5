"""High-level async facade wiring the store, tick loop, commands and broadcast."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from carsim import commands as _commands
from carsim._constants import PLUG_CONNECTION_EVENT, SET_MOTOR_SPEED_EVENT
from carsim.broadcast import Broadcaster, Subscriber, format_state
from carsim.config import SimulatorConfig
from carsim.models.car_state import CarState
from carsim.models.commands import SetMotorSpeed
from carsim.simulation.loop import TickLoop
from carsim.state.backends import JsonFileBackend, MemoryBackend, StateBackend
from carsim.state.holder import CarStateHolder

_logger = logging.getLogger(__name__)


def build_backend(config: SimulatorConfig) -> StateBackend:
    """Pick the persistence backend described by *config*."""
    if config.state_file:
        return JsonFileBackend(config.state_file)
    return MemoryBackend()


class CarSimulator:
    """The running simulation.

    Usage::

        async with CarSimulator(config) as sim:
            await sim.set_motor_speed(2)
    """

    def __init__(
        self,
        config: SimulatorConfig | None = None,
        *,
        backend: StateBackend | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or SimulatorConfig()
        holder_kwargs: dict[str, Any] = {"key": self._config.state_key}
        if clock is not None:
            holder_kwargs["clock"] = clock
        self.holder = CarStateHolder(backend or build_backend(self._config), **holder_kwargs)
        self.broadcaster = Broadcaster(send_timeout=self._config.tick_interval)
        self.loop = TickLoop(self.holder, self.broadcaster, interval=self._config.tick_interval)

    @property
    def config(self) -> SimulatorConfig:
        return self._config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CarSimulator:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    async def start(self, *, run_loop: bool = True) -> CarState:
        """Create the record if needed and start ticking.

        Raises
        ------
        StateStoreUnavailableError
            When the store cannot be reached; the simulator must not run.
        """
        state = await self.holder.initialize()
        if run_loop:
            self.loop.start()
        return state

    async def stop(self) -> None:
        await self.loop.stop()

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    async def connect(self, subscriber: Subscriber) -> None:
        """Register *subscriber* and immediately send it the current state."""
        self.broadcaster.subscribe(subscriber)
        await self.broadcaster.send_state(subscriber, await self.holder.get())

    def disconnect(self, subscriber: Subscriber) -> None:
        self.broadcaster.unsubscribe(subscriber)

    async def snapshot(self) -> dict[str, Any]:
        """Current state in broadcast format."""
        return format_state(await self.holder.get())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _apply(self, transition: Callable[[CarState], CarState | None]) -> CarState | None:
        state, revision = await self.holder.update_with_revision(transition)
        if state is not None:
            await self.broadcaster.publish(state, revision=revision)
        return state

    async def set_motor_speed(self, speed: int) -> CarState | None:
        """Apply ``set_motor_speed``; returns ``None`` if the command was ignored."""
        return await self._apply(lambda state: _commands.set_motor_speed(state, speed))

    async def plug_connection(self) -> CarState | None:
        """Toggle charging; returns ``None`` if the command was ignored."""
        return await self._apply(_commands.toggle_charging)

    async def dispatch(self, event: str, data: Any = None) -> CarState | None:
        """Route an inbound realtime event to its command.

        Unknown events and malformed payloads are logged and ignored.
        """
        if event == SET_MOTOR_SPEED_EVENT:
            try:
                command = SetMotorSpeed.model_validate(data if data is not None else {})
            except ValidationError as exc:
                _logger.warning("Ignoring malformed %s payload %r: %s", event, data, exc.errors())
                return None
            return await self.set_motor_speed(command.speed)
        if event == PLUG_CONNECTION_EVENT:
            return await self.plug_connection()
        _logger.debug("Ignoring unknown event %r", event)
        return None
