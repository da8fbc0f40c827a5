"""State formatting and fan-out to realtime subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from carsim._constants import DEFAULT_TICK_INTERVAL, STATE_UPDATE_EVENT
from carsim.models.car_state import CarState, CarStateView

_logger = logging.getLogger(__name__)


def format_state(state: CarState) -> dict[str, Any]:
    """Return the JSON-ready view that subscribers receive."""
    return CarStateView.from_state(state).model_dump(mode="json")


class Subscriber(Protocol):
    """Anything that can receive a realtime event (websocket, MQTT, test double)."""

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        ...


class Broadcaster:
    """Fire-and-forget fan-out of state updates.

    Delivery is best effort: a subscriber whose ``send`` raises, or does not
    complete within *send_timeout* seconds, is logged and dropped. Late
    subscribers only see updates published after they joined.

    Updates may carry the revision assigned by the state holder; an update
    older than one already published is skipped so subscribers never see
    state go backwards.
    """

    def __init__(self, *, send_timeout: float = DEFAULT_TICK_INTERVAL) -> None:
        self._subscribers: set[Subscriber] = set()
        self._send_timeout = send_timeout
        self._last_revision = -1

    def __len__(self) -> int:
        return len(self._subscribers)

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.add(subscriber)
        _logger.debug("Subscriber added (%d total)", len(self._subscribers))

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.discard(subscriber)
        _logger.debug("Subscriber removed (%d total)", len(self._subscribers))

    async def send_state(self, subscriber: Subscriber, state: CarState) -> None:
        """Send *state* to a single subscriber (e.g. right after it connects)."""
        await subscriber.send(STATE_UPDATE_EVENT, format_state(state))

    async def _deliver(self, subscriber: Subscriber, payload: dict[str, Any]) -> None:
        await asyncio.wait_for(subscriber.send(STATE_UPDATE_EVENT, payload), self._send_timeout)

    async def publish(self, state: CarState, *, revision: int | None = None) -> None:
        """Send *state* to every current subscriber."""
        if revision is not None:
            if revision <= self._last_revision:
                _logger.debug("Skipping stale update (revision %d <= %d)", revision, self._last_revision)
                return
            self._last_revision = revision
        subscribers = list(self._subscribers)
        if not subscribers:
            return
        payload = format_state(state)
        results = await asyncio.gather(
            *(self._deliver(subscriber, payload) for subscriber in subscribers),
            return_exceptions=True,
        )
        for subscriber, result in zip(subscribers, results, strict=True):
            if isinstance(result, TimeoutError):
                _logger.warning("Dropping subscriber %r: send timed out after %.3fs", subscriber, self._send_timeout)
                self.unsubscribe(subscriber)
            elif isinstance(result, Exception):
                _logger.warning("Dropping subscriber %r after send failure: %s", subscriber, result)
                self.unsubscribe(subscriber)
