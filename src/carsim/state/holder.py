"""Serialized owner of the car state record.

This is the only component allowed to read-modify-write the record. Every
mutation (tick or command) goes through :meth:`CarStateHolder.update`, which
holds one lock across backend read, transition and backend write, so a
command can never be lost to a concurrent tick.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from carsim._constants import DEFAULT_STATE_KEY
from carsim.exceptions import StateRecordError, StateStoreError, StateStoreUnavailableError
from carsim.models.car_state import CarState
from carsim.state.backends import StateBackend

_logger = logging.getLogger(__name__)

Transition = Callable[[CarState], CarState | None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CarStateHolder:
    """Owns the single :class:`CarState` record stored in *backend*."""

    def __init__(
        self,
        backend: StateBackend,
        *,
        key: str = DEFAULT_STATE_KEY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._key = key
        self._clock = clock
        self._lock = asyncio.Lock()
        self._revision = 0

    @property
    def key(self) -> str:
        return self._key

    @property
    def revision(self) -> int:
        return self._revision

    async def _load(self) -> CarState | None:
        record = await self._backend.get(self._key)
        if record is None:
            return None
        try:
            return CarState.model_validate(record)
        except ValidationError as exc:
            raise StateRecordError(f"Stored record {self._key!r} is invalid: {exc}", key=self._key) from exc

    async def _require(self) -> CarState:
        state = await self._load()
        if state is None:
            raise StateStoreError(f"Record {self._key!r} missing; call initialize() first", key=self._key)
        return state

    async def _save(self, state: CarState) -> CarState:
        stamped = state.merge(updated_at=self._clock())
        await self._backend.set(self._key, stamped.to_record())
        return stamped

    async def initialize(self) -> CarState:
        """Create the record with defaults unless one already exists.

        Raises
        ------
        StateStoreUnavailableError
            When the backend cannot be read or written, or holds an invalid record.
        """
        async with self._lock:
            try:
                existing = await self._load()
                if existing is not None:
                    _logger.info("Loaded existing car state %r", self._key)
                    return existing
                _logger.info("Creating initial car state %r", self._key)
                return await self._save(CarState())
            except StateStoreError as exc:
                raise StateStoreUnavailableError(
                    f"Cannot initialize car state {self._key!r}: {exc}",
                    key=self._key,
                ) from exc

    async def get(self) -> CarState:
        """Return the current record."""
        async with self._lock:
            return await self._require()

    async def update(self, transition: Transition) -> CarState | None:
        """Atomically apply *transition* to the current record.

        *transition* receives the current state and returns the next one, or
        ``None`` to reject the change. Nothing is written when it rejects or
        when the result equals the current state.

        Returns
        -------
        CarState or None
            The resulting (stored) state, or ``None`` if rejected.
        """
        state, _ = await self.update_with_revision(transition)
        return state

    async def update_with_revision(self, transition: Transition) -> tuple[CarState | None, int]:
        """Like :meth:`update`, also returning the revision of the result.

        Revisions increase by one for every accepted update, in the order the
        updates took the lock, so they can be used to order broadcasts.
        Rejected updates return the current revision unchanged.
        """
        async with self._lock:
            current = await self._require()
            proposed = transition(current)
            if proposed is None:
                return None, self._revision
            if not proposed.same_as(current):
                current = await self._save(proposed)
            self._revision += 1
            return current, self._revision
