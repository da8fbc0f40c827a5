"""Custom exception hierarchy for carsim."""

from __future__ import annotations


class CarSimError(Exception):
    """Base exception for all carsim errors."""


class CarSimConfigError(CarSimError):
    """Invalid or missing configuration."""


class StateStoreError(CarSimError):
    """Persistence backend failure (read or write).

    Raised for transient failures; the tick loop logs it and retries on the
    next tick.
    """

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class StateStoreUnavailableError(StateStoreError):
    """The store could not be reached while initializing the record.

    This is fatal: the simulator does not start without its record.
    """


class StateRecordError(StateStoreError):
    """The persisted record exists but does not validate as a car state."""
