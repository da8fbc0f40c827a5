"""State/store layer.

The single car state record lives in a key-value backend and is only ever
mutated through :class:`CarStateHolder`.
"""

from carsim.state.backends import JsonFileBackend, MemoryBackend, StateBackend
from carsim.state.holder import CarStateHolder

__all__ = ["CarStateHolder", "JsonFileBackend", "MemoryBackend", "StateBackend"]
