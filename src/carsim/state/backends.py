"""Key-value persistence backends for the car state record.

A backend only needs whole-record semantics: read the document stored under
a key, or replace it. Merging is the holder's job, never the backend's.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from carsim.exceptions import StateStoreError

_logger = logging.getLogger(__name__)


class StateBackend(Protocol):
    """Structural backend interface used by :class:`CarStateHolder`.

    Implementations raise :class:`StateStoreError` for any I/O failure.
    """

    async def get(self, key: str) -> dict[str, Any] | None:
        ...

    async def set(self, key: str, record: dict[str, Any]) -> None:
        ...


class MemoryBackend:
    """Process-local backend; the record is lost on exit."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None) -> None:
        self._records: dict[str, dict[str, Any]] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> dict[str, Any] | None:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def set(self, key: str, record: dict[str, Any]) -> None:
        self._records[key] = copy.deepcopy(record)


class JsonFileBackend:
    """Stores all records in one JSON object on disk.

    Writes go to a temporary file in the same directory followed by
    ``os.replace`` so a crash never leaves a truncated document behind.
    File I/O runs in a worker thread to keep the event loop responsive.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not contain a JSON object")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, separators=(",", ":"))
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _get(self, key: str) -> dict[str, Any] | None:
        record = self._read_all().get(key)
        if record is not None and not isinstance(record, dict):
            raise ValueError(f"Record {key!r} in {self._path} is not a JSON object")
        return record

    def _set(self, key: str, record: dict[str, Any]) -> None:
        data = self._read_all()
        data[key] = record
        self._write_all(data)

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            return await asyncio.to_thread(self._get, key)
        except (OSError, ValueError) as exc:
            raise StateStoreError(f"Failed to read {key!r} from {self._path}: {exc}", key=key) from exc

    async def set(self, key: str, record: dict[str, Any]) -> None:
        _logger.debug("Writing %s to %s", key, self._path)
        try:
            await asyncio.to_thread(self._set, key, record)
        except (OSError, TypeError, ValueError) as exc:
            raise StateStoreError(f"Failed to write {key!r} to {self._path}: {exc}", key=key) from exc
