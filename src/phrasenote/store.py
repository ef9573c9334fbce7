"""The key/value store contract phrasenote runs on, plus an in-memory store."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from phrasenote.exceptions import StoreError

logger = logging.getLogger(__name__)

# Quota of the browser extension local storage area the index was built for.
DEFAULT_CAPACITY_BYTES = 5_242_880


class Store(ABC):
    """An asynchronous, flat key/value store.

    Implementations raise :class:`StoreError` on transport failures. Keys
    that do not exist are simply absent from :meth:`get` results; that is
    not an error.
    """

    @abstractmethod
    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        """Fetch the values stored under ``keys``, omitting absent keys."""

    @abstractmethod
    async def set(self, items: Mapping[str, Any]) -> None:
        """Write every item in one batch; all or nothing."""

    @abstractmethod
    async def remove(self, keys: Iterable[str]) -> None:
        """Delete ``keys``; absent keys are ignored."""

    @abstractmethod
    async def get_bytes_in_use(self) -> int:
        """Total bytes currently consumed by keys and values."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete everything."""


class MemoryStore(Store):
    """A non-persistent store keeping JSON-encoded values in a dict.

    Values are serialized on write, so callers never share structure with
    the store, and byte usage is measured the way browser storage areas
    measure it: the length of each key plus its JSON value.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, str] = {}
        if data:
            self._data.update(self._encode(data))

    @staticmethod
    def _encode(items: Mapping[str, Any]) -> dict[str, str]:
        try:
            return {
                str(key): json.dumps(value, ensure_ascii=False)
                for key, value in items.items()
            }
        except (TypeError, ValueError) as e:
            raise StoreError(f"Value is not storable: {e}") from e

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, Any]:
        """Decoded copy of everything stored."""
        return {key: json.loads(value) for key, value in self._data.items()}

    async def get(self, keys: Iterable[str]) -> dict[str, Any]:
        found = {}
        for key in keys:
            value = self._data.get(key)
            if value is not None:
                found[key] = json.loads(value)
        return found

    async def set(self, items: Mapping[str, Any]) -> None:
        encoded = self._encode(items)
        self._data.update(encoded)
        logger.debug(f"Stored {len(encoded)} key(s)")

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def get_bytes_in_use(self) -> int:
        return sum(
            len(key.encode("utf-8")) + len(value.encode("utf-8"))
            for key, value in self._data.items()
        )

    async def clear(self) -> None:
        self._data.clear()
