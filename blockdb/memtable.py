"""Sorted in-memory table of the most recent records."""

from __future__ import annotations

from bisect import bisect_left, insort
from collections.abc import Iterator

from .record import Record

_FIXED_OVERHEAD = 8 + 8 + 32  # timestamp, sequence number, bookkeeping estimate


class MemTable:
    """Records kept in key order with an estimate of their memory footprint."""

    def __init__(self) -> None:
        self._data: dict[bytes, Record] = {}
        self._keys: list[bytes] = []
        self._size = 0

    @staticmethod
    def _record_size(record: Record) -> int:
        return len(record.key) + len(record.value) + len(record.hash) + _FIXED_OVERHEAD

    @property
    def size(self) -> int:
        """Estimated number of bytes held."""
        return self._size

    def insert(self, record: Record) -> None:
        """Add a record, replacing any record with the same key."""
        old = self._data.get(record.key)
        if old is None:
            insort(self._keys, record.key)
        else:
            self._size -= self._record_size(old)
        self._data[record.key] = record
        self._size += self._record_size(record)

    def get(self, key: bytes) -> Record | None:
        return self._data.get(bytes(key))

    def items(self) -> Iterator[tuple[bytes, Record]]:
        """Yield (key, record) pairs in key order."""
        for key in list(self._keys):
            yield key, self._data[key]

    def keys(self) -> Iterator[bytes]:
        return iter(list(self._keys))

    def clear(self) -> None:
        self._data.clear()
        self._keys.clear()
        self._size = 0

    def range(self, start: bytes, end: bytes) -> Iterator[tuple[bytes, Record]]:
        """Yield pairs with start <= key < end in key order."""
        if start > end:
            raise ValueError("range start is greater than range end")
        low = bisect_left(self._keys, start)
        high = bisect_left(self._keys, end)
        for key in self._keys[low:high]:
            yield key, self._data[key]

    def latest_by_prefix(self, prefix: bytes) -> Record | None:
        """Return the record with the greatest key starting with prefix."""
        found = None
        for key in self._keys[bisect_left(self._keys, prefix):]:
            if not key.startswith(prefix):
                break
            found = self._data[key]
        return found

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data