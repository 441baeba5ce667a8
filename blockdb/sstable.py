"""Immutable sorted string tables on disk."""

from __future__ import annotations

import os
import struct
from bisect import bisect_left
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import BinaryIO, Self

from .memtable import MemTable
from .record import Record, StorageError, _ByteReader, _encode_blob

_SIZE = struct.Struct(">I")
_FOOTER = struct.Struct(">QQ")


@dataclass(frozen=True)
class IndexEntry:
    """Location of one record within a table file."""

    key: bytes
    offset: int
    size: int


def _encode_index(index: dict[bytes, IndexEntry]) -> bytes:
    parts = [struct.pack("<Q", len(index))]
    for key in sorted(index):
        entry = index[key]
        parts.append(_encode_blob(key))
        parts.append(_encode_blob(entry.key))
        parts.append(struct.pack("<QI", entry.offset, entry.size))
    return b"".join(parts)


def _decode_index(data: bytes) -> dict[bytes, IndexEntry]:
    reader = _ByteReader(data)
    index = {}
    for _ in range(reader.u64()):
        key = reader.blob()
        entry_key = reader.blob()
        offset = reader.u64()
        size = reader.u32()
        index[key] = IndexEntry(entry_key, offset, size)
    return index


def write_records(
    path: str | os.PathLike[str], records: Iterable[Record]
) -> dict[bytes, IndexEntry]:
    """Write records in key order followed by an index and footer.

    When a key appears more than once, the last record wins. Returns the index.
    """
    by_key = {record.key: record for record in records}
    index: dict[bytes, IndexEntry] = {}
    offset = 0
    with open(path, "wb") as table:
        for key in sorted(by_key):
            data = by_key[key].to_bytes()
            table.write(_SIZE.pack(len(data)))
            table.write(data)
            index[key] = IndexEntry(key, offset, len(data))
            offset += _SIZE.size + len(data)
        index_data = _encode_index(index)
        table.write(index_data)
        table.write(_FOOTER.pack(offset, len(index_data)))
    return index


class SSTable:
    """Read access to a table file through its in-memory index."""

    def __init__(self, path: str, index: dict[bytes, IndexEntry], file: BinaryIO) -> None:
        self._path = str(path)
        self._index = dict(index)
        self._keys = sorted(self._index)
        self._file = file

    @property
    def path(self) -> str:
        return self._path

    @classmethod
    def create_from_memtable(cls, path: str | os.PathLike[str], memtable: MemTable) -> Self:
        """Write the memtable's records to a new table file and open it."""
        index = write_records(path, (record for _, record in memtable.items()))
        return cls(str(path), index, open(path, "rb"))

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> Self:
        """Open an existing table file and load its index."""
        file = open(path, "rb")
        try:
            size = os.fstat(file.fileno()).st_size
            if size < _FOOTER.size:
                raise StorageError(f"table file {path} is too short")
            file.seek(-_FOOTER.size, os.SEEK_END)
            index_offset, index_size = _FOOTER.unpack(file.read(_FOOTER.size))
            file.seek(index_offset)
            index_data = file.read(index_size)
            if len(index_data) < index_size:
                raise StorageError(f"table file {path} has a truncated index")
            index = _decode_index(index_data)
        except BaseException:
            file.close()
            raise
        return cls(str(path), index, file)

    def _read_at(self, offset: int) -> Record:
        self._file.seek(offset)
        header = self._file.read(_SIZE.size)
        if len(header) < _SIZE.size:
            raise StorageError("table file ends inside a record header")
        (size,) = _SIZE.unpack(header)
        body = self._file.read(size)
        if len(body) < size:
            raise StorageError("table file ends inside a record")
        return Record.from_bytes(body)

    def get(self, key: bytes) -> Record | None:
        entry = self._index.get(bytes(key))
        if entry is None:
            return None
        return self._read_at(entry.offset)

    def scan_range(self, start: bytes, end: bytes) -> list[Record]:
        """Return records with start <= key < end in key order."""
        if start > end:
            raise ValueError("range start is greater than range end")
        low = bisect_left(self._keys, start)
        high = bisect_left(self._keys, end)
        return [self._read_at(self._index[key].offset) for key in self._keys[low:high]]

    def keys(self) -> Iterator[bytes]:
        return iter(self._keys)

    def first_key(self) -> bytes | None:
        return self._keys[0] if self._keys else None

    def last_key(self) -> bytes | None:
        return self._keys[-1] if self._keys else None

    def close(self) -> None:
        self._file.close()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()