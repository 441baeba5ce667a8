"""Append-only write-ahead log of records."""

from __future__ import annotations

import os
import struct
from pathlib import Path
from typing import Self

from .record import Record, StorageError

WAL_FILE_NAME = "wal.log"
_SIZE = struct.Struct(">I")


class WriteAheadLog:
    """Length-prefixed records appended to ``wal.log`` in a data directory."""

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.path = Path(data_dir) / WAL_FILE_NAME
        self._file = open(self.path, "ab")
        self.offset = self.path.stat().st_size

    def append(self, record: Record) -> None:
        """Write a record and flush it to the operating system."""
        data = record.to_bytes()
        self._file.write(_SIZE.pack(len(data)))
        self._file.write(data)
        self._file.flush()
        self.offset += _SIZE.size + len(data)

    def recover(self) -> list[Record]:
        """Read back every complete record in the log.

        A trailing partial length header is ignored; a truncated record body
        raises :class:`StorageError`.
        """
        self._file.flush()
        records = []
        with open(self.path, "rb") as log:
            while True:
                header = log.read(_SIZE.size)
                if len(header) < _SIZE.size:
                    break
                (size,) = _SIZE.unpack(header)
                body = log.read(size)
                if len(body) < size:
                    raise StorageError("write-ahead log ends inside a record")
                records.append(Record.from_bytes(body))
        return records

    def truncate(self) -> None:
        """Discard the log's contents."""
        self._file.flush()
        self._file.truncate(0)
        self.offset = 0

    def sync(self) -> None:
        """Flush buffers and force the log to stable storage."""
        self._file.flush()
        os.fsync(self._file.fileno())

    def clear(self) -> None:
        """Discard all data and reset to an empty log."""
        self.truncate()
        self._file.flush()

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()