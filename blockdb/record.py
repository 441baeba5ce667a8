"""Records, configuration and error types shared by the storage engine."""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Self

_U64 = struct.Struct("<Q")
_BE_U64 = struct.Struct(">Q")


class BlockDBError(Exception):
    """Base class for every error raised by the database."""


class DuplicateKeyError(BlockDBError):
    """A key was written twice; the store is append-only."""


class StorageError(BlockDBError):
    """Stored data is missing, truncated or malformed, or an operation failed."""


class ApiError(BlockDBError):
    """A request was not valid for the current state of the database."""


class _ByteReader:
    """Sequential reader over an encoded byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._pos = 0

    def take(self, count: int) -> bytes:
        end = self._pos + count
        if end > len(self._data):
            raise StorageError("unexpected end of encoded data")
        chunk = bytes(self._data[self._pos:end])
        self._pos = end
        return chunk

    def u64(self) -> int:
        return _U64.unpack(self.take(8))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def blob(self) -> bytes:
        return self.take(self.u64())


def _encode_blob(data: bytes) -> bytes:
    return _U64.pack(len(data)) + data


@dataclass(frozen=True)
class Record:
    """A single immutable key/value entry with its content hash."""

    key: bytes
    value: bytes
    timestamp: int
    sequence_number: int
    hash: bytes

    @classmethod
    def create(cls, key: bytes, value: bytes, timestamp: int, sequence_number: int) -> Self:
        """Build a record, computing its SHA-256 hash."""
        key = bytes(key)
        value = bytes(value)
        digest = hashlib.sha256()
        digest.update(key)
        digest.update(value)
        digest.update(_BE_U64.pack(timestamp))
        digest.update(_BE_U64.pack(sequence_number))
        return cls(key, value, timestamp, sequence_number, digest.digest())

    def to_bytes(self) -> bytes:
        """Encode as length-prefixed fields in little-endian order."""
        return b"".join(
            (
                _encode_blob(self.key),
                _encode_blob(self.value),
                _U64.pack(self.timestamp),
                _U64.pack(self.sequence_number),
                _encode_blob(self.hash),
            )
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Self:
        """Decode a record produced by :meth:`to_bytes`."""
        reader = _ByteReader(data)
        key = reader.blob()
        value = reader.blob()
        timestamp = reader.u64()
        sequence_number = reader.u64()
        record_hash = reader.blob()
        return cls(key, value, timestamp, sequence_number, record_hash)


@dataclass
class BlockDBConfig:
    """Tunable settings for a database instance."""

    data_dir: str = "./blockdb_data"
    memtable_size_limit: int = 64 * 1024 * 1024
    wal_sync_interval_ms: int = 1000
    compaction_threshold: int = 4
    blockchain_batch_size: int = 1000
    auth_enabled: bool = True
    session_duration_hours: int = 24
    password_min_length: int = 8
    max_failed_attempts: int = 5
    account_lockout_duration_minutes: int = 30