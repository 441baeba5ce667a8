"""The append-only key/value store: write-ahead log, memtable, tables and chain."""

from __future__ import annotations

import contextlib
import logging
import os
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Self

from .blockchain import BlockChain
from .memtable import MemTable
from .record import BlockDBConfig, DuplicateKeyError, Record
from .sstable import SSTable
from .wal import WriteAheadLog

log = logging.getLogger(__name__)


class BlockDB:
    """An append-only store whose every write is also recorded in a hash chain.

    Writes go to the write-ahead log and the memtable; a memtable that grows
    past the configured limit is written out as a table file. Keys can be
    written only once.
    """

    def __init__(self, config: BlockDBConfig | None = None) -> None:
        self.config = config if config is not None else BlockDBConfig()
        Path(self.config.data_dir).mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._memtable = MemTable()
        self._sstables: list[SSTable] = []
        self._sequence = 0
        self._wal = WriteAheadLog(self.config.data_dir)
        try:
            self._blockchain = BlockChain(self.config.data_dir)
            self._recover_from_wal()
        except BaseException:
            self._wal.close()
            raise

    def _recover_from_wal(self) -> None:
        for record in self._wal.recover():
            self._sequence = max(self._sequence, record.sequence_number)
            self._memtable.insert(record)

    def _key_exists(self, key: bytes) -> bool:
        if key in self._memtable:
            return True
        return any(key in table for table in reversed(self._sstables))

    def put(self, key: bytes, value: bytes) -> None:
        """Store a new key; raises :class:`DuplicateKeyError` if it already exists."""
        key = bytes(key)
        value = bytes(value)
        with self._lock:
            if self._key_exists(key):
                shown = key.decode("utf-8", errors="replace")
                raise DuplicateKeyError(
                    f"Key '{shown}' already exists. "
                    "BlockDB is append-only and does not allow updates."
                )
            self._sequence += 1
            record = Record.create(key, value, time.time_ns() // 1_000_000, self._sequence)
            self._wal.append(record)
            self._memtable.insert(record)
            if self._memtable.size > self.config.memtable_size_limit:
                self._flush_memtable()
            self._blockchain.add_record(record)

    def get(self, key: bytes) -> bytes | None:
        """The value stored under key, or None."""
        key = bytes(key)
        with self._lock:
            record = self._memtable.get(key)
            if record is not None:
                return record.value
            for table in reversed(self._sstables):
                record = table.get(key)
                if record is not None:
                    return record.value
        return None

    def _flush_memtable(self) -> None:
        memtable, self._memtable = self._memtable, MemTable()
        data_dir = Path(self.config.data_dir)
        path = data_dir / f"sstable_{time.time_ns()}.sst"
        while path.exists():
            path = data_dir / f"sstable_{time.time_ns()}.sst"
        self._sstables.append(SSTable.create_from_memtable(path, memtable))

    def verify_integrity(self) -> bool:
        """True when the block chain is unbroken and every block is intact."""
        with self._lock:
            return self._blockchain.verify_chain()

    def flush_all(self) -> None:
        """Discard every record and reset the store to an empty state."""
        with self._lock:
            self._memtable = MemTable()
            self._wal.clear()
            for table in self._sstables:
                table.close()
                with contextlib.suppress(OSError):
                    os.remove(table.path)
            self._sstables.clear()
            self._blockchain.clear()
            self._sequence = 0
        log.info("Database flushed successfully - all data cleared")

    def force_flush_memtable(self) -> None:
        """Write the memtable out as a table file now, unless it is empty."""
        with self._lock:
            if len(self._memtable):
                self._flush_memtable()
                log.info("Memtable flushed to disk")
            else:
                log.info("Memtable is empty, nothing to flush")

    def close(self) -> None:
        with self._lock:
            self._wal.close()
            for table in self._sstables:
                table.close()

    def __iter__(self) -> Iterator[bytes]:
        """Every stored key, in key order."""
        with self._lock:
            keys = set(self._memtable.keys())
            for table in self._sstables:
                keys.update(table.keys())
        return iter(sorted(keys))

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()