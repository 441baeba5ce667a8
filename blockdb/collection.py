"""A named collection: its own store plus metadata, statistics and indexes."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from itertools import islice
from pathlib import Path

from .collection_models import CollectionMetadata, CollectionSchema, CollectionStats, IndexDefinition
from .database import BlockDB
from .record import ApiError, BlockDBConfig

log = logging.getLogger(__name__)


class Collection:
    """Documents kept in a store under ``<data_dir>/collections/<id>``."""

    def __init__(self, metadata: CollectionMetadata, config: BlockDBConfig) -> None:
        self.metadata = metadata
        self.config = dataclasses.replace(
            config, data_dir=str(Path(config.data_dir) / "collections" / metadata.id)
        )
        self.storage = BlockDB(self.config)
        self.indexes: dict[str, list[bytes]] = {}
        self._lock = threading.RLock()

    def put(self, key: bytes, value: bytes) -> None:
        """Store a new document and update statistics and indexes."""
        key = bytes(key)
        value = bytes(value)
        with self._lock:
            self.storage.put(key, value)
            stats = self.metadata.stats
            stats.document_count += 1
            stats.total_size_bytes += len(key) + len(value)
            stats.operations_count += 1
            stats.last_updated = int(time.time())
            for keys in self.indexes.values():
                keys.append(key)

    def get(self, key: bytes) -> bytes | None:
        return self.storage.get(key)

    def delete(self, key: bytes) -> None:
        """Always fails: documents cannot be removed from an append-only store."""
        raise ApiError("Delete operations not supported in append-only database")

    def list_keys(self, prefix: bytes | None = None, limit: int | None = None) -> list[bytes]:
        """Stored keys in order, optionally only those with a prefix, at most limit of them."""
        keys = (key for key in self.storage if prefix is None or key.startswith(prefix))
        if limit is not None:
            keys = islice(keys, limit)
        return list(keys)

    def count_documents(self) -> int:
        with self._lock:
            return self.metadata.stats.document_count

    def stats(self) -> CollectionStats:
        """A copy of the current statistics."""
        with self._lock:
            return dataclasses.replace(self.metadata.stats)

    def create_index(self, index_def: IndexDefinition) -> None:
        """Add an index definition; an index needs at least one field."""
        if not index_def.fields:
            raise ApiError("Index must have at least one field")
        with self._lock:
            if self.metadata.schema is None:
                self.metadata.schema = CollectionSchema(version=1, indexes=[index_def])
            else:
                self.metadata.schema.indexes.append(index_def)
            self.indexes[index_def.name] = []
        log.info("Index '%s' created for collection", index_def.name)

    def drop_index(self, index_name: str) -> None:
        with self._lock:
            if self.metadata.schema is not None:
                self.metadata.schema.indexes = [
                    index for index in self.metadata.schema.indexes if index.name != index_name
                ]
            self.indexes.pop(index_name, None)
        log.info("Index '%s' dropped from collection", index_name)

    def verify_integrity(self) -> bool:
        return self.storage.verify_integrity()

    def flush(self) -> None:
        """Discard all documents, reset statistics and clear the indexes."""
        with self._lock:
            self.storage.flush_all()
            self.metadata.stats = CollectionStats()
            self.indexes.clear()