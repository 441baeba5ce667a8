"""Coordination of the named collections kept under one data directory."""

from __future__ import annotations

import copy
import logging
import shutil
import threading
import tomllib
from pathlib import Path
from typing import Self

import tomli_w

from .collection import Collection
from .collection_models import (
    CollectionMetadata,
    CollectionSchema,
    CollectionSettings,
    CollectionStats,
    IndexDefinition,
)
from .record import ApiError, BlockDBConfig, BlockDBError

log = logging.getLogger(__name__)

METADATA_FILE_NAME = "metadata.toml"


class CollectionManager:
    """Creates, opens, persists and drops the collections of a single node.

    Each collection lives in ``<data_dir>/collections/<id>`` next to a
    ``metadata.toml`` that describes it; existing collections are loaded when
    the manager starts.
    """

    def __init__(self, config: BlockDBConfig) -> None:
        self.config = config
        self._root = Path(config.data_dir) / "collections"
        self._root.mkdir(parents=True, exist_ok=True)
        self._collections: dict[str, Collection] = {}
        self._lock = threading.RLock()
        self._load_existing_collections()

    def _metadata_path(self, collection_id: str) -> Path:
        return self._root / collection_id / METADATA_FILE_NAME

    def _require(self, collection_id: str) -> Collection:
        with self._lock:
            collection = self._collections.get(collection_id)
        if collection is None:
            raise ApiError(f"Collection '{collection_id}' not found")
        return collection

    def create_collection(
        self,
        name: str,
        schema: CollectionSchema | None = None,
        settings: CollectionSettings | None = None,
        created_by: str | None = None,
    ) -> str:
        """Create a collection with a unique name and return its id."""
        with self._lock:
            if any(c.metadata.name == name for c in self._collections.values()):
                raise ApiError(f"Collection with name '{name}' already exists")
            metadata = CollectionMetadata.new(name, created_by)
            if schema is not None:
                metadata = metadata.with_schema(schema)
            if settings is not None:
                metadata = metadata.with_settings(settings)
            collection = Collection(metadata, self.config)
            self._collections[metadata.id] = collection
            self._persist_collection_metadata(metadata.id)
        log.info("Collection '%s' created with ID: %s", name, metadata.id)
        return metadata.id

    def drop_collection(self, collection_id: str) -> None:
        """Remove a collection and every file it owns."""
        with self._lock:
            collection = self._collections.pop(collection_id, None)
        if collection is None:
            raise ApiError(f"Collection '{collection_id}' does not exist")
        collection.storage.close()
        metadata_path = self._metadata_path(collection_id)
        if metadata_path.exists():
            metadata_path.unlink()
        collection_dir = self._root / collection_id
        if collection_dir.exists():
            shutil.rmtree(collection_dir)
        log.info("Collection '%s' dropped successfully", collection_id)

    def get_collection(self, collection_id: str) -> Collection:
        return self._require(collection_id)

    def list_collections(self) -> list[CollectionMetadata]:
        """Copies of the metadata of every collection."""
        with self._lock:
            return [copy.deepcopy(c.metadata) for c in self._collections.values()]

    def collection_exists(self, collection_id: str) -> bool:
        with self._lock:
            return collection_id in self._collections

    def get_collection_by_name(self, name: str) -> str | None:
        """The id of the collection with this name, or None."""
        with self._lock:
            for collection_id, collection in self._collections.items():
                if collection.metadata.name == name:
                    return collection_id
        return None

    def put(self, collection_id: str, key: bytes, value: bytes) -> None:
        self._require(collection_id).put(key, value)

    def get(self, collection_id: str, key: bytes) -> bytes | None:
        return self._require(collection_id).get(key)

    def delete(self, collection_id: str, key: bytes) -> None:
        self._require(collection_id).delete(key)

    def list_keys(
        self, collection_id: str, prefix: bytes | None = None, limit: int | None = None
    ) -> list[bytes]:
        return self._require(collection_id).list_keys(prefix, limit)

    def get_collection_stats(self, collection_id: str) -> CollectionStats:
        return self._require(collection_id).stats()

    def create_index(self, collection_id: str, index_def: IndexDefinition) -> None:
        self._require(collection_id).create_index(index_def)

    def drop_index(self, collection_id: str, index_name: str) -> None:
        self._require(collection_id).drop_index(index_name)

    def verify_all_integrity(self) -> bool:
        """True when every collection's chain verifies; stops at the first failure."""
        with self._lock:
            collections = list(self._collections.items())
        for collection_id, collection in collections:
            if not collection.verify_integrity():
                log.error("Integrity check failed for collection: %s", collection_id)
                return False
        log.info("Integrity verification passed for all collections")
        return True

    def total_stats(self) -> tuple[int, int, int]:
        """(number of collections, total documents, total bytes)."""
        with self._lock:
            collections = list(self._collections.values())
        stats = [collection.stats() for collection in collections]
        return (
            len(collections),
            sum(s.document_count for s in stats),
            sum(s.total_size_bytes for s in stats),
        )

    def flush_collection(self, collection_id: str) -> None:
        """Discard the data of one collection and persist its reset metadata."""
        collection = self._require(collection_id)
        collection.flush()
        with self._lock:
            self._persist_collection_metadata(collection_id)
        log.info("Collection '%s' flushed successfully", collection_id)

    def flush_all(self) -> None:
        """Flush every collection."""
        with self._lock:
            collection_ids = list(self._collections)
        for collection_id in collection_ids:
            self.flush_collection(collection_id)
        log.info("All collections flushed successfully")

    def _load_existing_collections(self) -> None:
        for entry in sorted(self._root.iterdir()):
            collection_id = entry.name
            if not self._metadata_path(collection_id).is_file():
                continue
            try:
                metadata = self._load_collection_metadata(collection_id)
            except (BlockDBError, OSError) as error:
                log.warning("Failed to load metadata for collection %s: %s", collection_id, error)
                continue
            try:
                collection = Collection(metadata, self.config)
            except (BlockDBError, OSError) as error:
                log.warning("Failed to load collection %s: %s", collection_id, error)
                continue
            self._collections[collection_id] = collection
            log.info("Loaded existing collection: %s", collection_id)

    def _persist_collection_metadata(self, collection_id: str) -> None:
        collection = self._collections.get(collection_id)
        if collection is None:
            return
        path = self._metadata_path(collection_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            text = tomli_w.dumps(collection.metadata.to_dict())
        except (TypeError, ValueError) as error:
            raise ApiError(f"Failed to serialize metadata: {error}") from error
        path.write_text(text, encoding="utf-8")

    def _load_collection_metadata(self, collection_id: str) -> CollectionMetadata:
        text = self._metadata_path(collection_id).read_text(encoding="utf-8")
        try:
            return CollectionMetadata.from_dict(tomllib.loads(text))
        except (tomllib.TOMLDecodeError, ValueError, TypeError) as error:
            raise ApiError(f"Failed to parse metadata: {error}") from error

    def _close(self) -> None:
        with self._lock:
            for collection in self._collections.values():
                collection.storage.close()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self._close()