import pytest

from blockdb.collection import Collection
from blockdb.collection_models import CollectionMetadata, IndexDefinition
from blockdb.record import ApiError, BlockDBConfig, DuplicateKeyError


@pytest.fixture
def config(tmp_path):
    return BlockDBConfig(
        data_dir=str(tmp_path),
        memtable_size_limit=1024 * 1024,
        wal_sync_interval_ms=1000,
        compaction_threshold=4,
        blockchain_batch_size=100,
    )


@pytest.fixture
def collection(config):
    coll = Collection(CollectionMetadata.new("test_collection"), config)
    yield coll
    coll.storage.close()


def email_index():
    return IndexDefinition(name="email_index", fields=["email"], unique=True, sparse=False)


def test_collection_creation(collection):
    collection.put(b"key1", b"value1")
    assert collection.get(b"key1") == b"value1"
    stats = collection.stats()
    assert stats.document_count == 1
    assert stats.total_size_bytes == len(b"key1") + len(b"value1")
    assert stats.operations_count == 1


def test_index_operations(collection):
    collection.create_index(email_index())
    collection.put(b"user1", b"{'email': 'alice@example.com'}")
    collection.put(b"user2", b"{'email': 'bob@example.com'}")
    assert "email_index" in collection.indexes
    assert collection.indexes["email_index"] == [b"user1", b"user2"]
    collection.drop_index("email_index")
    assert "email_index" not in collection.indexes
    assert collection.metadata.schema.indexes == []


def test_create_index_without_schema_creates_one(collection):
    assert collection.metadata.schema is None
    collection.create_index(email_index())
    assert collection.metadata.schema.version == 1
    assert [index.name for index in collection.metadata.schema.indexes] == ["email_index"]


def test_create_index_requires_fields(collection):
    with pytest.raises(ApiError, match="at least one field"):
        collection.create_index(IndexDefinition(name="empty", fields=[]))
    assert "empty" not in collection.indexes


def test_delete_is_not_supported(collection):
    collection.put(b"k", b"v")
    with pytest.raises(ApiError, match="not supported"):
        collection.delete(b"k")
    assert collection.get(b"k") == b"v"


def test_duplicate_put_leaves_stats_unchanged(collection):
    collection.put(b"k", b"v")
    with pytest.raises(DuplicateKeyError):
        collection.put(b"k", b"w")
    assert collection.count_documents() == 1
    assert collection.stats().operations_count == 1


def test_list_keys_with_prefix_and_limit(collection):
    for key in [b"user:2", b"order:1", b"user:1", b"user:3"]:
        collection.put(key, b"x")
    assert collection.list_keys() == [b"order:1", b"user:1", b"user:2", b"user:3"]
    assert collection.list_keys(b"user:") == [b"user:1", b"user:2", b"user:3"]
    assert collection.list_keys(b"user:", 2) == [b"user:1", b"user:2"]
    assert collection.list_keys(b"none") == []


def test_storage_lives_under_collections_dir(config, tmp_path):
    metadata = CollectionMetadata.new("placed")
    coll = Collection(metadata, config)
    try:
        coll.put(b"k", b"v")
        assert (tmp_path / "collections" / metadata.id / "wal.log").exists()
        assert (tmp_path / "collections" / metadata.id / "blockchain.dat").exists()
    finally:
        coll.storage.close()


def test_flush_resets_data_stats_and_indexes(collection):
    collection.create_index(email_index())
    collection.put(b"k1", b"v1")
    collection.put(b"k2", b"v2")
    collection.flush()
    assert collection.get(b"k1") is None
    assert collection.count_documents() == 0
    assert collection.stats().total_size_bytes == 0
    assert collection.indexes == {}
    collection.put(b"k1", b"again")
    assert collection.get(b"k1") == b"again"


def test_verify_integrity(collection):
    for i in range(5):
        collection.put(f"k{i}".encode(), b"v")
    assert collection.verify_integrity() is True
    assert collection.count_documents() == 5


def test_stats_returns_copy(collection):
    snapshot = collection.stats()
    collection.put(b"k", b"v")
    assert snapshot.document_count == 0
    assert collection.stats().document_count == 1