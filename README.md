# blockdb

An append-only key-value store. Each key can be written once and never updated. Every
write is also recorded in a chain of SHA-256 hashed blocks, so the store can check that
the recorded writes have not been changed.

## How it stores data

- Each write becomes a `Record` (`blockdb.record`) with a SHA-256 hash over its key,
  value, timestamp and sequence number.
- The record is appended to a write-ahead log (`blockdb.wal.WriteAheadLog`, file
  `wal.log`). It is then kept in a sorted in-memory table (`blockdb.memtable.MemTable`).
- When the memtable's estimated size goes past `BlockDBConfig.memtable_size_limit`, the
  memtable is written out as a sorted table file (`blockdb.sstable.SSTable`,
  `sstable_<ns>.sst`).
- Records are also queued in a `blockdb.blockchain.BlockChain` (file `blockchain.dat`).
  Each batch of 1000 records is sealed into a `Block`. A block holds the Merkle root of
  its records and the hash of the block before it. `BlockChain.force_create_block()`
  seals the records waiting in the queue straight away. `BlockChain.record_proof()`
  returns the Merkle sibling hashes for a record.
- `blockdb.compaction.Compactor` merges all the table files at one level into a single
  file at the next level. It is a separate tool: `BlockDB` does not call it.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Basic use

```python
from blockdb.record import BlockDBConfig, DuplicateKeyError
from blockdb.database import BlockDB

with BlockDB(BlockDBConfig(data_dir="./blockdb_data")) as db:
    db.put(b"user:1", b"Alice")
    assert db.get(b"user:1") == b"Alice"
    assert db.get(b"missing") is None

    try:
        db.put(b"user:1", b"Bob")   # keys are written once and never updated
    except DuplicateKeyError:
        pass

    assert db.verify_integrity()    # checks every block and its link to the one before
    print(sorted(db))               # iterating yields the stored keys
```

When the same directory is opened again, the write-ahead log is replayed into the
memtable. Records written before the close can then be read again.

`flush_all()` removes every record, empties the log, deletes the table files and resets
the chain to a fresh genesis block. `force_flush_memtable()` writes the memtable out as
a table file now.

Errors are subclasses of `blockdb.record.BlockDBError`:

- `DuplicateKeyError`: a key that already exists was written again.
- `StorageError`: data on disk is truncated or malformed.
- `ApiError`: the request is not valid.

## Collections

`blockdb.collection_manager.CollectionManager` keeps several stores apart, one for each
named collection. Each collection has its own directory under
`<data_dir>/collections/<id>`, next to a `metadata.toml` that describes it. Collections
already on disk are loaded again when a manager starts.

```python
from blockdb.record import BlockDBConfig
from blockdb.collection_manager import CollectionManager
from blockdb.collection_models import IndexDefinition

with CollectionManager(BlockDBConfig(data_dir="./blockdb_data")) as manager:
    users = manager.create_collection("users", None, None, "admin")
    manager.put(users, b"user1", b"Alice")
    manager.create_index(users, IndexDefinition(name="email_index", fields=["email"]))
    print(manager.get_collection_stats(users).document_count)   # 1
    print(manager.list_keys(users, b"user", 10))                 # [b'user1']
    print(manager.total_stats())                                 # (collections, documents, bytes)
```

The schemas, field definitions, validation rules, settings and statistics are dataclasses
in `blockdb.collection_models`. They are stored as metadata only: documents are not
checked against a schema. An index records the keys written after it was created.
`delete` always raises `ApiError`, because documents cannot be removed from an
append-only store. `flush_collection` and `flush_all` clear the data and reset the
statistics.

## What this package does not do

- There is no command-line tool and no network server. The store is used as a library
  from Python.
- There are no transactions, no key locking and no user accounts. The authentication
  fields of `BlockDBConfig` (`auth_enabled`, `session_duration_hours` and the others)
  are kept, but nothing uses them.
- Table files are not found again when a store is reopened. Records come back through
  the write-ahead log.