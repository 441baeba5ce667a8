"""Hash-linked blocks of records with Merkle roots, persisted to disk."""

from __future__ import annotations

import hashlib
import os
import struct
import time
from collections import deque
from dataclasses import dataclass, field
from itertools import pairwise
from pathlib import Path
from typing import Self

from .record import Record, _ByteReader, _encode_blob

BLOCKCHAIN_FILE_NAME = "blockchain.dat"
DEFAULT_BATCH_SIZE = 1000
GENESIS_PREVIOUS_HASH = bytes(32)
EMPTY_MERKLE_ROOT = bytes(32)

_U64 = struct.Struct("<Q")
_BE_U64 = struct.Struct(">Q")


def _next_level(hashes: list[bytes]) -> list[bytes]:
    """Hash adjacent pairs; an odd trailing hash is paired with itself."""
    if len(hashes) % 2:
        hashes = [*hashes, hashes[-1]]
    return [hashlib.sha256(left + right).digest() for left, right in zip(hashes[::2], hashes[1::2])]


def merkle_root(records: list[Record]) -> bytes:
    """Merkle root over the records' hashes; 32 zero bytes when there are none."""
    hashes = [record.hash for record in records]
    if not hashes:
        return EMPTY_MERKLE_ROOT
    while len(hashes) > 1:
        hashes = _next_level(hashes)
    return hashes[0]


def _merkle_proof(hashes: list[bytes], index: int) -> list[bytes]:
    proof = []
    while len(hashes) > 1:
        if index % 2 == 0 and index + 1 < len(hashes):
            proof.append(hashes[index + 1])
        elif index % 2 == 1:
            proof.append(hashes[index - 1])
        hashes = _next_level(hashes)
        index //= 2
    return proof


@dataclass
class Block:
    """A batch of records linked to the block before it by hash."""

    index: int
    timestamp: int
    previous_hash: bytes
    merkle_root: bytes
    records: list[Record] = field(default_factory=list)
    hash: bytes = b""
    nonce: int = 0

    @classmethod
    def create(cls, index: int, previous_hash: bytes, records: list[Record]) -> Self:
        """Build a block stamped with the current time and its hash filled in."""
        records = list(records)
        block = cls(
            index=index,
            timestamp=int(time.time()),
            previous_hash=bytes(previous_hash),
            merkle_root=merkle_root(records),
            records=records,
        )
        block.hash = block.calculate_hash()
        return block

    def calculate_hash(self) -> bytes:
        digest = hashlib.sha256()
        digest.update(_BE_U64.pack(self.index))
        digest.update(_BE_U64.pack(self.timestamp))
        digest.update(self.previous_hash)
        digest.update(self.merkle_root)
        digest.update(_BE_U64.pack(self.nonce))
        for record in self.records:
            digest.update(record.hash)
        return digest.digest()

    def verify_integrity(self) -> bool:
        """True when the stored hash and Merkle root match the contents."""
        return self.hash == self.calculate_hash() and self.merkle_root == merkle_root(self.records)


def _encode_block(block: Block) -> bytes:
    parts = [
        _U64.pack(block.index),
        _U64.pack(block.timestamp),
        _encode_blob(block.previous_hash),
        _encode_blob(block.merkle_root),
        _U64.pack(len(block.records)),
    ]
    parts.extend(_encode_blob(record.to_bytes()) for record in block.records)
    parts.append(_encode_blob(block.hash))
    parts.append(_U64.pack(block.nonce))
    return b"".join(parts)


def _decode_block(reader: _ByteReader) -> Block:
    index = reader.u64()
    timestamp = reader.u64()
    previous_hash = reader.blob()
    root = reader.blob()
    records = [Record.from_bytes(reader.blob()) for _ in range(reader.u64())]
    block_hash = reader.blob()
    nonce = reader.u64()
    return Block(index, timestamp, previous_hash, root, records, block_hash, nonce)


class BlockChain:
    """Chain of blocks stored in ``blockchain.dat``; records are batched into blocks."""

    def __init__(self, data_dir: str | os.PathLike[str], batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.path = Path(data_dir) / BLOCKCHAIN_FILE_NAME
        self.batch_size = batch_size
        self._pending: deque[Record] = deque()
        self._blocks: list[Block] = self._load()
        if not self._blocks:
            self._blocks.append(Block.create(0, GENESIS_PREVIOUS_HASH, []))
            self._save()

    @property
    def blocks(self) -> tuple[Block, ...]:
        return tuple(self._blocks)

    @property
    def pending(self) -> tuple[Record, ...]:
        """Records waiting to be sealed into a block."""
        return tuple(self._pending)

    def add_record(self, record: Record) -> None:
        """Queue a record, sealing a block once the batch is full."""
        self._pending.append(record)
        if len(self._pending) >= self.batch_size:
            self._create_block()

    def _create_block(self) -> None:
        if not self._pending:
            return
        records = list(self._pending)
        self._pending.clear()
        block = Block.create(len(self._blocks), self._blocks[-1].hash, records)
        self._blocks.append(block)
        self._save()

    def verify_chain(self) -> bool:
        """Check every block after the genesis block and its link to its predecessor."""
        for previous, current in pairwise(self._blocks):
            if not current.verify_integrity():
                return False
            if current.previous_hash != previous.hash:
                return False
            if current.index != previous.index + 1:
                return False
        return True

    def get_block(self, index: int) -> Block | None:
        if 0 <= index < len(self._blocks):
            return self._blocks[index]
        return None

    def latest_block(self) -> Block | None:
        return self._blocks[-1] if self._blocks else None

    def force_create_block(self) -> None:
        """Seal the pending records into a block now, if there are any."""
        self._create_block()

    def record_proof(self, record_hash: bytes) -> list[bytes] | None:
        """Merkle sibling hashes for the record with this hash, or None if absent."""
        for block in self._blocks:
            hashes = [record.hash for record in block.records]
            for position, candidate in enumerate(hashes):
                if candidate == record_hash:
                    return _merkle_proof(hashes, position)
        return None

    def clear(self) -> None:
        """Drop every block and pending record, starting again from a genesis block."""
        self._blocks.clear()
        self._pending.clear()
        self._blocks.append(Block.create(0, GENESIS_PREVIOUS_HASH, []))
        self._save()

    def _save(self) -> None:
        data = _U64.pack(len(self._blocks)) + b"".join(_encode_block(block) for block in self._blocks)
        self.path.write_bytes(data)

    def _load(self) -> list[Block]:
        if not self.path.exists():
            return []
        data = self.path.read_bytes()
        if not data:
            return []
        reader = _ByteReader(data)
        return [_decode_block(reader) for _ in range(reader.u64())]

    def __len__(self) -> int:
        return len(self._blocks)