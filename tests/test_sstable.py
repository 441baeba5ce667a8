import struct

import pytest

from blockdb.memtable import MemTable
from blockdb.record import Record, StorageError
from blockdb.sstable import SSTable, write_records


@pytest.fixture
def memtable():
    table = MemTable()
    for seq, key in enumerate((b"e", b"a", b"c"), start=1):
        table.insert(Record.create(key, b"value-" + key, 1000, seq))
    return table


def test_create_and_get(tmp_path, memtable):
    path = tmp_path / "t.sst"
    with SSTable.create_from_memtable(path, memtable) as table:
        assert table.get(b"c") == memtable.get(b"c")
        assert table.get(b"missing") is None
        assert len(table) == 3
        assert table.path == str(path)


def test_reopen_preserves_contents(tmp_path, memtable):
    path = tmp_path / "t.sst"
    SSTable.create_from_memtable(path, memtable).close()
    with SSTable.open(path) as table:
        assert list(table.keys()) == [b"a", b"c", b"e"]
        for key, record in memtable.items():
            assert table.get(key) == record


def test_first_last_and_contains(tmp_path, memtable):
    with SSTable.create_from_memtable(tmp_path / "t.sst", memtable) as table:
        assert table.first_key() == b"a"
        assert table.last_key() == b"e"
        assert b"c" in table
        assert b"b" not in table


def test_scan_range_is_half_open(tmp_path, memtable):
    with SSTable.create_from_memtable(tmp_path / "t.sst", memtable) as table:
        assert [r.key for r in table.scan_range(b"a", b"e")] == [b"a", b"c"]
        assert [r.key for r in table.scan_range(b"b", b"z")] == [b"c", b"e"]
        assert table.scan_range(b"x", b"z") == []


def test_scan_range_rejects_reversed_bounds(tmp_path, memtable):
    with SSTable.create_from_memtable(tmp_path / "t.sst", memtable) as table:
        with pytest.raises(ValueError):
            table.scan_range(b"z", b"a")


def test_empty_table(tmp_path):
    path = tmp_path / "empty.sst"
    SSTable.create_from_memtable(path, MemTable()).close()
    with SSTable.open(path) as table:
        assert len(table) == 0
        assert table.first_key() is None
        assert table.last_key() is None


def test_footer_describes_index(tmp_path, memtable):
    path = tmp_path / "t.sst"
    index = write_records(path, (r for _, r in memtable.items()))
    data = path.read_bytes()
    index_offset, index_size = struct.unpack(">QQ", data[-16:])
    assert index_offset + index_size + 16 == len(data)
    last = index[b"e"]
    assert last.offset + 4 + last.size == index_offset


def test_write_records_offsets_are_sequential(tmp_path, memtable):
    index = write_records(tmp_path / "t.sst", (r for _, r in memtable.items()))
    entries = [index[key] for key in sorted(index)]
    assert entries[0].offset == 0
    for previous, current in zip(entries, entries[1:]):
        assert current.offset == previous.offset + 4 + previous.size


def test_write_records_last_duplicate_wins(tmp_path):
    older = Record.create(b"k", b"old", 1, 1)
    newer = Record.create(b"k", b"new", 2, 2)
    path = tmp_path / "t.sst"
    write_records(path, [older, newer])
    with SSTable.open(path) as table:
        assert len(table) == 1
        assert table.get(b"k") == newer


def test_open_short_file_raises(tmp_path):
    path = tmp_path / "bad.sst"
    path.write_bytes(b"tiny")
    with pytest.raises(StorageError):
        SSTable.open(path)