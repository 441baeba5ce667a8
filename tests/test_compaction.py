import os

from blockdb.compaction import Compactor
from blockdb.record import Record
from blockdb.sstable import SSTable, write_records


def write_table(path, items, seq_start=1):
    records = [
        Record.create(key, value, 1000, seq)
        for seq, (key, value) in enumerate(items, start=seq_start)
    ]
    write_records(path, records)
    return str(path)


def test_new_compactor_has_empty_levels(tmp_path):
    compactor = Compactor(tmp_path)
    assert compactor.level_info() == [0] * 7
    assert not compactor.needs_compaction(0)


def test_add_sstable_ignores_out_of_range_level(tmp_path):
    compactor = Compactor(tmp_path)
    compactor.add_sstable("a.sst", 0)
    compactor.add_sstable("b.sst", 7)
    compactor.add_sstable("c.sst", -1)
    assert compactor.level_info() == [1, 0, 0, 0, 0, 0, 0]
    assert not compactor.needs_compaction(7)


def test_needs_compaction_threshold(tmp_path):
    compactor = Compactor(tmp_path)
    for i in range(compactor.max_level_size[0]):
        compactor.add_sstable(f"t{i}.sst", 0)
    assert not compactor.needs_compaction(0)
    compactor.add_sstable("extra.sst", 0)
    assert compactor.needs_compaction(0)


def test_compact_level_merges_into_next_level(tmp_path):
    first = write_table(tmp_path / "one.sst", [(b"a", b"1"), (b"b", b"old")])
    second = write_table(tmp_path / "two.sst", [(b"b", b"new"), (b"c", b"3")], seq_start=3)
    compactor = Compactor(tmp_path)
    compactor.add_sstable(first, 0)
    compactor.add_sstable(second, 0)

    compactor.compact_level(0)

    assert compactor.level_info() == [0, 1, 0, 0, 0, 0, 0]
    assert not os.path.exists(first)
    assert not os.path.exists(second)
    merged_path = compactor.levels[1][0]
    assert os.path.basename(merged_path).startswith("compacted_1_")
    with SSTable.open(merged_path) as table:
        assert list(table.keys()) == [b"a", b"b", b"c"]
        assert table.get(b"b").value == b"new"
        assert table.get(b"a").value == b"1"


def test_compacting_empty_level_creates_nothing(tmp_path):
    compactor = Compactor(tmp_path)
    compactor.compact_level(0)
    assert compactor.level_info() == [0] * 7
    assert list(tmp_path.iterdir()) == []


def test_last_level_is_never_compacted(tmp_path):
    path = write_table(tmp_path / "deep.sst", [(b"k", b"v")])
    compactor = Compactor(tmp_path)
    compactor.add_sstable(path, 6)
    compactor.compact_level(6)
    assert compactor.level_info() == [0, 0, 0, 0, 0, 0, 1]
    assert os.path.exists(path)


def test_cleanup_forgets_missing_files(tmp_path):
    present = write_table(tmp_path / "here.sst", [(b"k", b"v")])
    compactor = Compactor(tmp_path)
    compactor.add_sstable(present, 0)
    compactor.add_sstable(str(tmp_path / "gone.sst"), 0)
    compactor.add_sstable(str(tmp_path / "gone2.sst"), 2)
    compactor.cleanup_empty_levels()
    assert compactor.levels[0] == [present]
    assert compactor.levels[2] == []