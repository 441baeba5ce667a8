"""Levelled merging of table files."""

from __future__ import annotations

import os
import time

from .record import Record
from .sstable import SSTable, write_records

MAX_LEVEL_SIZES = (10, 100, 1_000, 10_000, 100_000, 1_000_000, 10_000_000)


class Compactor:
    """Tracks table files per level and merges a full level into the next."""

    def __init__(self, data_dir: str | os.PathLike[str]) -> None:
        self.data_dir = str(data_dir)
        self.levels: list[list[str]] = [[] for _ in MAX_LEVEL_SIZES]
        self.max_level_size = list(MAX_LEVEL_SIZES)

    def _valid_level(self, level: int) -> bool:
        return 0 <= level < len(self.levels)

    def add_sstable(self, sstable_path: str | os.PathLike[str], level: int) -> None:
        """Register a table file at a level; out-of-range levels are ignored."""
        if self._valid_level(level):
            self.levels[level].append(str(sstable_path))

    def needs_compaction(self, level: int) -> bool:
        if not self._valid_level(level):
            return False
        return len(self.levels[level]) > self.max_level_size[level]

    def compact_level(self, level: int) -> None:
        """Merge every table at a level into one table at the next level.

        Later tables override earlier ones for the same key. The source files
        are deleted, and compaction cascades while the next level is over size.
        The last level is never compacted.
        """
        if not 0 <= level < len(self.levels) - 1:
            return

        merged: dict[bytes, Record] = {}
        for path in self.levels[level]:
            with SSTable.open(path) as table:
                for key in list(table.keys()):
                    record = table.get(key)
                    if record is not None:
                        merged[key] = record

        if merged:
            new_path = f"{self.data_dir}/compacted_{level + 1}_{time.time_ns()}.sst"
            write_records(new_path, merged.values())
            self.levels[level + 1].append(new_path)

        for path in self.levels[level]:
            os.remove(path)
        self.levels[level].clear()

        if self.needs_compaction(level + 1):
            self.compact_level(level + 1)

    def level_info(self) -> list[int]:
        """Number of table files at each level."""
        return [len(paths) for paths in self.levels]

    def cleanup_empty_levels(self) -> None:
        """Forget table files that no longer exist on disk."""
        for paths in self.levels:
            paths[:] = [path for path in paths if os.path.exists(path)]