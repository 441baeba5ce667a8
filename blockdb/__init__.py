"""Append-only key-value store with a hash chain of its writes, and named collections."""

__version__ = "0.1.0"