"""
LSM-Tree Memtable

The in-memory ordered write buffer of a Log-Structured Merge Tree.

Main components:
    - Memtable: Sorted records with tombstones and size accounting
    - MemtableEntry: One record (latest write or delete for a key)
    - MemtableIterator: Peekable cursor used when flushing
    - needs_flush: Capacity check performed by the memtable's owner
"""

from .memtable import (
    DEFAULT_CAPACITY_BYTES,
    MAX_TIMESTAMP,
    Memtable,
    MemtableEntry,
    MemtableIterator,
    needs_flush,
)

__version__ = "0.1.0"
__all__ = [
    'DEFAULT_CAPACITY_BYTES',
    'MAX_TIMESTAMP',
    'Memtable',
    'MemtableEntry',
    'MemtableIterator',
    'needs_flush',
]
