"""
Memtable Module

Purpose:
    In-memory ordered write buffer of the LSM-tree. Holds the latest write
    (or delete marker) for every key not yet flushed to an SSTable.

Key Features:
    - One record per key, kept in byte-lexicographic order
    - Tombstones for deletes (a deleted key is not the same as a missing key)
    - Exact, incremental size accounting used by the caller to decide flushes
    - Ordered range scans for flush and reads

Design:
    Records live in a sortedcontainers.SortedDict keyed by the record key.
    Its sorted key list is the growable sorted array; every operation goes
    through one binary search (_get_index) that returns either the occupied
    position or the position a new key would be inserted at.

Size Accounting:
    First insert of a key:  len(key) + len(value) + TIMESTAMP_SIZE + TOMBSTONE_FLAG_SIZE
    First delete of a key:  len(key) + TIMESTAMP_SIZE + TOMBSTONE_FLAG_SIZE
    Overwrite:              only the value length delta (tombstones count as 0)
"""

import logging
import operator
from typing import Iterator, Optional, Sequence, Tuple

from sortedcontainers import SortedDict

logger = logging.getLogger(__name__)

MAX_TIMESTAMP = 2 ** 128 - 1  # u128
DEFAULT_CAPACITY_BYTES = 4 * 1024 * 1024  # 4 MB

_BYTES_LIKE = (bytes, bytearray, memoryview)


def _to_bytes(data, what: str) -> bytes:
    if not isinstance(data, _BYTES_LIKE):
        raise TypeError(f"{what} must be bytes")
    return bytes(data)


def _check_timestamp(timestamp) -> int:
    # bool is an int subclass but never a meaningful clock value
    if isinstance(timestamp, bool):
        raise TypeError("Timestamp must be int")
    try:
        timestamp = operator.index(timestamp)
    except TypeError:
        raise TypeError("Timestamp must be int") from None
    if not 0 <= timestamp <= MAX_TIMESTAMP:
        raise ValueError(f"Timestamp out of range for 128-bit unsigned: {timestamp}")
    return timestamp


class MemtableEntry:
    """A single record: the latest write or delete for one key"""

    __slots__ = ('key', 'value', 'timestamp', 'is_deleted')

    def __init__(self, key: bytes, value: Optional[bytes], timestamp: int):
        """
        Args:
            key: The key
            value: The value, or None for a tombstone
            timestamp: Time the mutation was accepted (caller-chosen clock)
        """
        object.__setattr__(self, "key", key)
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "timestamp", timestamp)
        object.__setattr__(self, "is_deleted", value is None)

    def __setattr__(self, name, value):
        raise AttributeError(f"MemtableEntry is immutable, cannot set {name!r}")

    def __delattr__(self, name):
        raise AttributeError(f"MemtableEntry is immutable, cannot delete {name!r}")

    def value_size(self) -> int:
        """Bytes contributed by the value (0 for tombstones)"""
        return 0 if self.value is None else len(self.value)

    def storage_cost(self, overhead: int) -> int:
        """Cost charged when this record is the first one for its key"""
        return len(self.key) + self.value_size() + overhead

    def __eq__(self, other):
        if not isinstance(other, MemtableEntry):
            return NotImplemented
        return (self.key == other.key and self.value == other.value
                and self.timestamp == other.timestamp
                and self.is_deleted == other.is_deleted)

    def __repr__(self):
        value_repr = "<tombstone>" if self.is_deleted else f"{len(self.value)} bytes"
        return f"MemtableEntry(key={self.key!r}, value={value_repr}, ts={self.timestamp})"


class Memtable:
    """
    Ordered write buffer

    Mutated in place by set() and delete(). The memtable never checks its
    own capacity: after every mutation the caller compares size() with its
    flush threshold (see needs_flush), hands entries() to an SSTable writer
    and replaces this instance with a fresh one.

    Not thread-safe. Callers serialize mutations and append each one to the
    WAL before applying it here.
    """

    TIMESTAMP_SIZE = 16  # u128 timestamp field
    TOMBSTONE_FLAG_SIZE = 1

    def __init__(self, timestamp_size: Optional[int] = None,
                 tombstone_flag_size: Optional[int] = None):
        """
        Args:
            timestamp_size: Per-entry bytes charged for the timestamp
                (defaults to TIMESTAMP_SIZE)
            tombstone_flag_size: Per-entry bytes charged for the tombstone flag
                (defaults to TOMBSTONE_FLAG_SIZE)
        """
        if timestamp_size is None:
            timestamp_size = self.TIMESTAMP_SIZE
        if tombstone_flag_size is None:
            tombstone_flag_size = self.TOMBSTONE_FLAG_SIZE
        if timestamp_size < 0 or tombstone_flag_size < 0:
            raise ValueError("Per-entry overhead sizes must be non-negative")

        self._entries = SortedDict()
        self._overhead = timestamp_size + tombstone_flag_size
        self._size = 0

    @property
    def entry_overhead(self) -> int:
        """Fixed bytes charged once per distinct key"""
        return self._overhead

    def set(self, key: bytes, value: bytes, timestamp: int) -> None:
        """
        Insert or overwrite the value for a key

        Args:
            key: The key
            value: The value (may be empty)
            timestamp: Time the write was accepted
        """
        key = _to_bytes(key, "Key")
        value = _to_bytes(value, "Value")
        entry = MemtableEntry(key, value, _check_timestamp(timestamp))

        found, idx = self._get_index(key)
        if found:
            previous = self._entries.values()[idx]
            # A tombstone held no value, so the whole new value is growth
            if len(value) < previous.value_size():
                self._size -= previous.value_size() - len(value)
            else:
                self._size += len(value) - previous.value_size()
            logger.debug(f"Overwrote key={key!r} at position {idx}")
        else:
            self._size += entry.storage_cost(self._overhead)
            logger.debug(f"Inserted key={key!r} at position {idx}")

        self._entries[key] = entry

    def delete(self, key: bytes, timestamp: int) -> None:
        """
        Mark a key as deleted by writing a tombstone

        Deleting a key that was never written is valid: the tombstone
        shadows any older value held by an SSTable.

        Args:
            key: The key to delete
            timestamp: Time the delete was accepted
        """
        key = _to_bytes(key, "Key")
        entry = MemtableEntry(key, None, _check_timestamp(timestamp))

        found, idx = self._get_index(key)
        if found:
            self._size -= self._entries.values()[idx].value_size()
        else:
            self._size += entry.storage_cost(self._overhead)
        logger.debug(f"Wrote tombstone for key={key!r} at position {idx}")

        self._entries[key] = entry

    def get(self, key: bytes) -> Optional[MemtableEntry]:
        """
        Look up the record for a key

        Returns:
            The record (possibly a tombstone, check is_deleted), or None if
            the key was never set or deleted in this memtable
        """
        key = _to_bytes(key, "Key")
        found, idx = self._get_index(key)
        if not found:
            return None
        return self._entries.values()[idx]

    def _get_index(self, key: bytes) -> Tuple[bool, int]:
        """
        Binary search for a key

        Returns:
            (True, position of the record) if the key is present, otherwise
            (False, position to insert the key at to keep the order)
        """
        idx = self._entries.bisect_left(key)
        found = idx < len(self._entries) and self._entries.keys()[idx] == key
        return found, idx

    def size(self) -> int:
        """Accounted size in bytes"""
        return self._size

    def entries(self) -> Sequence[MemtableEntry]:
        """Read-only view of all records in key order"""
        return self._entries.values()

    def scan(self, start: Optional[bytes] = None,
             end: Optional[bytes] = None) -> Iterator[MemtableEntry]:
        """
        Iterate records in key range [start, end)

        Args:
            start: Start of range (inclusive), None for beginning
            end: End of range (exclusive), None for end

        Yields:
            Records in key order, tombstones included
        """
        if start is not None:
            start = _to_bytes(start, "Start key")
        if end is not None:
            end = _to_bytes(end, "End key")

        for key in self._entries.irange(start, end, inclusive=(True, False)):
            yield self._entries[key]

    def is_empty(self) -> bool:
        """Check if memtable holds no records"""
        return len(self._entries) == 0

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries.values())

    def __contains__(self, key):
        return self._get_index(_to_bytes(key, "Key"))[0]

    def __repr__(self):
        return f"Memtable(entries={len(self._entries)}, size={self._size} bytes)"


def needs_flush(memtable: Memtable, capacity_bytes: int = DEFAULT_CAPACITY_BYTES) -> bool:
    """
    Check whether a memtable has reached the flush capacity

    Called by the owner of the memtable after every mutation.
    """
    full = memtable.size() >= capacity_bytes
    if full:
        logger.info(f"Memtable reached capacity: {memtable.size()}/{capacity_bytes} bytes "
                    f"over {len(memtable)} entries")
    else:
        logger.debug(f"Memtable at {memtable.size()}/{capacity_bytes} bytes")
    return full


class MemtableIterator:
    """
    Peekable cursor over a memtable's records

    Used by an SSTable writer or merge step that consumes records one at
    a time in key order
    """

    def __init__(self, memtable: Memtable, start: Optional[bytes] = None,
                 end: Optional[bytes] = None):
        """
        Args:
            memtable: The memtable to iterate over
            start: Start of range (inclusive), None for beginning
            end: End of range (exclusive), None for end
        """
        self._iter = memtable.scan(start, end)
        self._current = None
        self._advance()

    def _advance(self):
        """Move to next record"""
        self._current = next(self._iter, None)

    def peek(self) -> Optional[MemtableEntry]:
        """
        Peek at current record without advancing

        Returns:
            The record, or None if exhausted
        """
        return self._current

    def next(self) -> Optional[MemtableEntry]:
        """
        Get current record and advance to next

        Returns:
            The record, or None if exhausted
        """
        current = self._current
        if current is not None:
            self._advance()
        return current

    def has_next(self) -> bool:
        """Check if there are more records"""
        return self._current is not None
