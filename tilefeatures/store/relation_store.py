"""
Relation way-list store

Holds (relation id, (outer ways, inner ways)) entries so a relation's
geometry can be rebuilt after the scan, e.g. for nested relations.
"""

import threading
from typing import Iterator, List, Sequence, Tuple

WayList = Sequence[int]
RelationEntry = Tuple[int, Tuple[WayList, WayList]]


class RelationWayListStore:
    """Append-only, lock-protected list of relation way lists"""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[RelationEntry] = []

    def reopen(self):
        """Drop everything by swapping in a fresh list"""
        with self._lock:
            self._entries = []

    def append(self, batch: List[RelationEntry]):
        """
        Append a batch of entries, preserving its order.

        The entries are moved in: the way-list sequences are not copied and
        the caller's batch is left empty.
        """
        with self._lock:
            self._entries.extend(batch)
        batch.clear()

    def sort(self):
        """Order entries by relation id (batches from several threads arrive interleaved)"""
        with self._lock:
            self._entries.sort(key=lambda entry: entry[0])

    def clear(self):
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    __len__ = size

    def __iter__(self) -> Iterator[RelationEntry]:
        with self._lock:
            entries = self._entries
        return iter(entries)
