"""
Set of way ids referenced by at least one relation

Noting these during the relation scan means ways nobody refers to do not
need their node lists kept in the way store.
"""

import threading

import numpy as np
from loguru import logger


class UsedWaySet:
    """
    Bit-packed membership set over way ids.

    Writers serialise on a lock. Readers do not: the backing array only ever
    grows, and a new array is published before the logical size that covers
    it, so a reader never looks past the real end.
    """

    def __init__(self, growth_margin: int = 256):
        self.growth_margin = growth_margin
        self.inited = False
        self._lock = threading.Lock()
        self._bits = np.zeros(0, dtype=np.uint8)
        self._size = 0  # logical size in bits

    def reserve(self, estimated_node_count: int, compact: bool, compact_ratio: int = 8,
                full_id_space: int = 2 ** 31):
        """Size the backing array once; later calls are no-ops"""
        with self._lock:
            if self.inited:
                return
            self.inited = True
            if compact:
                capacity = estimated_node_count // compact_ratio
            else:
                # anything up to the current max way id
                capacity = full_id_space
            if capacity > self._bits.size * 8:
                grown = np.zeros((capacity + 7) // 8, dtype=np.uint8)
                grown[:self._bits.size] = self._bits
                self._bits = grown
            logger.debug(f"Used-way set reserved for {capacity} ids (compact={compact})")

    def mark(self, way_id: int):
        """Mark a way as used"""
        if way_id < 0:
            raise ValueError(f"way id must be non-negative, got {way_id}")
        with self._lock:
            if way_id >= self._size:
                new_size = way_id + self.growth_margin
                needed = (new_size + 7) // 8
                if needed > self._bits.size:
                    grown = np.zeros(max(needed, self._bits.size * 2), dtype=np.uint8)
                    grown[:self._bits.size] = self._bits
                    self._bits = grown
                self._size = new_size
            self._bits[way_id >> 3] |= np.uint8(1 << (way_id & 7))

    def query(self, way_id: int) -> bool:
        """See if a way is used"""
        size = self._size
        bits = self._bits
        if way_id < 0 or way_id >= size or (way_id >> 3) >= bits.size:
            return False
        return bool(bits[way_id >> 3] & (1 << (way_id & 7)))

    __contains__ = query

    def clear(self):
        with self._lock:
            self._size = 0
            self._bits = np.zeros(0, dtype=np.uint8)
            self.inited = False

    def count(self) -> int:
        used = self._bits[:(self._size + 7) // 8]
        return int(np.unpackbits(used).sum()) if used.size else 0

    def __len__(self) -> int:
        return self._size
