"""
Node and way stores

Pluggable backends behind a fixed contract:
- NodeStore: node id -> LatpLon
- WayStore: way id -> ordered node ids
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Sequence, Tuple

import numpy as np

from ..coordinates import LatpLon
from ..errors import MissingReferenceError

# Marks an unset slot in the compact arrays (not a valid fixed-point latp)
_ABSENT = np.iinfo(np.int32).min


class NodeStore(ABC):
    """Node coordinate store contract"""

    @abstractmethod
    def insert(self, items: Iterable[Tuple[int, LatpLon]]):
        """Add (node id, point) pairs"""

    @abstractmethod
    def point_for(self, node_id: int) -> LatpLon:
        """Point for a node; raises MissingReferenceError if absent"""

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def clear(self):
        ...


class WayStore(ABC):
    """Way node-list store contract"""

    @abstractmethod
    def insert(self, items: Iterable[Tuple[int, Sequence[int]]]):
        """Add (way id, node ids) pairs"""

    @abstractmethod
    def nodes_for(self, way_id: int) -> Sequence[int]:
        """Ordered node ids of a way; raises MissingReferenceError if absent"""

    @abstractmethod
    def contains(self, way_id: int) -> bool:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...

    @abstractmethod
    def clear(self):
        ...


class SparseNodeStore(NodeStore):
    """Hash map node store, any id range"""

    def __init__(self):
        self._lock = threading.Lock()
        self._points: Dict[int, LatpLon] = {}

    def insert(self, items):
        with self._lock:
            self._points.update(items)

    def point_for(self, node_id):
        try:
            return self._points[node_id]
        except KeyError:
            raise MissingReferenceError("node", node_id) from None

    def __len__(self):
        return len(self._points)

    def clear(self):
        with self._lock:
            self._points.clear()


class CompactNodeStore(NodeStore):
    """
    Dense array indexed directly by node id.

    Lower memory per node than the sparse store, but assumes ids are
    non-negative and reasonably densely packed from zero. Each row holds
    (latp, lon); the whole array is swapped in one assignment on growth so
    readers always see matching columns.
    """

    def __init__(self, initial_capacity: int = 1 << 16):
        self._lock = threading.Lock()
        self._points = np.full((initial_capacity, 2), _ABSENT, dtype=np.int32)
        self._count = 0

    def _grow(self, min_capacity: int):
        old = self._points
        points = np.full((max(min_capacity, old.shape[0] * 2), 2), _ABSENT, dtype=np.int32)
        points[:old.shape[0]] = old
        self._points = points

    def insert(self, items):
        with self._lock:
            for node_id, point in items:
                if node_id < 0:
                    raise ValueError(f"compact node store needs non-negative ids, got {node_id}")
                if node_id >= self._points.shape[0]:
                    self._grow(node_id + 1)
                if self._points[node_id, 0] == _ABSENT:
                    self._count += 1
                self._points[node_id] = (point.latp, point.lon)

    def point_for(self, node_id):
        points = self._points
        if node_id < 0 or node_id >= points.shape[0] or points[node_id, 0] == _ABSENT:
            raise MissingReferenceError("node", node_id)
        latp, lon = points[node_id]
        return LatpLon(int(latp), int(lon))

    def __len__(self):
        return self._count

    def clear(self):
        with self._lock:
            self._points = np.full(self._points.shape, _ABSENT, dtype=np.int32)
            self._count = 0


class SparseWayStore(WayStore):
    """Way store holding node lists as int64 arrays"""

    def __init__(self):
        self._lock = threading.Lock()
        self._ways: Dict[int, np.ndarray] = {}

    def insert(self, items):
        packed = [(way_id, np.asarray(nodes, dtype=np.int64)) for way_id, nodes in items]
        with self._lock:
            self._ways.update(packed)

    def nodes_for(self, way_id):
        try:
            return self._ways[way_id].tolist()
        except KeyError:
            raise MissingReferenceError("way", way_id) from None

    def contains(self, way_id):
        return way_id in self._ways

    def __len__(self):
        return len(self._ways)

    def clear(self):
        with self._lock:
            self._ways.clear()
