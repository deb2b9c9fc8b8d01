"""
Reference geometry layers

Labelled polygon sets (coastlines, admin areas, landcover, ...) that rules
test elements against. Loading them from disk is up to the caller; this
index only answers intersection/covering queries, one STRtree per layer.
Geometries must be in the same projected (lon, latp) space as elements.
"""

import threading
from typing import Dict, List, Optional

from loguru import logger
from shapely.geometry.base import BaseGeometry
from shapely.strtree import STRtree


class ReferenceLayerIndex:
    """Spatial index over named reference layers"""

    def __init__(self):
        self._lock = threading.Lock()
        self._geometries: Dict[str, List[BaseGeometry]] = {}
        self._labels: Dict[str, List[str]] = {}
        self._trees: Dict[str, STRtree] = {}

    def add(self, layer: str, geometry: BaseGeometry, label: str = ""):
        with self._lock:
            self._geometries.setdefault(layer, []).append(geometry)
            self._labels.setdefault(layer, []).append(label)
            self._trees.pop(layer, None)

    def has_layer(self, layer: str) -> bool:
        return layer in self._geometries

    def layers(self) -> List[str]:
        return sorted(self._geometries)

    def build(self):
        """Build every tree up front so worker threads only ever read"""
        for layer in self.layers():
            self._tree(layer)

    def _tree(self, layer: str) -> Optional[STRtree]:
        tree = self._trees.get(layer)
        if tree is not None:
            return tree
        with self._lock:
            if layer not in self._geometries:
                return None
            tree = self._trees.get(layer)
            if tree is None:
                tree = STRtree(self._geometries[layer])
                self._trees[layer] = tree
                logger.debug(f"Indexed reference layer '{layer}' ({len(self._geometries[layer])} geometries)")
            return tree

    def query(self, layer: str, geometry: BaseGeometry, predicate: str = "intersects",
              once: bool = False) -> List[int]:
        """
        Indices of reference geometries in `layer` for which
        predicate(geometry, reference) holds. Unknown layers give [].
        """
        if geometry is None or geometry.is_empty:
            return []
        tree = self._tree(layer)
        if tree is None:
            return []
        hits = tree.query(geometry, predicate=predicate)
        if not hits.size:
            return []
        if once:
            # lowest insertion index, no sort
            return [int(hits.min())]
        return sorted(int(i) for i in hits)

    def labels(self, layer: str, indices: List[int]) -> List[str]:
        labels = self._labels.get(layer, [])
        return [labels[i] for i in indices]

    def geometries(self, layer: str, indices: List[int]) -> List[BaseGeometry]:
        geometries = self._geometries.get(layer, [])
        return [geometries[i] for i in indices]

    def clear(self):
        with self._lock:
            self._geometries.clear()
            self._labels.clear()
            self._trees.clear()
