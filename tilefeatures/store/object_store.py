"""
Object store

Keeps nodes, ways and relation bookkeeping for later access and serves as
the global data store shared by all worker threads. The node/way backends
are pluggable; the relation bookkeeping (used ways, scanned relations,
relation way lists) is owned here.
"""

import itertools
import threading
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from loguru import logger
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Polygon
from shapely.geometry.polygon import orient

from ..config import StoreConfig
from ..errors import MissingReferenceError
from .assembly import Coord, RING_ORIENTATION, assemble_multipolygon, merge_rings
from .coordinate_stores import CompactNodeStore, NodeStore, SparseNodeStore, SparseWayStore, WayStore
from .relation_index import RelationIndex
from .relation_store import RelationEntry, RelationWayListStore
from .used_ways import UsedWaySet


class ObjectStore:
    """
    Global OSM store

    Usage:
        store = ObjectStore(config=StoreConfig(enforce_integrity=False))
        store.nodes.insert([(1, LatpLon.from_degrees(51.5, -0.12)), ...])
        polygon = store.way_to_polygon([1, 2, 3, 1])
    """

    def __init__(
        self,
        nodes: Optional[NodeStore] = None,
        ways: Optional[WayStore] = None,
        config: Optional[StoreConfig] = None
    ):
        self.config = config or StoreConfig()
        if nodes is None:
            nodes = CompactNodeStore() if self.config.compact_storage else SparseNodeStore()
        self.nodes = nodes
        self.ways = ways if ways is not None else SparseWayStore()

        self.used_ways = UsedWaySet(growth_margin=self.config.used_way_growth_margin)
        self.scanned_relations = RelationIndex()
        self.relations = RelationWayListStore()

        self._relation_ids = itertools.count(-1, -1)
        self._relation_id_lock = threading.Lock()

    @property
    def integrity_enforced(self) -> bool:
        return self.config.enforce_integrity

    @property
    def compact_storage(self) -> bool:
        return self.config.compact_storage

    # ---- used ways

    def ensure_used_ways_inited(self, estimated_node_count: int):
        self.used_ways.reserve(
            estimated_node_count,
            self.config.compact_storage,
            compact_ratio=self.config.compact_way_ratio,
            full_id_space=self.config.full_way_id_space
        )

    def mark_way_used(self, way_id: int):
        self.used_ways.mark(way_id)

    def way_is_used(self, way_id: int) -> bool:
        return self.used_ways.query(way_id)

    # ---- scanned relations

    def relation_contains_way(self, relation_id: int, way_id: int):
        self.scanned_relations.record_containment(relation_id, way_id)

    def store_relation_tags(self, relation_id: int, tags: Mapping[str, str]):
        self.scanned_relations.store_tags(relation_id, tags)

    def way_in_any_relations(self, way_id: int) -> bool:
        return self.scanned_relations.contains_way(way_id)

    def relations_for_way(self, way_id: int) -> List[int]:
        return self.scanned_relations.relations_for_way(way_id)

    def get_relation_tag(self, relation_id: int, key: str) -> str:
        return self.scanned_relations.tag_value(relation_id, key)

    def get_relation_tags(self, relation_id: int) -> Dict[str, str]:
        return self.scanned_relations.tags_for(relation_id)

    # ---- relation way lists

    def relations_insert(self, new_relations: List[RelationEntry]):
        self.relations.append(new_relations)

    def relations_sort(self):
        self.relations.sort()

    def next_relation_way_id(self) -> int:
        """Decrementing negative pseudo-way id for a relation"""
        with self._relation_id_lock:
            return next(self._relation_ids)

    # ---- lifecycle

    def reopen(self):
        self.relations.reopen()

    def clear(self):
        self.nodes.clear()
        self.ways.clear()
        self.relations.clear()
        self.used_ways.clear()
        self.scanned_relations.clear()
        with self._relation_id_lock:
            self._relation_ids = itertools.count(-1, -1)

    def report_size(self):
        logger.info(
            f"Stored {len(self.nodes)} nodes, {len(self.ways)} ways, "
            f"{len(self.relations)} relations"
        )
        logger.info(
            f"Used-way set covers {len(self.used_ways)} ids ({self.used_ways.count()} marked); "
            f"{self.scanned_relations.relation_count()} scanned relations over "
            f"{self.scanned_relations.way_count()} ways"
        )

    # ---- geometry assembly

    def fill_points(self, node_ids: Iterable[int]) -> List[Coord]:
        """Map node ids to projected coordinates, skipping or raising on gaps"""
        points = []
        for node_id in node_ids:
            try:
                points.append(self.nodes.point_for(node_id).as_xy())
            except MissingReferenceError:
                if self.config.enforce_integrity:
                    raise
        return points

    def _way_nodes(self, way_id: int) -> Sequence[int]:
        try:
            return self.ways.nodes_for(way_id)
        except MissingReferenceError:
            if self.config.enforce_integrity:
                raise
            return ()

    def way_to_linestring(self, node_ids: Iterable[int]) -> LineString:
        points = self.fill_points(node_ids)
        if len(points) < 2:
            return LineString()
        return LineString(points)

    def way_to_polygon(self, node_ids: Iterable[int]) -> Polygon:
        points = self.fill_points(node_ids)
        if len(set(points)) < 3:
            return Polygon()
        return orient(Polygon(points), sign=RING_ORIENTATION)

    def relation_to_multipolygon(self, outer_way_ids: Iterable[int],
                                 inner_way_ids: Iterable[int]) -> MultiPolygon:
        outer_rings = merge_rings([self.fill_points(self._way_nodes(w)) for w in outer_way_ids])
        inner_rings = merge_rings([self.fill_points(self._way_nodes(w)) for w in inner_way_ids])
        return assemble_multipolygon(outer_rings, inner_rings)

    def relation_to_multilinestring(self, outer_way_ids: Iterable[int]) -> MultiLineString:
        lines = []
        for way_id in outer_way_ids:
            points = self.fill_points(self._way_nodes(way_id))
            if len(points) >= 2:
                lines.append(points)
        return MultiLineString(lines)

    @staticmethod
    def multipolygon_as_linestring(mp: MultiPolygon) -> LineString:
        """
        Outer ring of the first polygon. Using a relation as a linestring is not
        really meaningful; this only exists for rules that ask for it.
        """
        if mp.is_empty:
            return LineString()
        return LineString(mp.geoms[0].exterior.coords)


def relation_entry(relation_id: int, outer: Sequence[int], inner: Sequence[int]) -> RelationEntry:
    return (relation_id, (outer, inner))

