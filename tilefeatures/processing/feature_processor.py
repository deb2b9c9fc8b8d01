"""
Feature processing

Turns one OSM element at a time into output features. For every node, way
or relation the processor resets its per-element state, hands itself to the
user's rules object as the query/emission interface, and drains whatever
the rules assigned to layers into the output sink.

Rules objects may define any of:
    node_function(processor)
    way_function(processor)
    relation_function(processor)
and call back into the processor any number of times, in any order.

One processor per worker thread: nothing in here is locked.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

from loguru import logger
from shapely.geometry import LineString, MultiLineString, MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry

from ..config import LayerDefinition, ProcessingConfig, get_config
from ..coordinates import LatpLon
from ..store import ObjectStore
from .geometry import GeometryUtils, correct_geometry
from .models import OutputFeature, OutputSink, VectorLayerMetadata
from .reference_layers import ReferenceLayerIndex

# Relations treated as closed areas
AREA_RELATION_TYPES = ("multipolygon", "boundary")


class ElementKind(Enum):
    NODE = "node"
    WAY = "way"
    RELATION = "relation"


class ProcessorState(Enum):
    IDLE = "idle"
    GEOMETRY_BUILT = "geometry_built"
    CLASSIFIED = "classified"


class GeometryType:
    POINT = "point"
    LINESTRING = "linestring"
    POLYGON = "polygon"


@dataclass
class _Element:
    """Everything known about the element being processed, caches included"""
    kind: ElementKind
    osm_id: int  # pseudo-way id for relations, named in diagnostics
    original_id: int
    tags: Dict[str, str]
    point: Optional[LatpLon] = None
    node_ids: Sequence[int] = ()
    outer_ways: Sequence[int] = ()
    inner_ways: Sequence[int] = ()
    is_closed: bool = False

    linestring: Optional[LineString] = None
    polygon: Optional[Polygon] = None
    multipolygon: Optional[MultiPolygon] = None
    multilinestring: Optional[MultiLineString] = None

    outputs: List[OutputFeature] = field(default_factory=list)

    # cursor over the relations containing a way
    parent_relations: Optional[List[int]] = None
    relation_cursor: int = -1

    def describe(self) -> str:
        if self.kind is ElementKind.RELATION:
            return f"Relation {self.original_id} (way {self.osm_id})"
        return f"{self.kind.value.capitalize()} {self.original_id}"


class FeatureProcessor:
    """
    Per-thread feature pipeline stage

    Usage:
        processor = FeatureProcessor(store, rules, sink=sink)
        processor.on_way(way_id, node_ids, tags)
    """

    def __init__(
        self,
        store: ObjectStore,
        rules: Any,
        sink: Optional[OutputSink] = None,
        config: Optional[ProcessingConfig] = None,
        reference_layers: Optional[ReferenceLayerIndex] = None,
        layer_metadata: Optional[VectorLayerMetadata] = None
    ):
        self.config = config or get_config()
        self.store = store
        self.rules = rules
        self.sink = sink
        self.reference_layers = reference_layers if reference_layers is not None else ReferenceLayerIndex()
        self.layer_metadata = layer_metadata if layer_metadata is not None else VectorLayerMetadata()
        self.verbose = store.config.verbose

        self.state = ProcessorState.IDLE
        self._element: Optional[_Element] = None
        self._last_output_count = 0
        self._implicit_layers: Dict[str, LayerDefinition] = {}

    # ---- Data loading

    def on_node(self, node_id: int, point: LatpLon, tags: Mapping[str, str]) -> bool:
        """Process a significant node. Returns whether it produced output."""
        self._begin(_Element(
            kind=ElementKind.NODE,
            osm_id=node_id,
            original_id=node_id,
            tags=dict(tags),
            point=point
        ))
        return self._classify("node_function")

    def on_way(self, way_id: int, node_ids: Sequence[int], tags: Mapping[str, str]) -> bool:
        """Process a way given its ordered node ids"""
        node_ids = list(node_ids)
        self._begin(_Element(
            kind=ElementKind.WAY,
            osm_id=way_id,
            original_id=way_id,
            tags=dict(tags),
            node_ids=node_ids,
            is_closed=len(node_ids) > 1 and node_ids[0] == node_ids[-1]
        ))
        return self._classify("way_function")

    def on_relation(self, relation_id: int, way_lists: Tuple[Sequence[int], Sequence[int]],
                    tags: Mapping[str, str]) -> bool:
        """
        Process a relation given its (outer ways, inner ways).

        Relations are handled as ways with artificial, decrementing negative
        ids so they never collide with real way ids.
        """
        outer_ways, inner_ways = way_lists
        self._begin(_Element(
            kind=ElementKind.RELATION,
            osm_id=self.store.next_relation_way_id(),
            original_id=relation_id,
            tags=dict(tags),
            outer_ways=list(outer_ways),
            inner_ways=list(inner_ways),
            is_closed=tags.get("type", "") in AREA_RELATION_TYPES
        ))
        return self._classify("relation_function")

    def _begin(self, element: _Element):
        # dropping the old element clears every cache and pending output at once
        self._element = element
        self._last_output_count = 0
        self.state = ProcessorState.IDLE

    def _classify(self, function_name: str) -> bool:
        rule = getattr(self.rules, function_name, None)
        if rule is not None:
            try:
                rule(self)
            except Exception:
                self._element = None
                self.state = ProcessorState.IDLE
                raise
        self.state = ProcessorState.CLASSIFIED
        return self._drain() > 0

    def _drain(self) -> int:
        """Emit the classified element's outputs, then go back to IDLE"""
        if self.state is not ProcessorState.CLASSIFIED:
            raise RuntimeError(f"Cannot drain outputs in state {self.state.value}")
        element = self._element
        count = len(element.outputs)
        if self.sink is not None:
            for feature in element.outputs:
                self.sink.emit(feature.to_record())
        if count:
            logger.debug(f"{element.describe()}: {count} output feature(s)")
        self._last_output_count = count
        self._element = None
        self.state = ProcessorState.IDLE
        return count

    def _current(self) -> _Element:
        if self._element is None:
            raise RuntimeError("No element is being processed")
        return self._element

    def has_output(self) -> bool:
        """Whether the current (or last finished) element was assigned to any layer"""
        if self._element is not None:
            return bool(self._element.outputs)
        return self._last_output_count > 0

    # ---- Metadata queries

    def id(self) -> str:
        return str(self._current().original_id)

    def has(self, key: str) -> bool:
        return key in self._current().tags

    def find(self, key: str) -> str:
        """Tag value for key, or "" if the element has no such tag"""
        return self._current().tags.get(key, "")

    def next_relation(self) -> Optional[int]:
        """
        Step through the relations that contain the current way.
        Returns the next relation id, or None once they are exhausted.
        """
        element = self._current()
        if element.kind is not ElementKind.WAY:
            return None
        if element.parent_relations is None:
            element.parent_relations = self.store.relations_for_way(element.osm_id)
        element.relation_cursor += 1
        if element.relation_cursor >= len(element.parent_relations):
            return None
        return element.parent_relations[element.relation_cursor]

    def find_in_relation(self, key: str) -> str:
        """Tag of the relation last returned by next_relation ("" if none)"""
        element = self._current()
        relations = element.parent_relations
        if not relations or not 0 <= element.relation_cursor < len(relations):
            return ""
        return self.store.get_relation_tag(relations[element.relation_cursor], key)

    def get_significant_node_keys(self) -> List[str]:
        return list(self.config.significant_node_keys)

    # ---- Cached geometries

    def _geometry_built(self):
        if self.state is ProcessorState.IDLE:
            self.state = ProcessorState.GEOMETRY_BUILT

    def linestring_cached(self) -> LineString:
        element = self._current()
        if element.linestring is None:
            if element.kind is ElementKind.WAY:
                element.linestring = self.store.way_to_linestring(element.node_ids)
            elif element.kind is ElementKind.RELATION:
                element.linestring = self.store.multipolygon_as_linestring(self.multipolygon_cached())
            else:
                element.linestring = LineString()
            self._geometry_built()
        return element.linestring

    def polygon_cached(self) -> Polygon:
        element = self._current()
        if element.polygon is None:
            if element.kind is ElementKind.WAY:
                element.polygon = correct_geometry(
                    self.store.way_to_polygon(element.node_ids), element.describe(), self.verbose
                )
            elif element.kind is ElementKind.RELATION:
                mp = self.multipolygon_cached()
                element.polygon = mp.geoms[0] if not mp.is_empty else Polygon()
            else:
                element.polygon = Polygon()
            self._geometry_built()
        return element.polygon

    def multipolygon_cached(self) -> MultiPolygon:
        element = self._current()
        if element.multipolygon is None:
            if element.kind is ElementKind.RELATION:
                element.multipolygon = correct_geometry(
                    self.store.relation_to_multipolygon(element.outer_ways, element.inner_ways),
                    element.describe(), self.verbose
                )
            elif element.kind is ElementKind.WAY:
                polygon = self.polygon_cached()
                element.multipolygon = MultiPolygon([polygon]) if not polygon.is_empty else MultiPolygon()
            else:
                element.multipolygon = MultiPolygon()
            self._geometry_built()
        return element.multipolygon

    def multilinestring_cached(self) -> MultiLineString:
        element = self._current()
        if element.multilinestring is None:
            if element.kind is ElementKind.RELATION:
                element.multilinestring = self.store.relation_to_multilinestring(element.outer_ways)
            else:
                linestring = self.linestring_cached()
                element.multilinestring = (
                    MultiLineString([linestring]) if not linestring.is_empty else MultiLineString()
                )
            self._geometry_built()
        return element.multilinestring

    def _current_geometry(self) -> BaseGeometry:
        """The element's natural geometry, used for spatial queries"""
        element = self._current()
        if element.kind is ElementKind.NODE:
            return Point(element.point.as_xy())
        if element.kind is ElementKind.WAY:
            if element.is_closed:
                polygon = self.polygon_cached()
                if not polygon.is_empty:
                    return polygon
            return self.linestring_cached()
        if element.is_closed:
            return self.multipolygon_cached()
        return self.multilinestring_cached()

    # ---- Spatial queries

    def find_intersecting_layers(self, layer_name: str) -> Set[str]:
        """Labels of reference geometries in layer_name that the element intersects"""
        hits = self.reference_layers.query(layer_name, self._current_geometry(), "intersects")
        return set(self.reference_layers.labels(layer_name, hits))

    def intersects(self, layer_name: str) -> bool:
        return bool(self.reference_layers.query(layer_name, self._current_geometry(), "intersects", once=True))

    def intersection_area(self, layer_name: str) -> float:
        """Area (m²) shared between the element and the reference layer"""
        geom = self._current_geometry()
        if not isinstance(geom, (Polygon, MultiPolygon)) or geom.is_empty or not geom.is_valid:
            return 0.0
        hits = self.reference_layers.query(layer_name, geom, "intersects")
        total = 0.0
        for reference in self.reference_layers.geometries(layer_name, hits):
            total += GeometryUtils.area_m2(geom.intersection(reference))
        return total

    def find_covering_layers(self, layer_name: str) -> Set[str]:
        """Labels of reference geometries in layer_name that cover the element"""
        hits = self.reference_layers.query(layer_name, self._current_geometry(), "covered_by")
        return set(self.reference_layers.labels(layer_name, hits))

    def covered_by(self, layer_name: str) -> bool:
        return bool(self.reference_layers.query(layer_name, self._current_geometry(), "covered_by", once=True))

    # ---- Measurements

    def is_closed_ring(self) -> bool:
        return self._current().is_closed

    def area(self) -> float:
        """Area in m²; 0 for anything that is not a valid polygon"""
        element = self._current()
        if element.kind is ElementKind.RELATION:
            geom = self.multipolygon_cached()
        elif element.kind is ElementKind.WAY and element.is_closed:
            geom = self.polygon_cached()
        else:
            return 0.0
        if geom.is_empty or not geom.is_valid:
            return 0.0
        return GeometryUtils.area_m2(geom)

    def length(self) -> float:
        """Length in metres (perimeter for area relations)"""
        element = self._current()
        if element.kind is ElementKind.WAY:
            return GeometryUtils.length_m(self.linestring_cached())
        if element.kind is ElementKind.RELATION:
            geom = self.multipolygon_cached() if element.is_closed else self.multilinestring_cached()
            return GeometryUtils.length_m(geom)
        return 0.0

    # ---- Layer assignment

    def _resolve_layer(self, layer_name: str) -> Optional[LayerDefinition]:
        layers = self.config.layers
        if layer_name in layers:
            return layers[layer_name]
        if not layers:
            # no layers configured: any name goes
            layer = self._implicit_layers.get(layer_name)
            if layer is None:
                layer = LayerDefinition(name=layer_name, maxzoom=self.config.max_zoom)
                self._implicit_layers[layer_name] = layer
            return layer
        logger.warning(f"{self._current().describe()}: layer '{layer_name}' is not defined")
        return None

    def _add_output(self, layer: LayerDefinition, geometry: BaseGeometry, geom_type: str):
        element = self._current()
        if geometry.is_empty:
            logger.debug(f"{element.describe()}: empty {geom_type} not written to '{layer.name}'")
            return
        element.outputs.append(OutputFeature(
            layer=layer.write_to or layer.name,
            osm_id=element.original_id,
            geom_type=geom_type,
            geometry=geometry,
            minzoom=max(layer.minzoom, self.config.default_minzoom)
        ))

    def assign_to_layer(self, layer_name: str, treat_as_area: bool = False):
        """Write the element's geometry to a layer"""
        layer = self._resolve_layer(layer_name)
        if layer is None:
            return
        element = self._current()

        if element.kind is ElementKind.NODE:
            self._add_output(layer, Point(element.point.as_xy()), GeometryType.POINT)
        elif element.kind is ElementKind.WAY:
            if treat_as_area and element.is_closed:
                self._add_output(layer, self.polygon_cached(), GeometryType.POLYGON)
            else:
                self._add_output(layer, self.linestring_cached(), GeometryType.LINESTRING)
        elif treat_as_area:
            self._add_output(layer, self.multipolygon_cached(), GeometryType.POLYGON)
        elif element.is_closed:
            self._add_output(layer, self.linestring_cached(), GeometryType.LINESTRING)
        else:
            self._add_output(layer, self.multilinestring_cached(), GeometryType.LINESTRING)

    def assign_centroid_to_layer(self, layer_name: str):
        """Write a single point at the element's centroid to a layer"""
        layer = self._resolve_layer(layer_name)
        if layer is None:
            return
        element = self._current()
        if element.kind is ElementKind.NODE:
            self._add_output(layer, Point(element.point.as_xy()), GeometryType.POINT)
            return
        geom = self._current_geometry()
        centroid = geom.centroid if not geom.is_empty else Point()
        self._add_output(layer, centroid, GeometryType.POINT)

    # ---- Attributes

    def _set_attribute(self, key: str, value, minzoom: int, value_type: str):
        element = self._current()
        if not element.outputs:
            logger.warning(f"{element.describe()}: can't set attribute '{key}' before a layer is assigned")
            return
        feature = element.outputs[-1]
        feature.set_attribute(key, value, minzoom)
        self.set_vector_layer_metadata(feature.layer, key, value_type)

    def attribute(self, key: str, value: str, minzoom: int = 0):
        if value == "":
            return  # empty strings are not written
        self._set_attribute(key, str(value), minzoom, VectorLayerMetadata.STRING)

    def attribute_numeric(self, key: str, value: float, minzoom: int = 0):
        self._set_attribute(key, float(value), minzoom, VectorLayerMetadata.NUMBER)

    def attribute_boolean(self, key: str, value: bool, minzoom: int = 0):
        self._set_attribute(key, bool(value), minzoom, VectorLayerMetadata.BOOLEAN)

    def min_zoom(self, zoom: int):
        """Set the minimum zoom of the most recently assigned feature"""
        element = self._current()
        if not element.outputs:
            logger.warning(f"{element.describe()}: can't set minimum zoom before a layer is assigned")
            return
        element.outputs[-1].minzoom = int(zoom)

    def set_vector_layer_metadata(self, layer: str, key: str, value_type: str):
        self.layer_metadata.record(layer, key, value_type)
