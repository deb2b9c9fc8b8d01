"""
Tests for the object store: coordinate stores and geometry assembly
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tilefeatures.config import StoreConfig
from tilefeatures.coordinates import LatpLon, from_fixed, latp_to_lat, lat_to_latp
from tilefeatures.errors import MissingReferenceError
from tilefeatures.models import OSMNode, OSMRelation, OSMWay
from tilefeatures.store import CompactNodeStore, ObjectStore, SparseNodeStore, SparseWayStore
from tilefeatures.store.assembly import merge_rings


def pt(x: float, y: float) -> LatpLon:
    return LatpLon(latp=int(round(y * 10_000_000)), lon=int(round(x * 10_000_000)))


NODES = {
    # outer triangle
    1: pt(0, 0),
    2: pt(10, 0),
    3: pt(0, 10),
    # inner triangle
    4: pt(1, 1),
    5: pt(3, 1),
    6: pt(1, 3),
    # square
    7: pt(20, 20),
    8: pt(21, 20),
    9: pt(21, 21),
    10: pt(20, 21),
    # far away triangle
    11: pt(50, 50),
    12: pt(51, 50),
    13: pt(50, 51),
}


def make_store(enforce_integrity: bool = True, compact: bool = False) -> ObjectStore:
    store = ObjectStore(config=StoreConfig(enforce_integrity=enforce_integrity, compact_storage=compact))
    store.nodes.insert(NODES.items())
    return store


@pytest.fixture
def store():
    return make_store()


@pytest.fixture
def lenient_store():
    return make_store(enforce_integrity=False)


class TestCoordinates:

    def test_fixed_point_scale(self):
        assert from_fixed(10_000_000) == 1.0
        assert pt(1.5, -2.25).as_xy() == (1.5, -2.25)

    def test_latp_round_trip(self):
        for lat in (-60.0, -10.5, 0.0, 51.5, 80.0):
            assert latp_to_lat(lat_to_latp(lat)) == pytest.approx(lat)

    def test_from_degrees(self):
        lat, lon = LatpLon.from_degrees(51.5, -0.12).to_degrees()
        assert lat == pytest.approx(51.5, abs=1e-6)
        assert lon == pytest.approx(-0.12, abs=1e-6)

    def test_element_models(self):
        node = OSMNode.from_degrees(1, 51.5, -0.12)
        assert node.point == LatpLon.from_degrees(51.5, -0.12)
        assert node.tags == {}
        assert OSMWay(id=2, node_ids=[1, 2, 3, 1]).is_closed()
        assert not OSMWay(id=3, node_ids=[1, 2, 3]).is_closed()
        assert OSMRelation(id=4, outer_ways=[5], inner_ways=[6]).member_ways() == [5, 6]


class TestCoordinateStores:

    def test_store_choice_follows_config(self):
        assert isinstance(make_store(compact=True).nodes, CompactNodeStore)
        assert isinstance(make_store(compact=False).nodes, SparseNodeStore)
        assert isinstance(make_store().ways, SparseWayStore)

    def test_compact_store(self):
        nodes = CompactNodeStore(initial_capacity=4)
        nodes.insert([(2, pt(1, 2)), (100, pt(3, 4))])
        assert nodes.point_for(100) == pt(3, 4)
        assert len(nodes) == 2
        with pytest.raises(MissingReferenceError):
            nodes.point_for(50)
        with pytest.raises(MissingReferenceError):
            nodes.point_for(10_000)
        with pytest.raises(ValueError):
            nodes.insert([(-1, pt(0, 0))])

    def test_compact_store_keeps_columns_together_across_growth(self):
        nodes = CompactNodeStore(initial_capacity=2)
        nodes.insert([(1, pt(1, 2))])
        nodes.insert([(9, pt(3, 4)), (40, pt(5, 6))])
        assert nodes.point_for(1) == pt(1, 2)
        assert nodes.point_for(9) == pt(3, 4)
        assert nodes.point_for(40) == pt(5, 6)
        # grown, but never written
        with pytest.raises(MissingReferenceError):
            nodes.point_for(20)
        nodes.clear()
        assert len(nodes) == 0
        with pytest.raises(MissingReferenceError):
            nodes.point_for(9)

    def test_compact_store_geometry(self):
        store = make_store(compact=True)
        store.ways.insert([(100, [1, 2, 3, 1]), (200, [4, 5, 6, 4])])

        polygon = store.way_to_polygon([7, 8, 9, 10, 7])
        assert set(polygon.exterior.coords) == {(20, 20), (21, 20), (21, 21), (20, 21)}

        mp = store.relation_to_multipolygon([100], [200])
        assert len(mp.geoms) == 1
        assert len(mp.geoms[0].interiors) == 1

        # node 14 sits inside the preallocated array but was never stored
        with pytest.raises(MissingReferenceError):
            store.way_to_linestring([1, 14, 2])

    def test_compact_store_lenient_skips_absent_slots(self):
        store = make_store(enforce_integrity=False, compact=True)
        line = store.way_to_linestring([1, 14, 2])
        assert list(line.coords) == [(0, 0), (10, 0)]

    def test_missing_reference_is_a_key_error(self):
        nodes = SparseNodeStore()
        with pytest.raises(KeyError) as excinfo:
            nodes.point_for(99)
        assert excinfo.value.kind == "node"
        assert excinfo.value.ref_id == 99

    def test_way_store(self):
        ways = SparseWayStore()
        ways.insert([(5, [1, 2, 3])])
        assert ways.nodes_for(5) == [1, 2, 3]
        assert ways.contains(5)
        with pytest.raises(MissingReferenceError):
            ways.nodes_for(6)


class TestWayGeometry:

    def test_linestring(self, store):
        line = store.way_to_linestring([1, 2, 3])
        assert list(line.coords) == [(0, 0), (10, 0), (0, 10)]

    def test_missing_node_lenient_degrades(self, lenient_store):
        line = lenient_store.way_to_linestring([1, 999, 2])
        assert list(line.coords) == [(0, 0), (10, 0)]

    def test_missing_node_strict_raises(self, store):
        with pytest.raises(MissingReferenceError):
            store.way_to_linestring([1, 999, 2])

    def test_polygon_round_trip(self, store):
        polygon = store.way_to_polygon([7, 8, 9, 10, 7])
        coords = list(polygon.exterior.coords)
        assert coords[0] == coords[-1]
        assert set(coords) == {(20, 20), (21, 20), (21, 21), (20, 21)}
        assert polygon.is_valid
        # exterior wound clockwise
        assert not polygon.exterior.is_ccw

    def test_polygon_orientation_is_corrected_either_way(self, store):
        ccw = store.way_to_polygon([7, 8, 9, 10, 7])
        cw = store.way_to_polygon([7, 10, 9, 8, 7])
        assert not ccw.exterior.is_ccw
        assert not cw.exterior.is_ccw

    def test_degenerate_polygon_is_empty(self, store):
        assert store.way_to_polygon([7, 8, 7]).is_empty
        assert store.way_to_linestring([7]).is_empty


class TestRelationGeometry:

    def test_triangle_from_three_ways(self, store):
        store.ways.insert([(100, [1, 2]), (101, [2, 3]), (102, [3, 1])])
        mp = store.relation_to_multipolygon([100, 101, 102], [])
        assert len(mp.geoms) == 1
        polygon = mp.geoms[0]
        assert len(polygon.interiors) == 0
        assert set(polygon.exterior.coords) == {(0, 0), (10, 0), (0, 10)}
        assert len(polygon.exterior.coords) == 4

    def test_ways_in_any_order_and_direction(self, store):
        store.ways.insert([(100, [1, 2]), (101, [3, 2]), (102, [1, 3])])
        mp = store.relation_to_multipolygon([101, 100, 102], [])
        assert len(mp.geoms) == 1
        assert set(mp.geoms[0].exterior.coords) == {(0, 0), (10, 0), (0, 10)}

    def test_outer_with_hole(self, store):
        store.ways.insert([(100, [1, 2, 3, 1]), (200, [4, 5, 6, 4])])
        mp = store.relation_to_multipolygon([100], [200])
        assert len(mp.geoms) == 1
        polygon = mp.geoms[0]
        assert len(polygon.interiors) == 1
        assert set(polygon.interiors[0].coords) == {(1, 1), (3, 1), (1, 3)}
        assert not polygon.exterior.is_ccw
        assert polygon.interiors[0].is_ccw
        assert mp.is_valid

    def test_inner_ring_goes_to_containing_outer(self, store):
        store.ways.insert([(100, [11, 12, 13, 11]), (101, [1, 2, 3, 1]), (200, [4, 5, 6, 4])])
        mp = store.relation_to_multipolygon([100, 101], [200])
        assert len(mp.geoms) == 2
        far, near = mp.geoms
        assert len(far.interiors) == 0
        assert len(near.interiors) == 1

    def test_inner_ring_outside_every_outer_is_dropped(self, store):
        store.ways.insert([(100, [7, 8, 9, 10, 7]), (200, [4, 5, 6, 4])])
        mp = store.relation_to_multipolygon([100], [200])
        assert len(mp.geoms) == 1
        assert len(mp.geoms[0].interiors) == 0

    def test_two_point_way_is_dropped(self, store):
        store.ways.insert([(100, [1, 2])])
        mp = store.relation_to_multipolygon([100], [])
        assert mp.is_empty

    def test_open_ring_is_dropped_but_closed_ring_kept(self, store):
        store.ways.insert([(100, [1, 2, 3]), (101, [7, 8, 9, 10, 7])])
        mp = store.relation_to_multipolygon([100, 101], [])
        assert len(mp.geoms) == 1
        assert set(mp.geoms[0].exterior.coords) == {(20, 20), (21, 20), (21, 21), (20, 21)}

    def test_missing_way_lenient(self, lenient_store):
        lenient_store.ways.insert([(100, [1, 2, 3, 1])])
        mp = lenient_store.relation_to_multipolygon([100, 555], [])
        assert len(mp.geoms) == 1

    def test_missing_way_strict(self, store):
        store.ways.insert([(100, [1, 2, 3, 1])])
        with pytest.raises(MissingReferenceError):
            store.relation_to_multipolygon([100, 555], [])

    def test_multilinestring(self, store):
        store.ways.insert([(100, [1, 2]), (101, [7, 8, 9]), (102, [11])])
        mls = store.relation_to_multilinestring([100, 101, 102])
        assert len(mls.geoms) == 2

    def test_multipolygon_as_linestring(self, store):
        store.ways.insert([(100, [7, 8, 9, 10, 7])])
        mp = store.relation_to_multipolygon([100], [])
        line = ObjectStore.multipolygon_as_linestring(mp)
        assert list(line.coords) == list(mp.geoms[0].exterior.coords)

        empty = store.relation_to_multipolygon([], [])
        assert ObjectStore.multipolygon_as_linestring(empty).is_empty


class TestMergeRings:

    def test_closed_sequence_passes_through(self):
        ring = [(0, 0), (1, 0), (1, 1), (0, 0)]
        assert merge_rings([ring]) == [ring]

    def test_prepend_matches(self):
        rings = merge_rings([[(1, 0), (1, 1)], [(0, 0), (1, 0)], [(1, 1), (0, 0)]])
        assert len(rings) == 1
        assert rings[0][0] == rings[0][-1]
        assert len(rings[0]) == 4

    def test_too_short_ring_dropped(self):
        assert merge_rings([[(0, 0), (1, 1)], [(1, 1), (0, 0)]]) == []


class TestStoreBookkeeping:

    def test_relation_way_ids_decrement(self, store):
        assert store.next_relation_way_id() == -1
        assert store.next_relation_way_id() == -2

    def test_clear(self, store):
        store.ways.insert([(100, [1, 2])])
        store.mark_way_used(100)
        store.relation_contains_way(1, 100)
        store.store_relation_tags(1, {"type": "multipolygon"})
        store.next_relation_way_id()
        store.clear()
        assert len(store.nodes) == 0
        assert len(store.ways) == 0
        assert not store.way_is_used(100)
        assert not store.way_in_any_relations(100)
        assert store.get_relation_tag(1, "type") == ""
        assert store.next_relation_way_id() == -1

    def test_report_size(self, store):
        store.mark_way_used(3)
        store.report_size()
