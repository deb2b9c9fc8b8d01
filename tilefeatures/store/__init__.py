"""
Shared object store

Modular store with separate components for:
- UsedWaySet: ways referenced by relations
- RelationIndex: way -> relations, relation -> tags
- RelationWayListStore: outer/inner way lists per relation
- Coordinate stores: node points and way node lists
- ObjectStore: owner of all of the above, plus geometry assembly
"""

from .used_ways import UsedWaySet
from .relation_index import RelationIndex
from .relation_store import RelationWayListStore
from .coordinate_stores import NodeStore, WayStore, SparseNodeStore, CompactNodeStore, SparseWayStore
from .object_store import ObjectStore, relation_entry

__all__ = [
    "UsedWaySet",
    "RelationIndex",
    "RelationWayListStore",
    "NodeStore",
    "WayStore",
    "SparseNodeStore",
    "CompactNodeStore",
    "SparseWayStore",
    "ObjectStore",
    "relation_entry",
]
