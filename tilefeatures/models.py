"""
OSM element models

Decoded elements as delivered by an input reader. Coordinates and
topology are already resolved to ids; no geometry is attached yet.
"""

from typing import List, Dict
from dataclasses import dataclass, field

from .coordinates import LatpLon


@dataclass
class OSMNode:
    """Represents an OSM node (point)"""
    id: int
    point: LatpLon
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_degrees(cls, id: int, lat: float, lon: float, tags: Dict[str, str] = None) -> "OSMNode":
        return cls(id=id, point=LatpLon.from_degrees(lat, lon), tags=tags or {})


@dataclass
class OSMWay:
    """Represents an OSM way (line or ring of node references)"""
    id: int
    node_ids: List[int]
    tags: Dict[str, str] = field(default_factory=dict)

    def is_closed(self) -> bool:
        return len(self.node_ids) > 1 and self.node_ids[0] == self.node_ids[-1]


@dataclass
class OSMRelation:
    """Represents an OSM relation, reduced to its outer and inner member ways"""
    id: int
    outer_ways: List[int]
    inner_ways: List[int] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)

    def member_ways(self) -> List[int]:
        return self.outer_ways + self.inner_ways
