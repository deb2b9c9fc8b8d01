"""
Index built while scanning relations

Two independent forward mappings: way id -> ids of relations containing it,
and relation id -> snapshot of the relation's tags.
"""

import threading
from typing import Dict, List, Mapping


class RelationIndex:
    """Scanned relations store"""

    def __init__(self):
        self._relations_for_ways: Dict[int, List[int]] = {}
        self._relation_tags: Dict[int, Dict[str, str]] = {}
        self._lock = threading.Lock()

    def record_containment(self, relation_id: int, way_id: int):
        """Note that relation_id has way_id as a member (duplicates are kept)"""
        with self._lock:
            self._relations_for_ways.setdefault(way_id, []).append(relation_id)

    def store_tags(self, relation_id: int, tags: Mapping[str, str]):
        """Replace the tag snapshot for a relation"""
        snapshot = dict(tags)
        with self._lock:
            self._relation_tags[relation_id] = snapshot

    def contains_way(self, way_id: int) -> bool:
        return way_id in self._relations_for_ways

    def relations_for_way(self, way_id: int) -> List[int]:
        return list(self._relations_for_ways.get(way_id, ()))

    def tag_value(self, relation_id: int, key: str) -> str:
        """Tag value for a scanned relation, or "" if relation or key is unknown"""
        tags = self._relation_tags.get(relation_id)
        if tags is None:
            return ""
        return tags.get(key, "")

    def tags_for(self, relation_id: int) -> Dict[str, str]:
        """Copy of a relation's tag snapshot (empty if unknown)"""
        return dict(self._relation_tags.get(relation_id, {}))

    def clear(self):
        with self._lock:
            self._relations_for_ways.clear()
            self._relation_tags.clear()

    def way_count(self) -> int:
        return len(self._relations_for_ways)

    def relation_count(self) -> int:
        return len(self._relation_tags)
