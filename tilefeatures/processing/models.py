"""
Output feature models

OutputFeature is the in-flight, mutable feature a rule builds up for one
element. OutputRecord is what gets handed to the sink once the element is
done.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, StrictBool, StrictFloat, StrictStr
from shapely.geometry.base import BaseGeometry

AttributeType = Union[StrictBool, StrictFloat, StrictStr]


class AttributeValue(BaseModel):
    value: AttributeType
    minzoom: int = 0


class OutputRecord(BaseModel):
    """A finished feature, as delivered to an output sink"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    layer: str
    osm_id: int
    geom_type: str  # point, linestring or polygon
    geometry: BaseGeometry
    minzoom: int = 0
    attributes: Dict[str, AttributeValue] = {}


@dataclass
class OutputFeature:
    """A feature assigned to a layer, still open to attribute changes"""
    layer: str
    osm_id: int
    geom_type: str
    geometry: BaseGeometry
    minzoom: int = 0
    attributes: Dict[str, AttributeValue] = field(default_factory=dict)

    def set_attribute(self, key: str, value, minzoom: int = 0):
        # last write per key wins
        self.attributes[key] = AttributeValue(value=value, minzoom=minzoom)

    def to_record(self) -> OutputRecord:
        return OutputRecord(
            layer=self.layer,
            osm_id=self.osm_id,
            geom_type=self.geom_type,
            geometry=self.geometry,
            minzoom=self.minzoom,
            attributes=dict(self.attributes)
        )


class OutputSink(Protocol):
    """Receives finished features"""

    def emit(self, record: OutputRecord) -> None:
        ...


class MemorySink:
    """Sink that keeps every record in a list"""

    def __init__(self):
        self._lock = threading.Lock()
        self.records: List[OutputRecord] = []

    def emit(self, record: OutputRecord) -> None:
        with self._lock:
            self.records.append(record)

    def by_layer(self, layer: str) -> List[OutputRecord]:
        with self._lock:
            return [r for r in self.records if r.layer == layer]

    def __len__(self) -> int:
        return len(self.records)


class VectorLayerMetadata:
    """
    Attribute keys and their types seen per layer, for the tileset's
    vector_layers description. Shared between worker threads.
    """

    STRING = "String"
    NUMBER = "Number"
    BOOLEAN = "Boolean"

    def __init__(self):
        self._lock = threading.Lock()
        self._fields: Dict[str, Dict[str, str]] = {}

    def record(self, layer: str, key: str, value_type: str):
        with self._lock:
            fields = self._fields.setdefault(layer, {})
            previous = fields.get(key)
            if previous is not None and previous != value_type:
                # mixed types are described as strings
                value_type = self.STRING
            fields[key] = value_type

    def fields(self, layer: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._fields.get(layer, {}))

    def layers(self) -> List[str]:
        with self._lock:
            return sorted(self._fields)

    def clear(self, layer: Optional[str] = None):
        with self._lock:
            if layer is None:
                self._fields.clear()
            else:
                self._fields.pop(layer, None)
