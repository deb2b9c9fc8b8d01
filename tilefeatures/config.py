"""
Configuration settings for the OSM tile feature core
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


@dataclass(frozen=True)
class StoreConfig:
    """Object store policy, fixed before ingestion begins"""
    # Node storage: compact arrays indexed by node id (needs bounded ids)
    compact_storage: bool = False

    # Missing node/way references abort geometry assembly when True
    enforce_integrity: bool = True

    # Per-element geometry diagnostics
    verbose: bool = False

    # Used-way set sizing
    used_way_growth_margin: int = 256
    compact_way_ratio: int = 8  # ways are roughly 1/9 of nodes
    full_way_id_space: int = 2 ** 31


class LayerDefinition(BaseModel):
    """An output layer that features can be assigned to"""
    name: str
    minzoom: int = Field(default=0, ge=0)
    maxzoom: int = Field(default=14, ge=0)
    simplify_below: Optional[int] = None
    write_to: Optional[str] = None  # merge into another layer's output

    @model_validator(mode="after")
    def check_zoom_range(self):
        if self.minzoom > self.maxzoom:
            raise ValueError(f"layer {self.name}: minzoom {self.minzoom} > maxzoom {self.maxzoom}")
        return self


@dataclass
class ProcessingConfig:
    """Feature processing configuration"""
    store: StoreConfig = field(default_factory=StoreConfig)

    # Output layers, keyed by name
    layers: Dict[str, LayerDefinition] = field(default_factory=dict)

    # Nodes carrying none of these keys are stored but never classified
    significant_node_keys: List[str] = field(default_factory=lambda: [
        "amenity",
        "shop",
        "place",
        "natural",
        "tourism",
        "railway",
        "aeroway",
        "historic",
    ])

    default_minzoom: int = 0
    max_zoom: int = 14

    # Worker threads for the way/node pass
    threads: int = 4

    def add_layer(self, name: str, minzoom: int = 0, maxzoom: Optional[int] = None, **kwargs) -> LayerDefinition:
        layer = LayerDefinition(
            name=name,
            minzoom=minzoom,
            maxzoom=self.max_zoom if maxzoom is None else maxzoom,
            **kwargs
        )
        self.layers[name] = layer
        return layer


# Global config instance
config = ProcessingConfig()


def get_config() -> ProcessingConfig:
    """Get global configuration"""
    return config


def validate_config(config: ProcessingConfig) -> None:
    """
    Validate that all required configuration values are set.
    Raises ValueError if any required value is missing or invalid.
    """
    errors = []

    if config.store is None:
        errors.append("store configuration is required but not set")
    else:
        if config.store.used_way_growth_margin < 1:
            errors.append(f"store.used_way_growth_margin must be positive, got {config.store.used_way_growth_margin}")
        if config.store.compact_way_ratio < 1:
            errors.append(f"store.compact_way_ratio must be positive, got {config.store.compact_way_ratio}")

    if config.threads is None or config.threads < 1:
        errors.append(f"threads must be at least 1, got {config.threads}")

    if config.max_zoom < 0 or config.max_zoom > 22:
        errors.append(f"max_zoom must be between 0 and 22, got {config.max_zoom}")
    if config.default_minzoom < 0 or config.default_minzoom > config.max_zoom:
        errors.append(f"default_minzoom must be between 0 and max_zoom, got {config.default_minzoom}")

    for name, layer in config.layers.items():
        if name != layer.name:
            errors.append(f"layer registered as '{name}' is named '{layer.name}'")
        if layer.maxzoom > config.max_zoom:
            errors.append(f"layer {name}: maxzoom {layer.maxzoom} exceeds max_zoom {config.max_zoom}")
        if layer.write_to and layer.write_to not in config.layers:
            errors.append(f"layer {name}: write_to target '{layer.write_to}' is not defined")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)
