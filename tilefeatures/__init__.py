"""
tilefeatures - OSM object store and feature pipeline for vector tiles

Implements the core of an OSM-to-tiles converter:
- store: shared node/way/relation store with multipolygon assembly
- processing: per-element rules interface emitting layered output features
- pipeline: relation scan, then node/way/relation passes over a thread pool
"""

from .config import StoreConfig, ProcessingConfig, LayerDefinition, get_config, validate_config
from .coordinates import LatpLon
from .errors import TileFeaturesError, MissingReferenceError
from .models import OSMNode, OSMWay, OSMRelation
from .store import ObjectStore
from .processing import FeatureProcessor, ReferenceLayerIndex, MemorySink, OutputRecord
from .pipeline import TilePipeline

__version__ = "0.1.0"

__all__ = [
    "StoreConfig",
    "ProcessingConfig",
    "LayerDefinition",
    "get_config",
    "validate_config",
    "LatpLon",
    "TileFeaturesError",
    "MissingReferenceError",
    "OSMNode",
    "OSMWay",
    "OSMRelation",
    "ObjectStore",
    "FeatureProcessor",
    "ReferenceLayerIndex",
    "MemorySink",
    "OutputRecord",
    "TilePipeline",
]
