"""
Feature processing module

- FeatureProcessor: per-element rules interface and output emission
- ReferenceLayerIndex: spatial index over reference geometry layers
- Models: output features, sink records, vector layer metadata
- GeometryUtils: geodesic measurements and geometry correction
"""

from .feature_processor import FeatureProcessor, ElementKind, ProcessorState, GeometryType
from .reference_layers import ReferenceLayerIndex
from .models import AttributeValue, OutputFeature, OutputRecord, OutputSink, MemorySink, VectorLayerMetadata
from .geometry import GeometryUtils, correct_geometry

__all__ = [
    "FeatureProcessor",
    "ElementKind",
    "ProcessorState",
    "GeometryType",
    "ReferenceLayerIndex",
    "AttributeValue",
    "OutputFeature",
    "OutputRecord",
    "OutputSink",
    "MemorySink",
    "VectorLayerMetadata",
    "GeometryUtils",
    "correct_geometry",
]
