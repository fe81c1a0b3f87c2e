"""
Datasource Module

Lazy readers over encoded layers and the GeoJSON input source.
"""

from .layer_reader import LayerReader, Feature, FeatureSet, Query, CoordinateSpace
from .geojson_source import GeoJSONSource

__all__ = [
    "LayerReader",
    "Feature",
    "FeatureSet",
    "Query",
    "CoordinateSpace",
    "GeoJSONSource"
]
