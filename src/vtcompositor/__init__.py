"""
Vector Tile Compositor

Reads, composites and validates tiles encoded in the Mapbox Vector Tile
(MVT) format: decode source tiles, reproject and clip their geometries into
a destination tile, simplify and re-encode them, and report geometries that
are not OGC simple or valid.
"""

__version__ = "1.0.0"

# Core modules
from . import tiles
from . import geometry
from . import datasource
from . import monitoring
from . import compositing
from . import validation
from . import utils

from .exceptions import (
    VectorTileError,
    InvalidAddress,
    InvalidOptions,
    MalformedGeometry,
    MalformedTile,
    UnsupportedGeometryType,
    StructuralCompositeFailure,
    NoOpError
)
from .compositing import CompositeOptions, CompositeSummary, ThreadingMode, TileExecutor
from .geometry import FillType
from .tile import VectorTile, QueryResult

__all__ = [
    "tiles",
    "geometry",
    "datasource",
    "monitoring",
    "compositing",
    "validation",
    "utils",
    "VectorTile",
    "QueryResult",
    "CompositeOptions",
    "CompositeSummary",
    "ThreadingMode",
    "TileExecutor",
    "FillType",
    "VectorTileError",
    "InvalidAddress",
    "InvalidOptions",
    "MalformedGeometry",
    "MalformedTile",
    "UnsupportedGeometryType",
    "StructuralCompositeFailure",
    "NoOpError"
]
