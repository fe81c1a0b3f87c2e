"""
Geometry Module

MVT geometry command codec, polygon fill rules, reprojection and the
transform pipeline that maps source geometries into a destination grid.
"""

from .fill import FillType, resolve_rings
from .codec import GeomType, AffineTransform, decode_geometry, encode_geometry, command_bounds
from .projection import reproject
from .transform import TransformPipeline

__all__ = [
    "FillType",
    "resolve_rings",
    "GeomType",
    "AffineTransform",
    "decode_geometry",
    "encode_geometry",
    "command_bounds",
    "reproject",
    "TransformPipeline"
]
