"""
Tile Module

Tile address math, Tile-level protobuf framing and the Layer message
builder used when writing composited layers.
"""

from .coordinates import Extent, tile_bounds, buffered_bounds, validate_address, validate_tile_size
from .wire import iter_layer_views, frame_layer
from .builder import LayerBuilder

__all__ = [
    "Extent",
    "tile_bounds",
    "buffered_bounds",
    "validate_address",
    "validate_tile_size",
    "iter_layer_views",
    "frame_layer",
    "LayerBuilder"
]
