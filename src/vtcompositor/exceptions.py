"""
Error Taxonomy

Exceptions raised by the vector tile engine. Input validation errors
(addresses, options) are also ``ValueError`` subclasses so callers that only
know about the standard library still catch them.
"""


class VectorTileError(Exception):
    """Base class for every error raised by the engine."""


class InvalidAddress(VectorTileError, ValueError):
    """Tile address (z, x, y) outside of the valid range for its zoom."""


class InvalidOptions(VectorTileError, ValueError):
    """Tile size, buffer size or composite options rejected."""


class MalformedGeometry(VectorTileError):
    """Corrupt or truncated geometry command stream."""


class MalformedTile(VectorTileError):
    """Tile or layer protobuf bytes that cannot be read."""


class UnsupportedGeometryType(VectorTileError):
    """Geometry kind the MVT codec never produces (e.g. GeometryCollection)."""


class StructuralCompositeFailure(VectorTileError):
    """A composite call that cannot proceed at all (unreadable source tile)."""


class NoOpError(VectorTileError):
    """Requested operation had nothing to act on, e.g. a missing layer."""

    def __init__(self, message: str, layer_name: str = None):
        super().__init__(message)
        self.layer_name = layer_name
