"""
Tile Coordinate Math

Pure functions mapping a (z, x, y) tile address to its spherical mercator
(EPSG:3857) bounding box, plus the buffered variant used for clipping.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from ..exceptions import InvalidAddress, InvalidOptions


EARTH_RADIUS = 6378137.0

# Half of the equatorial circumference
ORIGIN_SHIFT = math.pi * EARTH_RADIUS  # 20037508.342789244
WORLD_SIZE = 2.0 * ORIGIN_SHIFT

# OGC standardized rendering pixel size in metres
STANDARD_PIXEL_SIZE = 0.00028

DEFAULT_TILE_SIZE = 4096
DEFAULT_BUFFER_SIZE = 128


@dataclass(frozen=True)
class Extent:
    """Axis aligned box, (minx, miny, maxx, maxy)."""
    minx: float
    miny: float
    maxx: float
    maxy: float

    @property
    def width(self) -> float:
        return self.maxx - self.minx

    @property
    def height(self) -> float:
        return self.maxy - self.miny

    @property
    def is_valid(self) -> bool:
        return self.minx < self.maxx and self.miny < self.maxy

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.minx, self.miny, self.maxx, self.maxy)

    def contains(self, other: "Extent") -> bool:
        return (
            self.minx <= other.minx and self.miny <= other.miny
            and self.maxx >= other.maxx and self.maxy >= other.maxy
        )

    def intersects(self, other: "Extent") -> bool:
        return not (
            other.minx > self.maxx or other.maxx < self.minx
            or other.miny > self.maxy or other.maxy < self.miny
        )

    def expand(self, dx: float, dy: float) -> "Extent":
        return Extent(self.minx - dx, self.miny - dy, self.maxx + dx, self.maxy + dy)

    @classmethod
    def from_sequence(cls, values) -> "Extent":
        minx, miny, maxx, maxy = (float(v) for v in values)
        return cls(minx, miny, maxx, maxy)


def validate_address(z: int, x: int, y: int) -> None:
    """
    Check that a tile address is inside the grid of its zoom level.

    Raises:
        InvalidAddress: negative values or x/y >= 2^z
    """
    for name, value in (("z", z), ("x", x), ("y", y)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidAddress(f"required parameter {name} must be an integer")
        if value < 0:
            raise InvalidAddress(f"required parameter {name} must be greater than or equal to zero")

    max_at_zoom = 2 ** z
    if x >= max_at_zoom:
        raise InvalidAddress("required parameter x is out of range of possible values based on z value")
    if y >= max_at_zoom:
        raise InvalidAddress("required parameter y is out of range of possible values based on z value")


def validate_tile_size(tile_size: int, buffer_size: int) -> None:
    """
    Check tile size and buffer size.

    Raises:
        InvalidOptions: non-positive tile size or a buffer that makes the
            effective size non-positive
    """
    if isinstance(tile_size, bool) or not isinstance(tile_size, int):
        raise InvalidOptions("tile_size must be an integer")
    if isinstance(buffer_size, bool) or not isinstance(buffer_size, int):
        raise InvalidOptions("buffer_size must be an integer")
    if tile_size <= 0:
        raise InvalidOptions("tile_size must be greater than zero")
    if tile_size + 2 * buffer_size <= 0:
        raise InvalidOptions("too large of a negative buffer for tile_size")


def tile_bounds(z: int, x: int, y: int) -> Extent:
    """Mercator bounding box of a tile."""
    cell_size = WORLD_SIZE / (2 ** z)

    minx = -ORIGIN_SHIFT + x * cell_size
    maxx = minx + cell_size

    maxy = ORIGIN_SHIFT - y * cell_size
    miny = maxy - cell_size

    return Extent(minx, miny, maxx, maxy)


def buffered_bounds(extent: Extent, buffer_size: int, tile_size: int) -> Extent:
    """Expand ``extent`` by ``buffer_size`` grid units on every side."""
    padding = extent.width / tile_size * buffer_size
    return extent.expand(padding, padding)


def scale_denominator_for(extent: Extent, tile_size: int, scale_factor: float = 1.0) -> float:
    """Map scale denominator of a tile rendered at ``tile_size`` pixels."""
    map_scale = extent.width / tile_size
    return map_scale / STANDARD_PIXEL_SIZE * scale_factor
