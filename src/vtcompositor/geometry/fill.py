"""
Polygon fill rules.

Resolves which regions of a set of rings are "inside" a polygon. Ring
linework is noded and polygonized into faces; each face is kept when the
winding number at an interior point passes the fill rule, and the kept faces
are unioned. This is used when ring order/winding cannot be trusted
(``process_all_rings``), for multi-polygon union, and to repair polygons that
are not OGC-simple.
"""

from enum import IntEnum
from typing import List, Sequence, Tuple

import shapely
from shapely.geometry import GeometryCollection, LineString, MultiPolygon, Polygon
from shapely.ops import unary_union

Coordinate = Tuple[float, float]
Ring = Sequence[Coordinate]


class FillType(IntEnum):
    EVEN_ODD = 0
    NON_ZERO = 1
    POSITIVE = 2
    NEGATIVE = 3


_FILL_NAMES = {
    "evenodd": FillType.EVEN_ODD,
    "even_odd": FillType.EVEN_ODD,
    "nonzero": FillType.NON_ZERO,
    "non_zero": FillType.NON_ZERO,
    "positive": FillType.POSITIVE,
    "negative": FillType.NEGATIVE,
}


def parse_fill_type(value) -> FillType:
    """Accept a FillType, its integer value or a name such as ``"even_odd"``."""
    if isinstance(value, FillType):
        return value
    if isinstance(value, str):
        try:
            return _FILL_NAMES[value.strip().lower()]
        except KeyError:
            raise ValueError(f"unknown fill type: {value!r}") from None
    if isinstance(value, bool):
        raise ValueError("fill type must be a number or a name")
    return FillType(int(value))


def signed_area(ring: Ring) -> float:
    """Surveyor's formula; positive for counter-clockwise rings in a y-up frame."""
    area = 0.0
    count = len(ring)
    if count < 3:
        return 0.0
    for i in range(count):
        x0, y0 = ring[i][0], ring[i][1]
        x1, y1 = ring[(i + 1) % count][0], ring[(i + 1) % count][1]
        area += x0 * y1 - x1 * y0
    return area / 2.0


def winding_number(x: float, y: float, ring: Ring) -> int:
    """Winding number of a closed ring around the point (x, y)."""
    wn = 0
    for i in range(len(ring) - 1):
        x0, y0 = ring[i][0], ring[i][1]
        x1, y1 = ring[i + 1][0], ring[i + 1][1]
        is_left = (x1 - x0) * (y - y0) - (x - x0) * (y1 - y0)
        if y0 <= y:
            if y1 > y and is_left > 0:
                wn += 1
        elif y1 <= y and is_left < 0:
            wn -= 1
    return wn


def _passes(fill_type: FillType, wn: int) -> bool:
    if fill_type == FillType.EVEN_ODD:
        return wn % 2 != 0
    if fill_type == FillType.NON_ZERO:
        return wn != 0
    if fill_type == FillType.POSITIVE:
        return wn > 0
    return wn < 0


def close_ring(ring: Ring) -> List[Coordinate]:
    coords = [(float(c[0]), float(c[1])) for c in ring]
    if coords and coords[0] != coords[-1]:
        coords.append(coords[0])
    return coords


def polygonal_parts(geometry) -> List[Polygon]:
    """Non-empty polygons contained in ``geometry`` (collections are flattened)."""
    if geometry is None or geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, (MultiPolygon, GeometryCollection)):
        parts = []
        for part in geometry.geoms:
            parts.extend(polygonal_parts(part))
        return parts
    return []


def as_polygonal(polygons: Sequence[Polygon]):
    if not polygons:
        return GeometryCollection()
    if len(polygons) == 1:
        return polygons[0]
    return MultiPolygon(list(polygons))


def polygon_rings(geometry) -> List[List[Coordinate]]:
    """Every ring (exteriors and holes) of a polygonal geometry, in stored winding."""
    rings = []
    for polygon in polygonal_parts(geometry):
        rings.append(list(polygon.exterior.coords))
        for interior in polygon.interiors:
            rings.append(list(interior.coords))
    return rings


def resolve_rings(rings: Sequence[Ring], fill_type: FillType = FillType.POSITIVE):
    """
    Assemble polygons from raw rings using a fill rule.

    Args:
        rings: Rings in any order and winding; they are closed if needed
        fill_type: Rule deciding which winding numbers are filled

    Returns:
        Polygon, MultiPolygon or an empty GeometryCollection
    """
    closed = [close_ring(ring) for ring in rings]
    closed = [ring for ring in closed if len(ring) >= 4 and signed_area(ring) != 0]
    if not closed:
        return GeometryCollection()

    linework = unary_union([LineString(ring) for ring in closed])
    faces = shapely.polygonize(shapely.get_parts(linework))

    filled = []
    for face in faces.geoms:
        if face.is_empty:
            continue
        sample = face.representative_point()
        wn = sum(winding_number(sample.x, sample.y, ring) for ring in closed)
        if _passes(fill_type, wn):
            filled.append(face)

    if not filled:
        return GeometryCollection()
    return as_polygonal(polygonal_parts(unary_union(filled)))
