"""
Geometry Codec

Decodes the MVT geometry command stream (MoveTo / LineTo / ClosePath with
zig-zag encoded deltas) into shapely geometries and encodes integer grid
geometries back into the same stream.

Ring roles are decided on the raw integer grid coordinates, where an
exterior ring has a positive surveyor's-formula area (y axis pointing down).
Any caller-supplied affine transform is applied after ring assembly.
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple

from shapely import affinity
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)

from ..exceptions import MalformedGeometry, UnsupportedGeometryType
from .fill import FillType, resolve_rings, signed_area


class GeomType(IntEnum):
    UNKNOWN = 0
    POINT = 1
    LINESTRING = 2
    POLYGON = 3


MOVE_TO = 1
LINE_TO = 2
CLOSE_PATH = 7


def zigzag_encode(value: int) -> int:
    return (value << 1) ^ (value >> 63)


def zigzag_decode(value: int) -> int:
    return (value >> 1) ^ -(value & 1)


def command_integer(command_id: int, count: int) -> int:
    return (command_id & 0x7) | (count << 3)


@dataclass(frozen=True)
class AffineTransform:
    """x' = origin_x + x * scale_x, y' = origin_y + y * scale_y."""
    origin_x: float = 0.0
    origin_y: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0

    @property
    def is_identity(self) -> bool:
        return (
            self.origin_x == 0.0 and self.origin_y == 0.0
            and self.scale_x == 1.0 and self.scale_y == 1.0
        )

    def apply(self, geometry):
        if self.is_identity or geometry.is_empty:
            return geometry
        return affinity.affine_transform(
            geometry,
            [self.scale_x, 0.0, 0.0, self.scale_y, self.origin_x, self.origin_y]
        )

    def apply_bounds(self, bounds: Tuple[float, float, float, float]) -> Tuple[float, float, float, float]:
        minx, miny, maxx, maxy = bounds
        x0 = self.origin_x + minx * self.scale_x
        x1 = self.origin_x + maxx * self.scale_x
        y0 = self.origin_y + miny * self.scale_y
        y1 = self.origin_y + maxy * self.scale_y
        return (min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))


GRID_TRANSFORM = AffineTransform()


def _iter_paths(commands: Sequence[int]):
    """
    Walk a command stream.

    Yields:
        (command id, [(x, y), ...]) with absolute cursor positions; ClosePath
        yields an empty vertex list
    """
    x = y = 0
    i = 0
    length = len(commands)
    while i < length:
        cmd_int = commands[i]
        i += 1
        command_id = cmd_int & 0x7
        count = cmd_int >> 3

        if command_id in (MOVE_TO, LINE_TO):
            if count == 0:
                raise MalformedGeometry(f"command {command_id} with zero count")
            if i + 2 * count > length:
                raise MalformedGeometry("geometry command stream is truncated")
            vertices = []
            for _ in range(count):
                x += zigzag_decode(commands[i])
                y += zigzag_decode(commands[i + 1])
                i += 2
                vertices.append((x, y))
            yield command_id, vertices
        elif command_id == CLOSE_PATH:
            if count != 1:
                raise MalformedGeometry("ClosePath command count must be 1")
            yield command_id, []
        else:
            raise MalformedGeometry(f"unknown geometry command {command_id}")


def command_bounds(commands: Sequence[int]) -> Optional[Tuple[int, int, int, int]]:
    """Grid envelope of a command stream without building geometry; None if it has no vertices."""
    minx = miny = math.inf
    maxx = maxy = -math.inf
    for _, vertices in _iter_paths(commands):
        for x, y in vertices:
            if x < minx:
                minx = x
            if x > maxx:
                maxx = x
            if y < miny:
                miny = y
            if y > maxy:
                maxy = y
    if minx == math.inf:
        return None
    return (minx, miny, maxx, maxy)


def _decode_points(commands: Sequence[int]):
    points = []
    for command_id, vertices in _iter_paths(commands):
        if command_id != MOVE_TO:
            raise MalformedGeometry("point geometry may only contain MoveTo commands")
        points.extend(vertices)
    if not points:
        return GeometryCollection()
    if len(points) == 1:
        return Point(points[0])
    return MultiPoint(points)


def _decode_lines(commands: Sequence[int]):
    lines = []
    current = None
    for command_id, vertices in _iter_paths(commands):
        if command_id == MOVE_TO:
            if len(vertices) != 1:
                raise MalformedGeometry("line MoveTo command count must be 1")
            if current is not None and len(current) >= 2:
                lines.append(current)
            current = list(vertices)
        elif command_id == LINE_TO:
            if current is None:
                raise MalformedGeometry("LineTo before MoveTo in line geometry")
            current.extend(vertices)
        else:
            raise MalformedGeometry("ClosePath is not allowed in line geometry")
    if current is not None and len(current) >= 2:
        lines.append(current)

    if not lines:
        return GeometryCollection()
    if len(lines) == 1:
        return LineString(lines[0])
    return MultiLineString(lines)


def decode_rings(commands: Sequence[int], version: int = 2) -> List[List[Tuple[int, int]]]:
    """Closed rings of a polygon command stream, in stream order and stored winding."""
    rings = []
    current = None
    closed = True
    for command_id, vertices in _iter_paths(commands):
        if command_id == MOVE_TO:
            if len(vertices) != 1:
                raise MalformedGeometry("polygon MoveTo command count must be 1")
            if current is not None:
                if not closed and version >= 2:
                    raise MalformedGeometry("polygon ring is missing ClosePath")
                rings.append(current)
            current = list(vertices)
            closed = False
        elif command_id == LINE_TO:
            if current is None:
                raise MalformedGeometry("LineTo before MoveTo in polygon geometry")
            if closed:
                raise MalformedGeometry("LineTo after ClosePath in polygon geometry")
            current.extend(vertices)
        else:
            if current is None:
                raise MalformedGeometry("ClosePath before MoveTo in polygon geometry")
            closed = True
    if current is not None:
        if not closed and version >= 2:
            raise MalformedGeometry("polygon ring is missing ClosePath")
        rings.append(current)

    result = []
    for ring in rings:
        if ring[0] != ring[-1]:
            ring.append(ring[0])
        if len(ring) >= 4:
            result.append(ring)
    return result


def _assemble_polygons(rings, version: int):
    polygons = []
    exterior_sign = None
    for ring in rings:
        area = signed_area(ring)
        if area == 0:
            continue
        sign = 1 if area > 0 else -1
        if version < 2 and exterior_sign is None:
            exterior_sign = sign
        is_exterior = sign == (exterior_sign if version < 2 else 1)
        if is_exterior:
            polygons.append((ring, []))
        elif polygons:
            polygons[-1][1].append(ring)
        # a hole that precedes every exterior ring is dropped

    if not polygons:
        return GeometryCollection()
    shapes = [Polygon(shell, holes) for shell, holes in polygons]
    if len(shapes) == 1:
        return shapes[0]
    return MultiPolygon(shapes)


def decode_geometry(
    commands: Sequence[int],
    geom_type: int,
    version: int = 2,
    transform: Optional[AffineTransform] = None,
    process_all_rings: bool = False,
    fill_type: FillType = FillType.POSITIVE
):
    """
    Decode a geometry command stream.

    Args:
        commands: Packed command/parameter integers of one feature
        geom_type: MVT geometry type (GeomType)
        version: Layer version (1 or 2)
        transform: Affine transform applied to grid coordinates
        process_all_rings: Ignore ring order/winding and assemble polygons
            with ``fill_type`` instead
        fill_type: Fill rule used when ``process_all_rings`` is set

    Returns:
        shapely geometry; an empty GeometryCollection for UNKNOWN or empty streams

    Raises:
        MalformedGeometry: corrupt or truncated command stream
    """
    try:
        geom_type = GeomType(geom_type)
    except ValueError:
        raise MalformedGeometry(f"unknown geometry type {geom_type}") from None

    if geom_type == GeomType.POINT:
        geometry = _decode_points(commands)
    elif geom_type == GeomType.LINESTRING:
        geometry = _decode_lines(commands)
    elif geom_type == GeomType.POLYGON:
        rings = decode_rings(commands, version)
        if process_all_rings:
            geometry = resolve_rings(rings, fill_type)
        else:
            geometry = _assemble_polygons(rings, version)
    else:
        return GeometryCollection()

    if transform is None:
        return geometry
    return transform.apply(geometry)


def round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _quantize(coords) -> List[Tuple[int, int]]:
    out = []
    for c in coords:
        vertex = (round_half_away(c[0]), round_half_away(c[1]))
        if not out or out[-1] != vertex:
            out.append(vertex)
    return out


class _CommandWriter:
    """Accumulates commands while tracking the delta cursor."""

    def __init__(self):
        self.commands = []
        self.x = 0
        self.y = 0

    def move_to(self, vertices: Sequence[Tuple[int, int]]) -> None:
        self._emit(MOVE_TO, vertices)

    def line_to(self, vertices: Sequence[Tuple[int, int]]) -> None:
        self._emit(LINE_TO, vertices)

    def close_path(self) -> None:
        self.commands.append(command_integer(CLOSE_PATH, 1))

    def _emit(self, command_id: int, vertices: Sequence[Tuple[int, int]]) -> None:
        self.commands.append(command_integer(command_id, len(vertices)))
        for x, y in vertices:
            self.commands.append(zigzag_encode(x - self.x))
            self.commands.append(zigzag_encode(y - self.y))
            self.x, self.y = x, y


def _ring_vertices(coords, exterior: bool) -> Optional[List[Tuple[int, int]]]:
    ring = _quantize(coords)
    if len(ring) > 1 and ring[0] == ring[-1]:
        ring.pop()
    if len(ring) < 3:
        return None
    area = signed_area(ring)
    if area == 0:
        return None
    if (area > 0) != exterior:
        ring.reverse()
    return ring


def _encode_polygon(writer: _CommandWriter, polygon: Polygon) -> bool:
    shell = _ring_vertices(polygon.exterior.coords, exterior=True)
    if shell is None:
        return False
    for ring in [shell] + [_ring_vertices(i.coords, exterior=False) for i in polygon.interiors]:
        if ring is None:
            continue
        writer.move_to(ring[:1])
        writer.line_to(ring[1:])
        writer.close_path()
    return True


def encode_geometry(geometry) -> Tuple[GeomType, List[int]]:
    """
    Encode an integer grid geometry into a command stream.

    Exterior rings are written with positive area followed by their holes
    with negative area, which satisfies both version 1 and version 2 layers.

    Returns:
        (geometry type, commands); (UNKNOWN, []) when nothing remains to encode

    Raises:
        UnsupportedGeometryType: GeometryCollection or unknown geometry input
    """
    if geometry is None or geometry.is_empty:
        return GeomType.UNKNOWN, []

    writer = _CommandWriter()

    if isinstance(geometry, (Point, MultiPoint)):
        parts = [geometry] if isinstance(geometry, Point) else list(geometry.geoms)
        vertices = [(round_half_away(p.x), round_half_away(p.y)) for p in parts if not p.is_empty]
        if not vertices:
            return GeomType.UNKNOWN, []
        writer.move_to(vertices)
        return GeomType.POINT, writer.commands

    if isinstance(geometry, (LineString, MultiLineString)):
        parts = [geometry] if isinstance(geometry, LineString) else list(geometry.geoms)
        for line in parts:
            vertices = _quantize(line.coords)
            if len(vertices) < 2:
                continue
            writer.move_to(vertices[:1])
            writer.line_to(vertices[1:])
        if not writer.commands:
            return GeomType.UNKNOWN, []
        return GeomType.LINESTRING, writer.commands

    if isinstance(geometry, (Polygon, MultiPolygon)):
        parts = [geometry] if isinstance(geometry, Polygon) else list(geometry.geoms)
        for polygon in parts:
            _encode_polygon(writer, polygon)
        if not writer.commands:
            return GeomType.UNKNOWN, []
        return GeomType.POLYGON, writer.commands

    raise UnsupportedGeometryType(f"cannot encode geometry type {geometry.geom_type}")
