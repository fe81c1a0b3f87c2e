"""
Geometry Transform Pipeline

Takes a source geometry (mercator or geographic coordinates) to integer grid
geometry of a destination tile, in a fixed order:

1. reproject to EPSG:3857 and map into the destination grid
2. clip to the destination clip box
3. optional multi-polygon union with the fill rule
4. area threshold
5. optional simplification, then snapping to the integer grid
6. strictly-simple check (repair or drop)

A geometry that does not survive a step is dropped (``None``).
"""

from typing import List, Optional, Tuple

import shapely
import structlog
from shapely import affinity
from shapely.errors import GEOSException
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    Point,
    Polygon,
    box,
)

from ..tiles.coordinates import Extent
from .fill import as_polygonal, polygonal_parts, resolve_rings, signed_area
from .projection import WEB_MERCATOR_EPSG, reproject


logger = structlog.get_logger(component="TransformPipeline")


def geometry_dimension(geometry) -> int:
    """0 for puntal, 1 for lineal, 2 for polygonal geometries; -1 when empty or mixed."""
    if geometry is None or geometry.is_empty:
        return -1
    if isinstance(geometry, (Point, MultiPoint)):
        return 0
    if isinstance(geometry, (LineString, MultiLineString)):
        return 1
    if polygonal_parts(geometry) and not isinstance(geometry, GeometryCollection):
        return 2
    return -1


def _flatten(geometry) -> List:
    if geometry is None or geometry.is_empty:
        return []
    if hasattr(geometry, "geoms"):
        parts = []
        for part in geometry.geoms:
            parts.extend(_flatten(part))
        return parts
    return [geometry]


def keep_dimension(geometry, dimension: int):
    """Collect the parts of ``geometry`` with the given dimension into one geometry."""
    parts = _flatten(geometry)
    if dimension == 0:
        points = [p for p in parts if isinstance(p, Point)]
        if not points:
            return GeometryCollection()
        return points[0] if len(points) == 1 else MultiPoint(points)
    if dimension == 1:
        lines = [p for p in parts if isinstance(p, LineString) and p.length > 0]
        if not lines:
            return GeometryCollection()
        return lines[0] if len(lines) == 1 else MultiLineString(lines)
    return as_polygonal([p for p in parts if isinstance(p, Polygon)])


def oriented_rings(geometry) -> List[List[Tuple[float, float]]]:
    """Rings of a polygonal geometry with exteriors wound positive and holes negative."""
    rings = []
    for polygon in polygonal_parts(geometry):
        shell = list(polygon.exterior.coords)
        if signed_area(shell) < 0:
            shell.reverse()
        rings.append(shell)
        for interior in polygon.interiors:
            hole = list(interior.coords)
            if signed_area(hole) > 0:
                hole.reverse()
            rings.append(hole)
    return rings


def apply_area_threshold(geometry, threshold: float):
    """
    Remove rings whose absolute area is below ``threshold``.

    An exterior ring below the threshold takes its holes with it. Non-polygonal
    geometries are returned unchanged.
    """
    if threshold <= 0 or geometry_dimension(geometry) != 2:
        return geometry

    kept = []
    for polygon in polygonal_parts(geometry):
        if abs(signed_area(polygon.exterior.coords)) < threshold:
            continue
        holes = [
            interior.coords for interior in polygon.interiors
            if abs(signed_area(interior.coords)) >= threshold
        ]
        kept.append(Polygon(polygon.exterior.coords, holes))
    return as_polygonal(kept)


def _simplify_ring(coords, distance: float) -> Optional[List[Tuple[float, float]]]:
    simplified = LineString(coords).simplify(distance, preserve_topology=False)
    ring = list(simplified.coords)
    if len(ring) < 4 or signed_area(ring) == 0:
        return None
    return ring


def simplify_geometry(geometry, distance: float):
    """Douglas-Peucker per line and per ring; degenerate rings and lines are dropped."""
    if distance <= 0:
        return geometry

    dimension = geometry_dimension(geometry)
    if dimension == 1:
        lines = []
        for line in _flatten(geometry):
            simplified = line.simplify(distance, preserve_topology=False)
            if not simplified.is_empty and len(simplified.coords) >= 2:
                lines.append(simplified)
        return keep_dimension(GeometryCollection(lines), 1)

    if dimension == 2:
        polygons = []
        for polygon in polygonal_parts(geometry):
            shell = _simplify_ring(polygon.exterior.coords, distance)
            if shell is None:
                continue
            holes = [_simplify_ring(i.coords, distance) for i in polygon.interiors]
            polygons.append(Polygon(shell, [h for h in holes if h is not None]))
        return as_polygonal(polygons)

    return geometry


def snap_to_grid(geometry):
    """Round every coordinate to the integer grid without fixing topology."""
    if geometry is None or geometry.is_empty:
        return geometry
    snapped = shapely.set_precision(geometry, 1.0, mode="pointwise")
    return keep_dimension(snapped, geometry_dimension(geometry))


class TransformPipeline:
    """
    Maps geometries into the integer grid of a destination tile.

    ``destination`` is any object exposing ``extent()``, ``buffered_extent()``
    and ``tile_size`` (a VectorTile). ``grid_size`` is the extent of the
    destination layer and defaults to the tile size.
    """

    def __init__(self, options, destination, grid_size: Optional[int] = None):
        self.options = options
        self.extent: Extent = destination.extent()
        self.grid_size: int = grid_size if grid_size is not None else destination.tile_size

        clip = options.max_extent if options.max_extent is not None else destination.buffered_extent()
        self.clip_extent: Extent = clip

        self._sx = self.grid_size / self.extent.width
        self._sy = self.grid_size / self.extent.height
        # Destination grid space: offsets move the source, never the clip box
        self.clip_box: Tuple[float, float, float, float] = (
            (clip.minx - self.extent.minx) * self._sx,
            (self.extent.maxy - clip.maxy) * self._sy,
            (clip.maxx - self.extent.minx) * self._sx,
            (self.extent.maxy - clip.miny) * self._sy,
        )

    @property
    def query_extent(self) -> Extent:
        """Mercator box whose grid image is the clip box (offsets included)."""
        minx, miny, maxx, maxy = self.clip_box
        ox, oy = self.options.offset_x, self.options.offset_y
        return Extent(
            self.extent.minx + (minx + ox) / self._sx,
            self.extent.maxy - (maxy + oy) / self._sy,
            self.extent.minx + (maxx + ox) / self._sx,
            self.extent.maxy - (miny + oy) / self._sy,
        )

    def mercator_to_grid(self, mx: float, my: float) -> Tuple[float, float]:
        gx = (mx - self.extent.minx) * self._sx - self.options.offset_x
        gy = (self.extent.maxy - my) * self._sy - self.options.offset_y
        return gx, gy

    def to_grid(self, geometry, source_epsg: int = WEB_MERCATOR_EPSG):
        """Step 1: reprojection and the mercator to grid affine."""
        mercator = reproject(geometry, source_epsg, WEB_MERCATOR_EPSG)
        return affinity.affine_transform(
            mercator,
            [
                self._sx, 0.0, 0.0, -self._sy,
                -self.extent.minx * self._sx - self.options.offset_x,
                self.extent.maxy * self._sy - self.options.offset_y,
            ]
        )

    def clip(self, geometry):
        """Step 2: clip to the clip box, keeping only parts of the input's dimension."""
        dimension = geometry_dimension(geometry)
        if dimension < 0:
            return None

        minx, miny, maxx, maxy = self.clip_box
        gminx, gminy, gmaxx, gmaxy = geometry.bounds
        if gminx >= minx and gminy >= miny and gmaxx <= maxx and gmaxy <= maxy:
            return geometry
        if gmaxx < minx or gminx > maxx or gmaxy < miny or gminy > maxy:
            return None

        if dimension == 2 and not geometry.is_valid:
            clipped = shapely.clip_by_rect(geometry, minx, miny, maxx, maxy)
        else:
            clipped = geometry.intersection(box(minx, miny, maxx, maxy))

        clipped = keep_dimension(clipped, dimension)
        if clipped.is_empty:
            return None
        return clipped

    def run(self, geometry, source_epsg: int = WEB_MERCATOR_EPSG):
        """
        Run every step over one geometry.

        Args:
            geometry: shapely geometry in ``source_epsg`` coordinates
            source_epsg: CRS of the input (3857 for decoded tiles, 4326 for GeoJSON)

        Returns:
            Integer grid geometry, or None when the geometry was dropped

        Raises:
            GEOSException: GEOS failed on a pathological input
        """
        options = self.options

        geometry = self.to_grid(geometry, source_epsg)
        geometry = self.clip(geometry)
        if geometry is None:
            return None
        dimension = geometry_dimension(geometry)

        if dimension == 2 and options.multi_polygon_union and len(polygonal_parts(geometry)) > 1:
            geometry = resolve_rings(oriented_rings(geometry), options.fill_type)

        geometry = apply_area_threshold(geometry, options.area_threshold)
        geometry = simplify_geometry(geometry, options.simplify_distance)
        geometry = snap_to_grid(geometry)
        geometry = apply_area_threshold(geometry, options.area_threshold)
        if geometry is None or geometry.is_empty:
            return None

        if dimension == 2 and options.strictly_simple and not geometry.is_valid:
            if not options.reencode:
                logger.debug("Dropping polygon that is not strictly simple")
                return None
            geometry = self.repair(geometry)
            if geometry is None:
                return None

        return geometry

    def repair(self, geometry):
        """Re-assemble polygon rings with the fill rule and snap to a valid integer grid."""
        try:
            repaired = resolve_rings(oriented_rings(geometry), self.options.fill_type)
            repaired = shapely.set_precision(repaired, 1.0)
        except GEOSException as e:
            logger.warning("Polygon repair failed", error=str(e))
            return None
        repaired = apply_area_threshold(keep_dimension(repaired, 2), self.options.area_threshold)
        if repaired.is_empty:
            return None
        return repaired
