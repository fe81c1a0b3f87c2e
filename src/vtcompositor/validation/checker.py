"""
Geometry validity and simplicity reports.

Both checks decode every feature of every layer of one tile and collect a
record per failing feature (or per failing part). A failing feature is a
result, never an exception; the tile is not modified.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog
from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    mapping,
)
from shapely.validation import explain_validity

from ..datasource.layer_reader import CoordinateSpace
from ..exceptions import MalformedGeometry, MalformedTile, UnsupportedGeometryType
from ..geometry.projection import WEB_MERCATOR_EPSG, WGS84_EPSG, reproject


SELF_INTERSECTION_MESSAGE = "Geometry has invalid self-intersections"


@dataclass(frozen=True)
class NotSimpleFeature:
    layer: str
    feature_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"layer": self.layer, "featureId": self.feature_id}


@dataclass(frozen=True)
class NotValidFeature:
    layer: str
    feature_id: int
    message: str
    geojson: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layer": self.layer,
            "featureId": self.feature_id,
            "message": self.message,
            "geojson": self.geojson,
        }


def feature_collection(geometry, feature_id: int, properties: Dict[str, Any]) -> str:
    """Single-feature GeoJSON FeatureCollection string."""
    feature = {
        "type": "Feature",
        "id": feature_id,
        "geometry": None if geometry is None or geometry.is_empty else mapping(geometry),
        "properties": properties,
    }
    return json.dumps({"type": "FeatureCollection", "features": [feature]})


def validity_message(geometry) -> Optional[str]:
    """Reason ``geometry`` is not OGC-valid, or None when it is."""
    if isinstance(geometry, (Point, MultiPoint)):
        return None
    if isinstance(geometry, (LineString, MultiLineString)):
        if not geometry.is_valid:
            return explain_validity(geometry)
        if not geometry.is_simple:
            return SELF_INTERSECTION_MESSAGE
        return None
    if isinstance(geometry, (Polygon, MultiPolygon)):
        if geometry.is_valid:
            return None
        return explain_validity(geometry)
    raise UnsupportedGeometryType(f"validity check reached a {geometry.geom_type}")


class GeometryValidityChecker:
    """
    Runs simplicity and validity reports over one tile.

    Args:
        tile: VectorTile to inspect
    """

    def __init__(self, tile):
        self.tile = tile
        self.logger = structlog.get_logger(
            checker_type="GeometryValidityChecker",
            tile_id=f"{tile.z}/{tile.x}/{tile.y}"
        )

    def report_simplicity(self) -> List[NotSimpleFeature]:
        """Features whose grid geometry is not OGC-simple."""
        errors = []
        for reader in self.tile.layers():
            for feature in reader.features(space=CoordinateSpace.GRID):
                try:
                    geometry = feature.geometry()
                except MalformedGeometry as e:
                    self.logger.debug("Undecodable feature", layer=reader.name, feature_id=feature.id, error=str(e))
                    errors.append(NotSimpleFeature(reader.name, feature.id))
                    continue
                if geometry.is_empty:
                    continue
                if isinstance(geometry, GeometryCollection):
                    raise UnsupportedGeometryType("simplicity check reached a GeometryCollection")
                if not geometry.is_simple:
                    errors.append(NotSimpleFeature(reader.name, feature.id))

        self.logger.info("Simplicity report completed", errors=len(errors))
        return errors

    def report_validity(
        self,
        split_multi_features: bool = False,
        lat_lon: bool = False,
        web_merc: bool = False
    ) -> List[NotValidFeature]:
        """
        Features whose geometry is not OGC-valid.

        Args:
            split_multi_features: Check each part of multi geometries separately
            lat_lon: Check in WGS84 coordinates
            web_merc: Check in spherical mercator coordinates

        Returns:
            One NotValidFeature per invalid feature (or per invalid part)
        """
        space = CoordinateSpace.MERCATOR if (lat_lon or web_merc) else CoordinateSpace.GRID
        errors = []
        for reader in self.tile.layers():
            for feature in reader.features(space=space):
                try:
                    properties = feature.properties
                except MalformedTile as e:
                    self.logger.debug("Unreadable attributes", layer=reader.name, feature_id=feature.id, error=str(e))
                    properties = {}

                try:
                    geometry = feature.geometry()
                except MalformedGeometry as e:
                    errors.append(NotValidFeature(
                        reader.name,
                        feature.id,
                        f"Malformed geometry: {e}",
                        feature_collection(None, feature.id, properties)
                    ))
                    continue
                if geometry.is_empty:
                    continue
                if lat_lon:
                    geometry = reproject(geometry, WEB_MERCATOR_EPSG, WGS84_EPSG)

                if split_multi_features and isinstance(geometry, (MultiLineString, MultiPolygon)):
                    parts = list(geometry.geoms)
                else:
                    parts = [geometry]

                for part in parts:
                    message = validity_message(part)
                    if message is not None:
                        errors.append(NotValidFeature(
                            reader.name,
                            feature.id,
                            message,
                            feature_collection(part, feature.id, properties)
                        ))

        self.logger.info(
            "Validity report completed",
            errors=len(errors),
            split_multi_features=split_multi_features,
            lat_lon=lat_lon,
            web_merc=web_merc
        )
        return errors
