"""
GeoJSON datasource.

Loads GeoJSON (a FeatureCollection, a single Feature or a bare geometry)
into a GeoDataFrame so it can be reprojected and fed through the transform
pipeline like any decoded tile layer.
"""

import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import geopandas as gpd

from ..exceptions import InvalidOptions
from ..geometry.projection import WGS84_EPSG

GEOMETRY_TYPES = (
    "Point", "MultiPoint", "LineString", "MultiLineString",
    "Polygon", "MultiPolygon", "GeometryCollection",
)


def _as_features(document: Mapping[str, Any]) -> List[Dict[str, Any]]:
    kind = document.get("type")
    if kind == "FeatureCollection":
        features = document.get("features")
        if not isinstance(features, list):
            raise InvalidOptions("FeatureCollection 'features' must be a list")
        return list(features)
    if kind == "Feature":
        return [dict(document)]
    if kind in GEOMETRY_TYPES:
        return [{"type": "Feature", "geometry": dict(document), "properties": {}}]
    raise InvalidOptions(f"unsupported GeoJSON type: {kind!r}")


class GeoJSONSource:
    """
    In-memory GeoJSON features.

    Args:
        geojson: GeoJSON text, bytes or an already decoded mapping
        epsg: CRS of the input coordinates (GeoJSON is WGS84)

    Raises:
        InvalidOptions: text that is not GeoJSON
    """

    def __init__(self, geojson: Union[str, bytes, Mapping[str, Any]], epsg: int = WGS84_EPSG):
        if isinstance(geojson, (str, bytes, bytearray)):
            try:
                document = json.loads(geojson)
            except ValueError as e:
                raise InvalidOptions(f"invalid GeoJSON: {e}") from e
        else:
            document = geojson
        if not isinstance(document, Mapping):
            raise InvalidOptions("GeoJSON input must be an object")

        features = _as_features(document)
        for feature in features:
            if not isinstance(feature, Mapping) or feature.get("type") != "Feature":
                raise InvalidOptions("FeatureCollection members must be GeoJSON features")

        self.epsg = epsg
        self.ids: List[Optional[int]] = [self._feature_id(f) for f in features]
        self.properties: List[Dict[str, Any]] = [dict(f.get("properties") or {}) for f in features]
        if features:
            self.frame = gpd.GeoDataFrame.from_features(features, crs=f"EPSG:{epsg}")
        else:
            self.frame = gpd.GeoDataFrame(geometry=[], crs=f"EPSG:{epsg}")

    @staticmethod
    def _feature_id(feature: Mapping[str, Any]) -> Optional[int]:
        value = feature.get("id")
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            return None
        return value

    def __len__(self) -> int:
        return len(self.properties)

    def features(self, epsg: Optional[int] = None) -> Iterator[Tuple[Optional[int], Any, Dict[str, Any]]]:
        """
        Iterate (id, geometry, properties) in input order.

        Args:
            epsg: Reproject geometries to this CRS first (geopandas ``to_crs``)
        """
        frame = self.frame
        if epsg is not None and epsg != self.epsg and len(frame):
            frame = frame.to_crs(epsg=epsg)
        for feature_id, geometry, properties in zip(self.ids, frame.geometry, self.properties):
            yield feature_id, geometry, properties
