"""
Projection service.

Thin wrapper around ``pyproj.Transformer`` for the two coordinate reference
systems the engine deals with: WGS84 (EPSG:4326) and spherical mercator
(EPSG:3857). Transformers are created once per CRS pair and reused.
"""

import threading
from typing import Dict, Tuple

from pyproj import Transformer
from shapely.ops import transform

WGS84_EPSG = 4326
WEB_MERCATOR_EPSG = 3857

_transformers: Dict[Tuple[int, int], Transformer] = {}
_lock = threading.Lock()


def get_transformer(source_epsg: int, target_epsg: int) -> Transformer:
    """Cached ``always_xy`` transformer between two EPSG codes."""
    key = (int(source_epsg), int(target_epsg))
    with _lock:
        transformer = _transformers.get(key)
        if transformer is None:
            transformer = Transformer.from_crs(key[0], key[1], always_xy=True)
            _transformers[key] = transformer
    return transformer


def reproject(geometry, source_epsg: int, target_epsg: int):
    """Reproject a shapely geometry; returns the input unchanged when the CRS match."""
    if int(source_epsg) == int(target_epsg) or geometry is None or geometry.is_empty:
        return geometry
    transformer = get_transformer(source_epsg, target_epsg)
    return transform(transformer.transform, geometry)


def lonlat_to_mercator(lon: float, lat: float) -> Tuple[float, float]:
    return get_transformer(WGS84_EPSG, WEB_MERCATOR_EPSG).transform(lon, lat)
