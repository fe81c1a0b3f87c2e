"""
Vector Tile

The owning object of an encoded MVT payload. A tile has an address
(z, x, y), a grid ``tile_size`` and a signed ``buffer_size``, and exclusively
owns its byte buffer. Layer names, empty and painted layers are derived from
the bytes on demand and cached until the next mutation.
"""

import gzip
import json
import zlib
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import geopandas as gpd
import structlog
from shapely.geometry import Point, mapping

from .compositing.compositor import FEATURE_ERRORS, CompositeSummary, Compositor
from .compositing.options import CompositeOptions
from .datasource.geojson_source import GeoJSONSource
from .datasource.layer_reader import CoordinateSpace, Feature, LayerReader, Query
from .exceptions import InvalidAddress, InvalidOptions, MalformedGeometry, MalformedTile, NoOpError
from .geometry.codec import GeomType, encode_geometry
from .geometry.projection import WEB_MERCATOR_EPSG, WGS84_EPSG, lonlat_to_mercator
from .geometry.transform import TransformPipeline
from .monitoring.metrics import MetricsCollector
from .tiles.builder import LayerBuilder
from .tiles.coordinates import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_TILE_SIZE,
    Extent,
    buffered_bounds,
    tile_bounds,
    validate_address,
    validate_tile_size,
)
from .tiles.wire import BytesLike, frame_layer, iter_layer_views
from .validation.checker import GeometryValidityChecker, NotSimpleFeature, NotValidFeature

logger = structlog.get_logger(component="VectorTile")

GZIP_MAGIC = b"\x1f\x8b"
EMPTY_FEATURE_COLLECTION = '{"type": "FeatureCollection", "features": []}'


def decompress(data: BytesLike) -> bytes:
    """
    Return the raw protobuf bytes of a possibly gzip or zlib compressed tile.

    Raises:
        MalformedTile: compressed data that fails to inflate
    """
    data = bytes(data)
    try:
        if data[:2] == GZIP_MAGIC:
            return gzip.decompress(data)
        if len(data) > 1 and data[0] == 0x78 and ((data[0] << 8) | data[1]) % 31 == 0:
            return zlib.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise MalformedTile(f"unable to decompress tile data: {e}") from e
    return data


@dataclass(frozen=True)
class QueryResult:
    """A feature hit by ``VectorTile.query``; distance is in mercator metres."""
    layer: str
    feature: Feature
    distance: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "layer": self.layer,
            "id": self.feature.id,
            "distance": self.distance,
            "properties": dict(self.feature.properties),
        }


class VectorTile:
    """
    An encoded vector tile with its address.

    Args:
        z, x, y: Tile address, ``0 <= x, y < 2**z``
        tile_size: Grid size of the tile, greater than zero
        buffer_size: Grid units of padding around the tile, may be negative

    Raises:
        InvalidAddress: address outside the grid of its zoom level
        InvalidOptions: tile_size / buffer_size combination rejected
    """

    def __init__(
        self,
        z: int,
        x: int,
        y: int,
        tile_size: int = DEFAULT_TILE_SIZE,
        buffer_size: int = DEFAULT_BUFFER_SIZE
    ):
        validate_address(z, x, y)
        validate_tile_size(tile_size, buffer_size)

        self._z = z
        self._x = x
        self._y = y
        self._tile_size = tile_size
        self._buffer_size = buffer_size

        self._buffer = bytearray()
        self._snapshot: Optional[bytes] = None
        self._readers: Optional[List[LayerReader]] = None

    @classmethod
    def from_config(cls, config, z: int, x: int, y: int) -> "VectorTile":
        return cls(z, x, y, tile_size=config.tile.tile_size, buffer_size=config.tile.buffer_size)

    def __repr__(self) -> str:
        return f"VectorTile(z={self._z}, x={self._x}, y={self._y}, layers={self.names()})"

    # Address and size

    @property
    def z(self) -> int:
        return self._z

    @z.setter
    def z(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidAddress("Must provide a number")
        if value < 0:
            raise InvalidAddress("tile z coordinate must be greater than or equal to zero")
        self._z = value
        self._invalidate()

    @property
    def x(self) -> int:
        return self._x

    @x.setter
    def x(self, value: int) -> None:
        self._check_column_row("x", value)
        self._x = value
        self._invalidate()

    @property
    def y(self) -> int:
        return self._y

    @y.setter
    def y(self, value: int) -> None:
        self._check_column_row("y", value)
        self._y = value
        self._invalidate()

    def _check_column_row(self, name: str, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidAddress("Must provide a number")
        if value < 0:
            raise InvalidAddress(f"tile {name} coordinate must be greater than or equal to zero")
        if value >= 2 ** self._z:
            raise InvalidAddress(f"tile {name} coordinate must be less than 2^z")

    @property
    def tile_size(self) -> int:
        return self._tile_size

    @tile_size.setter
    def tile_size(self, value: int) -> None:
        validate_tile_size(value, self._buffer_size)
        self._tile_size = value

    @property
    def buffer_size(self) -> int:
        return self._buffer_size

    @buffer_size.setter
    def buffer_size(self, value: int) -> None:
        validate_tile_size(self._tile_size, value)
        self._buffer_size = value

    def extent(self) -> Extent:
        return tile_bounds(self._z, self._x, self._y)

    def buffered_extent(self) -> Extent:
        return buffered_bounds(self.extent(), self._buffer_size, self._tile_size)

    def same_extent(self, other: "VectorTile") -> bool:
        """Same address, tile size and buffer size."""
        return (
            (self._z, self._x, self._y, self._tile_size, self._buffer_size)
            == (other.z, other.x, other.y, other.tile_size, other.buffer_size)
        )

    # Derived state

    def _invalidate(self) -> None:
        self._snapshot = None
        self._readers = None

    def _data(self) -> bytes:
        if self._snapshot is None:
            self._snapshot = bytes(self._buffer)
        return self._snapshot

    def layers(self) -> List[LayerReader]:
        """
        Readers over every layer, in buffer order.

        Raises:
            MalformedTile: the buffer can not be read
        """
        if self._readers is None:
            self._readers = [
                LayerReader(view, self._x, self._y, self._z)
                for view in iter_layer_views(self._data())
            ]
        return list(self._readers)

    def names(self) -> List[str]:
        names = []
        for reader in self.layers():
            if reader.name not in names:
                names.append(reader.name)
        return names

    def has_layer(self, name: str) -> bool:
        return name in self.names()

    def empty_layers(self) -> List[str]:
        return [r.name for r in self.layers() if r.feature_count == 0]

    def painted_layers(self) -> List[str]:
        return [r.name for r in self.layers() if r.is_painted]

    def is_empty(self) -> bool:
        return len(self._buffer) == 0 or not self.layers()

    def is_painted(self) -> bool:
        return any(r.is_painted for r in self.layers())

    def layer_reader(self, name: str) -> LayerReader:
        for reader in self.layers():
            if reader.name == name:
                return reader
        raise NoOpError(f"Layer name '{name}' not found", layer_name=name)

    # Buffer access and mutation

    def get_data(self, compression: Optional[str] = None, level: int = 6) -> bytes:
        """
        Encoded tile bytes.

        Args:
            compression: None, "gzip" or "zlib"
            level: Compression level (0-9)
        """
        data = self._data()
        if compression is None or compression == "none":
            return data
        if not isinstance(level, int) or not 0 <= level <= 9:
            raise InvalidOptions("compression level must be an integer between 0 and 9")
        if compression == "gzip":
            return gzip.compress(data, compresslevel=level)
        if compression == "zlib":
            return zlib.compress(data, level)
        raise InvalidOptions(f"unknown compression type: {compression!r}")

    @staticmethod
    def _read_layers(data: bytes, x: int, y: int, z: int) -> List[LayerReader]:
        if not data:
            raise MalformedTile("cannot accept empty buffer as protobuf")
        return [LayerReader(view, x, y, z) for view in iter_layer_views(data)]

    def set_data(self, data: BytesLike) -> None:
        """
        Replace the tile contents; gzip and zlib input is inflated.

        Raises:
            MalformedTile: empty or unreadable bytes (the tile is left unchanged)
        """
        raw = decompress(data)
        self._read_layers(raw, self._x, self._y, self._z)
        self._buffer = bytearray(raw)
        self._invalidate()

    def add_data(self, data: BytesLike) -> List[str]:
        """
        Append the layers of another encoded tile; layers whose name is
        already present are skipped.

        Returns:
            Names of the appended layers
        """
        raw = decompress(data)
        readers = self._read_layers(raw, self._x, self._y, self._z)
        existing = set(self.names())
        added = []
        for reader in readers:
            if reader.name in existing:
                logger.info("Skipping layer already present in tile", layer=reader.name)
                continue
            self._buffer.extend(frame_layer(reader.data))
            existing.add(reader.name)
            added.append(reader.name)
        if added:
            self._invalidate()
        return added

    def append_layer_buffer(self, data: BytesLike, name: str) -> bool:
        """
        Append one encoded Layer message.

        Returns:
            False (and leaves the tile unchanged) when a layer called ``name``
            is already present
        """
        if name in self.names():
            logger.info("Layer already present, not appended", layer=name)
            return False
        self._buffer.extend(frame_layer(data))
        self._invalidate()
        return True

    def layer(self, name: str) -> "VectorTile":
        """
        New tile holding a byte-for-byte copy of one layer.

        Raises:
            NoOpError: no layer called ``name``
        """
        reader = self.layer_reader(name)
        tile = VectorTile(self._z, self._x, self._y, self._tile_size, self._buffer_size)
        tile.append_layer_buffer(reader.data, name)
        return tile

    def clear(self) -> None:
        self._buffer = bytearray()
        self._invalidate()

    # Compositing and validation

    def composite(
        self,
        sources: Sequence["VectorTile"],
        options: Union[CompositeOptions, Mapping[str, Any], None] = None,
        metrics: Optional[MetricsCollector] = None,
        max_workers: int = 4
    ) -> CompositeSummary:
        """Merge ``sources`` into this tile (see Compositor)."""
        if not isinstance(options, CompositeOptions):
            options = CompositeOptions.from_dict(options)
        return Compositor(self, options, metrics=metrics, max_workers=max_workers).composite(sources)

    def report_geometry_simplicity(self) -> List[NotSimpleFeature]:
        return GeometryValidityChecker(self).report_simplicity()

    def report_geometry_validity(
        self,
        split_multi_features: bool = False,
        lat_lon: bool = False,
        web_merc: bool = False
    ) -> List[NotValidFeature]:
        return GeometryValidityChecker(self).report_validity(
            split_multi_features=split_multi_features,
            lat_lon=lat_lon,
            web_merc=web_merc
        )

    # Inspection

    def query(
        self,
        lon: float,
        lat: float,
        tolerance: float = 0.0,
        layer: Optional[str] = None
    ) -> List[QueryResult]:
        """
        Features within ``tolerance`` mercator metres of a WGS84 point.

        Returns:
            QueryResults sorted by distance
        """
        for name, value in (("lon", lon), ("lat", lat), ("tolerance", tolerance)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidOptions(f"{name} must be a number")
        if tolerance < 0:
            raise InvalidOptions("tolerance can not be negative")

        mx, my = lonlat_to_mercator(lon, lat)
        point = Point(mx, my)
        bbox = Extent(mx, my, mx, my).expand(tolerance, tolerance)
        readers = [self.layer_reader(layer)] if layer is not None else self.layers()

        results = []
        for reader in readers:
            for feature in reader.features(Query(bbox=bbox), CoordinateSpace.MERCATOR):
                try:
                    geometry = feature.geometry()
                except MalformedGeometry as e:
                    logger.warning("Skipping undecodable feature", layer=reader.name, feature_id=feature.id, error=str(e))
                    continue
                if geometry.is_empty:
                    continue
                distance = geometry.distance(point)
                if distance <= tolerance:
                    results.append(QueryResult(reader.name, feature, distance))

        results.sort(key=lambda r: r.distance)
        return results

    def to_json(self, decode_geometry: bool = False) -> List[Dict[str, Any]]:
        """Layer summaries with their features, geometry raw or decoded in grid units."""
        layers = []
        for reader in self.layers():
            features = []
            for feature in reader.features(space=CoordinateSpace.GRID):
                entry = {
                    "id": feature.id,
                    "type": int(feature.geom_type),
                    "properties": dict(feature.properties),
                }
                if decode_geometry:
                    geometry = feature.geometry()
                    entry["geometry"] = None if geometry.is_empty else mapping(geometry)
                else:
                    entry["geometry"] = feature.commands
                features.append(entry)
            layers.append({
                "name": reader.name,
                "extent": reader.extent,
                "version": reader.version,
                "features": features,
            })
        return layers

    def _layer_geojson(self, reader: LayerReader) -> str:
        features = list(reader.features(space=CoordinateSpace.MERCATOR))
        if not features:
            return EMPTY_FEATURE_COLLECTION
        frame = gpd.GeoDataFrame.from_features(features, crs=f"EPSG:{WEB_MERCATOR_EPSG}")
        frame.index = [f.id for f in features]
        return frame.to_crs(epsg=WGS84_EPSG).to_json()

    def to_geojson(self, layer: Union[str, int]) -> str:
        """
        WGS84 GeoJSON for a layer.

        Args:
            layer: Layer name or index, ``"__all__"`` for one FeatureCollection
                of every layer, ``"__array__"`` for a JSON array with one named
                FeatureCollection per layer

        Raises:
            NoOpError: unknown layer name or index
        """
        readers = self.layers()
        if layer == "__array__":
            collections = []
            for reader in readers:
                collection = json.loads(self._layer_geojson(reader))
                collection["name"] = reader.name
                collections.append(collection)
            return json.dumps(collections)

        if layer == "__all__":
            features = []
            for reader in readers:
                features.extend(json.loads(self._layer_geojson(reader))["features"])
            return json.dumps({"type": "FeatureCollection", "features": features})

        if isinstance(layer, int) and not isinstance(layer, bool):
            if not 0 <= layer < len(readers):
                raise NoOpError(f"Layer index {layer} is out of range")
            return self._layer_geojson(readers[layer])

        return self._layer_geojson(self.layer_reader(layer))

    def add_geojson(self, geojson: Union[str, bytes, Mapping[str, Any]], name: str, **pipeline_options) -> bool:
        """
        Encode WGS84 GeoJSON features as a new version 2 layer.

        Args:
            geojson: FeatureCollection, Feature or geometry
            name: Name of the new layer
            **pipeline_options: CompositeOptions fields (area_threshold,
                simplify_distance, strictly_simple, fill_type, ...)

        Returns:
            False when a layer called ``name`` already exists
        """
        if not isinstance(name, str) or not name:
            raise InvalidOptions("layer name must be a non-empty string")
        options = CompositeOptions.from_dict(pipeline_options)
        source = GeoJSONSource(geojson)
        pipeline = TransformPipeline(options, self)
        builder = LayerBuilder(name, self._tile_size, version=2)

        dropped = 0
        for feature_id, geometry, properties in source.features(epsg=WEB_MERCATOR_EPSG):
            if geometry is None or geometry.is_empty:
                dropped += 1
                continue
            try:
                transformed = pipeline.run(geometry)
                if transformed is None:
                    dropped += 1
                    continue
                geom_type, commands = encode_geometry(transformed)
                if geom_type == GeomType.UNKNOWN:
                    dropped += 1
                    continue
                builder.add_feature(geom_type, commands, properties, feature_id)
            except FEATURE_ERRORS as e:
                dropped += 1
                logger.warning("Skipping GeoJSON feature", layer=name, feature_id=feature_id, error=str(e))

        logger.info("GeoJSON layer encoded", layer=name, features=builder.feature_count, dropped=dropped)
        return self.append_layer_buffer(builder.to_bytes(), name)

    @staticmethod
    def info(data: BytesLike) -> Dict[str, Any]:
        """
        Summarize raw tile bytes without raising.

        Returns:
            ``{"layers": [...], "errors": bool, "tile_errors": [...]}``
        """
        result = {"layers": [], "errors": False, "tile_errors": []}
        try:
            raw = decompress(data)
            views = list(iter_layer_views(raw))
        except MalformedTile as e:
            result["errors"] = True
            result["tile_errors"].append(str(e))
            return result

        names = set()
        for view in views:
            try:
                reader = LayerReader(view, 0, 0, 0)
            except MalformedTile as e:
                result["errors"] = True
                result["tile_errors"].append(str(e))
                continue

            counts = {t: 0 for t in GeomType}
            for message in reader.message.features:
                try:
                    counts[GeomType(message.type)] += 1
                except ValueError:
                    counts[GeomType.UNKNOWN] += 1
            summary = {
                "name": reader.name,
                "extent": reader.extent,
                "version": reader.version,
                "features": reader.feature_count,
                "point_features": counts[GeomType.POINT],
                "linestring_features": counts[GeomType.LINESTRING],
                "polygon_features": counts[GeomType.POLYGON],
                "unknown_features": counts[GeomType.UNKNOWN],
            }
            if reader.name in names:
                result["errors"] = True
                result["tile_errors"].append(f"duplicate layer name: {reader.name}")
            names.add(reader.name)
            result["layers"].append(summary)
        return result
