"""
Layer/Feature Reader

Read access to a single encoded MVT Layer message. Features are decoded
lazily: attributes on first access, geometry on the first ``geometry()``
call, so that consumers needing only one of the two pay for only one.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from google.protobuf.message import DecodeError
from mapbox_vector_tile.Mapbox import vector_tile_pb2
from shapely.geometry import mapping

from ..exceptions import MalformedGeometry, MalformedTile
from ..geometry.codec import GRID_TRANSFORM, AffineTransform, GeomType, command_bounds, decode_geometry
from ..geometry.fill import FillType
from ..tiles.coordinates import Extent, tile_bounds
from ..tiles.wire import BytesLike

_VALUE_TYPE_NAMES = {
    "string_value": "String",
    "float_value": "Double",
    "double_value": "Double",
    "int_value": "Integer",
    "uint_value": "Integer",
    "sint_value": "Integer",
    "bool_value": "Boolean",
}


class CoordinateSpace(Enum):
    """Coordinates produced by ``Feature.geometry()``."""
    GRID = "grid"
    MERCATOR = "mercator"


@dataclass(frozen=True)
class Query:
    """
    Feature filter.

    ``bbox`` is expressed in the coordinate space passed to ``features()``;
    ``property_names`` restricts decoded attributes (None keeps all).
    """
    bbox: Optional[Extent] = None
    property_names: Optional[Sequence[str]] = None


def decode_value(value) -> Any:
    """Python value of a ``tile.value`` message."""
    fields = value.ListFields()
    if not fields:
        return None
    return fields[0][1]


def parse_layer(data: BytesLike):
    layer = vector_tile_pb2.tile.layer()
    try:
        layer.ParseFromString(bytes(data))
    except DecodeError as e:
        raise MalformedTile(f"unable to parse layer message: {e}") from e
    return layer


class Feature:
    """One feature of a layer, decoded on demand."""

    def __init__(
        self,
        message,
        reader: "LayerReader",
        transform: AffineTransform,
        property_names: Optional[Sequence[str]] = None,
        process_all_rings: bool = False,
        fill_type: FillType = FillType.POSITIVE
    ):
        self._message = message
        self._reader = reader
        self._transform = transform
        self._property_names = property_names
        self._properties = None
        self._geometry = None
        self._decoded = False
        self._process_all_rings = process_all_rings
        self._fill_type = fill_type

    @property
    def id(self) -> int:
        return self._message.id

    @property
    def geom_type(self) -> GeomType:
        try:
            return GeomType(self._message.type)
        except ValueError:
            return GeomType.UNKNOWN

    @property
    def commands(self) -> List[int]:
        """Raw geometry command stream."""
        return list(self._message.geometry)

    @property
    def has_geometry(self) -> bool:
        return len(self._message.geometry) > 0

    @property
    def layer_name(self) -> str:
        return self._reader.name

    @property
    def properties(self) -> Dict[str, Any]:
        if self._properties is None:
            self._properties = self._reader.decode_tags(self._message.tags, self._property_names)
        return self._properties

    def grid_bounds(self):
        """Envelope in grid units without decoding the geometry (None if it has no vertices)."""
        return command_bounds(self._message.geometry)

    def geometry(self):
        """Decoded shapely geometry in the reader's coordinate space."""
        if not self._decoded:
            self._geometry = decode_geometry(
                self._message.geometry,
                self._message.type,
                version=self._reader.version,
                transform=self._transform,
                process_all_rings=self._process_all_rings,
                fill_type=self._fill_type,
            )
            self._decoded = True
        return self._geometry

    @property
    def __geo_interface__(self) -> Dict[str, Any]:
        geometry = self.geometry()
        return {
            "type": "Feature",
            "id": self.id,
            "geometry": None if geometry.is_empty else mapping(geometry),
            "properties": dict(self.properties),
        }

    def __repr__(self) -> str:
        return f"Feature(layer={self.layer_name!r}, id={self.id}, type={self.geom_type.name})"


class FeatureSet:
    """
    Restartable lazy sequence of features.

    Every ``iter()`` walks the layer again from the first feature; nothing is
    decoded until a feature is yielded and then only what is accessed.
    """

    def __init__(
        self,
        reader: "LayerReader",
        transform: AffineTransform,
        query: Optional[Query] = None,
        process_all_rings: bool = False,
        fill_type: FillType = FillType.POSITIVE
    ):
        self._reader = reader
        self._transform = transform
        self._query = query if query is not None else Query()
        self._process_all_rings = process_all_rings
        self._fill_type = fill_type

    def _may_intersect(self, message, bbox: Extent) -> bool:
        try:
            bounds = command_bounds(message.geometry)
        except MalformedGeometry:
            # the consumer sees the error when it decodes the geometry
            return True
        if bounds is None:
            return False
        return bbox.intersects(Extent(*self._transform.apply_bounds(bounds)))

    def __iter__(self) -> Iterator[Feature]:
        bbox = self._query.bbox
        for message in self._reader.message.features:
            if bbox is not None and not self._may_intersect(message, bbox):
                continue
            yield Feature(
                message,
                self._reader,
                self._transform,
                self._query.property_names,
                self._process_all_rings,
                self._fill_type,
            )

    def __len__(self) -> int:
        return sum(1 for _ in self)


class LayerReader:
    """
    Reader over one encoded Layer message.

    Args:
        data: Layer message bytes (a slice of the owning tile's buffer)
        x, y, z: Address of the owning tile, used for mercator coordinates

    Raises:
        MalformedTile: bytes that are not a Layer message
    """

    def __init__(self, data: BytesLike, x: int, y: int, z: int):
        self.data = data
        self.x = x
        self.y = y
        self.z = z
        self.message = parse_layer(data)
        if self.message.extent <= 0:
            raise MalformedTile(f"layer {self.message.name!r} has a non-positive extent")

    @property
    def name(self) -> str:
        return self.message.name

    @property
    def extent(self) -> int:
        return self.message.extent

    @property
    def version(self) -> int:
        return self.message.version

    @property
    def feature_count(self) -> int:
        return len(self.message.features)

    @property
    def is_painted(self) -> bool:
        return any(len(f.geometry) > 0 for f in self.message.features)

    def envelope(self) -> Extent:
        return tile_bounds(self.z, self.x, self.y)

    def transform_for(self, space: CoordinateSpace) -> AffineTransform:
        if space == CoordinateSpace.GRID:
            return GRID_TRANSFORM
        envelope = self.envelope()
        return AffineTransform(
            origin_x=envelope.minx,
            origin_y=envelope.maxy,
            scale_x=envelope.width / self.extent,
            scale_y=-envelope.height / self.extent,
        )

    def field_descriptors(self) -> Dict[str, str]:
        """Attribute name to value type name ("String", "Integer", "Double", "Boolean")."""
        descriptors = {}
        keys = self.message.keys
        values = self.message.values
        for feature in self.message.features:
            tags = feature.tags
            for i in range(0, len(tags) - 1, 2):
                key_index, value_index = tags[i], tags[i + 1]
                if key_index >= len(keys) or value_index >= len(values):
                    raise MalformedTile(f"tag index out of range in layer {self.name!r}")
                key = keys[key_index]
                if key in descriptors:
                    continue
                fields = values[value_index].ListFields()
                if fields:
                    descriptors[key] = _VALUE_TYPE_NAMES.get(fields[0][0].name, "String")
        return descriptors

    def decode_tags(self, tags: Sequence[int], property_names: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        if len(tags) % 2:
            raise MalformedTile(f"odd number of tag indices in layer {self.name!r}")
        keys = self.message.keys
        values = self.message.values
        wanted = set(property_names) if property_names is not None else None
        properties = {}
        for i in range(0, len(tags), 2):
            key_index, value_index = tags[i], tags[i + 1]
            if key_index >= len(keys) or value_index >= len(values):
                raise MalformedTile(f"tag index out of range in layer {self.name!r}")
            key = keys[key_index]
            if wanted is not None and key not in wanted:
                continue
            properties[key] = decode_value(values[value_index])
        return properties

    def features(
        self,
        query: Optional[Query] = None,
        space: CoordinateSpace = CoordinateSpace.MERCATOR,
        process_all_rings: bool = False,
        fill_type: FillType = FillType.POSITIVE
    ) -> FeatureSet:
        return FeatureSet(self, self.transform_for(space), query, process_all_rings, fill_type)

    def __repr__(self) -> str:
        return f"LayerReader(name={self.name!r}, extent={self.extent}, version={self.version})"
