"""
Layer builder.

Collects encoded features for one destination layer and serializes them
into a Layer message with shared, de-duplicated key and value tables.
"""

import numbers
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import pandas as pd
from mapbox_vector_tile.Mapbox import vector_tile_pb2

from ..geometry.codec import GeomType

UINT64_LIMIT = 2 ** 64
INT64_LIMIT = 2 ** 63


def _value_key(value: Any) -> Tuple[str, Any]:
    """Normalize an attribute value into (value field name, python value)."""
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalars coming from pandas/geopandas frames
        value = value.item()
    if isinstance(value, bool):
        return "bool_value", value
    if isinstance(value, numbers.Integral):
        value = int(value)
        if value >= INT64_LIMIT:
            if value >= UINT64_LIMIT:
                raise ValueError(f"integer attribute out of range: {value}")
            return "uint_value", value
        if value < -INT64_LIMIT:
            raise ValueError(f"integer attribute out of range: {value}")
        return "int_value", value
    if isinstance(value, numbers.Real):
        return "double_value", float(value)
    if isinstance(value, str):
        return "string_value", value
    return "string_value", str(value)


def _is_missing(value: Any) -> bool:
    # None, NaN, NaT and pd.NA all come out of frame rows
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


class LayerBuilder:
    """
    Accumulates features for a single Layer message.

    Args:
        name: Layer name
        extent: Grid extent of the layer
        version: MVT version written to the layer
    """

    def __init__(self, name: str, extent: int = 4096, version: int = 2):
        self.name = name
        self.extent = extent
        self.version = version
        self._layer = vector_tile_pb2.tile.layer()
        self._layer.name = name
        self._layer.extent = extent
        self._layer.version = version
        self._keys: Dict[str, int] = {}
        self._values: Dict[Tuple[str, Any], int] = {}

    @property
    def feature_count(self) -> int:
        return len(self._layer.features)

    @property
    def is_painted(self) -> bool:
        return any(len(f.geometry) > 0 for f in self._layer.features)

    def _key_index(self, key: str) -> int:
        index = self._keys.get(key)
        if index is None:
            index = len(self._layer.keys)
            self._layer.keys.append(key)
            self._keys[key] = index
        return index

    def _value_index(self, field_name: str, value: Any) -> int:
        # 1 == 1.0 == True in python, so the field name is part of the key
        lookup = (field_name, value)
        index = self._values.get(lookup)
        if index is None:
            index = len(self._layer.values)
            message = self._layer.values.add()
            setattr(message, field_name, value)
            self._values[lookup] = index
        return index

    def add_feature(
        self,
        geom_type: GeomType,
        commands: Sequence[int],
        properties: Optional[Mapping[str, Any]] = None,
        feature_id: Optional[int] = None
    ) -> None:
        """
        Append one feature.

        Raises:
            ValueError: negative feature id or an attribute that cannot be encoded
        """
        if feature_id is not None and feature_id < 0:
            raise ValueError(f"feature id must not be negative: {feature_id}")

        normalized = [
            (str(key), _value_key(value))
            for key, value in (properties or {}).items()
            if not _is_missing(value)
        ]

        tags = []
        for key, (field_name, value) in normalized:
            tags.append(self._key_index(key))
            tags.append(self._value_index(field_name, value))

        feature = self._layer.features.add()
        if feature_id is not None:
            feature.id = int(feature_id)
        feature.type = int(geom_type)
        feature.tags.extend(tags)
        feature.geometry.extend(commands)

    def to_bytes(self) -> bytes:
        return self._layer.SerializeToString()
