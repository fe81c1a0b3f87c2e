"""
Unit Tests for the Layer Builder
"""

import unittest

import numpy as np
from mapbox_vector_tile.Mapbox import vector_tile_pb2

from vtcompositor.geometry.codec import GeomType
from vtcompositor.tiles.builder import LayerBuilder


def parsed(builder):
    layer = vector_tile_pb2.tile.layer()
    layer.ParseFromString(builder.to_bytes())
    return layer


class TestLayerBuilder(unittest.TestCase):
    """Test suite for layer serialization."""

    def test_header(self):
        layer = parsed(LayerBuilder("water", extent=512, version=1))
        self.assertEqual(layer.name, "water")
        self.assertEqual(layer.extent, 512)
        self.assertEqual(layer.version, 1)
        self.assertEqual(len(layer.features), 0)

    def test_keys_and_values_deduplicated(self):
        """Test that repeated keys and values share one table entry."""
        builder = LayerBuilder("poi")
        builder.add_feature(GeomType.POINT, [9, 0, 0], {"kind": "cafe", "rank": 1}, 1)
        builder.add_feature(GeomType.POINT, [9, 2, 2], {"kind": "cafe", "rank": 2}, 2)
        layer = parsed(builder)
        self.assertEqual(list(layer.keys), ["kind", "rank"])
        self.assertEqual(len(layer.values), 3)
        self.assertEqual(list(layer.features[1].tags), [0, 0, 1, 2])

    def test_value_types_kept_apart(self):
        """Test that 1, 1.0 and True are distinct values."""
        builder = LayerBuilder("t")
        builder.add_feature(GeomType.POINT, [9, 0, 0], {"a": 1, "b": 1.0, "c": True})
        layer = parsed(builder)
        kinds = [v.ListFields()[0][0].name for v in layer.values]
        self.assertEqual(kinds, ["int_value", "double_value", "bool_value"])

    def test_large_unsigned(self):
        builder = LayerBuilder("t")
        builder.add_feature(GeomType.POINT, [9, 0, 0], {"big": 2 ** 63})
        self.assertEqual(parsed(builder).values[0].uint_value, 2 ** 63)

    def test_numpy_scalars(self):
        builder = LayerBuilder("t")
        builder.add_feature(GeomType.POINT, [9, 0, 0], {"n": np.int64(5), "f": np.float64(2.5)})
        layer = parsed(builder)
        self.assertEqual(layer.values[0].int_value, 5)
        self.assertEqual(layer.values[1].double_value, 2.5)

    def test_missing_values_skipped(self):
        builder = LayerBuilder("t")
        builder.add_feature(GeomType.POINT, [9, 0, 0], {"a": None, "b": float("nan"), "c": "x"})
        self.assertEqual(list(parsed(builder).keys), ["c"])

    def test_feature_id_optional(self):
        builder = LayerBuilder("t")
        builder.add_feature(GeomType.POINT, [9, 0, 0])
        builder.add_feature(GeomType.POINT, [9, 0, 0], feature_id=7)
        layer = parsed(builder)
        self.assertFalse(layer.features[0].HasField("id"))
        self.assertEqual(layer.features[1].id, 7)

    def test_invalid_feature_leaves_layer_untouched(self):
        """Test that a rejected feature adds nothing to the layer."""
        builder = LayerBuilder("t")
        with self.assertRaises(ValueError):
            builder.add_feature(GeomType.POINT, [9, 0, 0], {"a": "x"}, feature_id=-1)
        with self.assertRaises(ValueError):
            builder.add_feature(GeomType.POINT, [9, 0, 0], {"a": "x", "big": 2 ** 64})
        layer = parsed(builder)
        self.assertEqual(len(layer.features), 0)
        self.assertEqual(len(layer.keys), 0)

    def test_painted(self):
        builder = LayerBuilder("t")
        builder.add_feature(GeomType.UNKNOWN, [])
        self.assertEqual(builder.feature_count, 1)
        self.assertFalse(builder.is_painted)
        builder.add_feature(GeomType.POINT, [9, 0, 0])
        self.assertTrue(builder.is_painted)


if __name__ == '__main__':
    unittest.main()
