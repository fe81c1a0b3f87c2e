"""
Unit Tests for Composite Options
"""

import unittest

from vtcompositor.compositing.options import CompositeOptions, ThreadingMode
from vtcompositor.exceptions import InvalidOptions
from vtcompositor.geometry.fill import FillType
from vtcompositor.tiles.coordinates import Extent


class TestCompositeOptions(unittest.TestCase):
    """Test suite for option validation and coercion."""

    def test_defaults(self):
        options = CompositeOptions()
        self.assertEqual(options.scale_factor, 1.0)
        self.assertEqual(options.area_threshold, 0.1)
        self.assertTrue(options.strictly_simple)
        self.assertFalse(options.multi_polygon_union)
        self.assertEqual(options.fill_type, FillType.POSITIVE)
        self.assertFalse(options.reencode)
        self.assertIsNone(options.max_extent)
        self.assertEqual(options.threading_mode, ThreadingMode.DEFERRED)
        self.assertFalse(options.needs_transform)

    def test_coercion(self):
        options = CompositeOptions(
            fill_type="even_odd",
            threading_mode="eager",
            max_extent=[0, 0, 10, 10],
            layer_scale_ranges={"roads": [0, 50000]}
        )
        self.assertEqual(options.fill_type, FillType.EVEN_ODD)
        self.assertEqual(options.threading_mode, ThreadingMode.EAGER)
        self.assertEqual(options.max_extent, Extent(0.0, 0.0, 10.0, 10.0))
        self.assertEqual(options.layer_scale_ranges, {"roads": (0.0, 50000.0)})

    def test_invalid_values(self):
        bad = [
            {"scale_factor": 0},
            {"scale_factor": "2"},
            {"area_threshold": -1},
            {"simplify_distance": -0.5},
            {"strictly_simple": 1},
            {"fill_type": 4},
            {"fill_type": "winding"},
            {"threading_mode": "parallel"},
            {"image_format": "gif"},
            {"scaling_method": "nearest"},
            {"max_extent": [0, 0, 10]},
            {"max_extent": [10, 0, 0, 10]},
            {"max_extent": 5},
            {"layer_scale_ranges": {"roads": [100, 10]}},
            {"layer_scale_ranges": {"roads": 5}},
        ]
        for values in bad:
            with self.subTest(values=values):
                with self.assertRaises(InvalidOptions):
                    CompositeOptions(**values)

    def test_needs_transform(self):
        self.assertTrue(CompositeOptions(reencode=True).needs_transform)
        self.assertTrue(CompositeOptions(offset_y=1).needs_transform)

    def test_layer_visibility(self):
        """Test the half-open [min, max) visibility window."""
        options = CompositeOptions(layer_scale_ranges={"roads": (1000, 5000)})
        self.assertTrue(options.is_layer_visible("roads", 1000))
        self.assertTrue(options.is_layer_visible("roads", 4999))
        self.assertFalse(options.is_layer_visible("roads", 5000))
        self.assertFalse(options.is_layer_visible("roads", 999))
        self.assertTrue(options.is_layer_visible("water", 1))

    def test_from_dict(self):
        options = CompositeOptions.from_dict({"scale": 2.0, "image_scaling": "lanczos", "reencode": True})
        self.assertEqual(options.scale_factor, 2.0)
        self.assertEqual(options.scaling_method, "lanczos")
        self.assertTrue(options.reencode)
        self.assertEqual(CompositeOptions.from_dict(None), CompositeOptions())

    def test_from_dict_rejects_unknown_keys(self):
        with self.assertRaises(InvalidOptions):
            CompositeOptions.from_dict({"buffer": 10})
        with self.assertRaises(InvalidOptions):
            CompositeOptions.from_dict([("reencode", True)])

    def test_to_dict_round_trip(self):
        options = CompositeOptions(fill_type="non_zero", max_extent=[0, 0, 5, 5], offset_x=3)
        self.assertEqual(CompositeOptions.from_dict(options.to_dict()), options)

    def test_frozen(self):
        options = CompositeOptions()
        with self.assertRaises(AttributeError):
            options.reencode = True


if __name__ == '__main__':
    unittest.main()
