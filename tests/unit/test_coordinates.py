"""
Unit Tests for Tile Coordinate Math
"""

import unittest

from vtcompositor.exceptions import InvalidAddress, InvalidOptions
from vtcompositor.tiles.coordinates import (
    ORIGIN_SHIFT,
    Extent,
    buffered_bounds,
    scale_denominator_for,
    tile_bounds,
    validate_address,
    validate_tile_size,
)


class TestTileBounds(unittest.TestCase):
    """Test suite for tile bounds computation."""

    def test_world_tile(self):
        """Test that tile 0/0/0 covers the whole mercator world."""
        bounds = tile_bounds(0, 0, 0)
        self.assertAlmostEqual(bounds.minx, -ORIGIN_SHIFT)
        self.assertAlmostEqual(bounds.miny, -ORIGIN_SHIFT)
        self.assertAlmostEqual(bounds.maxx, ORIGIN_SHIFT)
        self.assertAlmostEqual(bounds.maxy, ORIGIN_SHIFT)

    def test_rows_grow_downward(self):
        """Test that row 0 is the northern half at zoom 1."""
        north_west = tile_bounds(1, 0, 0)
        self.assertAlmostEqual(north_west.minx, -ORIGIN_SHIFT)
        self.assertAlmostEqual(north_west.maxx, 0.0)
        self.assertAlmostEqual(north_west.miny, 0.0)
        self.assertAlmostEqual(north_west.maxy, ORIGIN_SHIFT)

        south_east = tile_bounds(1, 1, 1)
        self.assertAlmostEqual(south_east.minx, 0.0)
        self.assertAlmostEqual(south_east.maxy, 0.0)

    def test_deterministic(self):
        """Test that identical inputs yield identical boxes."""
        self.assertEqual(tile_bounds(12, 654, 1583), tile_bounds(12, 654, 1583))
        first = buffered_bounds(tile_bounds(5, 3, 7), 64, 4096)
        second = buffered_bounds(tile_bounds(5, 3, 7), 64, 4096)
        self.assertEqual(first, second)

    def test_positive_buffer_strictly_contains(self):
        """Test that a positive buffer grows the box on every side."""
        nominal = tile_bounds(3, 2, 5)
        buffered = buffered_bounds(nominal, 128, 4096)
        self.assertLess(buffered.minx, nominal.minx)
        self.assertLess(buffered.miny, nominal.miny)
        self.assertGreater(buffered.maxx, nominal.maxx)
        self.assertGreater(buffered.maxy, nominal.maxy)
        self.assertAlmostEqual(buffered.width, nominal.width * (4096 + 256) / 4096)

    def test_negative_buffer_is_contained(self):
        """Test that a negative buffer shrinks the box."""
        nominal = tile_bounds(3, 2, 5)
        buffered = buffered_bounds(nominal, -1024, 4096)
        self.assertTrue(nominal.contains(buffered))
        self.assertTrue(buffered.is_valid)
        self.assertAlmostEqual(buffered.width, nominal.width / 2)

    def test_scale_denominator(self):
        """Test the map scale denominator of a 256 pixel world tile."""
        denominator = scale_denominator_for(tile_bounds(0, 0, 0), 256)
        self.assertAlmostEqual(denominator, 559082264.0287178, delta=1.0)
        doubled = scale_denominator_for(tile_bounds(0, 0, 0), 256, scale_factor=2.0)
        self.assertAlmostEqual(doubled, 2 * denominator)


class TestExtent(unittest.TestCase):
    """Test suite for the Extent value type."""

    def test_intersects_and_contains(self):
        a = Extent(0, 0, 10, 10)
        self.assertTrue(a.intersects(Extent(5, 5, 15, 15)))
        self.assertTrue(a.intersects(Extent(10, 10, 20, 20)))
        self.assertFalse(a.intersects(Extent(11, 0, 20, 10)))
        self.assertTrue(a.contains(Extent(1, 1, 9, 9)))
        self.assertFalse(a.contains(Extent(1, 1, 11, 9)))

    def test_from_sequence(self):
        self.assertEqual(Extent.from_sequence([1, 2, 3, 4]).as_tuple(), (1.0, 2.0, 3.0, 4.0))


class TestValidation(unittest.TestCase):
    """Test suite for address and size validation."""

    def test_valid_addresses(self):
        validate_address(0, 0, 0)
        validate_address(1, 1, 1)
        validate_address(14, 16383, 0)

    def test_column_out_of_range(self):
        """Test that x >= 2^z is rejected."""
        with self.assertRaises(InvalidAddress):
            validate_address(0, 1, 0)
        with self.assertRaises(InvalidAddress):
            validate_address(2, 0, 4)

    def test_negative_values(self):
        for address in ((-1, 0, 0), (1, -1, 0), (1, 0, -1)):
            with self.assertRaises(InvalidAddress):
                validate_address(*address)

    def test_non_integer_values(self):
        with self.assertRaises(InvalidAddress):
            validate_address(1.5, 0, 0)
        with self.assertRaises(InvalidAddress):
            validate_address(True, 0, 0)

    def test_invalid_address_is_value_error(self):
        with self.assertRaises(ValueError):
            validate_address(0, 0, 1)

    def test_tile_size(self):
        """Test tile size and buffer combinations."""
        validate_tile_size(4096, 128)
        validate_tile_size(4096, -2047)
        with self.assertRaises(InvalidOptions):
            validate_tile_size(0, 0)
        with self.assertRaises(InvalidOptions):
            validate_tile_size(-256, 0)
        with self.assertRaises(InvalidOptions):
            validate_tile_size(4096, -2048)
        with self.assertRaises(InvalidOptions):
            validate_tile_size(256.0, 0)


if __name__ == '__main__':
    unittest.main()
