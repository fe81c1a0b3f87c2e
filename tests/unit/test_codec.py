"""
Unit Tests for the Geometry Codec

Command streams follow the worked examples published with MVT 2.1 where possible.
"""

import unittest

from shapely.geometry import (
    GeometryCollection,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)

from vtcompositor.exceptions import MalformedGeometry, UnsupportedGeometryType
from vtcompositor.geometry.codec import (
    AffineTransform,
    GeomType,
    command_bounds,
    decode_geometry,
    encode_geometry,
    zigzag_decode,
    zigzag_encode,
)
from vtcompositor.geometry.fill import FillType, signed_area


POINT = [9, 50, 34]
MULTI_POINT = [17, 10, 14, 3, 9]
LINE = [9, 4, 4, 18, 0, 16, 16, 0]
MULTI_LINE = [9, 4, 4, 18, 0, 16, 16, 0, 9, 17, 17, 10, 4, 8]
POLYGON = [9, 6, 12, 18, 10, 12, 24, 44, 15]
MULTI_POLYGON = [
    9, 0, 0, 26, 20, 0, 0, 20, 19, 0, 15,
    9, 22, 2, 26, 18, 0, 0, 18, 17, 0, 15,
    9, 4, 13, 26, 0, 8, 8, 0, 0, 7, 15,
]
# a negative (hole) ring followed by an exterior ring
HOLE_FIRST = [
    9, 0, 0, 26, 0, 20, 20, 0, 0, 19, 15,
    9, 20, 40, 26, 20, 0, 0, 20, 19, 0, 15,
]
# two overlapping positive squares, (0,0)-(10,10) and (5,5)-(15,15)
OVERLAPPING = [
    9, 0, 0, 26, 20, 0, 0, 20, 19, 0, 15,
    9, 10, 9, 26, 20, 0, 0, 20, 19, 0, 15,
]


class TestZigZag(unittest.TestCase):

    def test_values(self):
        for value, encoded in ((0, 0), (-1, 1), (1, 2), (-2, 3), (2, 4), (25, 50)):
            self.assertEqual(zigzag_encode(value), encoded)
            self.assertEqual(zigzag_decode(encoded), value)


class TestDecodeGeometry(unittest.TestCase):
    """Test suite for command stream decoding."""

    def test_point(self):
        self.assertTrue(decode_geometry(POINT, GeomType.POINT).equals(Point(25, 17)))

    def test_multi_point(self):
        geometry = decode_geometry(MULTI_POINT, GeomType.POINT)
        self.assertIsInstance(geometry, MultiPoint)
        self.assertEqual([(p.x, p.y) for p in geometry.geoms], [(5, 7), (3, 2)])

    def test_line(self):
        geometry = decode_geometry(LINE, GeomType.LINESTRING)
        self.assertEqual(list(geometry.coords), [(2, 2), (2, 10), (10, 10)])

    def test_multi_line(self):
        geometry = decode_geometry(MULTI_LINE, GeomType.LINESTRING)
        self.assertIsInstance(geometry, MultiLineString)
        self.assertEqual(list(geometry.geoms[1].coords), [(1, 1), (3, 5)])

    def test_polygon(self):
        geometry = decode_geometry(POLYGON, GeomType.POLYGON)
        self.assertIsInstance(geometry, Polygon)
        self.assertEqual(list(geometry.exterior.coords), [(3, 6), (8, 12), (20, 34), (3, 6)])
        self.assertAlmostEqual(geometry.area, 19.0)

    def test_multi_polygon(self):
        """Test exterior/hole assignment by winding."""
        geometry = decode_geometry(MULTI_POLYGON, GeomType.POLYGON)
        self.assertIsInstance(geometry, MultiPolygon)
        self.assertEqual(len(geometry.geoms), 2)
        self.assertEqual(len(geometry.geoms[0].interiors), 0)
        self.assertEqual(len(geometry.geoms[1].interiors), 1)
        self.assertAlmostEqual(geometry.area, 100 + 81 - 16)

    def test_hole_before_exterior_dropped(self):
        """Test that a version 2 hole without a preceding exterior is dropped."""
        geometry = decode_geometry(HOLE_FIRST, GeomType.POLYGON, version=2)
        self.assertIsInstance(geometry, Polygon)
        self.assertEqual(geometry.bounds, (20.0, 20.0, 30.0, 30.0))

    def test_version_one_first_ring_defines_exterior(self):
        geometry = decode_geometry(HOLE_FIRST, GeomType.POLYGON, version=1)
        self.assertIsInstance(geometry, Polygon)
        self.assertEqual(geometry.exterior.bounds, (0.0, 0.0, 10.0, 10.0))
        self.assertEqual(len(geometry.interiors), 1)

    def test_version_one_allows_open_rings(self):
        stream = [9, 0, 0, 26, 20, 0, 0, 20, 19, 0]
        geometry = decode_geometry(stream, GeomType.POLYGON, version=1)
        self.assertAlmostEqual(geometry.area, 100.0)

    def test_process_all_rings_positive(self):
        """Test that overlapping rings are unioned with the positive fill rule."""
        plain = decode_geometry(OVERLAPPING, GeomType.POLYGON)
        self.assertIsInstance(plain, MultiPolygon)

        merged = decode_geometry(OVERLAPPING, GeomType.POLYGON, process_all_rings=True)
        self.assertIsInstance(merged, Polygon)
        self.assertTrue(merged.is_valid)
        self.assertAlmostEqual(merged.area, 175.0)

    def test_process_all_rings_even_odd(self):
        geometry = decode_geometry(
            OVERLAPPING, GeomType.POLYGON, process_all_rings=True, fill_type=FillType.EVEN_ODD
        )
        self.assertAlmostEqual(geometry.area, 150.0)

    def test_transform_applied_after_decoding(self):
        transform = AffineTransform(origin_x=100, origin_y=200, scale_x=2, scale_y=-2)
        geometry = decode_geometry(POINT, GeomType.POINT, transform=transform)
        self.assertTrue(geometry.equals(Point(150, 166)))

    def test_flipped_transform_keeps_rings(self):
        """Test that ring roles are decided before a y-flipping transform."""
        transform = AffineTransform(scale_x=1, scale_y=-1)
        geometry = decode_geometry(MULTI_POLYGON, GeomType.POLYGON, transform=transform)
        self.assertEqual(len(geometry.geoms), 2)
        self.assertAlmostEqual(geometry.area, 165.0)

    def test_unknown_type_is_empty(self):
        geometry = decode_geometry(POINT, GeomType.UNKNOWN)
        self.assertIsInstance(geometry, GeometryCollection)
        self.assertTrue(geometry.is_empty)

    def test_empty_stream(self):
        self.assertTrue(decode_geometry([], GeomType.LINESTRING).is_empty)


class TestMalformedGeometry(unittest.TestCase):
    """Test suite for corrupt command streams."""

    def test_truncated(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([9, 50], GeomType.POINT)

    def test_unknown_command(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([11, 0, 0], GeomType.POINT)

    def test_zero_count(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([1], GeomType.POINT)

    def test_line_to_in_point(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([9, 0, 0, 10, 2, 2], GeomType.POINT)

    def test_close_path_in_line(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([9, 0, 0, 10, 2, 2, 15], GeomType.LINESTRING)

    def test_missing_close_path_version_two(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([9, 0, 0, 26, 20, 0, 0, 20, 19, 0], GeomType.POLYGON, version=2)

    def test_close_path_count(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry([9, 0, 0, 26, 20, 0, 0, 20, 19, 0, 23], GeomType.POLYGON)

    def test_unknown_geometry_type(self):
        with self.assertRaises(MalformedGeometry):
            decode_geometry(POINT, 9)


class TestCommandBounds(unittest.TestCase):

    def test_bounds(self):
        self.assertEqual(command_bounds(POINT), (25, 17, 25, 17))
        self.assertEqual(command_bounds(LINE), (2, 2, 10, 10))
        self.assertEqual(command_bounds(MULTI_POLYGON), (0, 0, 20, 20))

    def test_no_vertices(self):
        self.assertIsNone(command_bounds([]))


class TestEncodeGeometry(unittest.TestCase):
    """Test suite for command stream encoding."""

    def test_point(self):
        self.assertEqual(encode_geometry(Point(25, 17)), (GeomType.POINT, POINT))

    def test_multi_point(self):
        self.assertEqual(encode_geometry(MultiPoint([(5, 7), (3, 2)])), (GeomType.POINT, MULTI_POINT))

    def test_line(self):
        self.assertEqual(encode_geometry(LineString([(2, 2), (2, 10), (10, 10)])), (GeomType.LINESTRING, LINE))

    def test_repeated_points_removed(self):
        geom_type, commands = encode_geometry(LineString([(0, 0), (0, 0), (5, 5)]))
        self.assertEqual(commands, [9, 0, 0, 10, 10, 10])

    def test_degenerate_line_dropped(self):
        self.assertEqual(encode_geometry(LineString([(1, 1), (1.2, 1.1)])), (GeomType.UNKNOWN, []))

    def test_round_half_away_from_zero(self):
        geom_type, commands = encode_geometry(Point(-2.5, 2.5))
        self.assertEqual(commands, [9, zigzag_encode(-3), zigzag_encode(3)])

    def test_decoded_streams_reencode_identically(self):
        """Test that decode then encode reproduces the original stream."""
        for stream in (POLYGON, MULTI_POLYGON):
            geometry = decode_geometry(stream, GeomType.POLYGON)
            self.assertEqual(encode_geometry(geometry), (GeomType.POLYGON, stream))

    def test_exterior_winding_normalized(self):
        """Test that a negatively wound exterior is written as positive."""
        polygon = Polygon([(0, 0), (0, 10), (10, 10), (10, 0)])
        geom_type, commands = encode_geometry(polygon)
        decoded = decode_geometry(commands, geom_type)
        self.assertAlmostEqual(decoded.area, 100.0)
        self.assertGreater(signed_area(decoded.exterior.coords), 0)

    def test_hole_winding_normalized(self):
        shell = [(0, 0), (20, 0), (20, 20), (0, 20)]
        hole = [(5, 5), (15, 5), (15, 15), (5, 15)]
        geom_type, commands = encode_geometry(Polygon(shell, [hole]))
        decoded = decode_geometry(commands, geom_type)
        self.assertEqual(len(decoded.interiors), 1)
        self.assertLess(signed_area(decoded.interiors[0].coords), 0)
        self.assertAlmostEqual(decoded.area, 300.0)

    def test_empty(self):
        self.assertEqual(encode_geometry(Polygon()), (GeomType.UNKNOWN, []))
        self.assertEqual(encode_geometry(None), (GeomType.UNKNOWN, []))

    def test_geometry_collection_rejected(self):
        with self.assertRaises(UnsupportedGeometryType):
            encode_geometry(GeometryCollection([Point(0, 0)]))


if __name__ == '__main__':
    unittest.main()
