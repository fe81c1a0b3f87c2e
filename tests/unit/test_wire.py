"""
Unit Tests for Tile-level protobuf framing
"""

import unittest

from vtcompositor.exceptions import MalformedTile
from vtcompositor.tiles.wire import encode_varint, frame_layer, iter_fields, iter_layer_views, read_varint


class TestVarint(unittest.TestCase):
    """Test suite for varint helpers."""

    def test_encode(self):
        self.assertEqual(encode_varint(0), b"\x00")
        self.assertEqual(encode_varint(1), b"\x01")
        self.assertEqual(encode_varint(300), b"\xac\x02")

    def test_read(self):
        self.assertEqual(read_varint(memoryview(b"\xac\x02"), 0), (300, 2))
        self.assertEqual(read_varint(memoryview(b"\x00\x96\x01"), 1), (150, 3))

    def test_truncated(self):
        with self.assertRaises(MalformedTile):
            read_varint(memoryview(b"\xac"), 0)


class TestLayerFraming(unittest.TestCase):
    """Test suite for scanning and framing Tile messages."""

    def test_frame_layer(self):
        self.assertEqual(frame_layer(b"abc"), b"\x1a\x03abc")

    def test_iter_layer_views(self):
        """Test that every layers field is yielded in order."""
        data = frame_layer(b"abc") + frame_layer(b"de")
        views = [bytes(v) for v in iter_layer_views(data)]
        self.assertEqual(views, [b"abc", b"de"])

    def test_unknown_fields_skipped(self):
        """Test that fields other than layers are ignored."""
        data = b"\x08\x01" + frame_layer(b"abc") + b"\x22\x01z"
        views = [bytes(v) for v in iter_layer_views(data)]
        self.assertEqual(views, [b"abc"])

    def test_views_share_buffer(self):
        data = frame_layer(b"abc")
        view = next(iter_layer_views(data))
        self.assertIsInstance(view, memoryview)
        self.assertEqual(view.obj, data)

    def test_length_past_end(self):
        with self.assertRaises(MalformedTile):
            list(iter_layer_views(b"\x1a\x05ab"))

    def test_unsupported_wire_type(self):
        with self.assertRaises(MalformedTile):
            list(iter_fields(b"\x0b"))

    def test_field_number_zero(self):
        with self.assertRaises(MalformedTile):
            list(iter_fields(b"\x00\x01"))

    def test_empty_buffer(self):
        self.assertEqual(list(iter_layer_views(b"")), [])


if __name__ == '__main__':
    unittest.main()
