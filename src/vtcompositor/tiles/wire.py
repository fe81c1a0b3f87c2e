"""
Tile-level protobuf framing.

A Tile message is nothing but a sequence of ``layers`` fields (tag 3,
length-delimited). Scanning it here yields zero-copy views of each Layer
message so that layers can be extracted or passed through byte-for-byte;
the Layer messages themselves are parsed with the ``vector_tile_pb2`` schema.
"""

from typing import Iterator, Tuple, Union

from ..exceptions import MalformedTile


TILE_LAYERS_FIELD = 3

WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

BytesLike = Union[bytes, bytearray, memoryview]


def read_varint(buf: memoryview, pos: int) -> Tuple[int, int]:
    """Read a base-128 varint at ``pos``; returns (value, new position)."""
    result = 0
    shift = 0
    end = len(buf)
    while True:
        if pos >= end:
            raise MalformedTile("truncated varint in tile buffer")
        byte = buf[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result, pos
        shift += 7
        if shift > 63:
            raise MalformedTile("varint too long in tile buffer")


def encode_varint(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def iter_fields(data: BytesLike) -> Iterator[Tuple[int, int, Union[int, memoryview]]]:
    """
    Walk the top-level fields of a protobuf message.

    Yields:
        (field number, wire type, value) where length-delimited values are
        memoryview slices of ``data``
    """
    buf = memoryview(data)
    pos = 0
    end = len(buf)
    while pos < end:
        key, pos = read_varint(buf, pos)
        field_number = key >> 3
        wire_type = key & 0x07
        if field_number == 0:
            raise MalformedTile("invalid field number 0 in tile buffer")

        if wire_type == WIRE_VARINT:
            value, pos = read_varint(buf, pos)
            yield field_number, wire_type, value
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = read_varint(buf, pos)
            if pos + length > end:
                raise MalformedTile("length-delimited field runs past end of tile buffer")
            yield field_number, wire_type, buf[pos:pos + length]
            pos += length
        elif wire_type == WIRE_FIXED64:
            if pos + 8 > end:
                raise MalformedTile("truncated fixed64 field in tile buffer")
            yield field_number, wire_type, buf[pos:pos + 8]
            pos += 8
        elif wire_type == WIRE_FIXED32:
            if pos + 4 > end:
                raise MalformedTile("truncated fixed32 field in tile buffer")
            yield field_number, wire_type, buf[pos:pos + 4]
            pos += 4
        else:
            raise MalformedTile(f"unsupported wire type {wire_type} in tile buffer")


def iter_layer_views(data: BytesLike) -> Iterator[memoryview]:
    """Yield a view of every Layer message in a Tile buffer; other fields are skipped."""
    for field_number, wire_type, value in iter_fields(data):
        if field_number == TILE_LAYERS_FIELD:
            if wire_type != WIRE_LENGTH_DELIMITED:
                raise MalformedTile("tile layers field is not length-delimited")
            yield value


def frame_layer(layer_data: BytesLike) -> bytes:
    """Wrap an encoded Layer message as a Tile ``layers`` field."""
    key = (TILE_LAYERS_FIELD << 3) | WIRE_LENGTH_DELIMITED
    return encode_varint(key) + encode_varint(len(layer_data)) + bytes(layer_data)
