"""
Helpers building encoded layers and tiles for the unit tests.
"""

from shapely import affinity

from vtcompositor.geometry.codec import encode_geometry
from vtcompositor.tile import VectorTile
from vtcompositor.tiles.builder import LayerBuilder
from vtcompositor.tiles.coordinates import tile_bounds


def encode_layer(name, features, extent=4096, version=2):
    """
    Encode a layer from (geometry, properties, id) tuples with grid geometries.

    A tuple may also carry an explicit (geom_type, commands) pair in place of
    the geometry to write malformed streams.
    """
    builder = LayerBuilder(name, extent, version)
    for geometry, properties, feature_id in features:
        if isinstance(geometry, tuple):
            geom_type, commands = geometry
        else:
            geom_type, commands = encode_geometry(geometry)
        builder.add_feature(geom_type, commands, properties, feature_id)
    return builder.to_bytes()


def make_tile(z, x, y, layers, tile_size=4096, buffer_size=128):
    """Tile holding the given {name: layer bytes} in insertion order."""
    tile = VectorTile(z, x, y, tile_size=tile_size, buffer_size=buffer_size)
    for name, data in layers.items():
        tile.append_layer_buffer(data, name)
    return tile


def grid_to_mercator(geometry, z, x, y, extent=4096):
    """Map a grid geometry of tile (z, x, y) into EPSG:3857."""
    bounds = tile_bounds(z, x, y)
    sx = bounds.width / extent
    sy = bounds.height / extent
    return affinity.affine_transform(geometry, [sx, 0.0, 0.0, -sy, bounds.minx, bounds.maxy])
