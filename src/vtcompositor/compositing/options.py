"""
Composite options.

Immutable, validated configuration for one composite call. Invalid values
raise ``InvalidOptions`` at construction time so that no work starts with a
bad configuration.
"""

import numbers
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from ..exceptions import InvalidOptions
from ..geometry.fill import FillType, parse_fill_type
from ..tiles.coordinates import Extent


class ThreadingMode(Enum):
    """When per-source work may be scheduled onto a thread pool."""
    EAGER = "eager"
    DEFERRED = "deferred"
    EITHER = "either"


IMAGE_FORMATS = ("webp", "jpeg", "png", "tiff")

SCALING_METHODS = (
    "near", "bilinear", "bicubic", "spline16", "spline36", "hanning",
    "hamming", "hermite", "kaiser", "quadric", "catrom", "gaussian",
    "bessel", "mitchell", "sinc", "lanczos", "blackman",
)

# Keys accepted by from_dict in addition to the field names
_ALIASES = {
    "scale": "scale_factor",
    "image_scaling": "scaling_method",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


@dataclass(frozen=True)
class CompositeOptions:
    """
    Options controlling how source tiles are merged into a destination tile.

    Attributes:
        scale_factor: Multiplier applied to the scale denominator for layer visibility
        offset_x, offset_y: Grid offsets subtracted from destination coordinates
        area_threshold: Polygon rings with a smaller absolute area (grid units) are removed
        strictly_simple: Require OGC-valid polygon output
        multi_polygon_union: Union the parts of each multipolygon with the fill rule
        fill_type: Fill rule for ring re-assembly
        scale_denominator: Explicit scale denominator; 0 derives it from the destination tile
        reencode: Always decode and re-encode instead of copying layers byte-for-byte
        max_extent: Mercator clip box replacing the destination buffered extent
        simplify_distance: Douglas-Peucker tolerance in grid units, 0 disables
        process_all_rings: Ignore ring order and winding when decoding polygons
        image_format: Encoding for embedded raster layers
        scaling_method: Resampling for embedded raster layers
        threading_mode: Whether per-source work may run on a thread pool
        layer_scale_ranges: Layer name to (min, max) scale denominator visibility window
    """
    scale_factor: float = 1.0
    offset_x: float = 0
    offset_y: float = 0
    area_threshold: float = 0.1
    strictly_simple: bool = True
    multi_polygon_union: bool = False
    fill_type: FillType = FillType.POSITIVE
    scale_denominator: float = 0.0
    reencode: bool = False
    max_extent: Optional[Extent] = None
    simplify_distance: float = 0.0
    process_all_rings: bool = False
    image_format: str = "webp"
    scaling_method: str = "bilinear"
    threading_mode: ThreadingMode = ThreadingMode.DEFERRED
    layer_scale_ranges: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    def __post_init__(self):
        for name in ("scale_factor", "offset_x", "offset_y", "area_threshold",
                     "scale_denominator", "simplify_distance"):
            if not _is_number(getattr(self, name)):
                raise InvalidOptions(f"option '{name}' must be a number")

        if self.scale_factor <= 0:
            raise InvalidOptions("option 'scale_factor' must be greater than zero")
        for name in ("area_threshold", "scale_denominator", "simplify_distance"):
            if getattr(self, name) < 0:
                raise InvalidOptions(f"option '{name}' can not be negative")

        for name in ("strictly_simple", "multi_polygon_union", "reencode", "process_all_rings"):
            if not isinstance(getattr(self, name), bool):
                raise InvalidOptions(f"option '{name}' must be a boolean")

        try:
            object.__setattr__(self, "fill_type", parse_fill_type(self.fill_type))
        except (TypeError, ValueError):
            raise InvalidOptions(f"option 'fill_type' out of possible range: {self.fill_type!r}") from None

        try:
            object.__setattr__(self, "threading_mode", ThreadingMode(self.threading_mode))
        except ValueError:
            raise InvalidOptions(f"option 'threading_mode' is invalid: {self.threading_mode!r}") from None

        if self.image_format not in IMAGE_FORMATS:
            raise InvalidOptions(f"option 'image_format' must be one of {', '.join(IMAGE_FORMATS)}")
        if self.scaling_method not in SCALING_METHODS:
            raise InvalidOptions(f"option 'scaling_method' is invalid: {self.scaling_method!r}")

        if self.max_extent is not None:
            object.__setattr__(self, "max_extent", self._coerce_extent(self.max_extent))

        ranges = {}
        for layer_name, window in dict(self.layer_scale_ranges).items():
            try:
                low, high = window
            except (TypeError, ValueError):
                raise InvalidOptions(f"scale range for layer '{layer_name}' must be a (min, max) pair") from None
            if not (_is_number(low) and _is_number(high)) or low < 0 or high < low:
                raise InvalidOptions(f"scale range for layer '{layer_name}' is invalid")
            ranges[layer_name] = (float(low), float(high))
        object.__setattr__(self, "layer_scale_ranges", ranges)

    @staticmethod
    def _coerce_extent(value) -> Extent:
        if isinstance(value, Extent):
            extent = value
        else:
            try:
                values = list(value)
            except TypeError:
                raise InvalidOptions("max_extent value must be a sequence of [minx,miny,maxx,maxy]") from None
            if len(values) != 4 or not all(_is_number(v) for v in values):
                raise InvalidOptions("max_extent value must be a sequence of [minx,miny,maxx,maxy]")
            extent = Extent.from_sequence(values)
        if not extent.is_valid:
            raise InvalidOptions("max_extent must have minx < maxx and miny < maxy")
        return extent

    @property
    def needs_transform(self) -> bool:
        """True when layers can not be copied byte-for-byte even with matching extents."""
        return self.reencode or self.offset_x != 0 or self.offset_y != 0

    def is_layer_visible(self, layer_name: str, scale_denominator: float) -> bool:
        window = self.layer_scale_ranges.get(layer_name)
        if window is None:
            return True
        low, high = window
        return low <= scale_denominator < high

    @classmethod
    def from_dict(cls, values: Optional[Mapping[str, Any]]) -> "CompositeOptions":
        """
        Build options from a plain mapping (e.g. decoded JSON).

        Raises:
            InvalidOptions: unknown keys or invalid values
        """
        if values is None:
            return cls()
        if not isinstance(values, Mapping):
            raise InvalidOptions("options must be a mapping")

        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise InvalidOptions(f"unknown composite option '{key}'")
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_config(cls, config, **overrides) -> "CompositeOptions":
        """Options from the ``composite`` section of a Config, with keyword overrides."""
        section = config.composite
        values = {
            "area_threshold": section.area_threshold,
            "simplify_distance": section.simplify_distance,
            "strictly_simple": section.strictly_simple,
            "multi_polygon_union": section.multi_polygon_union,
            "fill_type": section.fill_type,
            "reencode": section.reencode,
            "process_all_rings": section.process_all_rings,
            "threading_mode": section.threading_mode,
        }
        values.update(overrides)
        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scale_factor": self.scale_factor,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "area_threshold": self.area_threshold,
            "strictly_simple": self.strictly_simple,
            "multi_polygon_union": self.multi_polygon_union,
            "fill_type": self.fill_type.name.lower(),
            "scale_denominator": self.scale_denominator,
            "reencode": self.reencode,
            "max_extent": list(self.max_extent.as_tuple()) if self.max_extent else None,
            "simplify_distance": self.simplify_distance,
            "process_all_rings": self.process_all_rings,
            "image_format": self.image_format,
            "scaling_method": self.scaling_method,
            "threading_mode": self.threading_mode.value,
            "layer_scale_ranges": {k: list(v) for k, v in self.layer_scale_ranges.items()},
        }
