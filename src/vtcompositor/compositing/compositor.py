"""
Tile Compositor

Merges the layers of an ordered list of source tiles into a destination
tile. Layers merge by name; the first occurrence of a name fixes the
destination layer's extent and version. Layers of sources covering exactly
the destination tile, and matching the destination layer's extent and
version, are copied byte-for-byte unless re-encoding is requested;
everything else is decoded, run through the transform pipeline and
re-encoded. Nothing is written to the destination until every source
has been processed.
"""

import concurrent.futures
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from shapely.errors import GEOSException

from ..datasource.layer_reader import CoordinateSpace, LayerReader, Query
from ..exceptions import InvalidOptions, MalformedTile, StructuralCompositeFailure, VectorTileError
from ..geometry.codec import GeomType, encode_geometry
from ..geometry.transform import TransformPipeline
from ..monitoring.metrics import MetricsCollector
from ..tiles.builder import LayerBuilder
from ..tiles.coordinates import scale_denominator_for
from .options import CompositeOptions, ThreadingMode

# Failures that only drop the feature being processed
FEATURE_ERRORS = (VectorTileError, GEOSException, ValueError)

EncodedFeature = Tuple[GeomType, List[int], Dict[str, Any], Optional[int]]


@dataclass
class CompositeSummary:
    """Outcome of one composite call."""
    layers_written: List[str] = field(default_factory=list)
    painted_layers: List[str] = field(default_factory=list)
    empty_layers: List[str] = field(default_factory=list)
    passthrough_layers: List[str] = field(default_factory=list)
    skipped_layers: List[str] = field(default_factory=list)
    sources_processed: int = 0
    features_written: int = 0
    features_dropped: int = 0
    feature_errors: int = 0
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'layers_written': list(self.layers_written),
            'painted_layers': list(self.painted_layers),
            'empty_layers': list(self.empty_layers),
            'passthrough_layers': list(self.passthrough_layers),
            'skipped_layers': list(self.skipped_layers),
            'sources_processed': self.sources_processed,
            'features_written': self.features_written,
            'features_dropped': self.features_dropped,
            'feature_errors': self.feature_errors,
            'processing_time': self.processing_time
        }


@dataclass
class _Contribution:
    """What one source layer adds to a destination layer."""
    name: str
    reader: LayerReader
    raw: bool
    features: List[EncodedFeature] = field(default_factory=list)
    dropped: int = 0
    errors: int = 0


class _PendingLayer:
    """Destination layer being assembled; stays raw bytes while it has a single passthrough contribution."""

    def __init__(self, name: str, extent: int, version: int, logger=None):
        self.name = name
        self.extent = extent
        self.version = version
        self.raw_reader: Optional[LayerReader] = None
        self.builder: Optional[LayerBuilder] = None
        self.errors = 0
        self.logger = logger if logger is not None else structlog.get_logger(layer=name)

    @property
    def is_raw(self) -> bool:
        return self.builder is None and self.raw_reader is not None

    def _ensure_builder(self) -> LayerBuilder:
        if self.builder is None:
            self.builder = LayerBuilder(self.name, self.extent, self.version)
            if self.raw_reader is not None:
                reader = self.raw_reader
                self.raw_reader = None
                self.add_reader_features(reader)
        return self.builder

    def _skip(self, feature_id: Optional[int], error: Exception) -> None:
        self.errors += 1
        self.logger.warning(
            "Skipping feature that failed to merge",
            layer=self.name,
            feature_id=feature_id,
            error=str(error)
        )

    def add_reader_features(self, reader: LayerReader) -> None:
        builder = self._ensure_builder()
        for feature in reader.features(space=CoordinateSpace.GRID):
            try:
                builder.add_feature(feature.geom_type, feature.commands, feature.properties, feature.id or None)
            except FEATURE_ERRORS as e:
                self._skip(feature.id, e)

    def add_raw(self, reader: LayerReader) -> None:
        if self.builder is None and self.raw_reader is None:
            self.raw_reader = reader
        else:
            self.add_reader_features(reader)

    def add_features(self, features: Sequence[EncodedFeature]) -> None:
        builder = self._ensure_builder()
        for geom_type, commands, properties, feature_id in features:
            try:
                builder.add_feature(geom_type, commands, properties, feature_id)
            except FEATURE_ERRORS as e:
                self._skip(feature_id, e)

    @property
    def is_painted(self) -> bool:
        if self.is_raw:
            return self.raw_reader.is_painted
        return self.builder is not None and self.builder.is_painted

    @property
    def feature_count(self) -> int:
        if self.is_raw:
            return self.raw_reader.feature_count
        return self.builder.feature_count if self.builder is not None else 0

    def to_bytes(self) -> bytes:
        if self.is_raw:
            return bytes(self.raw_reader.data)
        return self._ensure_builder().to_bytes()


class Compositor:
    """
    Composites source tiles into a destination tile.

    Args:
        target: Destination VectorTile, mutated only at the end of ``composite``
        options: CompositeOptions, defaults when omitted
        metrics: Optional MetricsCollector receiving counters and timings
        max_workers: Thread pool size for eager threading
    """

    def __init__(
        self,
        target,
        options: Optional[CompositeOptions] = None,
        metrics: Optional[MetricsCollector] = None,
        max_workers: int = 4
    ):
        if options is None:
            options = CompositeOptions()
        if not isinstance(options, CompositeOptions):
            raise InvalidOptions("options must be a CompositeOptions instance")
        if max_workers < 1:
            raise InvalidOptions("max_workers must be at least 1")

        self.target = target
        self.options = options
        self.metrics = metrics
        self.max_workers = max_workers

        self.logger = structlog.get_logger(
            compositor_type="Compositor",
            tile_id=f"{target.z}/{target.x}/{target.y}"
        )

    def composite(self, sources: Sequence[Any]) -> CompositeSummary:
        """
        Merge ``sources`` into the destination tile.

        Args:
            sources: Ordered source VectorTiles; they are only read

        Returns:
            CompositeSummary describing the written layers

        Raises:
            InvalidOptions: a source that is not a tile
            StructuralCompositeFailure: a source whose bytes can not be read
        """
        start_time = time.time()
        sources = list(sources)
        self._validate_sources(sources)

        summary = CompositeSummary()
        existing = set(self.target.names())
        headers = self._scan_headers(sources, existing, summary)
        pipelines = {
            extent: TransformPipeline(self.options, self.target, extent)
            for extent in {h[0] for h in headers.values()}
        }

        active = [s for s in sources if not s.is_empty()]
        self.logger.info(
            "Starting composite",
            sources=len(sources),
            active_sources=len(active),
            layers=list(headers.keys()),
            threading_mode=self.options.threading_mode.value
        )

        results = self._run_sources(active, headers, pipelines)

        pending: Dict[str, _PendingLayer] = {}
        for contributions in results:
            summary.sources_processed += 1
            for contribution in contributions:
                layer = pending.get(contribution.name)
                if layer is None:
                    extent, version = headers[contribution.name]
                    layer = _PendingLayer(contribution.name, extent, version, self.logger)
                    pending[contribution.name] = layer
                if contribution.raw:
                    layer.add_raw(contribution.reader)
                else:
                    layer.add_features(contribution.features)
                summary.features_dropped += contribution.dropped
                summary.feature_errors += contribution.errors

        self._finalize(pending, summary)

        summary.processing_time = time.time() - start_time
        if self.metrics is not None:
            self.metrics.increment_counter('composites_completed')
            self.metrics.increment_counter('features_composited', summary.features_written)
            self.metrics.increment_counter('features_dropped', summary.features_dropped)
            self.metrics.increment_counter('feature_errors', summary.feature_errors)
            self.metrics.record_timing('composite_duration', start_time)

        self.logger.info(
            "Composite completed",
            layers_written=summary.layers_written,
            features_written=summary.features_written,
            features_dropped=summary.features_dropped,
            feature_errors=summary.feature_errors,
            processing_time=summary.processing_time
        )
        return summary

    def _validate_sources(self, sources: List[Any]) -> None:
        for index, source in enumerate(sources):
            if not callable(getattr(source, "layers", None)) or not callable(getattr(source, "extent", None)):
                raise InvalidOptions(f"source at index {index} is not a vector tile")

    def _scale_denominator(self) -> float:
        denominator = self.options.scale_denominator
        if denominator <= 0:
            denominator = scale_denominator_for(self.target.extent(), self.target.tile_size)
        return denominator * self.options.scale_factor

    def _scan_headers(
        self,
        sources: List[Any],
        existing: set,
        summary: CompositeSummary
    ) -> Dict[str, Tuple[int, int]]:
        """First occurrence (extent, version) of every visible layer name, in source order."""
        denominator = self._scale_denominator()
        headers: Dict[str, Tuple[int, int]] = {}
        for index, source in enumerate(sources):
            try:
                readers = source.layers()
            except MalformedTile as e:
                raise StructuralCompositeFailure(f"source tile at index {index} can not be read: {e}") from e

            for reader in readers:
                name = reader.name
                if name in headers:
                    continue
                if name in existing:
                    if name not in summary.skipped_layers:
                        summary.skipped_layers.append(name)
                        self.logger.info("Layer already present in destination, skipping", layer=name)
                    continue
                if not self.options.is_layer_visible(name, denominator):
                    continue
                headers[name] = (reader.extent, reader.version)
        return headers

    def _run_sources(self, sources, headers, pipelines) -> List[List[_Contribution]]:
        mode = self.options.threading_mode
        use_pool = mode == ThreadingMode.EAGER or (mode == ThreadingMode.EITHER and len(sources) > 1)
        if not use_pool or not sources:
            return [self._process_source(s, headers, pipelines) for s in sources]

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda s: self._process_source(s, headers, pipelines), sources))

    def _process_source(self, source, headers, pipelines) -> List[_Contribution]:
        """Per-source work; reads the source and shared read-only state only."""
        passthrough = source.same_extent(self.target) and not self.options.needs_transform
        contributions = []
        for reader in source.layers():
            if reader.name not in headers:
                continue
            extent, version = headers[reader.name]
            if passthrough and reader.extent == extent and reader.version == version:
                contributions.append(_Contribution(reader.name, reader, raw=True))
                continue
            contributions.append(self._transform_layer(reader, pipelines[extent]))
        return contributions

    def _transform_layer(self, reader: LayerReader, pipeline: TransformPipeline) -> _Contribution:
        contribution = _Contribution(reader.name, reader, raw=False)
        features = reader.features(
            Query(bbox=pipeline.query_extent),
            CoordinateSpace.MERCATOR,
            process_all_rings=self.options.process_all_rings,
            fill_type=self.options.fill_type
        )
        for feature in features:
            try:
                geometry = feature.geometry()
                if geometry.is_empty:
                    contribution.dropped += 1
                    continue
                transformed = pipeline.run(geometry)
                if transformed is None:
                    contribution.dropped += 1
                    continue
                geom_type, commands = encode_geometry(transformed)
                if geom_type == GeomType.UNKNOWN:
                    contribution.dropped += 1
                    continue
                contribution.features.append((geom_type, commands, feature.properties, feature.id or None))
            except FEATURE_ERRORS as e:
                contribution.errors += 1
                self.logger.warning(
                    "Skipping feature that failed to composite",
                    layer=reader.name,
                    feature_id=feature.id,
                    error=str(e)
                )
                continue
        return contribution

    def _finalize(self, pending: Dict[str, _PendingLayer], summary: CompositeSummary) -> None:
        encoded = []
        for name, layer in pending.items():
            summary.feature_errors += layer.errors
            if layer.is_raw:
                summary.passthrough_layers.append(name)
            encoded.append((name, layer.to_bytes(), layer.is_painted, layer.feature_count))

        for name, data, painted, count in encoded:
            self.target.append_layer_buffer(data, name)
            summary.layers_written.append(name)
            summary.features_written += count
            if painted:
                summary.painted_layers.append(name)
            elif count == 0:
                summary.empty_layers.append(name)
