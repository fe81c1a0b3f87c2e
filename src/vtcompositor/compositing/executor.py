"""
Off-loading helper.

Runs the synchronous tile operations on a worker thread pool and hands back
``concurrent.futures.Future`` objects. Errors raised by an operation become
the future's exception. Operations on the same destination tile must not be
submitted concurrently.
"""

import concurrent.futures
from typing import Any, Mapping, Optional, Sequence, Union

import structlog

from ..monitoring.metrics import MetricsCollector
from .options import CompositeOptions


class TileExecutor:
    """
    Thread pool wrapper for composite and validity reports.

    Usage::

        with TileExecutor(max_workers=4) as executor:
            future = executor.composite_async(target, sources, options)
            summary = future.result()
    """

    def __init__(self, max_workers: int = 4, metrics: Optional[MetricsCollector] = None):
        self.max_workers = max_workers
        self.metrics = metrics
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="vtcompositor"
        )
        self.logger = structlog.get_logger(executor_type="TileExecutor", max_workers=max_workers)

    @classmethod
    def from_config(cls, config, metrics: Optional[MetricsCollector] = None) -> "TileExecutor":
        return cls(max_workers=config.composite.max_workers, metrics=metrics)

    def composite_async(
        self,
        target,
        sources: Sequence[Any],
        options: Union[CompositeOptions, Mapping[str, Any], None] = None
    ) -> concurrent.futures.Future:
        # options are validated before submission so bad input fails synchronously
        if not isinstance(options, CompositeOptions):
            options = CompositeOptions.from_dict(options)
        self.logger.debug("Submitting composite", tile_id=f"{target.z}/{target.x}/{target.y}")
        return self._executor.submit(target.composite, list(sources), options, self.metrics)

    def report_validity_async(
        self,
        tile,
        split_multi_features: bool = False,
        lat_lon: bool = False,
        web_merc: bool = False
    ) -> concurrent.futures.Future:
        return self._executor.submit(
            tile.report_geometry_validity,
            split_multi_features=split_multi_features,
            lat_lon=lat_lon,
            web_merc=web_merc
        )

    def report_simplicity_async(self, tile) -> concurrent.futures.Future:
        return self._executor.submit(tile.report_geometry_simplicity)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "TileExecutor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)
