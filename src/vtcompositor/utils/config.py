"""
Configuration

Nested configuration sections for the tile engine. Values come from
environment variables (prefix ``VTC_``) so the same code runs unchanged in
workers, tests and command line tools; every field has a default that
matches the engine's documented defaults.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


ENV_PREFIX = "VTC_"


def _env(name: str, default: str, environ: Mapping[str, str]) -> str:
    return environ.get(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool, environ: Mapping[str, str]) -> bool:
    raw = environ.get(f"{ENV_PREFIX}{name}")
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class TileSettings:
    """Defaults used when constructing tiles."""
    tile_size: int = 4096
    buffer_size: int = 128
    compression: Optional[str] = None  # None, "gzip" or "zlib"
    compression_level: int = 6


@dataclass
class CompositeSettings:
    """Defaults for composite operations (see CompositeOptions)."""
    area_threshold: float = 0.1
    simplify_distance: float = 0.0
    strictly_simple: bool = True
    multi_polygon_union: bool = False
    fill_type: str = "positive"
    reencode: bool = False
    process_all_rings: bool = False
    threading_mode: str = "deferred"
    max_workers: int = 4


@dataclass
class LoggingSettings:
    level: str = "INFO"
    json_output: bool = True


@dataclass
class MetricsSettings:
    enable_prometheus: bool = True
    namespace: str = "vtcompositor"


@dataclass
class Config:
    """
    Top level configuration object.

    Sections are plain dataclasses, accessed as ``config.composite.area_threshold``.
    """
    environment: str = "development"
    tile: TileSettings = field(default_factory=TileSettings)
    composite: CompositeSettings = field(default_factory=CompositeSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    metrics: MetricsSettings = field(default_factory=MetricsSettings)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read from, defaults to ``os.environ``

        Returns:
            Populated Config instance
        """
        if environ is None:
            environ = os.environ

        tile = TileSettings(
            tile_size=int(_env("TILE_SIZE", "4096", environ)),
            buffer_size=int(_env("BUFFER_SIZE", "128", environ)),
            compression=_env("COMPRESSION", "", environ) or None,
            compression_level=int(_env("COMPRESSION_LEVEL", "6", environ)),
        )
        composite = CompositeSettings(
            area_threshold=float(_env("AREA_THRESHOLD", "0.1", environ)),
            simplify_distance=float(_env("SIMPLIFY_DISTANCE", "0.0", environ)),
            strictly_simple=_env_bool("STRICTLY_SIMPLE", True, environ),
            multi_polygon_union=_env_bool("MULTI_POLYGON_UNION", False, environ),
            fill_type=_env("FILL_TYPE", "positive", environ),
            reencode=_env_bool("REENCODE", False, environ),
            process_all_rings=_env_bool("PROCESS_ALL_RINGS", False, environ),
            threading_mode=_env("THREADING_MODE", "deferred", environ),
            max_workers=int(_env("MAX_WORKERS", "4", environ)),
        )
        logging_settings = LoggingSettings(
            level=_env("LOG_LEVEL", "INFO", environ).upper(),
            json_output=_env_bool("LOG_JSON", True, environ),
        )
        metrics = MetricsSettings(
            enable_prometheus=_env_bool("METRICS_ENABLED", True, environ),
            namespace=_env("METRICS_NAMESPACE", "vtcompositor", environ),
        )
        return cls(
            environment=_env("ENVIRONMENT", "development", environ),
            tile=tile,
            composite=composite,
            logging=logging_settings,
            metrics=metrics,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "environment": self.environment,
            "tile": vars(self.tile).copy(),
            "composite": vars(self.composite).copy(),
            "logging": vars(self.logging).copy(),
            "metrics": vars(self.metrics).copy(),
        }
