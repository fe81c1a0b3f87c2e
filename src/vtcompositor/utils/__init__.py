"""
Shared utilities: configuration and logging setup.
"""

from .config import Config, TileSettings, CompositeSettings, LoggingSettings, MetricsSettings
from .logging import configure_logging

__all__ = [
    "Config",
    "TileSettings",
    "CompositeSettings",
    "LoggingSettings",
    "MetricsSettings",
    "configure_logging"
]
