"""
Compositing Module

Merges source tiles into a destination tile.
"""

from .options import CompositeOptions, ThreadingMode
from .compositor import Compositor, CompositeSummary
from .executor import TileExecutor

__all__ = [
    "CompositeOptions",
    "ThreadingMode",
    "Compositor",
    "CompositeSummary",
    "TileExecutor"
]
