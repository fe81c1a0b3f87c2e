"""
Validation Module

OGC simplicity and validity reports over decoded tile geometries.
"""

from .checker import GeometryValidityChecker, NotSimpleFeature, NotValidFeature

__all__ = [
    "GeometryValidityChecker",
    "NotSimpleFeature",
    "NotValidFeature"
]
