"""
Core data model for the geomarketing suitability pipeline.

Grids, point sets and regions, the classification/reclassification
configuration models, and the pipeline error kinds.
"""

from .exceptions import (
    ConfigError,
    GeomarketingError,
    GridMismatchError,
    MalformedGridError,
    OutOfBoundsError,
    UnmappedClassError,
)
from .grid import Grid, GridGeometry, PointSet, Region
from .models import ClassBreakTable, ClassInterval, ReclassRule

__all__ = [
    # Exceptions
    "ConfigError",
    "GeomarketingError",
    "GridMismatchError",
    "MalformedGridError",
    "OutOfBoundsError",
    "UnmappedClassError",
    # Data structures
    "Grid",
    "GridGeometry",
    "PointSet",
    "Region",
    # Models
    "ClassBreakTable",
    "ClassInterval",
    "ReclassRule",
]
