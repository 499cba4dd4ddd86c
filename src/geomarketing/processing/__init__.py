"""
Processing Module for the geomarketing pipeline.

Grid transformations between acquisition and scoring: class
reclassification, metro-area extraction, point-density rasterization and
conversion of results to GeoDataFrames.
"""

from .reclassifier import classify, reclassify, reclassify_attributes
from .metro import (
    MetroAreaExtractor,
    MetroAreas,
    downsample,
    extract_regions,
    label_components,
    name_regions,
    threshold,
)
from .rasterizer import (
    PointDensity,
    PointDensityRasterizer,
    bin_points,
    breaks_to_table,
    classify_by_breaks,
    natural_breaks,
)
from .vectorize import grid_to_geodataframe, regions_to_geodataframe

__all__ = [
    # Reclassification
    "classify",
    "reclassify",
    "reclassify_attributes",
    # Metro areas
    "MetroAreaExtractor",
    "MetroAreas",
    "downsample",
    "extract_regions",
    "label_components",
    "name_regions",
    "threshold",
    # Point density
    "PointDensity",
    "PointDensityRasterizer",
    "bin_points",
    "breaks_to_table",
    "classify_by_breaks",
    "natural_breaks",
    # Vectorization
    "grid_to_geodataframe",
    "regions_to_geodataframe",
]
