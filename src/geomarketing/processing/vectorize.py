"""
Conversion of grids and regions into GeoDataFrames for export and mapping.
"""

import logging
from typing import Optional, Sequence

import geopandas as gpd
import pandas as pd
from shapely.geometry import box
from shapely.ops import unary_union

from ..core.grid import Grid, GridGeometry, Region

logger = logging.getLogger(__name__)


def cell_polygon(geometry: GridGeometry, row: int, col: int):
    """Shapely box covering one cell."""
    x0 = geometry.origin_x + col * geometry.cell_width
    y0 = geometry.origin_y + row * geometry.cell_height
    return box(x0, y0, x0 + geometry.cell_width, y0 + geometry.cell_height)


def regions_to_geodataframe(
    regions: Sequence[Region],
    geometry: GridGeometry,
    crs: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """
    Dissolve each region's cells into one polygon.

    Args:
        regions: Regions labelled on ``geometry``.
        geometry: Geometry of the labelled grid.
        crs: CRS of the grid coordinates.

    Returns:
        GeoDataFrame with one row per region (Region.to_dict() columns).
    """
    records = [region.to_dict() for region in regions]
    shapes = [
        unary_union([cell_polygon(geometry, row, col) for row, col in sorted(region.cells)])
        for region in regions
    ]

    columns = ["label", "name", "cell_count", "total", "centroid_x", "centroid_y"]
    gdf = gpd.GeoDataFrame(
        pd.DataFrame(records, columns=columns),
        geometry=shapes,
        crs=crs,
    )

    logger.debug("Vectorized %d regions", len(gdf))
    return gdf


def grid_to_geodataframe(
    grid: Grid,
    crs: Optional[str] = None,
    value_column: Optional[str] = None,
    as_polygons: bool = False,
) -> gpd.GeoDataFrame:
    """
    Convert present cells to a GeoDataFrame.

    Args:
        grid: Grid to convert.
        crs: CRS of the grid coordinates.
        value_column: Name of the value column (see Grid.to_dataframe()).
        as_polygons: Use cell boxes instead of cell center points.

    Returns:
        GeoDataFrame with one row per present cell.
    """
    df = grid.to_dataframe(value_column)

    if as_polygons:
        shapes = [
            cell_polygon(grid.geometry, row, col)
            for row, col in zip(df["row"], df["col"])
        ]
        return gpd.GeoDataFrame(df, geometry=shapes, crs=crs)

    return gpd.GeoDataFrame(df, geometry=gpd.points_from_xy(df["x"], df["y"]), crs=crs)
