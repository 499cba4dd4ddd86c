"""
Point-density rasterization and natural-breaks classification.

Points of interest (e.g. existing supermarkets) are counted per grid
cell, then the counts are turned into a small number of density classes
whose boundaries come from the data itself: Fisher-Jenks natural breaks.

Fisher-Jenks finds the partition of the sorted values into K contiguous
groups with the smallest total within-group sum of squared deviations.
It is solved exactly by dynamic programming over the distinct values,
each weighted by how often it occurs.

Class boundaries follow one policy throughout:
- Each break is the smallest value of a non-first class.
- Intervals are [lower, upper), the top interval is closed.
- A value equal to a break therefore falls in the class that break opens,
  which is exactly the group the optimal partition put it in.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ..core.exceptions import OutOfBoundsError
from ..core.grid import Grid, GridGeometry, PointSet
from ..core.models import ClassBreakTable
from .reclassifier import classify

logger = logging.getLogger(__name__)

# Relative tolerance under which two partition costs count as tied
TIE_REL_TOL = 1e-12


def bin_points(
    points: PointSet,
    geometry: GridGeometry,
    strict: bool = False,
    weighted: bool = False,
    name: str = "poi_count",
) -> Grid:
    """
    Count points per cell of a target geometry.

    Each point goes to cell floor((coordinate - origin) / cell size).
    The extent is half-open, so points on the right or top edge are outside.

    Args:
        points: Points in the grid's coordinate system.
        geometry: Target grid geometry.
        strict: If True, a point outside the extent raises instead of being dropped.
        weighted: If True, sum point weights instead of counting points.
        name: Name of the output grid.

    Returns:
        Grid with a count (or weight sum) in every cell; no cell is missing.

    Raises:
        OutOfBoundsError: In strict mode, for the first point outside the extent.
    """
    counts = np.zeros(geometry.shape)

    if len(points):
        coords = points.coordinates
        cols = np.floor((coords[:, 0] - geometry.origin_x) / geometry.cell_width)
        rows = np.floor((coords[:, 1] - geometry.origin_y) / geometry.cell_height)
        inside = (
            (rows >= 0) & (rows < geometry.n_rows) & (cols >= 0) & (cols < geometry.n_cols)
        )

        if not inside.all():
            first = int(np.argmax(~inside))
            point = (float(coords[first, 0]), float(coords[first, 1]))
            if strict:
                raise OutOfBoundsError(
                    f"Point {point} lies outside the grid extent {geometry.extent}",
                    point=point,
                )
            logger.info(
                "Dropped %d of %d points outside the grid extent",
                int((~inside).sum()),
                len(points),
            )

        if weighted and points.weights is not None:
            amounts = points.weights[inside]
        else:
            if weighted:
                logger.warning("Weighted binning requested but points carry no weights; counting")
            amounts = np.ones(int(inside.sum()))

        np.add.at(
            counts,
            (rows[inside].astype(np.int64), cols[inside].astype(np.int64)),
            amounts,
        )

    return Grid(geometry, counts, np.ones(geometry.shape, dtype=bool), name=name)


def natural_breaks(values: Sequence[float], n_classes: int) -> list[float]:
    """
    Compute Fisher-Jenks natural breaks.

    Args:
        values: Data values; non-finite values are ignored.
        n_classes: Requested number of classes K (>= 1).

    Returns:
        Ascending breaks, each the smallest value of a class after the first.
        K - 1 breaks in general; with at most K distinct values, every
        distinct value but the smallest is a break.

    Raises:
        ValueError: If n_classes < 1 or there are no finite values.
    """
    if n_classes < 1:
        raise ValueError(f"Number of classes must be >= 1, got {n_classes}")

    data = np.asarray(values, dtype=np.float64).ravel()
    data = data[np.isfinite(data)]
    if data.size == 0:
        raise ValueError("Cannot compute natural breaks of an empty dataset")

    distinct, counts = np.unique(data, return_counts=True)
    n = len(distinct)
    if n <= n_classes:
        return distinct[1:].tolist()

    weights = counts.astype(np.float64)
    # Group costs are shift-invariant; sums are taken about the mean
    centered = distinct - np.average(distinct, weights=weights)
    cum_w = np.concatenate([[0.0], np.cumsum(weights)])
    cum_x = np.concatenate([[0.0], np.cumsum(weights * centered)])
    cum_xx = np.concatenate([[0.0], np.cumsum(weights * centered * centered)])

    def group_cost(start: np.ndarray, end: int) -> np.ndarray:
        """Sum of squared deviations of distinct[start..end] (inclusive), per start."""
        w = cum_w[end + 1] - cum_w[start]
        s = cum_x[end + 1] - cum_x[start]
        ss = cum_xx[end + 1] - cum_xx[start]
        return np.maximum(ss - s * s / w, 0.0)

    # cost[k, j]: best cost of splitting distinct[0..j] into k + 1 classes
    # start[k, j]: index where the last of those classes begins
    cost = np.full((n_classes, n), np.inf)
    start = np.zeros((n_classes, n), dtype=np.int64)
    cost[0] = np.maximum(cum_xx[1:] - cum_x[1:] ** 2 / cum_w[1:], 0.0)

    for k in range(1, n_classes):
        for j in range(k, n):
            candidates = np.arange(k, j + 1)
            totals = cost[k - 1, candidates - 1] + group_cost(candidates, j)
            best_total = totals.min()
            tolerance = TIE_REL_TOL * max(abs(best_total), 1.0)
            # On ties take the latest start: the boundary value stays in the lower class
            best = int(np.nonzero(totals <= best_total + tolerance)[0][-1])
            cost[k, j] = totals[best]
            start[k, j] = candidates[best]

    breaks = []
    end = n - 1
    for k in range(n_classes - 1, 0, -1):
        first = int(start[k, end])
        breaks.append(float(distinct[first]))
        end = first - 1

    breaks.reverse()
    return breaks


def breaks_to_table(
    breaks: Sequence[float],
    minimum: float,
    maximum: float,
    labels: Optional[Sequence[str]] = None,
) -> ClassBreakTable:
    """
    Build a 0-based class table from natural breaks.

    Args:
        breaks: Ascending breaks from natural_breaks().
        minimum: Smallest data value (lower bound of class 0).
        maximum: Largest data value (closed upper bound of the top class).
        labels: Optional class labels.

    Returns:
        ClassBreakTable with codes 0..len(breaks) and a closed top interval.
    """
    # A top break equal to the maximum yields a closed single-value class
    bounds = [float(minimum), *[float(b) for b in breaks], float(maximum)]
    codes = list(range(len(bounds) - 1))
    return ClassBreakTable.from_breaks(bounds, codes=codes, labels=labels, closed_top=True)


def classify_by_breaks(
    grid: Grid,
    breaks: Sequence[float],
    labels: Optional[Sequence[str]] = None,
) -> tuple[Grid, ClassBreakTable]:
    """
    Classify a grid into 0-based classes using natural breaks.

    Args:
        grid: Grid of counts.
        breaks: Ascending breaks from natural_breaks().
        labels: Optional class labels.

    Returns:
        Tuple of (class index grid, table used).
    """
    present = grid.present_values()
    if present.size == 0:
        raise ValueError(f"Grid '{grid.name}' has no present cells to classify")

    table = breaks_to_table(breaks, present.min(), present.max(), labels=labels)
    return classify(grid, table), table


@dataclass(frozen=True, eq=False)
class PointDensity:
    """
    Result of a point-density rasterization.

    Attributes:
        counts: Points (or weight sums) per cell.
        breaks: Natural breaks of the counts.
        table: Class table built from the breaks.
        weights: Class index per cell (0 = lowest density).
    """

    counts: Grid
    breaks: list[float]
    table: ClassBreakTable
    weights: Grid


class PointDensityRasterizer:
    """
    Turns points of interest into a density class grid.

    Usage:
        rasterizer = PointDensityRasterizer(n_classes=4)
        density = rasterizer.rasterize(shops, census_geometry)
        poi_weight = density.weights

    Attributes:
        n_classes: Number of natural-breaks classes.
        weighted: Sum point weights instead of counting points.
        strict: Raise on points outside the grid instead of dropping them.
    """

    def __init__(
        self,
        n_classes: int = 4,
        weighted: bool = False,
        strict: bool = False,
        weight_name: str = "poi",
    ) -> None:
        if n_classes < 1:
            raise ValueError(f"Number of classes must be >= 1, got {n_classes}")
        self.n_classes = n_classes
        self.weighted = weighted
        self.strict = strict
        self.weight_name = weight_name

    def rasterize(self, points: PointSet, geometry: GridGeometry) -> PointDensity:
        """
        Bin points, compute natural breaks and classify the counts.

        Args:
            points: Points of interest in the grid's CRS.
            geometry: Target grid geometry.

        Returns:
            PointDensity with counts, breaks, table and the class grid.
        """
        counts = bin_points(
            points,
            geometry,
            strict=self.strict,
            weighted=self.weighted,
            name=f"{self.weight_name}_count",
        )
        breaks = natural_breaks(counts.present_values(), self.n_classes)
        weights, table = classify_by_breaks(counts, breaks)

        logger.info(
            "Rasterized %d points: max %g per cell, breaks %s",
            len(points),
            float(counts.values.max()),
            breaks,
        )

        return PointDensity(
            counts=counts,
            breaks=breaks,
            table=table,
            weights=weights.with_name(self.weight_name),
        )
