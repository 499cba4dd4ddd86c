"""
Metropolitan area extraction from a population grid.

Metro areas are delineated in three steps:

1. Downsample the fine population grid (e.g. 1 km) into coarse blocks
   (e.g. 20 km) by summing the estimated headcounts.
2. Keep coarse cells whose population strictly exceeds a threshold
   (e.g. 500,000 inhabitants).
3. Group the remaining cells into connected regions. Cells are
   neighbours only when they share an edge (4-connectivity); touching
   corners do not join two regions.

Each region gets the mean of its member cell centers as centroid. Since
all cells of a regular grid have the same area, this is the area-weighted
centroid.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np
from scipy import ndimage

from ..core.grid import Grid, GridGeometry, Region

logger = logging.getLogger(__name__)

# Edge-sharing neighbours only (von Neumann neighbourhood)
FOUR_CONNECTIVITY = ndimage.generate_binary_structure(2, 1)


def downsample(grid: Grid, factor: int) -> Grid:
    """
    Aggregate a grid into factor x factor blocks by summing.

    Blocks hanging over the top or right edge aggregate only their
    in-range cells. Missing cells contribute nothing; a block with no
    present cell is missing.

    Args:
        grid: Fine grid.
        factor: Block size in cells (>= 1).

    Returns:
        Coarse grid with cell size ``factor`` times the input's.
    """
    if factor < 1:
        raise ValueError(f"Aggregation factor must be >= 1, got {factor}")

    geometry = grid.geometry.coarsen(factor)
    rows, cols = geometry.n_rows * factor, geometry.n_cols * factor

    values = np.zeros((rows, cols))
    valid = np.zeros((rows, cols), dtype=bool)
    values[: grid.shape[0], : grid.shape[1]] = grid.values
    valid[: grid.shape[0], : grid.shape[1]] = grid.valid

    block_shape = (geometry.n_rows, factor, geometry.n_cols, factor)
    sums = values.reshape(block_shape).sum(axis=(1, 3))
    present = valid.reshape(block_shape).any(axis=(1, 3))

    logger.debug(
        "Downsampled %s grid %s -> %s (factor %d)",
        grid.name or "unnamed",
        grid.shape,
        geometry.shape,
        factor,
    )

    return Grid(geometry, sums, present, name=grid.name)


def threshold(grid: Grid, minimum: float) -> Grid:
    """Keep cells whose value is strictly greater than ``minimum``; all others become missing."""
    active = grid.valid & (grid.values > minimum)
    return Grid(grid.geometry, grid.values, active, name=grid.name)


def label_components(grid: Grid) -> np.ndarray:
    """
    Label 4-connected groups of present cells.

    Labels are 1, 2, ... in row-major order of each region's first cell.

    Args:
        grid: Grid whose present cells are the active cells.

    Returns:
        int array of grid.shape; 0 marks background, 1..N the regions.
    """
    labels, count = ndimage.label(grid.valid, structure=FOUR_CONNECTIVITY)
    logger.debug("Labelled %d connected regions", count)
    return labels.astype(np.int64)


def extract_regions(grid: Grid, labels: Optional[np.ndarray] = None) -> list[Region]:
    """
    Build a Region for every connected group of present cells.

    Args:
        grid: Grid whose present cells are the active cells.
        labels: Precomputed labels from label_components(). Computed if not provided.

    Returns:
        Regions ordered by label; empty if no cell is present.
    """
    if labels is None:
        labels = label_components(grid)

    xs, ys = grid.geometry.cell_centers()
    regions = []

    for label in range(1, int(labels.max(initial=0)) + 1):
        rows, cols = np.nonzero(labels == label)
        regions.append(
            Region(
                label=label,
                cells=frozenset(zip(rows.tolist(), cols.tolist())),
                centroid=(float(xs[rows, cols].mean()), float(ys[rows, cols].mean())),
                total=float(grid.values[rows, cols].sum()),
            )
        )

    return regions


def name_regions(regions: Sequence[Region], names: Mapping[int, str]) -> list[Region]:
    """Attach externally resolved names to regions by label."""
    return [region.with_name(names.get(region.label, region.name)) for region in regions]


@dataclass(frozen=True, eq=False)
class MetroAreas:
    """
    Result of a metro-area extraction.

    Attributes:
        aggregated: Downsampled population grid.
        active: Aggregated grid restricted to cells above the threshold.
        labels: Region label per coarse cell (0 = background).
        regions: Regions ordered by label.
        factor: Aggregation factor used.
        minimum_population: Threshold used.
    """

    aggregated: Grid
    active: Grid
    labels: np.ndarray
    regions: list[Region]
    factor: int
    minimum_population: float

    @property
    def geometry(self) -> GridGeometry:
        return self.aggregated.geometry

    def source_cells(self, region: Region, fine_geometry: GridGeometry) -> set[tuple[int, int]]:
        """
        Expand a region's coarse cells to the fine cells they aggregate.

        Args:
            region: Region labelled on the coarse grid.
            fine_geometry: Geometry of the grid that was downsampled.

        Returns:
            Set of in-range (row, col) indices on the fine grid.
        """
        k = self.factor
        cells = set()
        for row, col in region.cells:
            for r in range(row * k, min((row + 1) * k, fine_geometry.n_rows)):
                for c in range(col * k, min((col + 1) * k, fine_geometry.n_cols)):
                    cells.add((r, c))
        return cells

    def with_names(self, names: Mapping[int, str]) -> "MetroAreas":
        return MetroAreas(
            aggregated=self.aggregated,
            active=self.active,
            labels=self.labels,
            regions=name_regions(self.regions, names),
            factor=self.factor,
            minimum_population=self.minimum_population,
        )


class MetroAreaExtractor:
    """
    Delineates metropolitan areas from a population estimate grid.

    Usage:
        extractor = MetroAreaExtractor(factor=20, minimum_population=500_000)
        metros = extractor.extract(population_grid)
        for region in metros.regions:
            print(region.label, region.total, region.centroid)

    Attributes:
        factor: Downsampling block size in cells.
        minimum_population: Coarse cells must strictly exceed this value.
    """

    def __init__(self, factor: int = 20, minimum_population: float = 500_000) -> None:
        if factor < 1:
            raise ValueError(f"Aggregation factor must be >= 1, got {factor}")
        self.factor = factor
        self.minimum_population = minimum_population

    def extract(self, population: Grid) -> MetroAreas:
        """
        Run downsample -> threshold -> label on a population grid.

        Args:
            population: Grid of population estimates (not class codes).

        Returns:
            MetroAreas with the intermediate grids and the regions found.
        """
        aggregated = downsample(population, self.factor)
        active = threshold(aggregated, self.minimum_population)
        labels = label_components(active)
        regions = extract_regions(active, labels)

        if regions:
            logger.info(
                "Found %d metro areas above %s inhabitants (%d of %d coarse cells)",
                len(regions),
                f"{self.minimum_population:,.0f}",
                active.present_count,
                aggregated.present_count,
            )
        else:
            logger.info(
                "No coarse cell exceeds %s inhabitants; no metro areas",
                f"{self.minimum_population:,.0f}",
            )

        return MetroAreas(
            aggregated=aggregated,
            active=active,
            labels=labels,
            regions=regions,
            factor=self.factor,
            minimum_population=self.minimum_population,
        )
