"""
Grid, point and region data structures shared by every pipeline stage.

A Grid is a dense 2D buffer of cell values on a regular, axis-aligned
lattice. Missing cells are tracked by an explicit boolean ``valid`` mask
rather than sentinel values, so reclassification and summation never have
to guess whether a zero means "nothing here" or "no data".

Conventions:
- Row index grows with y, column index grows with x.
- ``origin_x``/``origin_y`` is the lower-left corner of the grid extent.
- Cell (r, c) covers [x0 + c*w, x0 + (c+1)*w) x [y0 + r*h, y0 + (r+1)*h).
"""

import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional, Sequence

import numpy as np
import pandas as pd

# Relative tolerance used when comparing geometries of independently built grids
ALIGNMENT_REL_TOL = 1e-9


@dataclass(frozen=True)
class GridGeometry:
    """Affine mapping between (row, col) indices and planar (x, y) coordinates."""

    origin_x: float
    origin_y: float
    cell_width: float
    cell_height: float
    n_rows: int
    n_cols: int

    def __post_init__(self) -> None:
        if self.cell_width <= 0 or self.cell_height <= 0:
            raise ValueError(
                f"Cell size must be positive, got {self.cell_width} x {self.cell_height}"
            )
        if self.n_rows < 1 or self.n_cols < 1:
            raise ValueError(
                f"Grid dimensions must be positive, got {self.n_rows} x {self.n_cols}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_rows, self.n_cols)

    @property
    def extent(self) -> tuple[float, float, float, float]:
        """Bounds as (min_x, min_y, max_x, max_y)."""
        return (
            self.origin_x,
            self.origin_y,
            self.origin_x + self.n_cols * self.cell_width,
            self.origin_y + self.n_rows * self.cell_height,
        )

    def cell_center(self, row: int, col: int) -> tuple[float, float]:
        return (
            self.origin_x + (col + 0.5) * self.cell_width,
            self.origin_y + (row + 0.5) * self.cell_height,
        )

    def cell_centers(self) -> tuple[np.ndarray, np.ndarray]:
        """
        Return x and y center coordinates for every cell.

        Returns:
            Tuple of (xs, ys), each an array of shape (n_rows, n_cols).
        """
        xs = self.origin_x + (np.arange(self.n_cols) + 0.5) * self.cell_width
        ys = self.origin_y + (np.arange(self.n_rows) + 0.5) * self.cell_height
        xx, yy = np.meshgrid(xs, ys)
        return xx, yy

    def cell_index(self, x: float, y: float) -> tuple[int, int]:
        """Return the (row, col) of the cell containing (x, y), which may be out of range."""
        col = math.floor((x - self.origin_x) / self.cell_width)
        row = math.floor((y - self.origin_y) / self.cell_height)
        return (row, col)

    def contains(self, x: float, y: float) -> bool:
        row, col = self.cell_index(x, y)
        return 0 <= row < self.n_rows and 0 <= col < self.n_cols

    def mismatch(self, other: "GridGeometry") -> Optional[tuple[str, Any, Any]]:
        """
        Find the first geometry field that differs from another geometry.

        Args:
            other: Geometry to compare against.

        Returns:
            Tuple of (field name, own value, other value), or None if aligned.
        """
        if self.shape != other.shape:
            return ("dimensions", self.shape, other.shape)

        own_size = (self.cell_width, self.cell_height)
        other_size = (other.cell_width, other.cell_height)
        if not all(
            math.isclose(a, b, rel_tol=ALIGNMENT_REL_TOL)
            for a, b in zip(own_size, other_size)
        ):
            return ("cell size", own_size, other_size)

        own_origin = (self.origin_x, self.origin_y)
        other_origin = (other.origin_x, other.origin_y)
        # Origins are compared relative to the cell size, not to their magnitude
        tolerance = ALIGNMENT_REL_TOL * max(self.cell_width, self.cell_height)
        if not all(
            abs(a - b) <= tolerance for a, b in zip(own_origin, other_origin)
        ):
            return ("origin", own_origin, other_origin)

        return None

    def is_aligned(self, other: "GridGeometry") -> bool:
        return self.mismatch(other) is None

    def coarsen(self, factor: int) -> "GridGeometry":
        """
        Geometry of a grid aggregated into factor x factor blocks.

        The origin is kept; partial blocks at the top and right edges
        still produce a coarse cell.
        """
        return GridGeometry(
            origin_x=self.origin_x,
            origin_y=self.origin_y,
            cell_width=self.cell_width * factor,
            cell_height=self.cell_height * factor,
            n_rows=-(-self.n_rows // factor),
            n_cols=-(-self.n_cols // factor),
        )


@dataclass(frozen=True, eq=False)
class Grid:
    """
    Dense grid of cell values with an explicit missing-value mask.

    The value and mask buffers are copied on construction and made
    read-only. Missing cells always hold 0.0 in ``values``.

    Attributes:
        geometry: The grid's affine geometry.
        values: float64 array of shape geometry.shape.
        valid: bool array of shape geometry.shape; False marks a missing cell.
        name: Optional name (attribute, weight or score).
    """

    geometry: GridGeometry
    values: np.ndarray
    valid: np.ndarray
    name: str = ""

    def __post_init__(self) -> None:
        values = np.array(self.values, dtype=np.float64)
        valid = np.array(self.valid, dtype=bool)

        if values.shape != self.geometry.shape or valid.shape != self.geometry.shape:
            raise ValueError(
                f"Buffer shapes {values.shape}/{valid.shape} do not match "
                f"geometry {self.geometry.shape}"
            )

        values[~valid] = 0.0
        values.setflags(write=False)
        valid.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "valid", valid)

    @classmethod
    def from_array(
        cls,
        array: Any,
        geometry: GridGeometry,
        name: str = "",
    ) -> "Grid":
        """Build a grid from an array-like where NaN marks missing cells."""
        data = np.asarray(array, dtype=np.float64)
        return cls(geometry, np.nan_to_num(data, nan=0.0), ~np.isnan(data), name)

    @classmethod
    def empty(cls, geometry: GridGeometry, name: str = "") -> "Grid":
        return cls(
            geometry,
            np.zeros(geometry.shape),
            np.zeros(geometry.shape, dtype=bool),
            name,
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.geometry.shape

    @property
    def present_count(self) -> int:
        return int(self.valid.sum())

    def value_at(self, row: int, col: int) -> Optional[float]:
        if not self.valid[row, col]:
            return None
        return float(self.values[row, col])

    def present_values(self) -> np.ndarray:
        return self.values[self.valid]

    def to_array(self, fill: float = np.nan) -> np.ndarray:
        return np.where(self.valid, self.values, fill)

    def with_name(self, name: str) -> "Grid":
        return replace(self, name=name)

    def to_dataframe(self, value_column: Optional[str] = None) -> pd.DataFrame:
        """
        Convert present cells to a long-form DataFrame.

        Args:
            value_column: Name of the value column. Defaults to the grid name,
                or "value" if the grid is unnamed.

        Returns:
            DataFrame with row, col, x, y and value columns, one row per present cell.
        """
        rows, cols = np.nonzero(self.valid)
        xs, ys = self.geometry.cell_centers()
        column = value_column or self.name or "value"

        return pd.DataFrame(
            {
                "row": rows,
                "col": cols,
                "x": xs[rows, cols],
                "y": ys[rows, cols],
                column: self.values[rows, cols],
            }
        )


@dataclass(frozen=True, eq=False)
class PointSet:
    """Point-of-interest locations with optional per-point weights."""

    coordinates: np.ndarray
    weights: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        coords = np.array(self.coordinates, dtype=np.float64).reshape(-1, 2)
        coords.setflags(write=False)
        object.__setattr__(self, "coordinates", coords)

        if self.weights is not None:
            weights = np.array(self.weights, dtype=np.float64).reshape(-1)
            if len(weights) != len(coords):
                raise ValueError(
                    f"Got {len(weights)} weights for {len(coords)} points"
                )
            if not np.isfinite(weights).all():
                raise ValueError("Point weights must be finite")
            weights.setflags(write=False)
            object.__setattr__(self, "weights", weights)

    def __len__(self) -> int:
        return len(self.coordinates)

    @classmethod
    def from_records(cls, records: Iterable[Sequence[float]]) -> "PointSet":
        """
        Build a point set from (x, y) or (x, y, weight) tuples.

        When at least one record carries a weight, records without one
        (None or NaN, as pandas reads a blank cell) get a weight of 1.0.
        """
        coords = []
        weights = []
        has_weights = False

        for record in records:
            coords.append((float(record[0]), float(record[1])))
            weight = record[2] if len(record) > 2 else None
            if not pd.isna(weight):
                has_weights = True
                weights.append(float(weight))
            else:
                weights.append(1.0)

        return cls(
            np.array(coords, dtype=np.float64).reshape(-1, 2),
            np.array(weights) if has_weights else None,
        )

    @classmethod
    def from_geodataframe(
        cls,
        gdf: Any,
        weight_column: Optional[str] = None,
    ) -> "PointSet":
        """
        Build a point set from a GeoDataFrame.

        Non-point geometries (e.g. shop building polygons) are represented
        by their centroids.

        Args:
            gdf: GeoDataFrame in the working projected CRS.
            weight_column: Optional column holding per-point weights.

        Returns:
            PointSet in the GeoDataFrame's coordinates.
        """
        geometry = gdf.geometry
        if len(gdf) and not (geometry.geom_type == "Point").all():
            geometry = geometry.centroid

        coords = np.column_stack([geometry.x.to_numpy(), geometry.y.to_numpy()])
        weights = None
        if weight_column is not None:
            weights = gdf[weight_column].fillna(1.0).to_numpy(dtype=np.float64)

        return cls(coords, weights)


@dataclass(frozen=True)
class Region:
    """
    Connected group of grid cells that passed a threshold.

    Attributes:
        label: Integer label assigned during connected-component labelling.
        cells: (row, col) indices of member cells on the labelled grid.
        centroid: Mean (x, y) of member cell centers.
        total: Sum of member cell values.
        name: Place name resolved externally, if any.
    """

    label: int
    cells: frozenset[tuple[int, int]]
    centroid: tuple[float, float]
    total: float
    name: Optional[str] = field(default=None, compare=False)

    @property
    def size(self) -> int:
        return len(self.cells)

    def with_name(self, name: Optional[str]) -> "Region":
        return replace(self, name=name)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for DataFrame integration."""
        return {
            "label": self.label,
            "name": self.name or "",
            "cell_count": self.size,
            "total": self.total,
            "centroid_x": self.centroid[0],
            "centroid_y": self.centroid[1],
        }
