"""
Grid loader for gridded census extracts.

Census grid products publish one row per populated cell, keyed by the
cell's midpoint coordinates, with classed attribute values. Cells without
inhabitants are simply absent. This module infers the regular lattice
behind those midpoints and places each attribute into its own Grid.

Lattice inference:
- Cell size per axis is the smallest non-zero spacing between distinct
  coordinates on that axis.
- The smallest midpoint (min x, min y) is the center of cell (0, 0).
- Dimensions are span / cell size + 1.
"""

import logging
from typing import Iterable, Optional, Sequence

import numpy as np

from ..core.exceptions import MalformedGridError
from ..core.grid import Grid, GridGeometry

logger = logging.getLogger(__name__)

# Off-lattice tolerance, relative to the cell size
LATTICE_REL_TOL = 1e-6


def _infer_spacing(coords: np.ndarray) -> Optional[float]:
    """Smallest positive spacing between distinct coordinates, or None for a single value."""
    distinct = np.unique(coords)
    if len(distinct) < 2:
        return None
    return float(np.diff(distinct).min())


def _lattice_indices(
    coords: np.ndarray,
    origin: float,
    cell_size: float,
    axis: str,
    other_coords: np.ndarray,
    rel_tol: float,
) -> np.ndarray:
    """
    Map coordinates to integer lattice indices.

    Raises:
        MalformedGridError: If a coordinate is not a whole number of cells from the origin.
    """
    offsets = (coords - origin) / cell_size
    indices = np.rint(offsets)
    off_lattice = np.abs(offsets - indices) > rel_tol

    if off_lattice.any():
        position = int(np.argmax(off_lattice))
        if axis == "x":
            coordinate = (float(coords[position]), float(other_coords[position]))
        else:
            coordinate = (float(other_coords[position]), float(coords[position]))
        raise MalformedGridError(
            f"Coordinate {coordinate} is off the {axis} lattice "
            f"(origin {origin}, cell size {cell_size}): irregular spacing",
            coordinate=coordinate,
        )

    return indices.astype(np.int64)


def load_grids(
    records: Iterable[Sequence[float]],
    attributes: Sequence[str],
    cell_size: Optional[float] = None,
    missing_codes: Sequence[float] = (),
    rel_tol: float = LATTICE_REL_TOL,
) -> dict[str, Grid]:
    """
    Build one Grid per attribute from (x, y, value, ...) records.

    Args:
        records: Tuples of cell-midpoint x, y followed by one value per attribute.
        attributes: Attribute names, in record order after x and y.
        cell_size: Explicit cell size for both axes. Inferred if not provided.
        missing_codes: Attribute values that mean "no data" (e.g. -1, -9).
        rel_tol: Off-lattice tolerance relative to the cell size.

    Returns:
        Dictionary of attribute name -> Grid, all sharing one geometry.
        Lattice positions without a record are missing.

    Raises:
        MalformedGridError: If the records do not form a regular lattice.
    """
    attributes = list(attributes)
    rows = [tuple(record) for record in records]

    if not rows:
        raise MalformedGridError("Cannot build a grid from zero records")

    width = 2 + len(attributes)
    for record in rows:
        if len(record) != width:
            raise MalformedGridError(
                f"Expected {width} fields (x, y, {', '.join(attributes)}), "
                f"got {len(record)} in {record}",
                coordinate=(float(record[0]), float(record[1])) if len(record) >= 2 else None,
            )

    data = np.array(
        [[np.nan if value is None else value for value in record] for record in rows],
        dtype=np.float64,
    ).reshape(len(rows), width)
    xs, ys = data[:, 0], data[:, 1]

    if not (np.isfinite(xs).all() and np.isfinite(ys).all()):
        position = int(np.argmax(~(np.isfinite(xs) & np.isfinite(ys))))
        coordinate = (float(xs[position]), float(ys[position]))
        raise MalformedGridError(
            f"Non-finite coordinate {coordinate}", coordinate=coordinate
        )

    if cell_size is not None:
        if cell_size <= 0:
            raise MalformedGridError(f"Cell size must be positive, got {cell_size}")
        dx = dy = float(cell_size)
    else:
        dx = _infer_spacing(xs)
        dy = _infer_spacing(ys)
        # A single row or column borrows the spacing of the other axis
        dx = dx if dx is not None else dy
        dy = dy if dy is not None else dx
        if dx is None or dy is None:
            raise MalformedGridError(
                "Cannot infer cell size from a single coordinate; pass cell_size explicitly",
                coordinate=(float(xs[0]), float(ys[0])),
            )

    min_x, min_y = float(xs.min()), float(ys.min())
    cols = _lattice_indices(xs, min_x, dx, "x", ys, rel_tol)
    rows_idx = _lattice_indices(ys, min_y, dy, "y", xs, rel_tol)

    n_cols = int(cols.max()) + 1
    n_rows = int(rows_idx.max()) + 1

    flat = rows_idx * n_cols + cols
    unique_cells, counts = np.unique(flat, return_counts=True)
    if (counts > 1).any():
        duplicate = int(unique_cells[np.argmax(counts > 1)])
        position = int(np.nonzero(flat == duplicate)[0][1])
        coordinate = (float(xs[position]), float(ys[position]))
        raise MalformedGridError(
            f"More than one record for the cell at {coordinate}",
            coordinate=coordinate,
        )

    geometry = GridGeometry(
        origin_x=min_x - dx / 2,
        origin_y=min_y - dy / 2,
        cell_width=dx,
        cell_height=dy,
        n_rows=n_rows,
        n_cols=n_cols,
    )

    logger.info(
        "Loaded %d records onto a %d x %d lattice (cell size %g x %g, %.1f%% filled)",
        len(rows),
        n_rows,
        n_cols,
        dx,
        dy,
        100 * len(rows) / (n_rows * n_cols),
    )

    missing = np.asarray(list(missing_codes), dtype=np.float64)
    grids: dict[str, Grid] = {}

    for offset, attribute in enumerate(attributes):
        column = data[:, 2 + offset]
        present = np.isfinite(column)
        if missing.size:
            present &= ~np.isin(column, missing)

        values = np.zeros(geometry.shape)
        valid = np.zeros(geometry.shape, dtype=bool)
        values[rows_idx, cols] = np.where(present, column, 0.0)
        valid[rows_idx, cols] = present

        grids[attribute] = Grid(geometry, values, valid, name=attribute)
        logger.debug(
            "Attribute '%s': %d present, %d missing codes",
            attribute,
            int(present.sum()),
            int((~present).sum()),
        )

    return grids
