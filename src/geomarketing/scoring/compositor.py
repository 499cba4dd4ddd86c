"""
Score composition: cell-wise summation of aligned weight grids.

A missing cell contributes nothing as long as another input has a value
there; only cells missing in every input stay missing in the composite.
"""

import logging
from typing import Iterable, Mapping, Sequence, Union

import numpy as np

from ..core.exceptions import GridMismatchError
from ..core.grid import Grid

logger = logging.getLogger(__name__)


def check_alignment(grids: Sequence[Grid]) -> None:
    """
    Ensure all grids share one geometry.

    Raises:
        GridMismatchError: Naming the first differing field and the grids involved.
    """
    if not grids:
        return

    reference = grids[0]
    for grid in grids[1:]:
        difference = reference.geometry.mismatch(grid.geometry)
        if difference is not None:
            field, left, right = difference
            raise GridMismatchError(
                f"Grids '{reference.name}' and '{grid.name}' differ in {field}: "
                f"{left} != {right}",
                field=field,
                left=left,
                right=right,
            )


def composite(grids: Iterable[Grid], name: str = "score") -> Grid:
    """
    Sum aligned grids cell by cell.

    The stacked values are sorted per cell before summing, so the result
    does not depend on input order down to the last bit.

    Args:
        grids: Aligned weight grids.
        name: Name of the composite grid.

    Returns:
        Composite grid.

    Raises:
        ValueError: If no grid is given.
        GridMismatchError: If the grids are not aligned.
    """
    grids = list(grids)
    if not grids:
        raise ValueError("Cannot composite an empty list of grids")

    check_alignment(grids)

    stacked = np.sort(np.stack([grid.values for grid in grids]), axis=0)
    valid = np.logical_or.reduce([grid.valid for grid in grids])
    total = stacked.sum(axis=0)

    return Grid(grids[0].geometry, total, valid, name=name)


class ScoreCompositor:
    """
    Adds up weight grids into a suitability score.

    Usage:
        compositor = ScoreCompositor(exclude=["population"])
        score = compositor.compose(weight_grids)

    Attributes:
        exclude: Grid names left out of the sum (e.g. the population estimate,
            which feeds the metro extraction but is not itself a weight).
    """

    def __init__(self, exclude: Sequence[str] = (), name: str = "score") -> None:
        self.exclude = list(exclude)
        self.name = name

    def compose(self, grids: Union[Mapping[str, Grid], Sequence[Grid]]) -> Grid:
        """
        Composite all grids not excluded by name.

        Args:
            grids: Mapping of name -> grid, or a sequence of named grids.

        Returns:
            Composite score grid.
        """
        if isinstance(grids, Mapping):
            items = list(grids.items())
        else:
            items = [(grid.name, grid) for grid in grids]

        selected = [grid for key, grid in items if key not in self.exclude]
        skipped = [key for key, _ in items if key in self.exclude]
        if skipped:
            logger.debug("Excluded from composite: %s", skipped)

        score = composite(selected, name=self.name)
        logger.info(
            "Composited %d grids into '%s' (%d present cells)",
            len(selected),
            self.name,
            score.present_count,
        )
        return score
