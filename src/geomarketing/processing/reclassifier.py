"""
Class reclassification for gridded attributes.

Census attributes arrive as class codes (1 = "under 250 inhabitants",
2 = "250 - 500", ...). Before they can be aggregated or added up they
are replaced by numeric values through a ReclassRule: a representative
headcount for the population classes, a suitability weight for the
demographic ones.

Continuous values (counts, scores) go the other way: a ClassBreakTable
turns them into class codes.
"""

import logging
from typing import Mapping

import numpy as np

from ..core.exceptions import ConfigError, UnmappedClassError
from ..core.grid import Grid
from ..core.models import ClassBreakTable, ReclassRule

logger = logging.getLogger(__name__)


def _format_code(code: float) -> object:
    return int(code) if float(code).is_integer() else float(code)


def reclassify(grid: Grid, rule: ReclassRule, strict: bool = True) -> Grid:
    """
    Replace every class code of a grid with the rule's value.

    Args:
        grid: Grid of integer class codes.
        rule: Lookup from code to replacement value.
        strict: If True, an unmapped code raises. If False, the cell becomes missing.

    Returns:
        New Grid with the same geometry; missing cells stay missing.

    Raises:
        UnmappedClassError: If a present code (or a non-integral value) has no rule.
    """
    attribute = rule.attribute or grid.name
    codes = grid.present_values()

    distinct, inverse = np.unique(codes, return_inverse=True)
    replacement = np.zeros(len(distinct))
    mapped = np.ones(len(distinct), dtype=bool)

    for position, code in enumerate(distinct):
        if float(code).is_integer() and int(code) in rule.mapping:
            replacement[position] = rule.mapping[int(code)]
            continue

        if strict:
            raise UnmappedClassError(
                f"Class {_format_code(code)} of '{attribute}' has no reclassification rule "
                f"(mapped classes: {rule.codes})",
                code=_format_code(code),
                attribute=attribute,
            )
        mapped[position] = False

    values = np.zeros(grid.shape)
    valid = grid.valid.copy()
    values[grid.valid] = replacement[inverse]
    valid[grid.valid] = mapped[inverse]

    dropped = int(grid.valid.sum() - valid.sum())
    if dropped:
        logger.warning(
            "Reclassifying '%s': %d cells with unmapped classes set to missing",
            attribute,
            dropped,
        )

    return Grid(grid.geometry, values, valid, name=grid.name)


def reclassify_attributes(
    grids: Mapping[str, Grid],
    rules: Mapping[str, ReclassRule],
    strict: bool = True,
) -> dict[str, Grid]:
    """
    Reclassify each attribute grid with its own rule.

    Args:
        grids: Attribute name -> grid of class codes.
        rules: Attribute name -> rule.
        strict: Passed to reclassify().

    Returns:
        Attribute name -> reclassified grid.

    Raises:
        ConfigError: If an attribute has no rule.
    """
    missing_rules = [name for name in grids if name not in rules]
    if missing_rules:
        raise ConfigError(
            f"No reclassification rule for attributes: {missing_rules} "
            f"(configured: {sorted(rules)})"
        )

    result = {}
    for name, grid in grids.items():
        result[name] = reclassify(grid, rules[name], strict=strict)
        logger.info(
            "Reclassified '%s': %d cells, classes %s",
            name,
            result[name].present_count,
            rules[name].codes,
        )
    return result


def classify(grid: Grid, table: ClassBreakTable) -> Grid:
    """
    Map continuous values to class codes through a break table.

    Intervals are [lower, upper); the top interval includes its upper
    bound when the table is ``closed_top``. Values outside every interval
    become missing.

    Args:
        grid: Grid of continuous values.
        table: Break table to classify with.

    Returns:
        New Grid of class codes.
    """
    lowers = np.asarray(table.lower_bounds)
    uppers = np.asarray(table.upper_bounds)
    codes = np.asarray(table.codes, dtype=np.float64)

    values = grid.values
    index = np.searchsorted(lowers, values, side="right") - 1
    safe_index = np.clip(index, 0, len(lowers) - 1)

    inside = (index >= 0) & (values < uppers[safe_index])
    if table.closed_top:
        inside |= values == uppers[-1]
        safe_index = np.where(values == uppers[-1], len(lowers) - 1, safe_index)

    valid = grid.valid & inside
    outside = int(grid.valid.sum() - valid.sum())
    if outside:
        logger.debug("Classify: %d cells outside all intervals set to missing", outside)

    return Grid(grid.geometry, codes[safe_index], valid, name=grid.name)
