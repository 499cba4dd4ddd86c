import numpy as np
import pytest

from geomarketing.core import ClassBreakTable, Grid, ReclassRule
from geomarketing.core.exceptions import ConfigError, UnmappedClassError
from geomarketing.processing.reclassifier import classify, reclassify, reclassify_attributes

POPULATION = ReclassRule(
    attribute="population",
    mapping={1: 127, 2: 375, 3: 1250, 4: 3000, 5: 6000, 6: 8000},
)


def test_reclassify_replaces_codes_and_keeps_missing(unit_geometry):
    grid = Grid.from_array([[1, 6], [np.nan, 3]], unit_geometry, name="population")
    result = reclassify(grid, POPULATION)

    assert result.valid.tolist() == [[True, True], [False, True]]
    assert result.to_array(fill=-1).tolist() == [[127.0, 8000.0], [-1.0, 1250.0]]
    assert result.geometry == grid.geometry
    assert result.name == "population"


def test_unmapped_code_raises_in_strict_mode(unit_geometry):
    grid = Grid.from_array([[1, 7], [2, 3]], unit_geometry, name="population")

    with pytest.raises(UnmappedClassError) as excinfo:
        reclassify(grid, POPULATION)
    assert excinfo.value.code == 7
    assert excinfo.value.attribute == "population"


def test_unmapped_code_becomes_missing_in_lenient_mode(unit_geometry):
    grid = Grid.from_array([[1, 7], [2, 7]], unit_geometry, name="population")
    result = reclassify(grid, POPULATION, strict=False)

    assert result.valid.tolist() == [[True, False], [True, False]]
    assert result.present_values().tolist() == [127.0, 375.0]


def test_non_integral_code_is_unmapped(unit_geometry):
    grid = Grid.from_array([[1, 1.5], [2, 3]], unit_geometry)
    with pytest.raises(UnmappedClassError) as excinfo:
        reclassify(grid, POPULATION)
    assert excinfo.value.code == 1.5


def test_inverse_rule_restores_codes(unit_geometry):
    grid = Grid.from_array([[1, 2], [5, np.nan]], unit_geometry)
    restored = reclassify(reclassify(grid, POPULATION), POPULATION.inverse())
    assert np.array_equal(restored.to_array(), grid.to_array(), equal_nan=True)


def test_reclassify_attributes_requires_rule_per_grid(unit_geometry):
    grids = {
        "population": Grid.from_array([[1, 2], [3, 4]], unit_geometry, name="population"),
        "women": Grid.from_array([[1, 2], [3, 4]], unit_geometry, name="women"),
    }
    with pytest.raises(ConfigError):
        reclassify_attributes(grids, {"population": POPULATION})

    rules = {"population": POPULATION, "women": ReclassRule(ranges=[[1, 1, 3], [2, 5, 0]])}
    result = reclassify_attributes(grids, rules)
    assert result["women"].to_array().tolist() == [[3.0, 0.0], [0.0, 0.0]]


def test_classify_uses_lower_inclusive_intervals(unit_geometry):
    table = ClassBreakTable.from_breaks([0, 6, 9, 12], codes=[1, 2, 3], closed_top=True)
    grid = Grid.from_array([[5.99, 6.0], [12.0, 13.0]], unit_geometry)

    result = classify(grid, table)
    assert result.valid.tolist() == [[True, True], [True, False]]
    assert result.to_array(fill=0).tolist() == [[1.0, 2.0], [3.0, 0.0]]


def test_classify_matches_table_lookup(unit_geometry):
    table = ClassBreakTable.from_breaks([0, 2.5, 7, 10], closed_top=False)
    values = [[0.0, 2.5], [9.999, 10.0]]
    result = classify(Grid.from_array(values, unit_geometry), table)

    for row in range(2):
        for col in range(2):
            assert result.value_at(row, col) == table.classify(values[row][col])
