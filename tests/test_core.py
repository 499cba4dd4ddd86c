import numpy as np
import pytest
from pydantic import ValidationError

from geomarketing.core import (
    ClassBreakTable,
    ClassInterval,
    Grid,
    GridGeometry,
    PointSet,
    ReclassRule,
    Region,
)


def test_geometry_extent_and_cell_centers(unit_geometry):
    assert unit_geometry.extent == (0.0, 0.0, 2.0, 2.0)
    assert unit_geometry.cell_center(1, 0) == (0.5, 1.5)

    xs, ys = unit_geometry.cell_centers()
    assert xs.tolist() == [[0.5, 1.5], [0.5, 1.5]]
    assert ys.tolist() == [[0.5, 0.5], [1.5, 1.5]]


def test_geometry_extent_is_half_open(unit_geometry):
    assert unit_geometry.contains(0.0, 0.0)
    assert unit_geometry.contains(1.999, 1.999)
    assert not unit_geometry.contains(2.0, 1.0)
    assert not unit_geometry.contains(1.0, 2.0)
    assert not unit_geometry.contains(-0.001, 1.0)


def test_geometry_rejects_non_positive_sizes():
    with pytest.raises(ValueError):
        GridGeometry(0.0, 0.0, 0.0, 1.0, 2, 2)
    with pytest.raises(ValueError):
        GridGeometry(0.0, 0.0, 1.0, 1.0, 0, 2)


def test_geometry_mismatch_names_field(unit_geometry):
    shifted = GridGeometry(0.5, 0.0, 1.0, 1.0, 2, 2)
    larger = GridGeometry(0.0, 0.0, 1.0, 1.0, 3, 2)
    coarser = GridGeometry(0.0, 0.0, 2.0, 2.0, 2, 2)

    assert unit_geometry.mismatch(unit_geometry) is None
    assert unit_geometry.mismatch(shifted)[0] == "origin"
    assert unit_geometry.mismatch(larger)[0] == "dimensions"
    assert unit_geometry.mismatch(coarser)[0] == "cell size"


def test_geometry_alignment_tolerates_rounding():
    a = GridGeometry(4_400_000.0, 3_100_000.0, 1000.0, 1000.0, 2, 2)
    b = GridGeometry(4_400_000.0 + 1e-9, 3_100_000.0, 1000.0 * (1 + 1e-12), 1000.0, 2, 2)
    assert a.is_aligned(b)


def test_coarsen_rounds_dimensions_up(unit_geometry):
    geometry = GridGeometry(10.0, 20.0, 1.0, 1.0, 5, 3).coarsen(2)
    assert geometry.shape == (3, 2)
    assert (geometry.origin_x, geometry.origin_y) == (10.0, 20.0)
    assert geometry.cell_width == 2.0


def test_grid_zeroes_missing_cells_and_is_read_only(unit_geometry):
    grid = Grid(unit_geometry, [[1.0, 7.0], [3.0, 4.0]], [[True, False], [True, True]])

    assert grid.values[0, 1] == 0.0
    assert grid.value_at(0, 1) is None
    assert grid.value_at(1, 0) == 3.0
    assert grid.present_count == 3
    with pytest.raises(ValueError):
        grid.values[0, 0] = 5.0


def test_grid_copies_input_buffers(unit_geometry):
    values = np.ones((2, 2))
    grid = Grid(unit_geometry, values, np.ones((2, 2), dtype=bool))
    values[0, 0] = 9.0
    assert grid.values[0, 0] == 1.0


def test_grid_rejects_wrong_shape(unit_geometry):
    with pytest.raises(ValueError):
        Grid(unit_geometry, np.zeros((3, 2)), np.ones((3, 2), dtype=bool))


def test_grid_from_array_treats_nan_as_missing(unit_geometry):
    grid = Grid.from_array([[1.0, np.nan], [2.0, 3.0]], unit_geometry, name="a")
    assert grid.valid.tolist() == [[True, False], [True, True]]
    assert np.isnan(grid.to_array()[0, 1])
    assert grid.to_array(fill=-1)[0, 1] == -1


def test_grid_to_dataframe_lists_present_cells(unit_geometry):
    grid = Grid.from_array([[1.0, np.nan], [2.0, 3.0]], unit_geometry, name="score")
    df = grid.to_dataframe()

    assert list(df.columns) == ["row", "col", "x", "y", "score"]
    assert len(df) == 3
    assert df.iloc[0][["x", "y", "score"]].tolist() == [0.5, 0.5, 1.0]


def test_point_set_from_records_fills_missing_weights():
    points = PointSet.from_records([(0.0, 0.0), (1.0, 1.0, 2.5)])
    assert len(points) == 2
    assert points.weights.tolist() == [1.0, 2.5]

    unweighted = PointSet.from_records([(0.0, 0.0)])
    assert unweighted.weights is None


def test_point_set_from_records_treats_nan_weight_as_missing():
    points = PointSet.from_records([(0.5, 0.5, 2.0), (0.5, 0.6, float("nan")), (1.5, 1.5, None)])
    assert points.weights.tolist() == [2.0, 1.0, 1.0]


def test_point_set_rejects_weight_count_mismatch():
    with pytest.raises(ValueError):
        PointSet(np.zeros((2, 2)), weights=[1.0])


def test_point_set_rejects_infinite_weights():
    with pytest.raises(ValueError, match="finite"):
        PointSet(np.zeros((2, 2)), weights=[1.0, np.inf])


def test_region_to_dict():
    region = Region(label=1, cells=frozenset({(0, 0), (0, 1)}), centroid=(1.0, 0.5), total=1200.0)
    named = region.with_name("Berlin")

    assert named == region
    assert named.to_dict() == {
        "label": 1,
        "name": "Berlin",
        "cell_count": 2,
        "total": 1200.0,
        "centroid_x": 1.0,
        "centroid_y": 0.5,
    }


def test_break_table_classifies_right_open_intervals():
    table = ClassBreakTable.from_breaks([0, 6, 9, 12], codes=[1, 2, 3], closed_top=True)

    assert table.classify(0) == 1
    assert table.classify(5.999) == 1
    assert table.classify(6) == 2
    assert table.classify(9) == 3
    assert table.classify(12) == 3
    assert table.classify(12.5) is None
    assert table.classify(-1) is None


def test_break_table_open_top_excludes_upper_bound():
    table = ClassBreakTable.from_breaks([0, 10], closed_top=False)
    assert table.classify(10) is None
    assert table.codes == [1]
    assert table.label_for(1) == "0 - 10"


@pytest.mark.parametrize(
    "intervals",
    [
        [(0, 5, 1), (6, 10, 2)],  # gap
        [(0, 5, 1), (4, 10, 2)],  # overlap
        [(0, 5, 1), (5, 10, 1)],  # duplicate code
        [(0, 0, 1), (0, 10, 2)],  # empty interval
    ],
)
def test_break_table_rejects_invalid_partitions(intervals):
    with pytest.raises(ValidationError):
        ClassBreakTable(
            intervals=[ClassInterval(lower=lo, upper=hi, code=code) for lo, hi, code in intervals]
        )


def test_break_table_from_single_bound_is_degenerate():
    table = ClassBreakTable.from_breaks([3.0], codes=[0])
    assert table.classify(3.0) == 0
    assert table.classify(3.1) is None

    with pytest.raises(ValueError):
        ClassBreakTable.from_breaks([])


def test_reclass_rule_expands_inclusive_ranges():
    rule = ReclassRule(attribute="women", ranges=[[1, 1, 3], [2, 2, 2], [3, 3, 1], [4, 5, 0]])
    assert rule.mapping == {1: 3.0, 2: 2.0, 3: 1.0, 4: 0.0, 5: 0.0}
    assert rule.codes == [1, 2, 3, 4, 5]


def test_reclass_rule_explicit_mapping_overrides_ranges():
    rule = ReclassRule(ranges=[[1, 3, 0]], mapping={2: 5})
    assert rule.mapping == {1: 0.0, 2: 5.0, 3: 0.0}


def test_reclass_rule_rejects_bad_ranges():
    with pytest.raises(ValidationError):
        ReclassRule(ranges=[[3, 1, 0]])
    with pytest.raises(ValidationError):
        ReclassRule(ranges=[[1, 0]])


def test_reclass_rule_inverse():
    rule = ReclassRule(attribute="population", mapping={1: 127, 2: 375})
    assert rule.inverse().mapping == {127: 1.0, 375: 2.0}

    many_to_one = ReclassRule(mapping={4: 0, 5: 0})
    assert not many_to_one.is_invertible()
    with pytest.raises(ValueError):
        many_to_one.inverse()
