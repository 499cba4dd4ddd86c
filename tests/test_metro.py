import numpy as np
import pytest

from geomarketing.core import Grid, GridGeometry
from geomarketing.processing.metro import (
    MetroAreaExtractor,
    downsample,
    extract_regions,
    label_components,
    threshold,
)


def make_grid(values, cell=1.0):
    data = np.asarray(values, dtype=float)
    geometry = GridGeometry(0.0, 0.0, cell, cell, data.shape[0], data.shape[1])
    return Grid.from_array(data, geometry, name="population")


def test_block_above_threshold_forms_one_region():
    # 2 x 2 block of 150,000 each next to an isolated cell of 100,000
    population = make_grid(
        [
            [150_000, 150_000, 100_000, 0],
            [150_000, 150_000, 0, 0],
        ]
    )
    metros = MetroAreaExtractor(factor=2, minimum_population=500_000).extract(population)

    assert len(metros.regions) == 1
    region = metros.regions[0]
    assert region.total == 600_000
    assert region.cells == frozenset({(0, 0)})
    assert metros.source_cells(region, population.geometry) == {(0, 0), (0, 1), (1, 0), (1, 1)}
    assert metros.aggregated.to_array().tolist() == [[600_000.0, 100_000.0]]


def test_diagonal_cells_are_separate_regions():
    active = make_grid([[1, np.nan], [np.nan, 1]])
    labels = label_components(active)

    assert labels.tolist() == [[1, 0], [0, 2]]
    assert len(extract_regions(active, labels)) == 2


def test_labels_follow_row_major_first_cell():
    active = make_grid(
        [
            [np.nan, np.nan, 1],
            [1, np.nan, 1],
            [1, 1, 1],
        ]
    )
    labels = label_components(active)

    # The L-shape and the right column touch at (2, 2) and form one region
    assert labels.tolist() == [[0, 0, 1], [1, 0, 1], [1, 1, 1]]


def test_every_active_cell_is_labelled():
    rng = np.random.default_rng(7)
    values = np.where(rng.random((12, 15)) > 0.5, 1.0, np.nan)
    active = make_grid(values)
    labels = label_components(active)

    assert ((labels > 0) == active.valid).all()
    regions = extract_regions(active, labels)
    assert sum(region.size for region in regions) == active.present_count
    assert [region.label for region in regions] == list(range(1, len(regions) + 1))


@pytest.mark.parametrize(
    "transform, restore",
    [
        (np.flipud, lambda r, c, shape: (shape[0] - 1 - r, c)),
        (np.fliplr, lambda r, c, shape: (r, shape[1] - 1 - c)),
        (np.transpose, lambda r, c, shape: (c, r)),
    ],
    ids=["rows-reversed", "cols-reversed", "transposed"],
)
def test_regions_do_not_depend_on_scan_order(transform, restore):
    rng = np.random.default_rng(11)
    values = np.where(rng.random((12, 15)) > 0.45, 1.0, np.nan)

    def component_cells(data, mapping=None):
        regions = extract_regions(make_grid(data))
        if mapping is None:
            return {region.cells for region in regions}
        return {
            frozenset(mapping(r, c, values.shape) for r, c in region.cells)
            for region in regions
        }

    expected = component_cells(values)
    assert len(expected) > 1
    assert component_cells(transform(values), restore) == expected


def test_threshold_is_strict():
    grid = make_grid([[500_000, 500_001]])
    active = threshold(grid, 500_000)
    assert active.valid.tolist() == [[False, True]]


def test_downsample_ragged_edges_and_missing_blocks():
    grid = make_grid(
        [
            [1, 2, 3],
            [4, 5, np.nan],
            [np.nan, np.nan, 7],
        ]
    )
    coarse = downsample(grid, 2)

    assert coarse.shape == (2, 2)
    assert coarse.geometry.cell_width == 2.0
    assert coarse.to_array(fill=-1).tolist() == [[12.0, 3.0], [-1.0, 7.0]]
    assert not coarse.valid[1, 0]


def test_downsample_factor_one_is_identity():
    grid = make_grid([[1, np.nan], [3, 4]])
    same = downsample(grid, 1)
    assert np.array_equal(same.to_array(), grid.to_array(), equal_nan=True)
    assert same.geometry == grid.geometry


def test_downsample_rejects_bad_factor():
    with pytest.raises(ValueError):
        downsample(make_grid([[1]]), 0)
    with pytest.raises(ValueError):
        MetroAreaExtractor(factor=0)


def test_no_cell_above_threshold_gives_no_regions():
    metros = MetroAreaExtractor(factor=1, minimum_population=10).extract(make_grid([[1, 2], [3, 4]]))
    assert metros.regions == []
    assert metros.labels.max() == 0


def test_region_centroid_and_total():
    grid = make_grid([[10, 10, np.nan], [np.nan, 10, np.nan]], cell=1000.0)
    region = extract_regions(grid)[0]

    assert region.size == 3
    assert region.total == 30.0
    assert region.centroid == pytest.approx(((500 + 1500 + 1500) / 3, (500 + 500 + 1500) / 3))


def test_with_names_keeps_unnamed_regions():
    metros = MetroAreaExtractor(factor=1, minimum_population=0).extract(
        make_grid([[1, np.nan, 1]])
    )
    named = metros.with_names({1: "Hamburg"})

    assert [region.name for region in named.regions] == ["Hamburg", None]
    assert named.regions[0] == metros.regions[0]
