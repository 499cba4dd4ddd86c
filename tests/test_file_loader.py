import json

import pytest

from geomarketing.acquisition import AcquisitionError, CensusFileLoader

CENSUS_CSV = """Gitter_ID_1km;x_mp_1km;y_mp_1km;Einwohner;Frauen_A;Alter_D;HHGroesse_D
1kmN3100E4400;4400500;3100500;2;1;1;2
1kmN3100E4401;4401500;3100500;3;-1;2;1
1kmN3101E4400;4400500;3101500;1;2;-9;3
"""


@pytest.fixture
def census_csv(tmp_path):
    path = tmp_path / "census.csv"
    path.write_text(CENSUS_CSV)
    return path


def test_census_table_columns_are_standardized(census_csv):
    table = CensusFileLoader(census_path=census_csv, separator=";").load_census_table()

    assert {"x", "y", "population", "women", "mean_age", "household_size"} <= set(table.columns)
    assert "Gitter_ID_1km" in table.columns
    assert len(table) == 3


def test_census_grids_mark_missing_cells(census_csv):
    grids = CensusFileLoader(census_path=census_csv, separator=";").load_census_grids()

    assert sorted(grids) == ["household_size", "mean_age", "population", "women"]
    population = grids["population"]
    assert population.shape == (2, 2)
    assert population.geometry.origin_x == 4_400_000.0
    assert population.geometry.origin_y == 3_100_000.0
    assert population.to_array(fill=0).tolist() == [[2.0, 3.0], [1.0, 0.0]]

    # -1 and -9 are suppressed values
    assert grids["women"].valid.tolist() == [[True, False], [True, False]]
    assert grids["mean_age"].valid.tolist() == [[True, True], [False, False]]


def test_missing_census_file_raises(tmp_path):
    loader = CensusFileLoader(census_path=tmp_path / "missing.csv")
    with pytest.raises(AcquisitionError, match="not found"):
        loader.load_census_table()


def test_missing_census_column_raises(census_csv):
    loader = CensusFileLoader(census_path=census_csv, separator=";")
    with pytest.raises(AcquisitionError, match="missing columns"):
        loader.load_census_grids(["population", "income"])


def test_points_csv_with_weights(tmp_path):
    path = tmp_path / "shops.csv"
    path.write_text("name,x,y,floor_area\nA,4400500,3100500,800\nB,4401200,3100900,\n")

    points = CensusFileLoader(project_root=tmp_path).load_points(path, weight_column="floor_area")

    assert len(points) == 2
    assert points.coordinates.tolist() == [[4400500.0, 3100500.0], [4401200.0, 3100900.0]]
    assert points.weights.tolist() == [800.0, 1.0]


def test_points_csv_requires_coordinates(tmp_path):
    path = tmp_path / "shops.csv"
    path.write_text("name,lon,lat\nA,10.0,52.0\n")

    with pytest.raises(AcquisitionError, match="missing columns"):
        CensusFileLoader(project_root=tmp_path).load_points(path)


def test_geojson_points_are_reprojected(tmp_path):
    path = tmp_path / "shops.geojson"
    path.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {
                        "type": "Feature",
                        "properties": {"name": "A"},
                        "geometry": {"type": "Point", "coordinates": [10.0, 52.0]},
                    }
                ],
            }
        )
    )

    points = CensusFileLoader(project_root=tmp_path).load_points(path, target_crs="EPSG:3035")

    # 10 E / 52 N is the projection center of ETRS89-LAEA
    assert len(points) == 1
    assert points.coordinates[0].tolist() == pytest.approx([4_321_000.0, 3_210_000.0], abs=1.0)
    assert points.weights is None
