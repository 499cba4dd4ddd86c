import textwrap

import pytest

from geomarketing.acquisition.grid_loader import load_grids
from geomarketing.acquisition.models import RateLimitConfig, RetryConfig, ServiceConfig
from geomarketing.core.grid import GridGeometry, PointSet
from geomarketing.scoring.suitability_scorer import SuitabilityScorer

# Cell midpoints of a 2 x 2 block of 1 km census cells in EPSG:3035
X0 = 4_400_500.0
Y0 = 3_100_500.0
CELL = 1000.0

SCORER_CONFIG = """
reclassification:
  population:
    mapping:
      1: 100
      2: 1000
  women:
    ranges:
      - [1, 1, 3]
      - [2, 5, 0]
metro:
  attribute: population
  aggregation_factor: 1
  minimum_population: 500
points_of_interest:
  n_classes: 2
composite:
  exclude: [population]
  minimum_score: 3
  within_metro: true
classification:
  closed_top: true
  tiers:
    - {min: 0, max: 3, code: 1, label: Low}
    - {min: 3, max: 6, code: 2, label: High}
"""


@pytest.fixture
def unit_geometry():
    """2 x 2 grid of unit cells with its lower-left corner at the origin."""
    return GridGeometry(origin_x=0.0, origin_y=0.0, cell_width=1.0, cell_height=1.0, n_rows=2, n_cols=2)


@pytest.fixture
def census_records():
    """(x, y, population class, women class) per cell; -9 is a suppressed value."""
    return [
        (X0, Y0, 2, 1),
        (X0 + CELL, Y0, 2, 2),
        (X0, Y0 + CELL, 1, 1),
        (X0 + CELL, Y0 + CELL, 1, -9),
    ]


@pytest.fixture
def census_grids(census_records):
    return load_grids(census_records, ["population", "women"], missing_codes=(-1, -9))


@pytest.fixture
def shop_points():
    """Three shops in cell (0, 0) and one in cell (1, 1)."""
    return PointSet.from_records(
        [
            (X0, Y0),
            (X0 + 100, Y0 + 100),
            (X0 - 100, Y0 - 100),
            (X0 + CELL, Y0 + CELL),
        ]
    )


@pytest.fixture
def scorer_config(tmp_path):
    path = tmp_path / "scoring_weights.yaml"
    path.write_text(textwrap.dedent(SCORER_CONFIG))
    return path


@pytest.fixture
def scorer(scorer_config):
    return SuitabilityScorer(config_path=scorer_config)


@pytest.fixture
def scored_result(scorer, census_grids, shop_points):
    return scorer.score_grids(census_grids, points=shop_points)


@pytest.fixture
def fast_service_config():
    """Service config with near-zero retry delays and no request spacing."""
    return ServiceConfig(
        overpass_url="https://overpass.test/api/interpreter",
        nominatim_url="https://nominatim.test/reverse",
        retry=RetryConfig(max_retries=2, base_delay=0.001, max_delay=0.01, jitter_factor=0),
        rate_limit=RateLimitConfig(concurrent_requests=1, min_request_interval=0),
    )
