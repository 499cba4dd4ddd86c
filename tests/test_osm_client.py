import asyncio
from urllib.parse import parse_qs

import httpx
import numpy as np
import pytest
from pydantic import ValidationError

from geomarketing.acquisition import (
    AuthenticationError,
    BoundingBox,
    InvalidResponseError,
    MaxRetriesExceededError,
    NotFoundError,
    OSMClient,
    OverpassQueryError,
    TimeoutError,
)
from geomarketing.core.grid import Region

BBOX = BoundingBox(west=9.5, south=51.5, east=10.5, north=52.5)

OVERPASS_RESPONSE = {
    "elements": [
        {"type": "node", "id": 1, "lat": 52.0, "lon": 10.0},
        {"type": "way", "id": 2, "center": {"lat": 52.1, "lon": 10.1}},
        {"type": "relation", "id": 3},
    ]
}


def run_client(config, handler, call):
    async def runner():
        async with OSMClient(config, transport=httpx.MockTransport(handler)) as client:
            return await call(client), client.request_count

    return asyncio.run(runner())


def test_build_query_filters_by_tag(fast_service_config):
    client = OSMClient(fast_service_config)

    query = client.build_query(BBOX, "shop", "supermarket")
    assert query.startswith("[out:json][timeout:180];")
    assert 'node["shop"="supermarket"](51.5,9.5,52.5,10.5);' in query
    assert query.endswith("out center;")

    assert 'way["amenity"](51.5,9.5,52.5,10.5);' in client.build_query(BBOX, "amenity", None)


def test_fetch_points_reads_nodes_and_centers(fast_service_config):
    seen = {}

    def handler(request):
        seen["query"] = parse_qs(request.content.decode())["data"][0]
        return httpx.Response(200, json=OVERPASS_RESPONSE)

    points, requests = run_client(
        fast_service_config,
        handler,
        lambda client: client.fetch_points(BBOX, target_crs="EPSG:3035"),
    )

    assert requests == 1
    assert '"shop"="supermarket"' in seen["query"]
    assert len(points) == 2
    assert points.coordinates[0].tolist() == pytest.approx([4_321_000.0, 3_210_000.0], abs=1.0)


def test_fetch_points_in_wgs84_by_default(fast_service_config):
    points, _ = run_client(
        fast_service_config,
        lambda request: httpx.Response(200, json=OVERPASS_RESPONSE),
        lambda client: client.fetch_points(BBOX),
    )
    np.testing.assert_allclose(points.coordinates, [[10.0, 52.0], [10.1, 52.1]])


def test_fetch_points_without_elements_raises(fast_service_config):
    with pytest.raises(InvalidResponseError):
        run_client(
            fast_service_config,
            lambda request: httpx.Response(200, json={"version": 0.6, "generator": "Overpass API"}),
            lambda client: client.fetch_points(BBOX),
        )


def test_overpass_runtime_error_raises(fast_service_config):
    payload = {
        "remark": "runtime error: Query timed out in \"query\" at line 1 after 181 seconds.",
        "elements": [{"type": "node", "id": 1, "lat": 52.0, "lon": 10.0}],
    }
    with pytest.raises(OverpassQueryError, match="timed out"):
        run_client(
            fast_service_config,
            lambda request: httpx.Response(200, json=payload),
            lambda client: client.fetch_points(BBOX),
        )


def test_empty_result_gives_empty_point_set(fast_service_config):
    points, _ = run_client(
        fast_service_config,
        lambda request: httpx.Response(200, json={"elements": []}),
        lambda client: client.fetch_points(BBOX),
    )
    assert len(points) == 0


def test_server_errors_are_retried(fast_service_config):
    responses = iter([httpx.Response(503), httpx.Response(200, json={"elements": []})])

    _, requests = run_client(
        fast_service_config,
        lambda request: next(responses),
        lambda client: client.fetch_points(BBOX),
    )
    assert requests == 2


def test_not_found_is_not_retried(fast_service_config):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404)

    with pytest.raises(NotFoundError):
        run_client(fast_service_config, handler, lambda client: client.fetch_points(BBOX))
    assert len(calls) == 1


def test_retries_are_exhausted(fast_service_config):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502)

    with pytest.raises(MaxRetriesExceededError) as excinfo:
        run_client(fast_service_config, handler, lambda client: client.fetch_points(BBOX))

    assert excinfo.value.attempts == 3
    assert len(calls) == 3


def test_reverse_geocode_prefers_city(fast_service_config):
    def handler(request):
        assert request.url.params["format"] == "jsonv2"
        return httpx.Response(
            200,
            json={"display_name": "Mitte, Berlin, Deutschland", "address": {"suburb": "Mitte", "city": "Berlin"}},
        )

    name, _ = run_client(fast_service_config, handler, lambda client: client.reverse_geocode(13.4, 52.5))
    assert name == "Berlin"


def test_reverse_geocode_without_result(fast_service_config):
    name, _ = run_client(
        fast_service_config,
        lambda request: httpx.Response(200, json={"error": "Unable to geocode"}),
        lambda client: client.reverse_geocode(0.0, 0.0),
    )
    assert name is None


def test_name_regions_uses_centroids(fast_service_config):
    places = {52.5: "Berlin", 53.5: "Hamburg"}

    def handler(request):
        lat = round(float(request.url.params["lat"]), 3)
        if lat in places:
            return httpx.Response(200, json={"address": {"city": places[lat]}})
        return httpx.Response(200, json={"error": "Unable to geocode"})

    regions = [
        Region(1, frozenset({(0, 0)}), (13.4, 52.5), 1e6),
        Region(2, frozenset({(5, 5)}), (10.0, 53.5), 7e5),
        Region(3, frozenset({(9, 9)}), (0.0, 0.0), 6e5),
    ]
    named, requests = run_client(
        fast_service_config,
        handler,
        lambda client: client.name_regions(regions, crs="EPSG:4326"),
    )

    assert [region.name for region in named] == ["Berlin", "Hamburg", None]
    assert requests == 3


def test_bounding_box_validation():
    with pytest.raises(ValidationError):
        BoundingBox(west=10.0, south=50.0, east=9.0, north=51.0)
    with pytest.raises(ValidationError):
        BoundingBox(west=0.0, south=-95.0, east=1.0, north=1.0)


def test_bounding_box_from_projected_extent():
    bbox = BoundingBox.from_extent((4_311_000.0, 3_200_000.0, 4_331_000.0, 3_220_000.0), "EPSG:3035")

    assert bbox.west < 10.0 < bbox.east
    assert bbox.south < 52.0 < bbox.north


def test_access_refused_is_not_retried(fast_service_config):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(403)

    with pytest.raises(AuthenticationError) as excinfo:
        run_client(fast_service_config, handler, lambda client: client.reverse_geocode(10.0, 52.0))
    assert excinfo.value.status_code == 403
    assert len(calls) == 1


def test_rate_limit_honours_retry_after(fast_service_config):
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "0.001"}),
            httpx.Response(200, json={"address": {"town": "Celle"}}),
        ]
    )
    name, requests = run_client(
        fast_service_config,
        lambda request: next(responses),
        lambda client: client.reverse_geocode(10.08, 52.62),
    )
    assert name == "Celle"
    assert requests == 2


def test_timeouts_are_retried_then_reported(fast_service_config):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(MaxRetriesExceededError) as excinfo:
        run_client(fast_service_config, handler, lambda client: client.fetch_points(BBOX))

    assert isinstance(excinfo.value.last_error, TimeoutError)
    assert excinfo.value.last_error.timeout_type == "read"
