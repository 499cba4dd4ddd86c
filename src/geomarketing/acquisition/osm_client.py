"""
OpenStreetMap client for points of interest and region names.

Two public services are used:
- Overpass API: tagged features (e.g. shop=supermarket) inside a bounding
  box, returned as node coordinates or way/relation centers.
- Nominatim: reverse geocoding of metro-area centroids to place names.

Both expect WGS84 coordinates while the pipeline works in a projected
CRS, so results are reprojected with geopandas on the way in and region
centroids on the way out.
"""

import logging
from typing import Any, Optional, Sequence

import geopandas as gpd
import numpy as np
from pyproj import Transformer

from ..core.grid import PointSet, Region
from .base_client import AsyncServiceClient
from .exceptions import InvalidResponseError, OverpassQueryError
from .models import OSM_SERVICE_CONFIG, BoundingBox, ServiceConfig

logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"

# Address keys tried in order when naming a place
PLACE_KEYS = ("city", "town", "village", "municipality", "county", "state")


class OSMClient(AsyncServiceClient):
    """
    Async client for the Overpass and Nominatim services.

    Usage:
        async with OSMClient() as client:
            shops = await client.fetch_points(bbox, target_crs="EPSG:3035")
            regions = await client.name_regions(regions, crs="EPSG:3035")
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        transport: Any = None,
    ) -> None:
        super().__init__(config or OSM_SERVICE_CONFIG, transport=transport)

    def build_query(self, bbox: BoundingBox, key: str, value: Optional[str]) -> str:
        """
        Build an Overpass QL query for tagged features in a bounding box.

        Args:
            bbox: WGS84 bounding box.
            key: OSM tag key, e.g. "shop".
            value: OSM tag value, e.g. "supermarket". None matches any value.

        Returns:
            Overpass QL query string.
        """
        tag = f'["{key}"="{value}"]' if value is not None else f'["{key}"]'
        area = bbox.to_overpass()
        return (
            f"[out:json][timeout:{self.config.overpass_timeout}];"
            f"(node{tag}({area});way{tag}({area});relation{tag}({area}););"
            "out center;"
        )

    async def fetch_points(
        self,
        bbox: BoundingBox,
        key: str = "shop",
        value: Optional[str] = "supermarket",
        target_crs: Optional[str] = None,
    ) -> PointSet:
        """
        Fetch tagged features as points.

        Args:
            bbox: WGS84 bounding box to search.
            key: OSM tag key.
            value: OSM tag value.
            target_crs: Projected CRS to return coordinates in. WGS84 if not provided.

        Returns:
            PointSet with one point per feature.

        Raises:
            OverpassQueryError: If Overpass reports a runtime error (timeout, memory).
            InvalidResponseError: If the response has no element list.
        """
        query = self.build_query(bbox, key, value)
        data = await self.post_json(self.config.overpass_url, data={"data": query})

        remark = data.get("remark", "") if isinstance(data, dict) else ""
        if "runtime error" in remark:
            raise OverpassQueryError(f"Overpass query failed: {remark}", response_text=remark)

        if not isinstance(data, dict) or "elements" not in data:
            raise InvalidResponseError(
                "Overpass response has no 'elements'",
                response_text=str(data),
            )

        lons, lats = [], []
        for element in data["elements"]:
            if "lat" in element and "lon" in element:
                lons.append(element["lon"])
                lats.append(element["lat"])
            elif "center" in element:
                lons.append(element["center"]["lon"])
                lats.append(element["center"]["lat"])
            else:
                logger.debug("Skipping %s %s without coordinates", element.get("type"), element.get("id"))

        logger.info(
            "Fetched %d features tagged %s=%s",
            len(lons),
            key,
            value if value is not None else "*",
        )

        if not lons:
            return PointSet(np.empty((0, 2)))

        points = gpd.GeoDataFrame(geometry=gpd.points_from_xy(lons, lats), crs=WGS84)
        if target_crs is not None:
            points = points.to_crs(target_crs)
        return PointSet.from_geodataframe(points)

    async def reverse_geocode(self, lon: float, lat: float, zoom: int = 10) -> Optional[str]:
        """
        Look up the place name at a WGS84 location.

        Args:
            lon: Longitude.
            lat: Latitude.
            zoom: Nominatim detail level (10 = city).

        Returns:
            Place name, or None if Nominatim has no result for the location.
        """
        params: dict[str, Any] = {
            "format": "jsonv2",
            "lat": lat,
            "lon": lon,
            "zoom": zoom,
        }
        if self.config.language:
            params["accept-language"] = self.config.language

        data = await self.get_json(self.config.nominatim_url, params=params)

        if not isinstance(data, dict) or "error" in data:
            logger.debug("No place found at (%.5f, %.5f)", lon, lat)
            return None

        address = data.get("address") or {}
        for place_key in PLACE_KEYS:
            if address.get(place_key):
                return address[place_key]
        return data.get("display_name")

    async def name_regions(self, regions: Sequence[Region], crs: str) -> list[Region]:
        """
        Name regions after the place at their centroid.

        Requests are made one after another to respect the Nominatim
        usage policy.

        Args:
            regions: Regions with centroids in ``crs`` coordinates.
            crs: CRS of the region centroids.

        Returns:
            Regions with names assigned; unresolved names stay None.
        """
        if not regions:
            return []

        transformer = Transformer.from_crs(crs, WGS84, always_xy=True)

        named = []
        for region in regions:
            lon, lat = transformer.transform(*region.centroid)
            name = await self.reverse_geocode(lon, lat)
            logger.info("Region %d -> %s", region.label, name or "(unnamed)")
            named.append(region.with_name(name))

        return named
