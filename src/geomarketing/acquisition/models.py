"""
Pydantic models for the OpenStreetMap service client.

The defaults follow the usage policies of the public servers: Nominatim
allows one request per second from a single client, and Overpass runs
heavy area queries for minutes before answering.
"""

import random
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class RetryConfig(BaseModel):
    """Exponential backoff for retryable failures (timeouts, 429, gateway 5xx)."""

    max_retries: int = Field(default=3, ge=0, le=10, description="Retries after the first attempt")
    base_delay: float = Field(default=2.0, gt=0, le=30.0, description="Delay before the first retry, seconds")
    max_delay: float = Field(default=60.0, gt=0, le=300.0, description="Upper limit for any single delay, seconds")
    jitter_factor: float = Field(
        default=0.5,
        ge=0,
        le=1.0,
        description="Extra random delay as a fraction of the computed delay",
    )

    def calculate_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt + 1``: base * 2^attempt, stretched by jitter, capped."""
        delay = self.base_delay * 2**attempt
        delay *= 1 + random.uniform(0, self.jitter_factor)
        return min(delay, self.max_delay)


class RateLimitConfig(BaseModel):
    """Request spacing; one request per second satisfies the Nominatim policy."""

    concurrent_requests: int = Field(default=1, gt=0, le=10)
    min_request_interval: float = Field(default=1.0, ge=0, le=10.0, description="Seconds between request starts")


class TimeoutConfig(BaseModel):
    """httpx timeouts per request phase, seconds."""

    connect: float = Field(default=10.0, gt=0, le=60.0)
    read: float = Field(default=180.0, gt=0, le=600.0, description="Covers long Overpass area queries")
    write: float = Field(default=10.0, gt=0, le=60.0)
    pool: float = Field(default=30.0, gt=0, le=60.0)


class ConnectionLimits(BaseModel):
    """httpx connection pool size; the OSM servers ask clients to keep it small."""

    max_connections: int = Field(default=4, gt=0, le=100)
    max_keepalive_connections: int = Field(default=2, gt=0, le=50)
    keepalive_expiry: float = Field(default=30.0, gt=0, le=300.0)


class BoundingBox(BaseModel):
    """WGS84 bounding box in degrees."""

    west: float = Field(..., ge=-180, le=180)
    south: float = Field(..., ge=-90, le=90)
    east: float = Field(..., ge=-180, le=180)
    north: float = Field(..., ge=-90, le=90)

    @model_validator(mode="after")
    def validate_corners(self) -> "BoundingBox":
        if self.east <= self.west:
            raise ValueError(f"east ({self.east}) must be greater than west ({self.west})")
        if self.north <= self.south:
            raise ValueError(f"north ({self.north}) must be greater than south ({self.south})")
        return self

    def to_overpass(self) -> str:
        """Overpass QL bbox filter body: south,west,north,east."""
        return f"{self.south},{self.west},{self.north},{self.east}"

    @classmethod
    def from_extent(
        cls,
        extent: tuple[float, float, float, float],
        crs: str,
    ) -> "BoundingBox":
        """
        Enclose a projected (min_x, min_y, max_x, max_y) extent.

        The extent's outline is reprojected rather than its two corners,
        since straight edges of a projected box bend in geographic
        coordinates.

        Args:
            extent: Bounds in ``crs`` units, e.g. GridGeometry.extent.
            crs: CRS of the extent.

        Returns:
            BoundingBox in WGS84.
        """
        import geopandas as gpd
        from shapely.geometry import box

        outline = box(*extent).segmentize(
            max((extent[2] - extent[0]), (extent[3] - extent[1])) / 16
        )
        west, south, east, north = (
            gpd.GeoSeries([outline], crs=crs).to_crs("EPSG:4326").total_bounds
        )
        return cls(west=west, south=south, east=east, north=north)


class ServiceConfig(BaseModel):
    """Endpoints and connection behaviour of the OSM client."""

    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter", min_length=1)
    nominatim_url: str = Field(default="https://nominatim.openstreetmap.org/reverse", min_length=1)
    timeout: TimeoutConfig = Field(default_factory=TimeoutConfig)
    limits: ConnectionLimits = Field(default_factory=ConnectionLimits)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    overpass_timeout: int = Field(
        default=180,
        gt=0,
        le=900,
        description="Server-side [timeout:] of Overpass queries, seconds",
    )
    user_agent: str = Field(
        default="geomarketing-suitability/0.1",
        min_length=1,
        description="Identifying User-Agent; both services reject generic ones",
    )
    language: Optional[str] = Field(default=None, description="accept-language for geocoded names")


OSM_SERVICE_CONFIG = ServiceConfig()
