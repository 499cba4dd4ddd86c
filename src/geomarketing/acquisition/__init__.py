"""
Data Acquisition Module for the geomarketing pipeline.

This module turns source data into pipeline inputs: census grid extracts
into aligned attribute Grids, and point-of-interest files or OpenStreetMap
queries into PointSets. It also resolves place names for metro areas.

Primary Usage:
    from geomarketing.acquisition import CensusFileLoader

    loader = CensusFileLoader()
    grids = loader.load_census_grids()
    shops = loader.load_points()

Web services:
    async with OSMClient() as client:
        shops = await client.fetch_points(bbox, target_crs="EPSG:3035")
"""

from .exceptions import (
    AcquisitionError,
    AuthenticationError,
    ConnectionError,
    InvalidResponseError,
    MaxRetriesExceededError,
    NotFoundError,
    OverpassQueryError,
    RateLimitError,
    ServerError,
    ServiceError,
    TimeoutError,
)
from .models import (
    OSM_SERVICE_CONFIG,
    BoundingBox,
    ConnectionLimits,
    RateLimitConfig,
    RetryConfig,
    ServiceConfig,
    TimeoutConfig,
)
from .grid_loader import load_grids
from .file_loader import CensusFileLoader
from .osm_client import OSMClient

__all__ = [
    # Exceptions
    "AcquisitionError",
    "AuthenticationError",
    "ConnectionError",
    "InvalidResponseError",
    "MaxRetriesExceededError",
    "NotFoundError",
    "OverpassQueryError",
    "RateLimitError",
    "ServerError",
    "ServiceError",
    "TimeoutError",
    # Models
    "BoundingBox",
    "ConnectionLimits",
    "RateLimitConfig",
    "RetryConfig",
    "ServiceConfig",
    "TimeoutConfig",
    # Pre-configured
    "OSM_SERVICE_CONFIG",
    # Loaders
    "CensusFileLoader",
    "load_grids",
    # Web services
    "OSMClient",
]
