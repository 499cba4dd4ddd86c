"""
File-based data loader for census grids and points of interest.

This module provides the CensusFileLoader class for loading the gridded
census extract (CSV) and point-of-interest files from local disk.

Data Sources:
- Census grid CSV: data/raw/census/census_grid_1km.csv
  - One row per inhabited 1 km cell, keyed by cell midpoint (x_mp_1km, y_mp_1km)
  - Classed attributes: population, share of women, mean age, household size
  - Class codes -1 and -9 mean "no data" / "suppressed"
- Points of interest: data/raw/poi/supermarkets.gpkg (any OGR format) or CSV

All spatial data is expected in EPSG:3035 (ETRS89 / LAEA Europe, meters).
"""

import logging
from pathlib import Path
from typing import Optional, Sequence

import geopandas as gpd
import pandas as pd

from ..core.grid import Grid, PointSet
from .exceptions import AcquisitionError
from .grid_loader import load_grids

logger = logging.getLogger(__name__)

# Default data paths relative to project root
DEFAULT_CENSUS_CSV = Path("data/raw/census/census_grid_1km.csv")
DEFAULT_POINTS_FILE = Path("data/raw/poi/supermarkets.gpkg")

# CRS of the census grid
SOURCE_CRS = "EPSG:3035"

# Class codes that mark suppressed or missing census values
MISSING_CODES = (-1, -9)

# Field mapping from census column names to standardized names
CENSUS_FIELD_MAP = {
    "x_mp_1km": "x",
    "y_mp_1km": "y",
    "Einwohner": "population",
    "Frauen_A": "women",
    "Alter_D": "mean_age",
    "HHGroesse_D": "household_size",
}

CENSUS_ATTRIBUTES = ["population", "women", "mean_age", "household_size"]


class CensusFileLoader:
    """
    Loader for census grid extracts and point-of-interest files.

    Usage:
        loader = CensusFileLoader()

        # Raw table with standardized column names
        table = loader.load_census_table()

        # One Grid per classed attribute
        grids = loader.load_census_grids()

        # Points of interest in the census CRS
        shops = loader.load_points(target_crs="EPSG:3035")

    Attributes:
        census_path: Path to the census CSV.
        points_path: Path to the points-of-interest file.
        project_root: Project root directory for resolving relative paths.
    """

    def __init__(
        self,
        census_path: Optional[Path] = None,
        points_path: Optional[Path] = None,
        project_root: Optional[Path] = None,
        separator: str = ",",
    ) -> None:
        """
        Initialize the file loader.

        Args:
            census_path: Path to census CSV. Defaults to project default.
            points_path: Path to POI file. Defaults to project default.
            project_root: Project root for resolving relative paths.
                          Defaults to current working directory.
            separator: Census CSV field separator (the official extract uses ";").
        """
        self.project_root = project_root or Path.cwd()
        self.census_path = Path(census_path) if census_path else (
            self.project_root / DEFAULT_CENSUS_CSV
        )
        self.points_path = Path(points_path) if points_path else (
            self.project_root / DEFAULT_POINTS_FILE
        )
        self.separator = separator

        logger.info("Initialized file loader")
        logger.info("  Census CSV: %s", self.census_path)
        logger.info("  Points file: %s", self.points_path)

    def _validate_path(self, path: Path, description: str) -> None:
        """
        Validate that a file path exists.

        Raises:
            AcquisitionError: If the path does not exist.
        """
        if not path.exists():
            raise AcquisitionError(
                f"{description} not found at: {path}. "
                "Please ensure the data files have been downloaded."
            )

    def _standardize_columns(
        self, df: pd.DataFrame, field_map: dict[str, str]
    ) -> pd.DataFrame:
        """Rename columns that appear in the field map."""
        rename_map = {k: v for k, v in field_map.items() if k in df.columns}
        return df.rename(columns=rename_map)

    def load_census_table(self, standardize_fields: bool = True) -> pd.DataFrame:
        """
        Load the census extract as a DataFrame.

        Args:
            standardize_fields: If True, rename fields to standard names.

        Returns:
            DataFrame with one row per inhabited cell.

        Raises:
            AcquisitionError: If the file cannot be read.
        """
        self._validate_path(self.census_path, "Census grid CSV")

        logger.info("Loading census grid from %s", self.census_path)

        try:
            df = pd.read_csv(self.census_path, sep=self.separator)
        except (OSError, ValueError) as e:
            raise AcquisitionError(
                f"Failed to read census grid: {e}",
                cause=e,
            )

        logger.info("Loaded %d census rows with %d columns", len(df), len(df.columns))

        if standardize_fields:
            df = self._standardize_columns(df, CENSUS_FIELD_MAP)

        return df

    def load_census_grids(
        self,
        attributes: Optional[Sequence[str]] = None,
        cell_size: Optional[float] = None,
    ) -> dict[str, Grid]:
        """
        Load the census extract as one Grid per attribute.

        Args:
            attributes: Standardized attribute names to load. Defaults to all four.
            cell_size: Explicit cell size. Inferred from the midpoints if not provided.

        Returns:
            Dictionary of attribute name -> Grid.

        Raises:
            AcquisitionError: If the file or a required column is missing.
            MalformedGridError: If the midpoints do not form a regular lattice.
        """
        attributes = list(attributes or CENSUS_ATTRIBUTES)
        df = self.load_census_table()

        required = ["x", "y", *attributes]
        missing_columns = [col for col in required if col not in df.columns]
        if missing_columns:
            raise AcquisitionError(
                f"Census table is missing columns: {missing_columns}"
            )

        records = df[required].itertuples(index=False, name=None)
        return load_grids(
            records,
            attributes,
            cell_size=cell_size,
            missing_codes=MISSING_CODES,
        )

    def load_points(
        self,
        path: Optional[Path] = None,
        weight_column: Optional[str] = None,
        target_crs: Optional[str] = SOURCE_CRS,
        layer: Optional[str] = None,
    ) -> PointSet:
        """
        Load points of interest from a CSV or vector file.

        CSV files need ``x`` and ``y`` columns in the working CRS. Vector
        files are read with geopandas and reprojected to ``target_crs``.

        Args:
            path: File to read. Defaults to the configured points path.
            weight_column: Optional column with per-point weights (e.g. floor area).
            target_crs: CRS to reproject vector data to. None keeps the source CRS.
            layer: Layer name for multi-layer formats (GeoPackage).

        Returns:
            PointSet of the loaded features.

        Raises:
            AcquisitionError: If the file cannot be read or lacks required columns.
        """
        path = Path(path) if path else self.points_path
        self._validate_path(path, "Points of interest file")

        logger.info("Loading points of interest from %s", path)

        if path.suffix.lower() == ".csv":
            try:
                df = pd.read_csv(path)
            except (OSError, ValueError) as e:
                raise AcquisitionError(f"Failed to read points CSV: {e}", cause=e)

            columns = ["x", "y"] + ([weight_column] if weight_column else [])
            missing_columns = [col for col in columns if col not in df.columns]
            if missing_columns:
                raise AcquisitionError(
                    f"Points CSV is missing columns: {missing_columns}"
                )

            records = df[columns].itertuples(index=False, name=None)
            try:
                points = PointSet.from_records(records)
            except (TypeError, ValueError) as e:
                raise AcquisitionError(f"Invalid point records in {path}: {e}", cause=e)
            logger.info("Loaded %d points", len(points))
            return points

        try:
            gdf = gpd.read_file(path, layer=layer)
        except Exception as e:
            raise AcquisitionError(f"Failed to read points file: {e}", cause=e)

        if weight_column is not None and weight_column not in gdf.columns:
            raise AcquisitionError(
                f"Points file has no weight column '{weight_column}'"
            )

        if target_crs is not None:
            if gdf.crs is None:
                logger.warning("Points file has no CRS, assuming %s", target_crs)
                gdf = gdf.set_crs(target_crs)
            elif gdf.crs != target_crs:
                logger.debug("Reprojecting from %s to %s", gdf.crs, target_crs)
                gdf = gdf.to_crs(target_crs)

        gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
        try:
            points = PointSet.from_geodataframe(gdf, weight_column=weight_column)
        except (TypeError, ValueError) as e:
            raise AcquisitionError(f"Invalid point features in {path}: {e}", cause=e)
        logger.info("Loaded %d points", len(points))
        return points
