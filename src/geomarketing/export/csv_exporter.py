"""
CSV Exporter for scored grid cells and metro areas.

Generates flat CSV tables with standardized column names that load
directly into spreadsheets or GIS tools (cell centers as x/y columns).
"""

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from ..scoring.suitability_scorer import SuitabilityResult

logger = logging.getLogger(__name__)

# Leading columns in export order; weight columns follow
PRIORITY_COLUMNS = [
    "row",
    "col",
    "x",
    "y",
    "score",
    "tier",
    "tier_label",
    "metro_label",
    "metro_name",
    "suitable",
]


class CSVExporter:
    """Export scored cells and metro areas to CSV."""

    def __init__(self, output_dir: Path | str = "deliverables"):
        """Tables are written below output_dir, which is created if missing."""
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(
        self,
        result: SuitabilityResult,
        filename: str = "suitability_cells.csv",
        suitable_only: bool = False,
        min_score: Optional[float] = None,
    ) -> Path:
        """
        Export scored cells to a CSV file.

        Args:
            result: Scoring result to export
            filename: Output filename
            suitable_only: If True, only include suitable cells
            min_score: Optional lower score limit applied on top

        Returns:
            Path of the written table
        """
        path = self.output_dir / filename
        logger.info(f"Writing cell table to {path}")

        df = result.suitable_cells() if suitable_only else result.to_dataframe()

        if min_score is not None:
            df = df[df["score"] >= min_score]
            logger.info(f"Filtered to score >= {min_score}: {len(df)} cells")

        export_df = self._prepare_cell_dataframe(df, result)
        export_df.to_csv(path, index=False)
        logger.info(
            f"Cell CSV saved: {path} ({len(export_df)} records, {len(export_df.columns)} columns)"
        )

        return path

    def export_regions(
        self,
        result: SuitabilityResult,
        filename: str = "metro_areas.csv",
    ) -> Path:
        """
        Export metro areas with their suitable-cell counts.

        Args:
            result: Scoring result to export
            filename: Output filename

        Returns:
            Path of the written table
        """
        path = self.output_dir / filename
        logger.info(f"Writing metro area table to {path}")

        df = result.regions_dataframe().rename(columns={"total": "population"})
        df.to_csv(path, index=False)
        logger.info(f"Metro area CSV saved: {path} ({len(df)} records)")

        return path

    def _prepare_cell_dataframe(
        self, df: pd.DataFrame, result: SuitabilityResult
    ) -> pd.DataFrame:
        """Order columns, add metro names and prefix weight columns."""
        names = {region.label: region.name or "" for region in result.metro.regions}
        data = df.assign(metro_name=df["metro_label"].map(names).fillna(""))

        leading = [col for col in PRIORITY_COLUMNS if col in data.columns]
        weights = [col for col in data.columns if col not in leading]

        return data[leading + weights].rename(
            columns={col: f"weight_{col}" for col in weights}
        )


def export_to_csv(
    result: SuitabilityResult,
    output_dir: Path | str = "deliverables",
    filename: str = "suitability_cells.csv",
    suitable_only: bool = False,
) -> Path:
    """Write the cell table with default settings."""
    return CSVExporter(output_dir).export(result, filename, suitable_only=suitable_only)
