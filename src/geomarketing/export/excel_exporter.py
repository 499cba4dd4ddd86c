"""
Excel Exporter for location suitability deliverables.

Generates a multi-sheet workbook: run summary, metro areas, suitable
cells (tier-coloured) and a methodology sheet generated from the
scoring configuration actually used.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ..scoring.suitability_scorer import SuitabilityResult

logger = logging.getLogger(__name__)


# Tier fills from lowest to highest tier (red -> green)
TIER_PALETTE = ["FFB3B3", "FFD699", "FFFF99", "98FB98", "90EE90"]

HEADER_FILL = PatternFill(start_color="2F5597", end_color="2F5597", fill_type="solid")
HEADER_FONT = Font(bold=True, color="FFFFFF")
SECTION_FONT = Font(bold=True, size=12)
_thin = Side(style="thin")
GRID_BORDER = Border(left=_thin, right=_thin, top=_thin, bottom=_thin)

# Rows sampled when sizing columns
WIDTH_SAMPLE = 100
MAX_COLUMN_WIDTH = 50

# Display names for the cell sheet
CELL_COLUMNS = {
    "row": "Row",
    "col": "Col",
    "x": "X",
    "y": "Y",
    "score": "Score",
    "tier_label": "Tier",
    "metro_label": "Metro Area",
}

REGION_COLUMNS = {
    "label": "Label",
    "name": "Name",
    "cell_count": "Coarse Cells",
    "total": "Population",
    "centroid_x": "Centroid X",
    "centroid_y": "Centroid Y",
    "suitable_cells": "Suitable Cells",
}


def tier_fills(labels: list[str]) -> dict[str, PatternFill]:
    """Spread the palette over tiers ordered from lowest to highest."""
    fills = {}
    count = len(labels)
    for index, label in enumerate(labels):
        position = round(index * (len(TIER_PALETTE) - 1) / max(count - 1, 1))
        color = TIER_PALETTE[position]
        fills[label] = PatternFill(start_color=color, end_color=color, fill_type="solid")
    return fills


def excel_value(value: Any) -> Any:
    """Convert a DataFrame value into something openpyxl can store."""
    if pd.isna(value):
        return ""
    if isinstance(value, float):
        return round(value, 2)
    # numpy scalars
    if hasattr(value, "item"):
        return value.item()
    return value


class ExcelExporter:
    """Generate formatted Excel workbooks for suitability results."""

    def __init__(self, output_dir: Path | str = "deliverables"):
        """
        Args:
            output_dir: Directory the workbook is written to (created if needed)
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def export(
        self,
        result: SuitabilityResult,
        filename: str = "suitability_analysis.xlsx",
        run_parameters: Optional[dict[str, Any]] = None,
    ) -> Path:
        """
        Export a scoring result to a multi-sheet Excel workbook.

        Args:
            result: Scoring result to export
            filename: Output filename
            run_parameters: Input files and options used (for documentation)

        Returns:
            Path of the written workbook
        """
        path = self.output_dir / filename
        logger.info(f"Writing Excel workbook to {path}")

        tier_labels = [result.tier_table.label_for(code) for code in result.tier_table.codes]
        fills = tier_fills(tier_labels)

        wb = Workbook()
        wb.remove(wb.active)

        self._create_summary(wb, result, fills, run_parameters)
        self._create_metro_areas(wb, result)
        self._create_suitable_cells(wb, result, fills)
        self._create_methodology(wb, result)

        wb.save(path)
        logger.info(f"Saved {len(wb.sheetnames)} sheets to {path}")

        return path

    @staticmethod
    def _write_section(
        ws: Worksheet,
        row: int,
        title: str,
        entries: Iterable[tuple],
        fills: Optional[dict[str, PatternFill]] = None,
    ) -> int:
        """Write a titled block of (label, value, ...) rows; returns the next free row."""
        ws.cell(row=row, column=1, value=title).font = SECTION_FONT
        row += 1
        for entry in entries:
            label = entry[0]
            for column, value in enumerate(entry, start=1):
                ws.cell(row=row, column=column, value=value)
                if fills and label.rstrip(":") in fills:
                    ws.cell(row=row, column=column).fill = fills[label.rstrip(":")]
            row += 1
        return row + 1

    def _create_summary(
        self,
        wb: Workbook,
        result: SuitabilityResult,
        fills: dict[str, PatternFill],
        run_parameters: Optional[dict[str, Any]] = None,
    ) -> None:
        ws = wb.create_sheet("Summary")
        summary = result.summary()

        ws["A1"] = "Location Suitability Analysis - Summary"
        ws["A1"].font = Font(bold=True, size=16)
        ws.merge_cells("A1:D1")
        ws["A3"] = "Generated: " + datetime.now().isoformat(sep=" ", timespec="seconds")
        ws["A3"].font = Font(italic=True, color="808080")

        overview = [
            ("Grid cells:", summary["cells"]),
            ("Scored cells:", summary["scored_cells"]),
            ("Metro areas:", summary["metro_areas"]),
            ("Suitable cells:", summary["suitable_cells"]),
            ("Minimum score:", summary["minimum_score"]),
        ]
        statistics = [
            (
                stat.replace("_", " ").title() + ":",
                "N/A" if summary[stat] is None else round(summary[stat], 2),
            )
            for stat in ("mean_score", "median_score", "min_score", "max_score")
        ]
        scored = summary["scored_cells"] or 1
        tiers = [
            (f"{label}:", count, f"{count / scored:.1%}")
            for label, count in summary["tiers"].items()
        ]
        parameters = [(f"{key}:", str(value)) for key, value in (run_parameters or {}).items()]

        row = self._write_section(ws, 5, "ANALYSIS OVERVIEW", overview)
        row = self._write_section(ws, row, "SCORE STATISTICS", statistics)
        row = self._write_section(ws, row, "TIER DISTRIBUTION", tiers, fills)
        self._write_section(ws, row, "RUN PARAMETERS", parameters or [("Not recorded",)])

        for letter, width in zip("ABC", (30, 25, 12)):
            ws.column_dimensions[letter].width = width

    def _create_metro_areas(self, wb: Workbook, result: SuitabilityResult) -> None:
        """Metro areas, most populous first."""
        ws = wb.create_sheet("Metro Areas")

        df = result.regions_dataframe().rename(columns=REGION_COLUMNS)
        df = df.sort_values("Population", ascending=False)

        self._write_table(ws, df)
        logger.info(f"Metro Areas sheet: {len(df)} regions")

    def _create_suitable_cells(
        self,
        wb: Workbook,
        result: SuitabilityResult,
        fills: dict[str, PatternFill],
    ) -> None:
        """Suitable cells ranked by score, one row per cell, coloured by tier."""
        ws = wb.create_sheet("Suitable Cells")

        cells = result.suitable_cells()
        display = {"Rank": range(1, len(cells) + 1)}
        for source, name in CELL_COLUMNS.items():
            display[name] = cells[source]
        for name in result.weights:
            display[f"Weight: {name}"] = cells[name]

        df = pd.DataFrame(display)
        self._write_table(ws, df, fills=fills)
        logger.info(f"Suitable Cells sheet: {len(df)} cells")

    def _create_methodology(self, wb: Workbook, result: SuitabilityResult) -> None:
        ws = wb.create_sheet("Methodology")

        metro = result.metro
        lines = [
            "LOCATION SUITABILITY SCORING METHODOLOGY",
            "",
            "OVERVIEW",
            "Every census grid cell receives a score: the sum of its demographic",
            "weights and the density class of existing points of interest.",
            "",
            "METRO AREAS",
            f"  The population estimate is aggregated into {metro.factor} x {metro.factor} cell blocks.",
            f"  Blocks with more than {metro.minimum_population:,.0f} inhabitants are kept.",
            "  Edge-sharing blocks form one metro area.",
            "",
            "WEIGHTS",
        ]
        lines.extend(f"  {name}" for name in result.weights)

        if result.density is not None:
            lines.extend(
                [
                    "",
                    "POINT DENSITY",
                    f"  Natural breaks of points per cell: {result.density.breaks}",
                ]
            )

        lines.extend(["", "TIERS"])
        for interval in result.tier_table.intervals:
            lines.append(f"  {interval.label}: {interval.lower:g} - {interval.upper:g}")

        lines.extend(
            [
                "",
                "SUITABLE CELLS",
                f"  Score of at least {result.minimum_score:g}"
                + (", inside a metro area" if result.within_metro else ""),
            ]
        )

        for row, text in enumerate(lines, start=1):
            cell = ws.cell(row=row, column=1, value=text)
            # Section headings are the upper-case lines
            if text.strip() and text == text.upper():
                cell.font = Font(bold=True)

        ws.column_dimensions["A"].width = 80

    def _write_table(
        self,
        ws: Worksheet,
        df: pd.DataFrame,
        fills: Optional[dict[str, PatternFill]] = None,
    ) -> None:
        """Header row, bordered body, optional tier colouring, fitted widths, frozen header."""
        ws.append(list(df.columns))
        for cell in ws[1]:
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = GRID_BORDER
            cell.alignment = Alignment(horizontal="center", wrap_text=True)

        tiers = df["Tier"].tolist() if fills and "Tier" in df.columns else [None] * len(df)

        for record, tier in zip(df.itertuples(index=False), tiers):
            ws.append([excel_value(value) for value in record])
            fill = fills.get(tier) if fills else None
            for cell in ws[ws.max_row]:
                cell.border = GRID_BORDER
                if fill is not None:
                    cell.fill = fill

        sample_rows = min(ws.max_row, WIDTH_SAMPLE + 1)
        for index, column in enumerate(ws.iter_cols(max_row=sample_rows), start=1):
            longest = max(len(str(cell.value)) for cell in column if cell.value is not None)
            ws.column_dimensions[get_column_letter(index)].width = min(
                longest + 2, MAX_COLUMN_WIDTH
            )

        ws.freeze_panes = "A2"


def export_to_excel(
    result: SuitabilityResult,
    output_dir: Path | str = "deliverables",
    filename: str = "suitability_analysis.xlsx",
    run_parameters: Optional[dict[str, Any]] = None,
) -> Path:
    """Write the suitability workbook with default settings."""
    return ExcelExporter(output_dir).export(result, filename, run_parameters)
