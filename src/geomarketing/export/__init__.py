"""
Export module for suitability deliverables.

Provides exporters for generating client deliverables:
- Excel workbooks with multi-sheet analysis
- Interactive HTML maps of metro areas and suitable cells
- CSV files of scored cells and metro areas
"""

from .csv_exporter import CSVExporter, export_to_csv
from .excel_exporter import ExcelExporter, export_to_excel
from .map_generator import MapGenerator, generate_map

__all__ = [
    "ExcelExporter",
    "export_to_excel",
    "MapGenerator",
    "generate_map",
    "CSVExporter",
    "export_to_csv",
]
