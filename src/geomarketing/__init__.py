"""
Grid-based geomarketing: score census grid cells as store locations.

Subpackages:
- core: grids, points, regions, classification models and error kinds
- acquisition: census grid and point-of-interest loading, OpenStreetMap client
- processing: reclassification, metro areas, point density, vectorization
- scoring: score composition and the end-to-end suitability scorer
- export: CSV, Excel and HTML map deliverables, command line entry point
"""

__version__ = "0.1.0"
