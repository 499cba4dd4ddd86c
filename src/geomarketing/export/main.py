"""
Command line entry point: score a census grid and write all deliverables.

Loads the census grid and points of interest, scores every cell, and
generates:
- Excel workbook with summary, metro areas, suitable cells and methodology
- Interactive HTML map of metro areas and suitable cells
- CSV files of scored cells, suitable cells and metro areas

Points of interest can be fetched from OpenStreetMap and metro areas
named by reverse geocoding instead of reading local files.
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from ..acquisition.file_loader import SOURCE_CRS, CensusFileLoader
from ..acquisition.models import BoundingBox
from ..acquisition.osm_client import OSMClient
from ..core.exceptions import GeomarketingError
from ..core.grid import GridGeometry, PointSet
from ..scoring.suitability_scorer import SuitabilityResult, SuitabilityScorer
from .csv_exporter import CSVExporter
from .excel_exporter import export_to_excel
from .map_generator import generate_map

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="geomarketing-run",
        description="Score census grid cells for store location suitability",
    )
    parser.add_argument("--census", type=Path, help="Census grid CSV (default: data/raw/census/census_grid_1km.csv)")
    parser.add_argument("--separator", default=",", help="Census CSV field separator")
    parser.add_argument("--points", type=Path, help="Points of interest file (CSV with x/y or any vector format)")
    parser.add_argument("--points-layer", help="Layer name for multi-layer point files")
    parser.add_argument("--weight-column", help="Per-point weight column")
    parser.add_argument("--fetch-osm", action="store_true", help="Fetch points of interest from OpenStreetMap")
    parser.add_argument("--osm-key", default="shop", help="OSM tag key to fetch")
    parser.add_argument("--osm-value", default="supermarket", help="OSM tag value to fetch")
    parser.add_argument("--name-regions", action="store_true", help="Name metro areas by reverse geocoding")
    parser.add_argument("--config", type=Path, help="Scoring configuration YAML")
    parser.add_argument("--crs", default=SOURCE_CRS, help="CRS of the census grid coordinates")
    parser.add_argument("--lenient", action="store_true", help="Drop cells with unmapped classes instead of failing")
    parser.add_argument("--output-dir", type=Path, default=Path("deliverables"), help="Directory for deliverables")
    parser.add_argument("--no-map", action="store_true", help="Skip the HTML map")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


async def fetch_points_online(
    geometry: GridGeometry,
    crs: str,
    key: str,
    value: str,
) -> PointSet:
    """Fetch points of interest covering a grid extent from OpenStreetMap."""
    bbox = BoundingBox.from_extent(geometry.extent, crs)
    async with OSMClient() as client:
        return await client.fetch_points(bbox, key=key, value=value, target_crs=crs)


async def name_metro_areas(result: SuitabilityResult, crs: str) -> SuitabilityResult:
    """Reverse geocode metro-area centroids and attach the names."""
    async with OSMClient() as client:
        named = await client.name_regions(result.metro.regions, crs)

    names = {region.label: region.name for region in named if region.name}
    return SuitabilityResult(
        score=result.score,
        weights=result.weights,
        metro=result.metro.with_names(names),
        density=result.density,
        tiers=result.tiers,
        tier_table=result.tier_table,
        minimum_score=result.minimum_score,
        within_metro=result.within_metro,
    )


def run(args: argparse.Namespace) -> SuitabilityResult:
    """Run the pipeline and write the deliverables."""
    start_time = datetime.now()
    output_dir = args.output_dir
    output_dir.mkdir(parents=True, exist_ok=True)

    # Step 1: Load data
    print("Step 1: Loading census grid...")
    print("-" * 40)

    loader = CensusFileLoader(
        census_path=args.census,
        points_path=args.points,
        separator=args.separator,
    )
    grids = loader.load_census_grids()
    geometry = next(iter(grids.values())).geometry
    print(f"  Grid: {geometry.n_rows} x {geometry.n_cols} cells of {geometry.cell_width:g} m")

    points = None
    if args.fetch_osm:
        print(f"  Fetching {args.osm_key}={args.osm_value} from OpenStreetMap...")
        points = asyncio.run(
            fetch_points_online(geometry, args.crs, args.osm_key, args.osm_value)
        )
    elif args.points is not None or loader.points_path.exists():
        points = loader.load_points(
            weight_column=args.weight_column,
            target_crs=args.crs,
            layer=args.points_layer,
        )
    if points is not None:
        print(f"  Points of interest: {len(points)}")
    else:
        print("  No points of interest available")

    # Step 2: Score
    print("\nStep 2: Scoring cells...")
    print("-" * 40)

    scorer = SuitabilityScorer(config_path=args.config, strict=not args.lenient)
    result = scorer.score_grids(grids, points=points)

    if args.name_regions and result.metro.regions:
        print("  Naming metro areas...")
        result = asyncio.run(name_metro_areas(result, args.crs))

    summary = result.summary()
    print(f"\n  Metro areas: {summary['metro_areas']}")
    for region in result.metro.regions:
        print(f"    #{region.label} {region.name or ''} ({region.total:,.0f} inhabitants)")

    print("\n  Tier Distribution:")
    for label, count in summary["tiers"].items():
        pct = count / summary["scored_cells"] * 100 if summary["scored_cells"] else 0
        bar = "#" * int(pct / 2)
        print(f"    {label:>10}: {count:6d} ({pct:5.1f}%) {bar}")
    print(f"\n  Suitable cells: {summary['suitable_cells']}")

    # Step 3: Deliverables
    print("\nStep 3: Generating deliverables...")
    print("-" * 40)

    run_parameters = {
        "Census file": loader.census_path,
        "Points": "OpenStreetMap" if args.fetch_osm else (loader.points_path if points is not None else "none"),
        "Config": scorer.config_path,
        "CRS": args.crs,
        "Analysis Date": datetime.now().strftime("%Y-%m-%d"),
    }

    excel_path = export_to_excel(result, output_dir=output_dir, run_parameters=run_parameters)
    print(f"  [OK] Excel workbook: {excel_path}")

    csv_exporter = CSVExporter(output_dir)
    print(f"  [OK] Cell CSV: {csv_exporter.export(result)}")
    print(
        "  [OK] Suitable cell CSV: "
        f"{csv_exporter.export(result, filename='suitable_cells.csv', suitable_only=True)}"
    )
    print(f"  [OK] Metro area CSV: {csv_exporter.export_regions(result)}")

    if not args.no_map:
        map_path = generate_map(result, output_dir=output_dir, crs=args.crs)
        print(f"  [OK] Interactive map: {map_path}")

    elapsed = datetime.now() - start_time
    print(f"\nTotal time: {elapsed.total_seconds():.1f} seconds")

    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Generate all suitability deliverables."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    print("\n" + "=" * 60)
    print("LOCATION SUITABILITY ANALYSIS - DELIVERABLE GENERATION")
    print("=" * 60 + "\n")

    try:
        run(args)
    except GeomarketingError as e:
        logger.error("Run failed: %s", e)
        return 1

    print("\n" + "=" * 60)
    print("DELIVERABLE GENERATION COMPLETE")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
