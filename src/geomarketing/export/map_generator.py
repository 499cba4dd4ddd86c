"""
Interactive Map Generator for suitability results.

Generates HTML maps using Folium: metro areas as dissolved polygons and
suitable cells as tier-coloured markers, reprojected from the working
grid CRS to WGS84.
"""

import logging
from pathlib import Path
from typing import Optional

import folium
import geopandas as gpd
import pandas as pd
from folium.plugins import MarkerCluster

from ..processing.vectorize import regions_to_geodataframe
from ..scoring.suitability_scorer import SuitabilityResult

logger = logging.getLogger(__name__)

DEFAULT_CRS = "EPSG:3035"
DEFAULT_ZOOM = 7

# Marker colors from lowest to highest tier
TIER_PALETTE = ["#dc3545", "#fd7e14", "#ffc107", "#5cb85c", "#28a745"]

METRO_STYLE = {
    "fillColor": "#4472C4",
    "color": "#1F3864",
    "weight": 2,
    "fillOpacity": 0.15,
}


def tier_colors(labels: list[str]) -> dict[str, str]:
    """Spread the palette over tiers ordered from lowest to highest."""
    count = len(labels)
    return {
        label: TIER_PALETTE[round(index * (len(TIER_PALETTE) - 1) / max(count - 1, 1))]
        for index, label in enumerate(labels)
    }


class MapGenerator:
    """Generate interactive HTML maps for suitability results."""

    def __init__(
        self,
        output_dir: Path | str = "deliverables",
        crs: str = DEFAULT_CRS,
        zoom: int = DEFAULT_ZOOM,
    ):
        """
        Args:
            output_dir: Directory the HTML file is written to
            crs: CRS of the grid coordinates, reprojected to WGS84 for display
            zoom: Initial zoom level
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.crs = crs
        self.zoom = zoom

    def generate(
        self,
        result: SuitabilityResult,
        filename: str = "suitability_map.html",
        use_clustering: bool = True,
        max_markers: Optional[int] = None,
    ) -> Path:
        """
        Generate an interactive HTML map of metro areas and suitable cells.

        Args:
            result: Scoring result to map
            filename: Output filename
            use_clustering: Group nearby markers into clusters
            max_markers: Keep only this many cells, highest scores first

        Returns:
            Path of the written HTML file
        """
        path = self.output_dir / filename
        logger.info(f"Building suitability map {path}")

        metros = regions_to_geodataframe(
            result.metro.regions, result.metro.geometry, crs=self.crs
        ).to_crs("EPSG:4326")

        cells = result.suitable_cells()
        if max_markers and len(cells) > max_markers:
            cells = cells.nlargest(max_markers, "score")
        cells = gpd.GeoDataFrame(
            cells,
            geometry=gpd.points_from_xy(cells["x"], cells["y"]),
            crs=self.crs,
        ).to_crs("EPSG:4326")

        m = folium.Map(
            location=self._center(metros, cells, result),
            zoom_start=self.zoom,
            tiles="OpenStreetMap",
        )
        folium.TileLayer("cartodbpositron", name="Light basemap").add_to(m)

        if len(metros):
            metros["name"] = metros["name"].replace("", "Unnamed")
            folium.GeoJson(
                metros,
                name="Metro Areas",
                style_function=lambda _: METRO_STYLE,
                tooltip=folium.GeoJsonTooltip(
                    fields=["label", "name", "total"],
                    aliases=["Metro area", "Name", "Population"],
                ),
            ).add_to(m)

        tier_labels = [result.tier_table.label_for(code) for code in result.tier_table.codes]
        colors = tier_colors(tier_labels)

        layer_type = MarkerCluster if use_clustering else folium.FeatureGroup
        markers = layer_type(name="Suitable Cells").add_to(m)

        for _, row in cells.iterrows():
            color = colors.get(row["tier_label"], "#6c757d")
            folium.CircleMarker(
                location=[row.geometry.y, row.geometry.x],
                radius=6,
                color=color,
                fill=True,
                fill_color=color,
                fill_opacity=0.8,
                popup=folium.Popup(self._build_popup(row, result), max_width=300),
                tooltip=f"Score: {row['score']:.1f} ({row['tier_label'] or 'no tier'})",
            ).add_to(markers)

        logger.info(f"Map layers: {len(metros)} metro areas, {len(cells)} cell markers")

        self._add_legend(m, colors)
        folium.LayerControl(collapsed=False).add_to(m)

        m.save(path)
        logger.info(f"Suitability map written to {path}")

        return path

    def _center(
        self,
        metros: gpd.GeoDataFrame,
        cells: gpd.GeoDataFrame,
        result: SuitabilityResult,
    ) -> tuple[float, float]:
        """Center on metro areas, else on suitable cells, else on the grid extent."""
        for gdf in (metros, cells):
            if len(gdf):
                min_x, min_y, max_x, max_y = gdf.total_bounds
                return ((min_y + max_y) / 2, (min_x + max_x) / 2)

        min_x, min_y, max_x, max_y = result.score.geometry.extent
        center = gpd.GeoSeries(
            gpd.points_from_xy([(min_x + max_x) / 2], [(min_y + max_y) / 2]), crs=self.crs
        ).to_crs("EPSG:4326")
        return (center.iloc[0].y, center.iloc[0].x)

    def _build_popup(self, row: pd.Series, result: SuitabilityResult) -> str:
        """Build HTML popup content for a cell marker."""
        weight_rows = "".join(
            f'<tr><td style="padding: 3px; font-weight: bold;">{name}:</td>'
            f'<td style="padding: 3px;">{row[name]:g}</td></tr>'
            for name in result.weights
            if pd.notna(row[name])
        )
        names = {region.label: region.name for region in result.metro.regions}
        metro = names.get(row["metro_label"]) or f"#{row['metro_label']}"

        return f"""
        <div style="font-family: Arial, sans-serif; min-width: 220px;">
            <h4 style="margin: 0 0 10px 0; color: #333;">Cell ({row['row']}, {row['col']})</h4>
            <div style="padding: 6px; margin-bottom: 8px; text-align: center; border: 1px solid #ccc;">
                <strong>Score: {row['score']:.1f}</strong> | <strong>{row['tier_label']}</strong>
            </div>
            <table style="width: 100%; font-size: 12px; border-collapse: collapse;">
                <tr><td style="padding: 3px; font-weight: bold;">Metro area:</td><td style="padding: 3px;">{metro}</td></tr>
                {weight_rows}
            </table>
        </div>
        """

    def _add_legend(self, m: folium.Map, colors: dict[str, str]) -> None:
        """Add a tier legend to the map."""
        entries = "".join(
            f'<div style="margin-top: 3px;"><span style="background-color: {color}; '
            f'padding: 2px 8px; border-radius: 3px;">&nbsp;</span> {label}</div>'
            for label, color in reversed(list(colors.items()))
        )
        legend_html = f"""
        <div style="
            position: fixed;
            bottom: 50px;
            left: 50px;
            z-index: 1000;
            background-color: white;
            padding: 10px;
            border: 2px solid gray;
            border-radius: 5px;
            font-family: Arial, sans-serif;
            font-size: 12px;
        ">
            <div style="font-weight: bold; margin-bottom: 5px;">Suitability Tier</div>
            {entries}
        </div>
        """
        m.get_root().html.add_child(folium.Element(legend_html))


def generate_map(
    result: SuitabilityResult,
    output_dir: Path | str = "deliverables",
    filename: str = "suitability_map.html",
    crs: str = DEFAULT_CRS,
    use_clustering: bool = True,
) -> Path:
    """Write the suitability map with default settings."""
    return MapGenerator(output_dir, crs=crs).generate(result, filename, use_clustering=use_clustering)
