"""
Location Suitability Scoring Engine.

This module runs the full grid workflow that scores every census cell as
a potential store location:

1. Reclassification - census class codes become a population estimate
   and three demographic weights (share of women, mean age, household size)
2. Metro areas - the population estimate is aggregated into coarse blocks;
   connected blocks above a threshold form metropolitan areas
3. Point density - existing points of interest are counted per cell and
   binned into natural-breaks classes
4. Composite - the demographic weights and the density class are added up
5. Tiers - the composite score is labelled with configured score bands

A cell is "suitable" when its score reaches the configured minimum and,
unless disabled, it lies inside a metropolitan area.

Rules and thresholds are configurable via config/scoring_weights.yaml.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import numpy as np
import pandas as pd
import yaml
from pydantic import ValidationError

from ..acquisition.grid_loader import load_grids
from ..core.exceptions import ConfigError
from ..core.grid import Grid, PointSet
from ..core.models import ClassBreakTable, ClassInterval, ReclassRule
from ..processing.metro import MetroAreaExtractor, MetroAreas
from ..processing.rasterizer import PointDensity, PointDensityRasterizer
from ..processing.reclassifier import classify, reclassify_attributes
from .compositor import ScoreCompositor

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SuitabilityResult:
    """
    Container for the grids produced by one scoring run.

    Attributes:
        score: Composite suitability score per cell.
        weights: Reclassified grids by name, including the population
            estimate and the point-density class when points were given.
        metro: Metro-area extraction result.
        density: Point-density result, or None without points.
        tiers: Tier code per cell.
        tier_table: Table the tiers were classified with.
        minimum_score: Lowest score of a suitable cell.
        within_metro: Whether suitable cells must lie inside a metro area.
    """

    score: Grid
    weights: dict[str, Grid]
    metro: MetroAreas
    density: Optional[PointDensity]
    tiers: Grid
    tier_table: ClassBreakTable
    minimum_score: float
    within_metro: bool = True

    def metro_labels(self) -> np.ndarray:
        """Metro-area label of every fine cell (0 = outside all metro areas)."""
        k = self.metro.factor
        n_rows, n_cols = self.score.shape
        expanded = np.repeat(np.repeat(self.metro.labels, k, axis=0), k, axis=1)
        return expanded[:n_rows, :n_cols]

    def suitable_mask(self) -> np.ndarray:
        mask = self.score.valid & (self.score.values >= self.minimum_score)
        if self.within_metro:
            mask &= self.metro_labels() > 0
        return mask

    def to_dataframe(self) -> pd.DataFrame:
        """
        Convert scored cells to a long-form DataFrame.

        Returns:
            DataFrame with row, col, x, y, score, tier, tier_label, one column
            per weight grid, metro_label and suitable; sorted by score descending.
        """
        df = self.score.to_dataframe("score")
        rows, cols = df["row"].to_numpy(), df["col"].to_numpy()

        tier_codes = self.tiers.to_array()[rows, cols]
        df["tier"] = pd.array(
            [None if np.isnan(code) else int(code) for code in tier_codes],
            dtype="Int64",
        )
        df["tier_label"] = [
            "" if np.isnan(code) else self.tier_table.label_for(int(code))
            for code in tier_codes
        ]

        for name, grid in self.weights.items():
            df[name] = grid.to_array()[rows, cols]

        df["metro_label"] = self.metro_labels()[rows, cols]
        df["suitable"] = self.suitable_mask()[rows, cols]

        return df.sort_values(["score", "row", "col"], ascending=[False, True, True]).reset_index(
            drop=True
        )

    def suitable_cells(self) -> pd.DataFrame:
        df = self.to_dataframe()
        return df[df["suitable"]].reset_index(drop=True)

    def regions_dataframe(self) -> pd.DataFrame:
        """Metro areas with the number of suitable cells inside each."""
        columns = ["label", "name", "cell_count", "total", "centroid_x", "centroid_y"]
        df = pd.DataFrame([region.to_dict() for region in self.metro.regions], columns=columns)

        labels = self.metro_labels()
        suitable = self.suitable_mask()
        df["suitable_cells"] = [int((suitable & (labels == label)).sum()) for label in df["label"]]
        return df

    def summary(self) -> dict[str, Any]:
        """Headline statistics of the run."""
        scores = self.score.present_values()
        tier_counts = {}
        for code in self.tier_table.codes:
            tier_counts[self.tier_table.label_for(code)] = int(
                (self.tiers.valid & (self.tiers.values == code)).sum()
            )

        return {
            "cells": int(self.score.valid.size),
            "scored_cells": int(scores.size),
            "mean_score": float(scores.mean()) if scores.size else None,
            "median_score": float(np.median(scores)) if scores.size else None,
            "min_score": float(scores.min()) if scores.size else None,
            "max_score": float(scores.max()) if scores.size else None,
            "metro_areas": len(self.metro.regions),
            "suitable_cells": int(self.suitable_mask().sum()),
            "minimum_score": self.minimum_score,
            "poi_breaks": list(self.density.breaks) if self.density else [],
            "tiers": tier_counts,
        }


class SuitabilityScorer:
    """
    Grid-based scoring engine for store location suitability.

    Usage:
        scorer = SuitabilityScorer()

        # Score pre-built attribute grids
        result = scorer.score_grids(census_grids, points=supermarkets)

        # Score raw (x, y, attr...) records
        result = scorer.score_records(records, ["population", "women"])

        suitable = result.suitable_cells()

    Attributes:
        config: Scoring configuration loaded from YAML.
        rules: Reclassification rule per attribute.
        tier_table: Score tiers.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        project_root: Optional[Path] = None,
        strict: bool = True,
    ) -> None:
        """
        Initialize the suitability scorer.

        Args:
            config_path: Path to scoring_weights.yaml. Auto-detected if not provided.
            project_root: Project root directory for config lookup.
            strict: Raise on class codes without a rule instead of dropping the cell.

        Raises:
            ConfigError: If the configuration is unreadable or invalid.
        """
        if config_path is None:
            if project_root is None:
                project_root = Path(__file__).parent.parent.parent.parent
            config_path = Path(project_root) / "config" / "scoring_weights.yaml"

        self.config_path = Path(config_path)
        self.strict = strict
        self.config = self._load_config()

        self.rules = self._build_rules()
        self.tier_table = self._build_tier_table()

        self._build_stages()

        logger.info("Initialized SuitabilityScorer")
        logger.info("  Config: %s", self.config_path)
        logger.info("  Rules: %s", sorted(self.rules))

    def _load_config(self) -> dict[str, Any]:
        """Load scoring configuration from YAML file."""
        if not self.config_path.exists():
            logger.warning("Config not found at %s, using defaults", self.config_path)
            return self._get_default_config()

        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}", cause=e)

        if not isinstance(config, dict):
            raise ConfigError(f"Scoring config {self.config_path} must be a mapping")

        logger.info("Loaded scoring config from %s", self.config_path)
        return config

    def _get_default_config(self) -> dict[str, Any]:
        """Return default configuration if YAML not found."""
        return {
            "reclassification": {
                "population": {
                    "description": "Population class -> representative inhabitants",
                    "mapping": {1: 127, 2: 375, 3: 1250, 4: 3000, 5: 6000, 6: 8000},
                },
                "women": {
                    "description": "Share of women class -> weight",
                    "ranges": [[1, 1, 3], [2, 2, 2], [3, 3, 1], [4, 5, 0]],
                },
                "mean_age": {
                    "description": "Mean age class -> weight",
                    "ranges": [[1, 1, 3], [2, 2, 0], [3, 5, 0]],
                },
                "household_size": {
                    "description": "Household size class -> weight",
                    "ranges": [[1, 1, 3], [2, 2, 2], [3, 3, 1], [4, 5, 0]],
                },
            },
            "metro": {
                "attribute": "population",
                "aggregation_factor": 20,
                "minimum_population": 500_000,
            },
            "points_of_interest": {
                "n_classes": 4,
                "weighted": False,
                "strict": False,
                "weight_name": "poi",
            },
            "composite": {
                "exclude": ["population"],
                "minimum_score": 9,
                "within_metro": True,
            },
            "classification": {
                "closed_top": True,
                "tiers": [
                    {"min": 0, "max": 6, "code": 1, "label": "Poor"},
                    {"min": 6, "max": 9, "code": 2, "label": "Moderate"},
                    {"min": 9, "max": 10, "code": 3, "label": "Good"},
                    {"min": 10, "max": 12, "code": 4, "label": "Excellent"},
                ],
            },
        }

    def _build_rules(self) -> dict[str, ReclassRule]:
        """Validate the reclassification section into ReclassRule models."""
        section = self.config.get("reclassification")
        if not section:
            raise ConfigError("Scoring config has no 'reclassification' section")

        rules = {}
        for attribute, definition in section.items():
            try:
                rules[attribute] = ReclassRule(attribute=attribute, **(definition or {}))
            except (TypeError, ValidationError) as e:
                raise ConfigError(
                    f"Invalid reclassification rule for '{attribute}'",
                    cause=e,
                )
        return rules

    def _build_stages(self) -> None:
        """Set up the metro, point density and composite stages from their config sections."""
        metro_config = self.config.get("metro", {})
        poi_config = self.config.get("points_of_interest", {})
        composite_config = self.config.get("composite", {})

        try:
            self.metro_attribute = metro_config.get("attribute", "population")
            self.extractor = MetroAreaExtractor(
                factor=int(metro_config.get("aggregation_factor", 20)),
                minimum_population=float(metro_config.get("minimum_population", 500_000)),
            )
            self.rasterizer = PointDensityRasterizer(
                n_classes=int(poi_config.get("n_classes", 4)),
                weighted=bool(poi_config.get("weighted", False)),
                strict=bool(poi_config.get("strict", False)),
                weight_name=poi_config.get("weight_name", "poi"),
            )
            self.compositor = ScoreCompositor(exclude=composite_config.get("exclude", []))
            self.minimum_score = float(composite_config.get("minimum_score", 9))
            self.within_metro = bool(composite_config.get("within_metro", True))
        except (AttributeError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid stage settings in {self.config_path}: {e}", cause=e)

    def _build_tier_table(self) -> ClassBreakTable:
        """Validate the classification section into a ClassBreakTable."""
        classification = self.config.get("classification", {})
        tiers = sorted(classification.get("tiers", []), key=lambda tier: tier.get("min", 0))
        if not tiers:
            raise ConfigError("Scoring config has no 'classification.tiers'")

        try:
            intervals = [
                ClassInterval(
                    lower=tier["min"],
                    upper=tier["max"],
                    code=tier.get("code", index + 1),
                    label=tier.get("label", ""),
                )
                for index, tier in enumerate(tiers)
            ]
            return ClassBreakTable(
                intervals=intervals,
                closed_top=classification.get("closed_top", True),
            )
        except (KeyError, ValidationError) as e:
            raise ConfigError("Invalid score tiers", cause=e)

    def classify_score(self, score: float) -> tuple[Optional[int], str]:
        """
        Look up the tier of a single score.

        Returns:
            Tuple of (tier code, tier label); (None, "") outside all tiers.
        """
        code = self.tier_table.classify(score)
        if code is None:
            return None, ""
        return code, self.tier_table.label_for(code)

    def score_grids(
        self,
        attribute_grids: dict[str, Grid],
        points: Optional[PointSet] = None,
    ) -> SuitabilityResult:
        """
        Score aligned census attribute grids.

        Args:
            attribute_grids: Attribute name -> grid of class codes.
            points: Points of interest in the grid CRS. Without points the
                density weight is left out of the score.

        Returns:
            SuitabilityResult with every intermediate grid.

        Raises:
            ConfigError: If an attribute has no rule or the metro attribute is missing.
            UnmappedClassError: In strict mode, for a class code without a rule.
            GridMismatchError: If the attribute grids are not aligned.
        """
        if self.metro_attribute not in attribute_grids:
            raise ConfigError(
                f"Metro attribute '{self.metro_attribute}' not among grids "
                f"{sorted(attribute_grids)}"
            )

        logger.info("Scoring %d attribute grids...", len(attribute_grids))

        # Step 1: Reclassify class codes to estimates and weights
        weights = reclassify_attributes(attribute_grids, self.rules, strict=self.strict)

        # Step 2: Metro areas from the population estimate
        metro = self.extractor.extract(weights[self.metro_attribute])

        # Step 3: Point density classes
        density = None
        if points is not None:
            geometry = weights[self.metro_attribute].geometry
            density = self.rasterizer.rasterize(points, geometry)
            weights[density.weights.name] = density.weights
        else:
            logger.warning("No points of interest given; density weight left out of the score")

        # Step 4: Composite score
        score = self.compositor.compose(weights)

        # Step 5: Tiers
        tiers = classify(score, self.tier_table).with_name("tier")

        result = SuitabilityResult(
            score=score,
            weights=weights,
            metro=metro,
            density=density,
            tiers=tiers,
            tier_table=self.tier_table,
            minimum_score=self.minimum_score,
            within_metro=self.within_metro,
        )

        self._log_summary(result)
        return result

    def score_records(
        self,
        records: Iterable[Sequence[Any]],
        attributes: Optional[Sequence[str]] = None,
        points: Optional[PointSet] = None,
        cell_size: Optional[float] = None,
        missing_codes: Sequence[float] = (-1, -9),
    ) -> SuitabilityResult:
        """
        Build grids from (x, y, attr_1, ..., attr_n) records and score them.

        Args:
            records: Cell-center records.
            attributes: Attribute names in record order. Defaults to the configured rules.
            points: Points of interest in the record CRS.
            cell_size: Explicit cell size; inferred if not provided.
            missing_codes: Values treated as missing.

        Returns:
            SuitabilityResult.
        """
        attributes = list(attributes or self.rules)
        grids = load_grids(
            records,
            attributes,
            cell_size=cell_size,
            missing_codes=missing_codes,
        )
        return self.score_grids(grids, points=points)

    def _log_summary(self, result: SuitabilityResult) -> None:
        summary = result.summary()

        logger.info("Scoring complete")
        if summary["scored_cells"]:
            logger.info("  Score distribution:")
            logger.info("    Mean: %.2f", summary["mean_score"])
            logger.info("    Median: %.2f", summary["median_score"])
            logger.info("    Min: %.2f", summary["min_score"])
            logger.info("    Max: %.2f", summary["max_score"])

        logger.info("  Tier distribution:")
        for label, count in summary["tiers"].items():
            pct = count / summary["scored_cells"] * 100 if summary["scored_cells"] else 0.0
            logger.info("    %s: %d (%.1f%%)", label, count, pct)

        logger.info(
            "  Suitable cells (score >= %g%s): %d",
            summary["minimum_score"],
            ", inside metro areas" if result.within_metro else "",
            summary["suitable_cells"],
        )
