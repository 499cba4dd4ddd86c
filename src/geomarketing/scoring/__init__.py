"""
Scoring Module for the geomarketing pipeline.

Composites aligned weight grids into a suitability score and runs the
complete census-to-score workflow.
"""

from .compositor import ScoreCompositor, check_alignment, composite
from .suitability_scorer import SuitabilityResult, SuitabilityScorer

__all__ = [
    # Composition
    "ScoreCompositor",
    "check_alignment",
    "composite",
    # Workflow
    "SuitabilityResult",
    "SuitabilityScorer",
]
