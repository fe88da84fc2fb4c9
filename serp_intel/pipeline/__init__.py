"""Pipeline module for the SERP competitor intelligence pipeline."""

from serp_intel.pipeline.orchestrator import (
    AnalysisOrchestrator,
    AnalysisStateDict,
    build_orchestrator,
    track_timing,
)

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisStateDict",
    "build_orchestrator",
    "track_timing",
]
