"""Analyzers module for the SERP competitor intelligence pipeline."""

from serp_intel.analyzers.aggregator import (
    Aggregator,
    ENTITY_PAGE_SHARE,
    OPTIMAL_TITLE_MAX,
    OPTIMAL_TITLE_MIN,
    round_half_up,
)

__all__ = [
    "Aggregator",
    "ENTITY_PAGE_SHARE",
    "OPTIMAL_TITLE_MIN",
    "OPTIMAL_TITLE_MAX",
    "round_half_up",
]
