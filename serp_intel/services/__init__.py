"""
Services package for the SERP competitor intelligence pipeline.

Services:
    - PageFetcher: Competitor page retrieval with a hard timeout
    - AnalysisProvider: Search + NLP provider interface

Providers:
    - GoogleApisProvider: Custom Search JSON API and Cloud Natural Language
"""

from serp_intel.services.analysis_provider import (
    AnalysisProvider,
    GoogleApisProvider,
    create_analysis_provider,
)
from serp_intel.services.page_fetcher import BROWSER_HEADERS, PageFetcher

__all__ = [
    # Fetching
    "PageFetcher",
    "BROWSER_HEADERS",
    # Providers
    "AnalysisProvider",
    "GoogleApisProvider",
    "create_analysis_provider",
]
