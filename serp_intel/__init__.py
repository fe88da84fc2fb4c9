"""
SERP Competitor Intelligence.

Keyword research pipeline that fetches the top-ranking pages for a search
keyword, parses each competitor, optionally runs entity and sentiment
analysis, and turns the aggregate into content recommendations.
"""

__version__ = "1.0.0"
__author__ = "SERP Intelligence Team"

__all__ = ["__version__"]
