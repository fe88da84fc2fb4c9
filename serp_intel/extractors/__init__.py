"""
Extractors module for the SERP competitor intelligence pipeline.

Components:
    - ContentExtractor: Raw HTML to structured page signals
"""

from serp_intel.extractors.content_extractor import (
    ContentExtractor,
    clean_text,
    count_words,
)

__all__ = [
    "ContentExtractor",
    "clean_text",
    "count_words",
]
