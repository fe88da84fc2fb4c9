"""
Export formatting for analysis projections.

Renders the Fetch-one projection as JSON, as a per-competitor CSV table, or
as a full-content JSON dump that keeps every competitor's raw markup. No
additional computation happens here.
"""

import csv
import io
import json
import re
from pathlib import Path
from typing import Any, Literal, Optional

from serp_intel.config.settings import get_settings
from serp_intel.models.schemas import AnalysisProjection
from serp_intel.utils.logger import get_logger

logger = get_logger(__name__)

ExportFormat = Literal["json", "csv", "fullcontent"]

CSV_COLUMNS = [
    "Rank",
    "Domain",
    "URL",
    "Title",
    "Meta Description",
    "Word Count",
    "Title Length",
    "Sentiment Score",
    "Entity Count",
]

# Per-competitor fields kept in the full-content dump
FULL_CONTENT_FIELDS = {
    "rank",
    "domain",
    "url",
    "title",
    "meta_description",
    "content",
    "full_content",
    "word_count",
    "headings",
    "styled_elements",
    "entities",
    "images",
    "links",
    "structured_data",
}


def keyword_slug(keyword: str) -> str:
    """Replace whitespace runs with hyphens for use in file names."""
    return re.sub(r"\s+", "-", keyword.strip())


class ReportFormatter:
    """Format and save analysis exports."""

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir) if output_dir else get_settings().output_dir

    def to_json(self, projection: AnalysisProjection) -> str:
        """The projection verbatim, camelCase keys."""
        return projection.to_json()

    def to_csv(self, projection: AnalysisProjection) -> str:
        """One row per competitor; text columns are always quoted."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)

        for competitor in projection.competitors:
            title = competitor.title or ""
            writer.writerow([
                competitor.rank,
                competitor.domain,
                competitor.url,
                title,
                competitor.meta_description or "",
                competitor.word_count or 0,
                len(title),
                competitor.sentiment if competitor.sentiment is not None else 0,
                len(competitor.entities),
            ])

        return buffer.getvalue()

    def full_content_payload(self, projection: AnalysisProjection) -> dict[str, Any]:
        return {
            "keyword": projection.keyword,
            "analysisId": projection.id,
            "country": projection.country,
            "language": projection.language,
            "createdAt": projection.to_dict(include={"created_at"})["createdAt"],
            "competitors": [
                competitor.to_dict(include=FULL_CONTENT_FIELDS)
                for competitor in projection.competitors
            ],
        }

    def to_full_content(self, projection: AnalysisProjection) -> str:
        """Competitor pages including raw markup, for offline content review."""
        return json.dumps(self.full_content_payload(projection), indent=2, ensure_ascii=False)

    def filename_for(self, projection: AnalysisProjection, format_type: ExportFormat) -> str:
        if format_type == "csv":
            return f"seo-analysis-{projection.id}.csv"
        if format_type == "fullcontent":
            return f"full-content-{keyword_slug(projection.keyword)}-{projection.id}.json"
        return f"seo-analysis-{projection.id}.json"

    def render(self, projection: AnalysisProjection, format_type: ExportFormat) -> str:
        if format_type == "json":
            return self.to_json(projection)
        if format_type == "csv":
            return self.to_csv(projection)
        if format_type == "fullcontent":
            return self.to_full_content(projection)
        raise ValueError(f"Unsupported format: {format_type}")

    def save(
        self,
        projection: AnalysisProjection,
        format_type: ExportFormat = "json",
        output_dir: Optional[Path] = None,
    ) -> Path:
        """
        Write an export to disk.

        Args:
            projection: Analysis projection to export.
            format_type: 'json', 'csv' or 'fullcontent'.
            output_dir: Destination directory; defaults to the formatter's.

        Returns:
            Path of the written file.
        """
        content = self.render(projection, format_type)

        directory = Path(output_dir) if output_dir else self.output_dir
        directory.mkdir(parents=True, exist_ok=True)

        file_path = directory / self.filename_for(projection, format_type)
        file_path.write_text(content, encoding="utf-8")
        logger.info("Saved export", path=str(file_path), format=format_type)
        return file_path
