"""
Cross-competitor aggregation.

Computes the summary statistics of one analysis (average length, average
title length, common entities, average sentiment) and derives the ordered
list of content recommendations from them.

Averages round half up, so 150.5 words becomes 151 and a sentiment of
0.125 becomes 0.13.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from serp_intel.models.schemas import (
    AnalysisSummary,
    EntityData,
    NewCompetitorResult,
    SENTIMENT_THRESHOLD,
)
from serp_intel.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Thresholds
# =============================================================================

# An entity is "common" once it shows up on this share of pages
ENTITY_PAGE_SHARE = 0.3
MAX_COMMON_ENTITIES = 10
MAX_RECOMMENDED_ENTITIES = 5

OPTIMAL_TITLE_MIN = 50
OPTIMAL_TITLE_MAX = 60

STRUCTURED_DATA_SHARE = 0.5


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like ``Math.round``: halves go up, also for negatives (-2.5 -> -2)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


@dataclass
class _EntityTally:
    type: str
    count: int = 0
    total_salience: float = 0.0


class Aggregator:
    """
    Summarizes persisted competitor records and recommends content changes.

    Both methods are pure; they accept anything shaped like a competitor
    record (``CompetitorResult`` or ``NewCompetitorResult``).
    """

    def summarize(self, competitors: Sequence[NewCompetitorResult]) -> AnalysisSummary:
        """
        Compute cross-page statistics.

        Args:
            competitors: Persisted competitor records of one analysis.

        Returns:
            AnalysisSummary; every field is zero/empty for an empty input.
        """
        total = len(competitors)

        # Pages with no extractable text do not drag the average down
        counted = [c.word_count for c in competitors if c.word_count and c.word_count > 0]
        avg_word_count = int(round_half_up(sum(counted) / len(counted))) if counted else 0

        avg_title_length = (
            int(round_half_up(sum(len(c.title or "") for c in competitors) / total))
            if total else 0
        )

        scores = [c.sentiment for c in competitors if c.sentiment is not None]
        avg_sentiment = round_half_up(sum(scores) / len(scores), 2) if scores else 0.0

        return AnalysisSummary(
            avg_word_count=avg_word_count,
            avg_title_length=avg_title_length,
            common_entities=self.common_entities(competitors),
            avg_sentiment=avg_sentiment,
            total_pages=total,
        )

    def common_entities(self, competitors: Sequence[NewCompetitorResult]) -> list[EntityData]:
        """
        Entities shared across competitors.

        Names are grouped case-insensitively and reported lower-cased. An
        entity qualifies when it occurs at least ``ceil(0.3 * N)`` times;
        salience is the mean over its occurrences and ``mentions`` the
        occurrence count. Top ten by mean salience.
        """
        tallies: dict[str, _EntityTally] = {}
        for competitor in competitors:
            for entity in competitor.entities:
                key = entity.name.lower()
                tally = tallies.setdefault(key, _EntityTally(type=entity.type))
                tally.count += 1
                tally.total_salience += entity.salience

        min_count = math.ceil(len(competitors) * ENTITY_PAGE_SHARE)
        common = [
            EntityData(
                name=name,
                type=tally.type,
                salience=tally.total_salience / tally.count,
                mentions=tally.count,
            )
            for name, tally in tallies.items()
            if tally.count >= min_count
        ]
        common.sort(key=lambda e: e.salience, reverse=True)
        return common[:MAX_COMMON_ENTITIES]

    def recommend(
        self,
        competitors: Sequence[NewCompetitorResult],
        keyword: str,
        summary: Optional[AnalysisSummary] = None,
    ) -> list[str]:
        """
        Derive ordered, human-readable recommendations.

        Order: content length, title length, entities, tone, structured data.
        Each item is emitted only when its condition holds.
        """
        summary = summary or self.summarize(competitors)
        recommendations: list[str] = []

        if summary.avg_word_count > 0:
            recommendations.append(
                f"Target content length around {summary.avg_word_count} words "
                "to match top-ranking competitors."
            )

        if summary.avg_title_length > 0:
            if OPTIMAL_TITLE_MIN <= summary.avg_title_length <= OPTIMAL_TITLE_MAX:
                recommendations.append(
                    f"Maintain title length around {summary.avg_title_length} characters "
                    "for optimal performance."
                )
            else:
                recommendations.append(
                    f"Optimize title length to {OPTIMAL_TITLE_MIN}-{OPTIMAL_TITLE_MAX} characters. "
                    f"Current competitor average is {summary.avg_title_length} characters."
                )

        if summary.common_entities:
            names = ", ".join(e.name for e in summary.common_entities[:MAX_RECOMMENDED_ENTITIES])
            recommendations.append(
                f"Include high-value entities in your content: {names}. "
                "These appear frequently in top-ranking pages."
            )

        if summary.avg_sentiment > SENTIMENT_THRESHOLD:
            recommendations.append(
                "Maintain positive content tone. Top competitors show consistently "
                f"positive sentiment (avg: {summary.avg_sentiment})."
            )
        elif summary.avg_sentiment < -SENTIMENT_THRESHOLD:
            recommendations.append(
                "Consider adopting a more positive content tone to match successful competitors."
            )

        with_markup = sum(1 for c in competitors if c.structured_data)
        if with_markup > len(competitors) * STRUCTURED_DATA_SHARE:
            recommendations.append(
                f"Implement structured data markup. {with_markup} out of {len(competitors)} "
                "top competitors use structured data."
            )

        logger.debug(
            "Recommendations generated",
            keyword=keyword,
            count=len(recommendations),
            pages=len(competitors),
        )
        return recommendations
