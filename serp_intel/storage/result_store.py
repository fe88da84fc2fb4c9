"""
Result store for analyses and their competitor records.

:class:`ResultStore` is the persistence contract the orchestrator depends on.
:class:`InMemoryResultStore` keeps everything in process memory with
monotonically increasing integer ids; any keyed backend honoring the same
contract can replace it.

The store is the only component that mutates persisted state. It enforces
the analysis lifecycle (pending -> processing -> completed | failed) and
serializes id allocation and writes behind an ``asyncio.Lock`` so concurrent
analyses can share one instance.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from serp_intel.models.schemas import (
    Analysis,
    AnalysisOutcome,
    AnalysisStatus,
    CompetitorResult,
    NewAnalysis,
    NewCompetitorResult,
    utcnow,
)
from serp_intel.utils.errors import InvalidStatusTransitionError, PersistenceError
from serp_intel.utils.logger import get_logger

logger = get_logger(__name__)


class ResultStore(ABC):
    """Abstract interface for analysis persistence."""

    @abstractmethod
    async def create_analysis(self, analysis: NewAnalysis) -> Analysis:
        """Persist a new analysis in ``pending`` state."""

    @abstractmethod
    async def get_analysis(self, analysis_id: int) -> Optional[Analysis]:
        """Load one analysis, or None if unknown."""

    @abstractmethod
    async def update_analysis_status(
        self,
        analysis_id: int,
        status: AnalysisStatus,
        results: Optional[AnalysisOutcome] = None,
    ) -> Optional[Analysis]:
        """
        Move an analysis to ``status``.

        Sets ``completed_at`` on terminal statuses. Returns None if the
        analysis does not exist.

        Raises:
            InvalidStatusTransitionError: The move is not allowed by the lifecycle.
        """

    @abstractmethod
    async def list_analyses(self) -> list[Analysis]:
        """All analyses, most recently created first."""

    @abstractmethod
    async def create_competitor_result(self, result: NewCompetitorResult) -> CompetitorResult:
        """Persist one competitor record."""

    @abstractmethod
    async def list_competitor_results(self, analysis_id: int) -> list[CompetitorResult]:
        """Competitor records of one analysis, by ascending rank."""

    @abstractmethod
    async def delete_competitor_results_by_analysis(self, analysis_id: int) -> int:
        """Bulk-delete the competitor records of one analysis. Returns the count removed."""


class InMemoryResultStore(ResultStore):
    """In-process store; records are copied in and out so callers cannot alias them."""

    def __init__(self):
        self._analyses: dict[int, Analysis] = {}
        self._competitors: dict[int, CompetitorResult] = {}
        self._next_analysis_id = 1
        self._next_competitor_id = 1
        self._lock = asyncio.Lock()

    async def create_analysis(self, analysis: NewAnalysis) -> Analysis:
        async with self._lock:
            record = Analysis(
                id=self._next_analysis_id,
                keyword=analysis.keyword,
                country=analysis.country,
                language=analysis.language,
            )
            self._next_analysis_id += 1
            self._analyses[record.id] = record

        logger.debug("Analysis created", analysis_id=record.id, keyword=record.keyword)
        return record.model_copy(deep=True)

    async def get_analysis(self, analysis_id: int) -> Optional[Analysis]:
        record = self._analyses.get(analysis_id)
        return record.model_copy(deep=True) if record else None

    async def update_analysis_status(
        self,
        analysis_id: int,
        status: AnalysisStatus,
        results: Optional[AnalysisOutcome] = None,
    ) -> Optional[Analysis]:
        target = AnalysisStatus(status)

        async with self._lock:
            record = self._analyses.get(analysis_id)
            if record is None:
                return None

            current = AnalysisStatus(record.status)
            if not current.can_transition_to(target):
                raise InvalidStatusTransitionError(
                    f"Cannot move analysis {analysis_id} from {current.value} to {target.value}",
                    details={"analysis_id": analysis_id, "from": current.value, "to": target.value},
                )

            updated = record.model_copy(
                update={
                    "status": target.value,
                    "results": results if results is not None else record.results,
                    "completed_at": utcnow() if target.is_terminal else record.completed_at,
                },
                deep=True,
            )
            self._analyses[analysis_id] = updated

        logger.debug("Analysis status updated", analysis_id=analysis_id, status=target.value)
        return updated.model_copy(deep=True)

    async def list_analyses(self) -> list[Analysis]:
        records = sorted(
            self._analyses.values(),
            key=lambda a: (a.created_at, a.id),
            reverse=True,
        )
        return [r.model_copy(deep=True) for r in records]

    async def create_competitor_result(self, result: NewCompetitorResult) -> CompetitorResult:
        async with self._lock:
            if result.analysis_id not in self._analyses:
                raise PersistenceError(
                    f"Analysis {result.analysis_id} does not exist",
                    details={"analysis_id": result.analysis_id},
                )
            for existing in self._competitors.values():
                if existing.analysis_id == result.analysis_id and existing.rank == result.rank:
                    raise PersistenceError(
                        f"Rank {result.rank} already recorded for analysis {result.analysis_id}",
                        details={"analysis_id": result.analysis_id, "rank": result.rank},
                    )

            record = CompetitorResult(id=self._next_competitor_id, **result.model_dump())
            self._next_competitor_id += 1
            self._competitors[record.id] = record

        return record.model_copy(deep=True)

    async def list_competitor_results(self, analysis_id: int) -> list[CompetitorResult]:
        records = [c for c in self._competitors.values() if c.analysis_id == analysis_id]
        records.sort(key=lambda c: c.rank)
        return [r.model_copy(deep=True) for r in records]

    async def delete_competitor_results_by_analysis(self, analysis_id: int) -> int:
        async with self._lock:
            doomed = [cid for cid, c in self._competitors.items() if c.analysis_id == analysis_id]
            for cid in doomed:
                del self._competitors[cid]

        logger.debug("Competitor results deleted", analysis_id=analysis_id, count=len(doomed))
        return len(doomed)
