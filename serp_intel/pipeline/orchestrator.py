"""
Analysis orchestrator using LangGraph.

Drives one keyword analysis end to end: search, then fetch, parse and
optional NLP for every competitor in rank order, then aggregation and the
final status update. Each submitted analysis runs as its own detached
``asyncio.Task``; callers observe progress by polling the store-backed
projections.

Graph structure:
    mark_processing -> search -> scrape_competitors -> aggregate -> finalize -> END

Failure policy:
    - Search failures and zero results abort the run (status ``failed``).
    - A page that cannot be fetched is skipped; later ranks are not renumbered.
    - Entity or sentiment failures degrade the record to ``[]`` / ``None``.
    - Competitor records persisted before a fatal error are kept.

Example:
    >>> async with build_orchestrator() as orchestrator:
    ...     analysis_id = await orchestrator.start_analysis(
    ...         AnalysisConfig(keyword="best coffee makers")
    ...     )
    ...     projection = await orchestrator.get_analysis_results(analysis_id)
"""

import asyncio
import time
from functools import wraps
from typing import Any, Callable, Optional, TypedDict

from langgraph.graph import END, StateGraph
from pydantic import ValidationError

from serp_intel.analyzers.aggregator import Aggregator
from serp_intel.config.settings import Settings, get_settings
from serp_intel.extractors.content_extractor import ContentExtractor
from serp_intel.models.schemas import (
    AnalysisConfig,
    AnalysisOutcome,
    AnalysisProjection,
    AnalysisStatus,
    AnalysisSummary,
    CompetitorResult,
    EntityData,
    NewAnalysis,
    NewCompetitorResult,
    ScrapedData,
    SearchResultItem,
    extract_domain,
)
from serp_intel.services.analysis_provider import AnalysisProvider, GoogleApisProvider
from serp_intel.services.page_fetcher import PageFetcher
from serp_intel.storage.result_store import InMemoryResultStore, ResultStore
from serp_intel.utils.errors import (
    AppError,
    ConfigValidationError,
    ErrorHandler,
    NoSearchResultsError,
    PageFetchError,
    PersistenceError,
    SearchProviderError,
)
from serp_intel.utils.logger import LogContext, get_logger
from serp_intel.utils.throttle import FixedDelayPolicy, RateLimitPolicy

logger = get_logger(__name__)


# =============================================================================
# Pipeline State Definition (TypedDict for LangGraph)
# =============================================================================

class AnalysisStateDict(TypedDict, total=False):
    """
    State carried through the analysis graph.

    Nodes return partial updates; LangGraph merges them into the state.
    """
    # Identifiers
    analysis_id: int

    # Input
    config: AnalysisConfig
    api_key: str
    cse_id: str

    # Step outputs
    search_results: list[SearchResultItem]
    competitors: list[CompetitorResult]
    skipped_urls: list[str]
    summary: AnalysisSummary
    recommendations: list[str]

    # Status tracking
    status: str
    step_timings: dict  # Node name -> duration_ms


# =============================================================================
# Decorators for Node Execution
# =============================================================================

def track_timing(func: Callable):
    """Decorator to log node execution and record its duration in the state."""
    @wraps(func)
    async def wrapper(self, state: AnalysisStateDict) -> dict[str, Any]:
        start_time = time.time()
        node_name = func.__name__.strip("_").replace("_node", "")

        logger.info(f"Starting node: {node_name}")

        try:
            result = await func(self, state)
        except Exception as e:
            logger.error(
                f"Node failed: {node_name}",
                duration_ms=int((time.time() - start_time) * 1000),
                error=str(e),
                category=ErrorHandler.categorize_error(e),
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)
        step_timings = dict(state.get("step_timings", {}))
        step_timings[node_name] = duration_ms
        result["step_timings"] = step_timings

        logger.info(f"Completed node: {node_name}", duration_ms=duration_ms)
        return result

    return wrapper


# =============================================================================
# Orchestrator
# =============================================================================

class AnalysisOrchestrator:
    """
    LangGraph-based pipeline for keyword competitor analysis.

    Collaborators are passed in explicitly; anything omitted is built from
    ``settings``. Tests substitute fakes for the provider and fetcher and a
    zero-delay rate-limit policy.
    """

    def __init__(
        self,
        store: Optional[ResultStore] = None,
        provider: Optional[AnalysisProvider] = None,
        fetcher: Optional[PageFetcher] = None,
        aggregator: Optional[Aggregator] = None,
        rate_limit: Optional[RateLimitPolicy] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or InMemoryResultStore()
        self.provider = provider or GoogleApisProvider(self.settings)
        self.fetcher = fetcher or PageFetcher(self.settings, ContentExtractor())
        self.aggregator = aggregator or Aggregator()
        self.rate_limit = rate_limit or FixedDelayPolicy.from_milliseconds(
            self.settings.competitor_delay_ms
        )

        # Detached runs keyed by analysis id
        self._tasks: dict[int, asyncio.Task] = {}

        self._graph = self._build_graph()

    async def __aenter__(self) -> "AnalysisOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _build_graph(self):
        """Build the linear analysis graph."""
        graph = StateGraph(AnalysisStateDict)

        graph.add_node("mark_processing", self._mark_processing_node)
        graph.add_node("search", self._search_node)
        graph.add_node("scrape_competitors", self._scrape_competitors_node)
        graph.add_node("aggregate", self._aggregate_node)
        graph.add_node("finalize", self._finalize_node)

        graph.set_entry_point("mark_processing")

        graph.add_edge("mark_processing", "search")
        graph.add_edge("search", "scrape_competitors")
        graph.add_edge("scrape_competitors", "aggregate")
        graph.add_edge("aggregate", "finalize")
        graph.add_edge("finalize", END)

        return graph.compile()

    # =========================================================================
    # Submission
    # =========================================================================

    def _validate_config(self, config: AnalysisConfig | dict[str, Any]) -> AnalysisConfig:
        if isinstance(config, AnalysisConfig):
            return config
        try:
            return AnalysisConfig.model_validate(config)
        except ValidationError as e:
            raise ConfigValidationError(
                f"Invalid analysis configuration: {e.error_count()} error(s)",
                details={"errors": e.errors(include_url=False)},
            ) from e

    def _resolve_credentials(self, config: AnalysisConfig) -> tuple[str, str]:
        """Per-analysis credentials win over the configured ones."""
        api_key = config.google_api_key or self.settings.google_api_key
        cse_id = config.google_cse_id or self.settings.google_cse_id

        missing = []
        if not api_key or not api_key.get_secret_value():
            missing.append("google_api_key")
        if not cse_id or not cse_id.get_secret_value():
            missing.append("google_cse_id")
        if missing:
            raise ConfigValidationError(
                f"Missing credentials: {', '.join(missing)}",
                details={"missing": missing},
            )
        return api_key.get_secret_value(), cse_id.get_secret_value()

    async def start_analysis(self, config: AnalysisConfig | dict[str, Any]) -> int:
        """
        Submit an analysis and return its id immediately.

        The pipeline runs as a detached task; failures inside it are recorded
        on the analysis and never raised to the submitter.

        Raises:
            ConfigValidationError: Malformed input or missing credentials.
        """
        config = self._validate_config(config)
        self._resolve_credentials(config)

        analysis = await self.store.create_analysis(
            NewAnalysis(keyword=config.keyword, country=config.country, language=config.language)
        )

        task = asyncio.create_task(
            self._run_detached(analysis.id, config),
            name=f"analysis-{analysis.id}",
        )
        self._tasks[analysis.id] = task

        logger.info(
            "Analysis submitted",
            analysis_id=analysis.id,
            keyword=config.keyword,
            country=config.country,
            language=config.language,
            entity_extraction=config.entity_extraction,
            sentiment_analysis=config.sentiment_analysis,
        )
        return analysis.id

    async def _run_detached(self, analysis_id: int, config: AnalysisConfig) -> None:
        try:
            await self.process_analysis(analysis_id, config)
        except asyncio.CancelledError:
            await self._mark_failed(analysis_id, "Analysis cancelled")
            raise
        except Exception as e:
            # process_analysis already recorded the failure unless it died first
            await self._mark_failed(analysis_id, _error_message(e))

    async def _mark_failed(self, analysis_id: int, message: str) -> None:
        try:
            analysis = await self.store.get_analysis(analysis_id)
            if analysis is None or AnalysisStatus(analysis.status).is_terminal:
                return
            await self.store.update_analysis_status(
                analysis_id,
                AnalysisStatus.FAILED,
                AnalysisOutcome(error=message),
            )
        except PersistenceError as e:
            logger.error("Could not record analysis failure", analysis_id=analysis_id, error=e.message)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def process_analysis(self, analysis_id: int, config: AnalysisConfig) -> AnalysisStateDict:
        """
        Run the pipeline for an existing analysis.

        On any uncaught error the analysis is marked ``failed`` with the
        error message and the error is re-raised.

        Returns:
            Final graph state.
        """
        with LogContext(analysis_id=analysis_id):
            try:
                api_key, cse_id = self._resolve_credentials(config)
                initial_state: AnalysisStateDict = {
                    "analysis_id": analysis_id,
                    "config": config,
                    "api_key": api_key,
                    "cse_id": cse_id,
                    "search_results": [],
                    "competitors": [],
                    "skipped_urls": [],
                    "status": AnalysisStatus.PENDING.value,
                    "step_timings": {},
                }
                final_state = await self._graph.ainvoke(initial_state)
            except Exception as e:
                message = _error_message(e)
                logger.error(
                    "Analysis failed",
                    error=message,
                    category=ErrorHandler.categorize_error(e),
                )
                await self._mark_failed(analysis_id, message)
                raise

            logger.info(
                "Analysis completed",
                competitors=len(final_state.get("competitors", [])),
                skipped=len(final_state.get("skipped_urls", [])),
                duration_ms=sum(final_state.get("step_timings", {}).values()),
            )
            return final_state

    # =========================================================================
    # Node Implementations
    # =========================================================================

    @track_timing
    async def _mark_processing_node(self, state: AnalysisStateDict) -> dict[str, Any]:
        analysis_id = state["analysis_id"]
        updated = await self.store.update_analysis_status(analysis_id, AnalysisStatus.PROCESSING)
        if updated is None:
            raise PersistenceError(f"Analysis {analysis_id} not found")
        return {"status": AnalysisStatus.PROCESSING.value}

    @track_timing
    async def _search_node(self, state: AnalysisStateDict) -> dict[str, Any]:
        """Fetch the ranked candidates; an empty list is fatal."""
        config = state["config"]

        try:
            results = await self.provider.search(
                config.keyword,
                state["api_key"],
                state["cse_id"],
                country=config.country,
                language=config.language,
            )
        except SearchProviderError:
            raise
        except Exception as e:
            raise SearchProviderError(f"Failed to fetch search results: {e}") from e

        if not results:
            raise NoSearchResultsError("No search results found")

        logger.info("Search results received", results_count=len(results))
        return {"search_results": list(results)}

    @track_timing
    async def _scrape_competitors_node(self, state: AnalysisStateDict) -> dict[str, Any]:
        """
        Fetch, parse, enrich and persist each competitor in rank order.

        Strictly sequential. The rate-limit policy is waited on between
        consecutive competitors.
        """
        analysis_id = state["analysis_id"]
        config = state["config"]
        results = state["search_results"]

        competitors: list[CompetitorResult] = []
        skipped: list[str] = []

        for rank, item in enumerate(results, start=1):
            if rank > 1:
                await self.rate_limit.wait()

            try:
                scraped = await self.fetcher.scrape_page(item.link)
            except PageFetchError as e:
                logger.warning(
                    "Skipping competitor",
                    rank=rank,
                    url=item.link,
                    error=e.message,
                    category=ErrorHandler.categorize_error(e),
                )
                skipped.append(item.link)
                continue

            entities = await self._extract_entities(config, scraped, item.link, state["api_key"])
            sentiment = await self._extract_sentiment(config, scraped, item.link, state["api_key"])

            record = await self.store.create_competitor_result(
                self._build_competitor(analysis_id, rank, item, scraped, entities, sentiment)
            )
            competitors.append(record)

            logger.info(
                "Competitor analyzed",
                rank=rank,
                domain=record.domain,
                word_count=record.word_count,
                entities=len(record.entities),
            )

        return {"competitors": competitors, "skipped_urls": skipped}

    @track_timing
    async def _aggregate_node(self, state: AnalysisStateDict) -> dict[str, Any]:
        competitors = state.get("competitors", [])
        summary = self.aggregator.summarize(competitors)
        recommendations = self.aggregator.recommend(
            competitors, state["config"].keyword, summary=summary
        )
        return {"summary": summary, "recommendations": recommendations}

    @track_timing
    async def _finalize_node(self, state: AnalysisStateDict) -> dict[str, Any]:
        outcome = AnalysisOutcome(
            summary=state["summary"],
            recommendations=state["recommendations"],
            total_competitors=len(state.get("competitors", [])),
            search_results_count=len(state.get("search_results", [])),
        )
        await self.store.update_analysis_status(
            state["analysis_id"], AnalysisStatus.COMPLETED, outcome
        )
        return {"status": AnalysisStatus.COMPLETED.value}

    # =========================================================================
    # Per-competitor helpers
    # =========================================================================

    async def _extract_entities(
        self,
        config: AnalysisConfig,
        scraped: ScrapedData,
        url: str,
        api_key: str,
    ) -> list[EntityData]:
        if not (config.entity_extraction and scraped.content):
            return []
        try:
            return await self.provider.analyze_entities(scraped.content, api_key)
        except Exception as e:
            logger.warning(
                "Entity extraction failed",
                url=url,
                error=_error_message(e),
                category=ErrorHandler.categorize_error(e),
            )
            return []

    async def _extract_sentiment(
        self,
        config: AnalysisConfig,
        scraped: ScrapedData,
        url: str,
        api_key: str,
    ) -> Optional[float]:
        if not (config.sentiment_analysis and scraped.content):
            return None
        try:
            sentiment = await self.provider.analyze_sentiment(scraped.content, api_key)
        except Exception as e:
            logger.warning(
                "Sentiment analysis failed",
                url=url,
                error=_error_message(e),
                category=ErrorHandler.categorize_error(e),
            )
            return None
        return sentiment.score

    @staticmethod
    def _build_competitor(
        analysis_id: int,
        rank: int,
        item: SearchResultItem,
        scraped: ScrapedData,
        entities: list[EntityData],
        sentiment: Optional[float],
    ) -> NewCompetitorResult:
        return NewCompetitorResult(
            analysis_id=analysis_id,
            rank=rank,
            url=item.link,
            domain=extract_domain(item.link),
            # Fall back to what the search engine showed
            title=scraped.title or item.title or None,
            meta_description=scraped.meta_description or item.snippet or None,
            content=scraped.content,
            full_content=scraped.full_content,
            word_count=scraped.word_count,
            entities=entities,
            sentiment=sentiment,
            headings=scraped.headings,
            images=scraped.images,
            links=scraped.links,
            structured_data=scraped.structured_data,
            styled_elements=scraped.styled_elements,
        )

    # =========================================================================
    # Read side
    # =========================================================================

    async def get_analysis_results(self, analysis_id: int) -> Optional[AnalysisProjection]:
        """Current projection of one analysis, or None if unknown."""
        analysis = await self.store.get_analysis(analysis_id)
        if analysis is None:
            return None
        competitors = await self.store.list_competitor_results(analysis_id)
        return AnalysisProjection.build(analysis, competitors)

    async def get_all_analyses(self) -> list[AnalysisProjection]:
        """Projections of every analysis, most recently created first."""
        projections = []
        for analysis in await self.store.list_analyses():
            competitors = await self.store.list_competitor_results(analysis.id)
            projections.append(AnalysisProjection.build(analysis, competitors))
        return projections

    def get_task(self, analysis_id: int) -> Optional[asyncio.Task]:
        """Internal task handle of a submitted analysis."""
        return self._tasks.get(analysis_id)

    async def close(self) -> None:
        """Cancel unfinished runs and release network clients."""
        pending = [t for t in self._tasks.values() if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        await self.fetcher.close()
        await self.provider.close()


def _error_message(error: Exception) -> str:
    if isinstance(error, AppError):
        return error.message
    return str(error) or type(error).__name__


def build_orchestrator(settings: Optional[Settings] = None) -> AnalysisOrchestrator:
    """Wire the production components from settings."""
    settings = settings or get_settings()
    return AnalysisOrchestrator(
        store=InMemoryResultStore(),
        provider=GoogleApisProvider(settings),
        fetcher=PageFetcher(settings, ContentExtractor()),
        aggregator=Aggregator(),
        rate_limit=FixedDelayPolicy.from_milliseconds(settings.competitor_delay_ms),
        settings=settings,
    )
