"""Reference discovery pipeline orchestration.

Composes the four stages behind a single entry point:

    summaries -> queries -> raw results -> merged results -> ranked results

Usage:
    pipeline = ReferencePipeline(config)
    result = await pipeline.run(summaries)
    for ranked in result.results:
        print(ranked.rank, ranked.title)
"""

import time
from typing import List, Optional, Sequence

import structlog

from reference_discovery.models.config import PipelineConfig
from reference_discovery.models.content import ContentSummary
from reference_discovery.models.query import QueryGenerationOptions, SearchQuery
from reference_discovery.models.reference import MergedResult, RawResult
from reference_discovery.models.scoring import RankedResult, ScoringWeights
from reference_discovery.models.search import (
    SearchContext,
    SearchOptions,
    SearchOutcome,
)
from reference_discovery.observability.context import correlation_id_context
from reference_discovery.observability.metrics import STAGE_DURATION
from reference_discovery.orchestration.result import PipelineResult
from reference_discovery.services.dedup_service import DuplicateDetectionEngine
from reference_discovery.services.query_generator import QueryGenerationEngine
from reference_discovery.services.scoring_service import ResultScoringEngine
from reference_discovery.services.search_client import DEGRADED_PROVIDER, SearchClient

logger = structlog.get_logger()


class ReferencePipeline:
    """Orchestrates query generation, search, deduplication and ranking.

    Each stage is also exposed on its own so callers can run part of the
    pipeline (for example re-ranking already merged results).

    Attributes:
        config: Pipeline configuration
        generator: Query generation engine
        client: Multi-provider search client
        dedup: Duplicate detection engine
        scorer: Result scoring engine
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        client: Optional[SearchClient] = None,
        generator: Optional[QueryGenerationEngine] = None,
        dedup: Optional[DuplicateDetectionEngine] = None,
        scorer: Optional[ResultScoringEngine] = None,
        current_year: Optional[int] = None,
    ) -> None:
        self.config = config or PipelineConfig()
        self.current_year = current_year
        self.generator = generator or QueryGenerationEngine()
        self.client = client or SearchClient(self.config.search)
        self.dedup = dedup or DuplicateDetectionEngine(
            self.config.dedup, current_year=current_year
        )
        self.scorer = scorer or ResultScoringEngine(
            self.config.scoring.top_journals_path
        )

    def generate_queries(
        self,
        summaries: Sequence[ContentSummary],
        options: Optional[QueryGenerationOptions] = None,
    ) -> List[SearchQuery]:
        with STAGE_DURATION.labels(stage="generate").time():
            return self.generator.generate_queries(
                summaries, options or self.config.query
            )

    async def search(
        self,
        query: str,
        options: Optional[SearchOptions] = None,
        context: Optional[SearchContext] = None,
    ) -> SearchOutcome:
        with STAGE_DURATION.labels(stage="search").time():
            return await self.client.search(
                query, options or self.config.search_options, context
            )

    def deduplicate(self, results: List[RawResult]) -> List[MergedResult]:
        with STAGE_DURATION.labels(stage="deduplicate").time():
            return self.dedup.deduplicate(results)

    def score_and_rank(
        self,
        results: List[MergedResult],
        summaries: Sequence[ContentSummary],
        weights: Optional[ScoringWeights] = None,
    ) -> List[RankedResult]:
        with STAGE_DURATION.labels(stage="score").time():
            return self.scorer.score_and_rank(
                results,
                summaries,
                weights or self.config.scoring.weights,
                current_year=self.current_year,
            )

    async def run(
        self,
        summaries: Sequence[ContentSummary],
        options: Optional[QueryGenerationOptions] = None,
        search_options: Optional[SearchOptions] = None,
        weights: Optional[ScoringWeights] = None,
        context: Optional[SearchContext] = None,
    ) -> PipelineResult:
        """Run all four stages for the given summaries.

        Every generated query is searched; raw results are concatenated in
        query order before deduplication. Provider failures are reported in
        the result, never raised.

        Raises:
            InvalidInputError: No summaries, or no usable terms
        """
        corr_id = context.request_id if context else None
        with correlation_id_context(corr_id):
            start = time.perf_counter()
            result = PipelineResult()

            result.queries = self.generate_queries(summaries, options)

            outcomes = []
            for query in result.queries:
                outcome = await self.search(query.query, search_options, context)
                outcomes.append(outcome)
                for provider in outcome.providers_used:
                    if provider not in result.providers_used:
                        result.providers_used.append(provider)
                result.provider_errors.update(outcome.provider_errors)

            raw = self._collect_results(outcomes)
            result.degraded = all(o.degraded for o in outcomes)
            result.raw_result_count = len(raw)

            merged = self.deduplicate(raw)
            result.merged_result_count = len(merged)

            result.results = self.score_and_rank(merged, summaries, weights)
            result.success = True

            logger.info(
                "pipeline_completed",
                queries=len(result.queries),
                raw_results=result.raw_result_count,
                merged_results=result.merged_result_count,
                providers_used=result.providers_used,
                degraded=result.degraded,
                duration_seconds=round(time.perf_counter() - start, 3),
            )
            return result

    @staticmethod
    def _collect_results(outcomes: List[SearchOutcome]) -> List[RawResult]:
        """Concatenate results; placeholders survive only if nothing else came back."""
        if all(o.degraded for o in outcomes):
            # One placeholder is enough, however many queries degraded
            return outcomes[0].results[:1] if outcomes else []

        return [
            r
            for o in outcomes
            for r in o.results
            if r.provider != DEGRADED_PROVIDER
        ]
