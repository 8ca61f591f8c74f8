"""
Pipeline orchestrator for BOE relevance analysis.
"""

import asyncio
import time
import uuid
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Union

import structlog

from ..analysis.backend import AnalysisBackend, create_backend
from ..analysis.dispatcher import BatchDispatcher
from ..analysis.merger import (
    STATUS_ERROR,
    STATUS_NO_CONTENT,
    STATUS_PARTIAL,
    STATUS_SUCCESS,
    empty_result,
    merge,
)
from ..analysis.validator import ResponseValidator
from ..core.config import Settings, settings as default_settings
from ..core.errors import FetchError, MalformedSourceError
from ..core.models import AnalysisResponse, AnalysisResult, Batch, BulletinInfo
from ..ingestion.boe_client import BOEClient, yesterday
from ..ingestion.normalizer import BOENormalizer
from ..processing.chunker import ChunkBudget, chunk, select_batches

logger = structlog.get_logger(__name__)


def normalize_prompts(prompts: Union[str, Iterable[str]]) -> List[str]:
    """Collapse whitespace in each prompt and drop the empty ones."""
    if isinstance(prompts, str):
        prompts = [prompts]
    normalized = [" ".join(str(prompt).split()) for prompt in prompts if prompt is not None]
    return [prompt for prompt in normalized if prompt]


def parse_query_date(value: Union[date, str, None]) -> date:
    if value is None:
        return yesterday()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def overall_status(results: List[AnalysisResult]) -> str:
    statuses = {result.metadata.status for result in results}
    if not statuses:
        return STATUS_SUCCESS
    if len(statuses) == 1:
        return statuses.pop()
    if statuses & {STATUS_SUCCESS, STATUS_PARTIAL}:
        return STATUS_PARTIAL
    return STATUS_ERROR


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class AnalysisPipeline:
    """Fetches one bulletin and analyzes it for a set of prompts."""

    def __init__(
        self,
        client: BOEClient,
        normalizer: BOENormalizer,
        backend: AnalysisBackend,
        dispatcher: BatchDispatcher,
        chunk_budget: ChunkBudget,
        max_batches: Optional[int] = None,
    ):
        self.client = client
        self.normalizer = normalizer
        self.backend = backend
        self.dispatcher = dispatcher
        self.chunk_budget = chunk_budget
        self.max_batches = max_batches

    @property
    def model_used(self) -> str:
        return self.backend.model

    async def analyze(
        self,
        prompts: Union[str, Iterable[str]],
        target_date: Union[date, str, None] = None,
        correlation_id: Optional[str] = None,
    ) -> AnalysisResponse:
        """
        Run the full analysis for one bulletin date.

        The bulletin is fetched, normalized and chunked once; every prompt is
        then dispatched concurrently under a shared admission limit. Missing
        or unusable source content yields zero-match results instead of an
        exception.

        Args:
            prompts: One query or a list of queries
            target_date: Bulletin date or ``YYYY-MM-DD`` string (defaults to
                yesterday)
            correlation_id: Identifier attached to every log line of this
                invocation (defaults to the trace id)

        Returns:
            AnalysisResponse with one AnalysisResult per prompt

        Raises:
            ValueError: if no non-empty prompt is given or the date string
                is not ``YYYY-MM-DD``
        """
        trace_id = str(uuid.uuid4())
        started = time.monotonic()

        with structlog.contextvars.bound_contextvars(
            correlation_id=correlation_id or trace_id, trace_id=trace_id
        ):
            queries = normalize_prompts(prompts)
            if not queries:
                raise ValueError("At least one non-empty prompt is required")
            query_date = parse_query_date(target_date)

            logger.info("Starting BOE analysis",
                        prompts=len(queries),
                        query_date=query_date.isoformat(),
                        model=self.model_used)

            try:
                fetched = await self.client.fetch(query_date)
                if fetched.not_found:
                    note = f"No BOE published for {query_date.isoformat()}"
                    logger.info("No bulletin content to analyze", query_date=query_date.isoformat())
                    results = [
                        empty_result(query, self.model_used, STATUS_NO_CONTENT, note=note,
                                     processing_time_ms=_elapsed_ms(started))
                        for query in queries
                    ]
                    return self._build_response(trace_id, query_date, None, results, 0, started)

                content = self.normalizer.normalize(fetched.content)
            except (FetchError, MalformedSourceError) as e:
                logger.error("BOE content unavailable", error_code=e.code, error=e.message,
                             details=e.details)
                results = [
                    empty_result(query, self.model_used, STATUS_ERROR, error=e.to_dict(),
                                 processing_time_ms=_elapsed_ms(started))
                    for query in queries
                ]
                return self._build_response(trace_id, query_date, None, results, 0, started)

            batches = select_batches(chunk(content.items, self.chunk_budget), self.max_batches)
            items_processed = sum(batch.item_count for batch in batches)

            admission = asyncio.Semaphore(self.dispatcher.max_concurrency)
            results = await asyncio.gather(
                *(self._analyze_prompt(query, batches, admission, items_processed, started)
                  for query in queries)
            )

            return self._build_response(
                trace_id, query_date, content.info, list(results), items_processed, started
            )

    async def _analyze_prompt(
        self,
        query: str,
        batches: List[Batch],
        admission: asyncio.Semaphore,
        items_processed: int,
        started: float,
    ) -> AnalysisResult:
        batch_results = await self.dispatcher.dispatch(query, batches, admission)
        return merge(
            query,
            batch_results,
            model_used=self.model_used,
            processing_time_ms=_elapsed_ms(started),
            items_processed=items_processed,
        )

    def _build_response(
        self,
        trace_id: str,
        query_date: date,
        bulletin_info: Optional[BulletinInfo],
        results: List[AnalysisResult],
        items_processed: int,
        started: float,
    ) -> AnalysisResponse:
        response = AnalysisResponse(
            trace_id=trace_id,
            query_date=query_date,
            bulletin_info=bulletin_info,
            results=results,
            items_processed=items_processed,
            processing_time_ms=_elapsed_ms(started),
            status=overall_status(results),
        )

        logger.info("BOE analysis completed",
                    status=response.status,
                    items_processed=items_processed,
                    total_matches=sum(result.metadata.match_count for result in results),
                    processing_time_ms=response.processing_time_ms)

        return response

    async def health_check(self) -> Dict[str, bool]:
        """Check health of the bulletin source and the analysis backend."""
        health_status = {
            "boe_api": await asyncio.to_thread(self.client.health_check),
            "analysis_backend": await self.backend.health_check(),
        }

        logger.info("Pipeline health check",
                    overall_healthy=all(health_status.values()),
                    component_status=health_status)

        return health_status


def build_pipeline(config: Optional[Settings] = None) -> AnalysisPipeline:
    """
    Compose the pipeline from settings.

    Args:
        config: Settings to use (defaults to the global settings)

    Returns:
        Ready-to-run AnalysisPipeline sharing a single backend client

    Raises:
        ConfigurationError: if the backend credentials or limits are invalid
    """
    config = config or default_settings
    config.validate_backend()

    backend = create_backend(config)
    validator = ResponseValidator(
        relevance_fallback=config.relevance_fallback,
        min_relevance=config.min_relevance,
    )
    dispatcher = BatchDispatcher(
        backend,
        validator,
        max_concurrency=config.max_concurrent_requests,
        wave_delay=config.wave_delay_seconds,
        skip_wave_delay=config.skip_wave_delay,
    )
    client = BOEClient(
        base_url=config.boe_api_base_url,
        max_attempts=config.fetch_max_attempts,
        base_delay=config.fetch_base_delay_seconds,
        timeout=config.fetch_timeout_seconds,
        user_agent=config.boe_user_agent,
    )

    logger.info("Pipeline configured",
                environment=config.environment,
                service=config.analysis_service,
                model=config.model_name,
                max_concurrency=config.max_concurrent_requests,
                max_batches=config.effective_max_batches)

    return AnalysisPipeline(
        client=client,
        normalizer=BOENormalizer(config.boe_source_url),
        backend=backend,
        dispatcher=dispatcher,
        chunk_budget=ChunkBudget.from_settings(config),
        max_batches=config.effective_max_batches,
    )
