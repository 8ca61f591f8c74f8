"""
Cross-batch merge and relevance ranking.
"""

from typing import Any, Dict, List, Optional

import structlog

from ..core.models import AnalysisMetadata, AnalysisResult, BatchResult, Match

logger = structlog.get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial"
STATUS_ERROR = "error"
STATUS_NO_CONTENT = "no_content"


def merge(
    prompt: str,
    batch_results: List[BatchResult],
    model_used: str,
    processing_time_ms: int = 0,
    items_processed: int = 0,
) -> AnalysisResult:
    """
    Combine the batch results of one prompt into a ranked result.

    Matches are concatenated in batch order and then stably sorted by
    descending relevance, so the outcome does not depend on the order in
    which batches completed.

    Args:
        prompt: User query the batches were analyzed for
        batch_results: Results in any order
        model_used: Backend model name
        processing_time_ms: Elapsed time to report
        items_processed: Items covered by the batches

    Returns:
        AnalysisResult with ranked matches and aggregate metadata
    """
    ordered = sorted(batch_results, key=lambda result: result.batch_index)

    matches: List[Match] = [match for result in ordered for match in result.matches]
    matches.sort(key=lambda match: match.relevance_score, reverse=True)

    failed = [result for result in ordered if not result.succeeded]
    if not ordered or not failed:
        status = STATUS_SUCCESS
    elif len(failed) == len(ordered):
        status = STATUS_ERROR
    else:
        status = STATUS_PARTIAL

    error = None
    if failed:
        first = failed[0]
        error = {
            "code": first.error.kind if first.error else "UNKNOWN",
            "message": first.error.message if first.error else "Batch failed",
            "batch_index": first.batch_index,
        }

    metadata = AnalysisMetadata(
        match_count=len(matches),
        max_relevance=max((match.relevance_score for match in matches), default=0.0),
        model_used=model_used,
        processing_time_ms=processing_time_ms,
        items_processed=items_processed,
        batch_count=len(ordered),
        failed_batch_count=len(failed),
        status=status,
        error=error,
    )

    logger.info("Merged batch results",
                prompt=prompt,
                matches=metadata.match_count,
                max_relevance=metadata.max_relevance,
                failed_batches=metadata.failed_batch_count,
                status=status)

    return AnalysisResult(prompt=prompt, matches=matches, metadata=metadata)


def empty_result(
    prompt: str,
    model_used: str,
    status: str = STATUS_SUCCESS,
    note: Optional[str] = None,
    error: Optional[Dict[str, Any]] = None,
    processing_time_ms: int = 0,
) -> AnalysisResult:
    """Zero-match result for prompts that had nothing to analyze."""
    return AnalysisResult(
        prompt=prompt,
        matches=[],
        metadata=AnalysisMetadata(
            match_count=0,
            max_relevance=0.0,
            model_used=model_used,
            processing_time_ms=processing_time_ms,
            items_processed=0,
            status=status,
            error=error,
            note=note,
        ),
    )
