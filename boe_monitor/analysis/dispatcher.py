"""
Concurrency-bounded, fail-soft dispatch of batches to the analysis backend.
"""

import asyncio
import time
from typing import List, Optional

import structlog

from ..core.config import settings
from ..core.errors import BOEMonitorError
from ..core.models import Batch, BatchError, BatchResult, BatchState
from .backend import AnalysisBackend
from .validator import ResponseValidator

logger = structlog.get_logger(__name__)


class BatchDispatcher:
    """Sends batches to the backend in waves of ``max_concurrency``.

    A failing batch never affects its siblings: every error is turned into a
    FAILED BatchResult and the remaining batches keep running.
    """

    def __init__(
        self,
        backend: AnalysisBackend,
        validator: ResponseValidator,
        max_concurrency: Optional[int] = None,
        wave_delay: Optional[float] = None,
        skip_wave_delay: Optional[bool] = None,
    ):
        self.backend = backend
        self.validator = validator
        self.max_concurrency = (
            max_concurrency if max_concurrency is not None else settings.max_concurrent_requests
        )
        self.wave_delay = wave_delay if wave_delay is not None else settings.wave_delay_seconds
        self.skip_wave_delay = (
            skip_wave_delay if skip_wave_delay is not None else settings.skip_wave_delay
        )

        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    async def dispatch(
        self,
        prompt: str,
        batches: List[Batch],
        admission: Optional[asyncio.Semaphore] = None,
    ) -> List[BatchResult]:
        """
        Analyze every batch for one prompt.

        Args:
            prompt: User query
            batches: Batches in chunk order
            admission: Semaphore shared with other prompts of the same
                invocation; a private one is created when omitted

        Returns:
            One BatchResult per batch, in batch order
        """
        if not batches:
            return []

        admission = admission or asyncio.Semaphore(self.max_concurrency)
        waves = [
            batches[start:start + self.max_concurrency]
            for start in range(0, len(batches), self.max_concurrency)
        ]

        logger.info("Dispatching batches",
                    batches=len(batches),
                    waves=len(waves),
                    max_concurrency=self.max_concurrency)

        results: List[BatchResult] = []
        for wave_number, wave in enumerate(waves):
            if wave_number > 0 and not self.skip_wave_delay and self.wave_delay > 0:
                logger.debug("Waiting between waves", delay_seconds=self.wave_delay,
                             wave=wave_number)
                await asyncio.sleep(self.wave_delay)

            wave_results = await asyncio.gather(
                *(self._run_batch(prompt, batch, admission) for batch in wave)
            )
            results.extend(wave_results)

        failed = sum(1 for result in results if not result.succeeded)
        logger.info("Dispatch complete", batches=len(results), failed=failed)

        return results

    async def _run_batch(self, prompt: str, batch: Batch, admission: asyncio.Semaphore) -> BatchResult:
        result = BatchResult(batch_index=batch.index, item_count=batch.item_count)

        async with admission:
            result.state = BatchState.IN_FLIGHT
            started = time.monotonic()
            logger.debug("Batch in flight", batch_index=batch.index, items=batch.item_count)

            try:
                response = await self.backend.analyze(prompt, batch)
                validated = self.validator.validate(response.text)
            except BOEMonitorError as e:
                logger.error("Batch failed",
                             batch_index=batch.index,
                             error_code=e.code,
                             error=e.message)
                result.state = BatchState.FAILED
                result.error = BatchError(kind=e.code, message=e.message)
            except Exception as e:
                logger.exception("Unexpected batch failure", batch_index=batch.index)
                result.state = BatchState.FAILED
                result.error = BatchError(kind=type(e).__name__, message=str(e))
            else:
                result.state = BatchState.SUCCEEDED
                result.matches = validated.matches
                logger.info("Batch analyzed",
                            batch_index=batch.index,
                            matches=len(validated.matches),
                            dropped_matches=validated.dropped_matches)
            finally:
                result.elapsed_ms = int((time.monotonic() - started) * 1000)

        return result
