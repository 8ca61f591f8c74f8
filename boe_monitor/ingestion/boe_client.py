"""
BOE open data API client for bulletin summary retrieval.

The sumario endpoint is public and does not require an API key. A date with
no published bulletin (weekends, holidays) answers 404, which is reported as
an empty fetch rather than an error.
"""

import asyncio
from datetime import date, timedelta
from typing import Optional

import requests
import structlog

from ..core.config import settings
from ..core.errors import FetchError
from ..core.models import FetchResult

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def yesterday() -> date:
    return date.today() - timedelta(days=1)


class BOEClient:
    """Client for the BOE daily summary (sumario) API.

    Retries transient failures with linear backoff: the delay before attempt
    ``k + 1`` is ``k * base_delay`` seconds.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.boe_api_base_url).rstrip("/")
        self.max_attempts = max_attempts if max_attempts is not None else settings.fetch_max_attempts
        self.base_delay = base_delay if base_delay is not None else settings.fetch_base_delay_seconds
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds

        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent or settings.boe_user_agent,
            "Accept": "application/xml",
        })

    def build_url(self, target_date: date) -> str:
        return f"{self.base_url}/{target_date:%Y%m%d}"

    async def fetch(self, target_date: Optional[date] = None) -> FetchResult:
        """
        Retrieve the raw summary XML for a publication date.

        Args:
            target_date: Publication date (defaults to yesterday)

        Returns:
            FetchResult with the raw bytes, or with no content when the
            bulletin was not published on that date

        Raises:
            FetchError: when the retry budget is exhausted or the source
                answers with a non-retryable error
        """
        if target_date is None:
            target_date = yesterday()

        url = self.build_url(target_date)
        last_error: Optional[str] = None
        last_status: Optional[int] = None

        for attempt in range(1, self.max_attempts + 1):
            logger.info("Fetching BOE summary", url=url, attempt=attempt,
                        max_attempts=self.max_attempts)
            try:
                response = await asyncio.to_thread(self.session.get, url, timeout=self.timeout)
            except requests.RequestException as e:
                last_error = str(e)
                last_status = None
                logger.warning("BOE request failed", url=url, attempt=attempt, error=last_error)
            else:
                if response.status_code == 404:
                    logger.info("No BOE published for date", date=target_date.isoformat(), url=url)
                    return FetchResult(
                        target_date=target_date,
                        url=url,
                        status_code=404,
                        content=None,
                        attempts=attempt,
                    )

                if response.ok:
                    logger.info("BOE summary fetched", url=url, bytes=len(response.content),
                                attempt=attempt)
                    return FetchResult(
                        target_date=target_date,
                        url=url,
                        status_code=response.status_code,
                        content=response.content,
                        attempts=attempt,
                    )

                last_status = response.status_code
                last_error = f"HTTP {response.status_code}"
                if response.status_code not in RETRYABLE_STATUS_CODES:
                    logger.error("BOE request rejected", url=url, status_code=last_status)
                    raise FetchError(
                        "BOE source rejected the request",
                        details={"url": url, "status": last_status, "attempts": attempt},
                    )
                logger.warning("BOE request returned retryable status", url=url,
                               status_code=last_status, attempt=attempt)

            if attempt < self.max_attempts:
                delay = attempt * self.base_delay
                logger.debug("Backing off before retry", delay_seconds=delay)
                await asyncio.sleep(delay)

        logger.error("Exhausted BOE fetch retries", url=url, attempts=self.max_attempts,
                     error=last_error)
        raise FetchError(
            "Failed to fetch BOE content",
            details={
                "url": url,
                "status": last_status,
                "attempts": self.max_attempts,
                "original_error": last_error,
            },
        )

    def health_check(self) -> bool:
        """Check that the BOE API answers for yesterday's summary."""
        try:
            response = self.session.get(self.build_url(yesterday()), timeout=self.timeout)
            healthy = response.status_code in (200, 404)
            logger.info("BOE health check", status_code=response.status_code, healthy=healthy)
            return healthy
        except requests.RequestException as e:
            logger.error("BOE health check failed", error=str(e))
            return False
