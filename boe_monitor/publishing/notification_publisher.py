"""
Publishing of analysis results to the notification topic on Pub/Sub.
"""

import json
import uuid
from concurrent import futures
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

import structlog
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import pubsub_v1
from pydantic import BaseModel, Field

from ..core.config import settings
from ..core.errors import ConfigurationError, PublishError
from ..core.models import AnalysisResponse, Match, PublishingResult

logger = structlog.get_logger(__name__)

MESSAGE_VERSION = "1.0"
PROCESSOR_TYPE = "boe"


class NotificationDocument(BaseModel):
    document_type: str
    title: str
    notification_title: str
    issuing_body: str = ""
    summary: str = ""
    relevance_score: float = 0.0
    links: Dict[str, str] = Field(default_factory=dict)
    code: str = ""
    publication_date: str = ""
    section: str = ""
    bulletin_type: str = "BOE"


class PromptMatches(BaseModel):
    prompt: str
    documents: List[NotificationDocument] = Field(default_factory=list)


class NotificationRequest(BaseModel):
    subscription_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    processing_id: str
    prompts: List[str]


class NotificationResults(BaseModel):
    query_date: str
    matches: List[PromptMatches] = Field(default_factory=list)


class NotificationMetadata(BaseModel):
    processing_time_ms: int
    total_items_processed: int
    total_matches: int
    model_used: str
    status: str
    error: Optional[Dict[str, Any]] = None


class NotificationMessage(BaseModel):
    """Message consumed by the notification worker."""
    version: str = MESSAGE_VERSION
    trace_id: str
    processor_type: str = PROCESSOR_TYPE
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request: NotificationRequest
    results: NotificationResults
    metadata: NotificationMetadata


def _to_document(match: Match, fallback_date: str) -> NotificationDocument:
    publication_date = match.dates.publication_date if match.dates else ""
    return NotificationDocument(
        document_type=match.document_type.value,
        title=match.title or match.notification_title,
        notification_title=match.notification_title or match.title,
        issuing_body=match.issuing_body,
        summary=match.summary,
        relevance_score=match.relevance_score,
        links={"html": match.links.html, "pdf": match.links.pdf},
        code=match.code,
        publication_date=publication_date or fallback_date,
        section=match.section,
    )


def build_notification_message(
    response: AnalysisResponse,
    subscription_id: str,
    user_id: str,
) -> NotificationMessage:
    """
    Convert an analysis response into the notification worker message.

    Args:
        response: Pipeline output
        subscription_id: Subscription the analysis was run for
        user_id: Owner of the subscription

    Returns:
        Validated NotificationMessage with one entry per prompt
    """
    query_date = response.query_date.isoformat()
    prompt_matches = [
        PromptMatches(
            prompt=result.prompt,
            documents=[_to_document(match, query_date) for match in result.matches],
        )
        for result in response.results
    ]

    first_error = next(
        (result.metadata.error for result in response.results if result.metadata.error),
        None,
    )
    model_used = response.results[0].metadata.model_used if response.results else ""

    return NotificationMessage(
        trace_id=response.trace_id,
        request=NotificationRequest(
            subscription_id=subscription_id,
            user_id=user_id,
            processing_id=str(uuid.uuid4()),
            prompts=response.prompts,
        ),
        results=NotificationResults(query_date=query_date, matches=prompt_matches),
        metadata=NotificationMetadata(
            processing_time_ms=response.processing_time_ms,
            total_items_processed=response.items_processed,
            total_matches=sum(len(result.matches) for result in response.results),
            model_used=model_used,
            status=response.status,
            error=first_error,
        ),
    )


class MessageTransport(Protocol):
    """Delivers an encoded message to a topic and returns its message id."""

    def send(self, topic: str, payload: bytes) -> str:
        ...


class PubSubTransport:
    """Publishes messages to Google Cloud Pub/Sub topics of one project."""

    def __init__(
        self,
        project_id: Optional[str] = None,
        client: Optional[pubsub_v1.PublisherClient] = None,
        timeout: Optional[float] = None,
    ):
        self.project_id = project_id or settings.google_cloud_project
        if not self.project_id:
            raise ConfigurationError(
                "Google Cloud project is not configured",
                details={"setting": "GOOGLE_CLOUD_PROJECT"},
            )
        self.timeout = timeout or settings.publish_timeout_seconds

        if client is None:
            try:
                client = pubsub_v1.PublisherClient()
            except auth_exceptions.DefaultCredentialsError as e:
                raise ConfigurationError(
                    "Google Cloud credentials are not available",
                    details={"error": str(e)},
                ) from e
        self.client = client

    def send(self, topic: str, payload: bytes) -> str:
        topic_path = self.client.topic_path(self.project_id, topic)
        try:
            future = self.client.publish(topic_path, payload)
            message_id = future.result(timeout=self.timeout)
        except (api_exceptions.GoogleAPIError, futures.TimeoutError) as e:
            raise PublishError("Pub/Sub publish failed",
                               details={"topic": topic_path, "error": str(e)}) from e
        return str(message_id)


class NotificationPublisher:
    """Publishes analysis results, routing failed deliveries to a dead-letter topic."""

    def __init__(
        self,
        transport: Optional[MessageTransport] = None,
        topic: Optional[str] = None,
        dlq_topic: Optional[str] = None,
    ):
        self.transport = transport or PubSubTransport()
        self.topic = topic or settings.publish_topic
        self.dlq_topic = dlq_topic or (f"{topic}-dlq" if topic else settings.publish_dlq_topic)

    def publish(
        self,
        response: AnalysisResponse,
        subscription_id: str,
        user_id: str,
    ) -> PublishingResult:
        """
        Publish one analysis response.

        Args:
            response: Pipeline output
            subscription_id: Subscription the analysis was run for
            user_id: Owner of the subscription

        Returns:
            PublishingResult; on failure ``success`` is False and
            ``dead_lettered`` tells whether the dead-letter copy was stored
        """
        message = build_notification_message(response, subscription_id, user_id)
        payload = message.model_dump_json().encode("utf-8")

        try:
            message_id = self.transport.send(self.topic, payload)
        except Exception as e:
            logger.error("Failed to publish results",
                         topic=self.topic,
                         trace_id=message.trace_id,
                         error=str(e))
            dead_lettered = self._send_to_dead_letter(message, e)
            return PublishingResult(
                trace_id=message.trace_id,
                topic=self.topic,
                success=False,
                dead_lettered=dead_lettered,
                error_message=str(e),
            )

        logger.info("Published analysis results",
                    topic=self.topic,
                    message_id=message_id,
                    trace_id=message.trace_id,
                    total_matches=message.metadata.total_matches)

        return PublishingResult(
            trace_id=message.trace_id,
            topic=self.topic,
            success=True,
            message_id=message_id,
        )

    def _send_to_dead_letter(self, message: NotificationMessage, error: Exception) -> bool:
        dlq_message = {
            "original_payload": message.model_dump(mode="json"),
            "error": {
                "message": str(error),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }
        try:
            message_id = self.transport.send(self.dlq_topic, json.dumps(dlq_message).encode("utf-8"))
        except Exception as e:
            logger.error("Failed to publish to dead-letter topic",
                         topic=self.dlq_topic,
                         error=str(e),
                         original_error=str(error))
            return False

        logger.info("Published failed message to dead-letter topic",
                    topic=self.dlq_topic,
                    message_id=message_id)
        return True
