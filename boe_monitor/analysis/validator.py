"""
Validation and repair of semi-structured backend responses.

Model output is treated as untrusted text: formatting artifacts are stripped,
a bounded set of syntax repairs is attempted once, and every match is coerced
into the Match schema. Structural inconsistencies are corrected and logged
rather than rejected; only text that cannot be parsed at all is an error.
"""

import json
import math
import re
from typing import Any, Dict, List, Optional, Tuple

import structlog
from pydantic import ValidationError as PydanticValidationError

from ..core.config import settings
from ..core.errors import ValidationError
from ..core.models import (
    NOTIFICATION_TITLE_MAX_LENGTH,
    SUMMARY_MAX_LENGTH,
    DocumentType,
    Match,
    MatchDates,
    MatchLinks,
    ResponseMetadata,
    ValidatedResponse,
)

logger = structlog.get_logger(__name__)

PREVIEW_LENGTH = 200
ELLIPSIS = "..."

FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)

# Applied in order, once
REPAIR_PATTERNS = [
    (re.compile(r",\s*}"), "}"),
    (re.compile(r",\s*\]"), "]"),
]


def strip_formatting(text: str) -> str:
    """Remove code fences and any prose around the outermost JSON object."""
    text = text.strip()

    fence = FENCE_PATTERN.search(text)
    if fence:
        text = fence.group(1)

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]

    return text.strip()


def repair_json(text: str) -> str:
    for pattern, replacement in REPAIR_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def truncate_text(value: str, limit: int) -> str:
    """Cut text to ``limit`` characters, ending with an ellipsis when shortened."""
    if len(value) <= limit:
        return value
    return value[:limit - len(ELLIPSIS)] + ELLIPSIS


def coerce_relevance(value: Any, fallback: float) -> Tuple[float, bool]:
    """
    Interpret a relevance score reported by the model.

    Args:
        value: Raw ``relevance_score`` value
        fallback: Score used when the value is not numeric

    Returns:
        Tuple of (score, corrected)
    """
    if isinstance(value, bool):
        return fallback, True

    if isinstance(value, (int, float)):
        try:
            score = float(value)
        except OverflowError:
            return fallback, True
        if math.isfinite(score):
            return score, False
        return fallback, True

    if isinstance(value, str):
        try:
            score = float(value.strip().rstrip("%"))
        except ValueError:
            return fallback, True
        if math.isfinite(score):
            return score, True

    return fallback, True


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return " ".join(str(value).split())


def _coerce_document_type(value: Any) -> Tuple[DocumentType, bool]:
    text = _as_text(value).upper().replace(" ", "_")
    try:
        return DocumentType(text), False
    except ValueError:
        return DocumentType.OTHER, bool(text) and text != DocumentType.OTHER.value


class ResponseValidator:
    """Turns raw backend text into a ValidatedResponse."""

    def __init__(self, relevance_fallback: Optional[float] = None, min_relevance: Optional[float] = None):
        self.relevance_fallback = (
            relevance_fallback if relevance_fallback is not None else settings.relevance_fallback
        )
        self.min_relevance = min_relevance if min_relevance is not None else settings.min_relevance

    def validate(self, raw_text: str) -> ValidatedResponse:
        """
        Parse, repair and normalize one backend response.

        Args:
            raw_text: Text returned by the backend

        Returns:
            ValidatedResponse whose matches satisfy the Match schema

        Raises:
            ValidationError: if the text is not parseable JSON even after
                repair, or its top-level value is not an object
        """
        preview = (raw_text or "")[:PREVIEW_LENGTH]
        if not raw_text or not raw_text.strip():
            raise ValidationError("Backend response is empty", preview=preview)

        data = self._parse(strip_formatting(raw_text), preview)
        if not isinstance(data, dict):
            raise ValidationError(
                "Backend response is not a JSON object",
                preview=preview,
                details={"type": type(data).__name__},
            )

        corrections: List[str] = []

        raw_matches = data.get("matches")
        if not isinstance(raw_matches, list):
            corrections.append("matches missing or not a list")
            raw_matches = []

        matches: List[Match] = []
        dropped = 0
        for position, raw_match in enumerate(raw_matches):
            match = self._normalize_match(raw_match, position, corrections)
            if match is None:
                dropped += 1
                continue
            if self.min_relevance is not None and match.relevance_score < self.min_relevance:
                dropped += 1
                continue
            matches.append(match)

        metadata = ResponseMetadata(
            match_count=len(matches),
            max_relevance=max((match.relevance_score for match in matches), default=0.0),
        )
        self._check_metadata(data.get("metadata"), metadata, corrections)

        if corrections or dropped:
            logger.warning("Backend response corrected",
                           corrections=len(corrections),
                           dropped_matches=dropped,
                           details=corrections[:5])

        return ValidatedResponse(
            matches=matches,
            metadata=metadata,
            dropped_matches=dropped,
            corrections=corrections,
        )

    def _parse(self, text: str, preview: str) -> Any:
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        repaired = repair_json(text)
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as e:
            raise ValidationError(
                "Backend response is not valid JSON",
                preview=preview,
                details={"error": str(e)},
            ) from e

        logger.info("Repaired malformed backend JSON")
        return data

    def _normalize_match(self, raw: Any, position: int, corrections: List[str]) -> Optional[Match]:
        if not isinstance(raw, dict):
            corrections.append(f"match {position}: not an object, dropped")
            return None

        title = _as_text(raw.get("title"))

        notification_title = _as_text(raw.get("notification_title"))
        if not notification_title and title:
            notification_title = title
            corrections.append(f"match {position}: notification_title synthesized from title")
        if len(notification_title) > NOTIFICATION_TITLE_MAX_LENGTH:
            notification_title = truncate_text(notification_title, NOTIFICATION_TITLE_MAX_LENGTH)
            corrections.append(f"match {position}: notification_title truncated")

        summary = _as_text(raw.get("summary"))
        if len(summary) > SUMMARY_MAX_LENGTH:
            summary = truncate_text(summary, SUMMARY_MAX_LENGTH)
            corrections.append(f"match {position}: summary truncated")

        relevance, corrected = coerce_relevance(raw.get("relevance_score"), self.relevance_fallback)
        if corrected:
            corrections.append(f"match {position}: relevance_score coerced")

        document_type, corrected = _coerce_document_type(raw.get("document_type"))
        if corrected:
            corrections.append(f"match {position}: unknown document_type mapped to OTHER")

        links = raw.get("links")
        dates = raw.get("dates")

        try:
            return Match(
                document_type=document_type,
                issuing_body=_as_text(raw.get("issuing_body")) or _as_text(raw.get("department")),
                title=title,
                notification_title=notification_title,
                summary=summary,
                relevance_score=relevance,
                links=MatchLinks(
                    html=_as_text(links.get("html")),
                    pdf=_as_text(links.get("pdf")),
                ) if isinstance(links, dict) else MatchLinks(),
                dates=MatchDates(
                    document_date=_as_text(dates.get("document_date")),
                    publication_date=_as_text(dates.get("publication_date")),
                ) if isinstance(dates, dict) else None,
                code=_as_text(raw.get("code")),
                section=_as_text(raw.get("section")),
                department=_as_text(raw.get("department")),
            )
        except PydanticValidationError as e:
            corrections.append(f"match {position}: invalid, dropped")
            logger.debug("Dropped invalid match", position=position, error=str(e))
            return None

    def _check_metadata(self, raw: Any, computed: ResponseMetadata, corrections: List[str]) -> None:
        if raw is None:
            corrections.append("metadata missing, recomputed")
            return
        if not isinstance(raw, dict):
            corrections.append("metadata is not an object")
            return

        reported: Dict[str, Any] = {
            "match_count": raw.get("match_count"),
            "max_relevance": raw.get("max_relevance"),
        }
        for field, value in reported.items():
            if value is None:
                corrections.append(f"metadata.{field} missing, recomputed")
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                corrections.append(f"metadata.{field} not numeric, recomputed")
            elif value != getattr(computed, field):
                corrections.append(f"metadata.{field} disagrees with matches, recomputed")
