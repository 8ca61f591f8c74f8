"""
Exception hierarchy for the BOE monitoring system.
"""

from typing import Any, Dict, Optional


class BOEMonitorError(Exception):
    """Base error carrying a machine-readable code and diagnostic details."""

    code = "BOE_MONITOR_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class FetchError(BOEMonitorError):
    """Bulletin source unreachable or returned an unusable transport response."""

    code = "FETCH_ERROR"


class MalformedSourceError(BOEMonitorError):
    """Bulletin content is missing the containers the normalizer needs."""

    code = "MALFORMED_SOURCE"


class ValidationError(BOEMonitorError):
    """Backend output could not be parsed even after repair."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, preview: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.preview = preview
        self.details.setdefault("preview", preview)


class BackendError(BOEMonitorError):
    """The analysis backend rejected or failed on a batch."""

    code = "BACKEND_ERROR"


class ConfigurationError(BOEMonitorError):
    """Fatal misconfiguration detected before any batch is dispatched."""

    code = "CONFIGURATION_ERROR"


class PublishError(BOEMonitorError):
    """A notification message could not be delivered to a topic."""

    code = "PUBLISH_ERROR"
