"""
Relevance analysis: backends, response validation, dispatch and merge.
"""

from .backend import (
    AnalysisBackend,
    BackendResponse,
    GeminiAnalysisBackend,
    OpenAIAnalysisBackend,
    create_backend,
)
from .dispatcher import BatchDispatcher
from .merger import empty_result, merge
from .validator import ResponseValidator, repair_json, strip_formatting

__all__ = [
    "AnalysisBackend",
    "BackendResponse",
    "GeminiAnalysisBackend",
    "OpenAIAnalysisBackend",
    "create_backend",
    "BatchDispatcher",
    "ResponseValidator",
    "empty_result",
    "merge",
    "repair_json",
    "strip_formatting",
]
