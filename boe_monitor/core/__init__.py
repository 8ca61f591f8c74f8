"""
Core module for the BOE monitoring system.
"""

from .config import Settings, settings
from .errors import (
    BOEMonitorError,
    BackendError,
    ConfigurationError,
    FetchError,
    MalformedSourceError,
    PublishError,
    ValidationError,
)
from .models import *

__all__ = [
    "Settings",
    "settings",
    "BOEMonitorError",
    "BackendError",
    "ConfigurationError",
    "FetchError",
    "MalformedSourceError",
    "PublishError",
    "ValidationError",
]
