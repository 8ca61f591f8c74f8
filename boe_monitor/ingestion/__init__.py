"""
Data ingestion module for the BOE open data API.
"""

from .boe_client import BOEClient
from .normalizer import BOENormalizer, clean_text

__all__ = ["BOEClient", "BOENormalizer", "clean_text"]
