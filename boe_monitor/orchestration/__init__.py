"""
Pipeline orchestration module for BOE relevance analysis.
"""

from .pipeline import AnalysisPipeline, build_pipeline

__all__ = ["AnalysisPipeline", "build_pipeline"]
