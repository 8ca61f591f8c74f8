"""
Item segmentation for the analysis backend.
"""

from .chunker import ChunkBudget, chunk, select_batches

__all__ = ["ChunkBudget", "chunk", "select_batches"]
