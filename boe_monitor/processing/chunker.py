"""
Budget-aware segmentation of bulletin items into backend-sized batches.
"""

from typing import List, Optional, Sequence

import structlog

from ..core.config import Settings, settings as default_settings
from ..core.models import Batch, Item

logger = structlog.get_logger(__name__)


class ChunkBudget:
    """Upper bound for one batch, either an item count or a token estimate."""

    def __init__(self, max_items: Optional[int] = None, max_tokens: Optional[int] = None):
        if (max_items is None) == (max_tokens is None):
            raise ValueError("Exactly one of max_items or max_tokens must be set")

        limit = max_items if max_items is not None else max_tokens
        if limit < 1:
            raise ValueError("Chunk budget must be a positive number")

        self.max_items = max_items
        self.max_tokens = max_tokens

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "ChunkBudget":
        config = config or default_settings
        if config.chunk_max_tokens:
            return cls(max_tokens=config.chunk_max_tokens)
        return cls(max_items=config.chunk_max_items)

    @property
    def mode(self) -> str:
        return "tokens" if self.max_tokens is not None else "items"

    def __repr__(self) -> str:
        return f"ChunkBudget(max_items={self.max_items}, max_tokens={self.max_tokens})"


def chunk(items: Sequence[Item], budget: ChunkBudget) -> List[Batch]:
    """
    Split items into contiguous batches that respect the budget.

    Items keep their source order and are never dropped or duplicated, so
    concatenating the batches yields the input sequence.

    Args:
        items: Normalized bulletin items
        budget: Item-count or token ceiling per batch

    Returns:
        Batches indexed by position in the sequence
    """
    if not items:
        logger.info("No items to chunk")
        return []

    if budget.max_items is not None:
        groups = [
            list(items[start:start + budget.max_items])
            for start in range(0, len(items), budget.max_items)
        ]
    else:
        groups = _group_by_tokens(items, budget.max_tokens)

    batches = [
        Batch(
            index=index,
            items=tuple(group),
            token_estimate=sum(item.estimate_tokens() for item in group),
        )
        for index, group in enumerate(groups)
    ]

    logger.info("Chunked bulletin items",
                items=len(items),
                batches=len(batches),
                budget_mode=budget.mode)

    return batches


def _group_by_tokens(items: Sequence[Item], max_tokens: int) -> List[List[Item]]:
    groups: List[List[Item]] = []
    current: List[Item] = []
    current_tokens = 0

    for item in items:
        tokens = item.estimate_tokens()
        if current and current_tokens + tokens > max_tokens:
            groups.append(current)
            current = []
            current_tokens = 0

        if tokens > max_tokens:
            # Oversize items travel alone
            logger.warning("Item exceeds token budget",
                           identifier=item.identifier,
                           tokens=tokens,
                           max_tokens=max_tokens)

        current.append(item)
        current_tokens += tokens

    if current:
        groups.append(current)

    return groups


def select_batches(batches: List[Batch], max_batches: Optional[int] = None) -> List[Batch]:
    """Limit the batches analyzed; development deployments only process the first."""
    if max_batches is None or max_batches >= len(batches):
        return batches

    logger.info("Limiting batches to process",
                total_batches=len(batches),
                max_batches=max_batches)
    return batches[:max_batches]
