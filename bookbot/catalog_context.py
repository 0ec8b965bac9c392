"""Catalog context assembly for the prompt and the fallback reply.

The builder never ranks or filters items: the model picks from the block under
the grounding rules of the policy preamble. A failed review fetch degrades only
the affected item, which is rendered without reviews.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from .models import CatalogItem, Review, format_price, format_rating

logger = logging.getLogger("bookbot.catalog")

DEFAULT_REVIEW_LIMIT = 3
EMPTY_CATALOG_LINE = "(No books are currently listed in the inventory.)"


@dataclass(frozen=True)
class CatalogContext:
    """Trimmed catalog snapshot shared by the prompt composer and fallback advisor."""
    items: List[CatalogItem] = field(default_factory=list)

    def names(self) -> List[str]:
        return [item.name for item in self.items]

    def render(self) -> str:
        """Purpose: Serialize the snapshot into the model-readable inventory block.
        Inputs/Outputs: No inputs; returns the block text.
        Side Effects / State: None; pure function of the snapshot.
        Dependencies: Uses format_item.
        Failure Modes: None; an empty catalog yields an explicit placeholder line.
        If Removed: The prompt has no grounding data.
        Testing Notes: Render twice and compare for byte equality.
        """
        if not self.items:
            return EMPTY_CATALOG_LINE
        return "\n---\n".join(format_item(item) for item in self.items)


def format_item(item: CatalogItem) -> str:
    lines = [
        f"- Title: {item.name}",
        f"- Category: {item.category or 'Uncategorized'}",
        f"- Price: {format_price(item.price)}",
        f"- Description: {item.description.strip() or 'No description.'}",
        f"- Available: {item.available_count} copies",
        f"- Rating: {format_rating(item.average_rating)} ({item.rating_count} ratings)",
    ]
    if item.reviews:
        lines.append("- Recent Reviews:")
        for review in item.reviews:
            lines.append(f'  * {review.author} rated {review.rating}/5: "{review.message.strip()}"')
    return "\n".join(lines)


class CatalogContextBuilder:
    """Combine the catalog snapshot with per-item reviews into a CatalogContext."""

    def __init__(self, review_limit: int = DEFAULT_REVIEW_LIMIT) -> None:
        if review_limit < 0:
            raise ValueError("review_limit must not be negative")
        self._review_limit = review_limit

    def build(
        self,
        items: Sequence[CatalogItem],
        reviews_by_item: Optional[Mapping[str, Sequence[Review]]] = None,
    ) -> CatalogContext:
        """Purpose: Attach up to review_limit recent reviews to every catalog item.
        Inputs/Outputs: Inputs are catalog items and a review map keyed by item_id;
            returns a CatalogContext in catalog order.
        Side Effects / State: Logs items whose reviews are missing.
        Dependencies: Uses CatalogItem.model_copy.
        Failure Modes: A missing review entry yields an empty review list, never an
            error.
        If Removed: Prompts lose ratings and review grounding.
        Testing Notes: Omit one item's reviews and verify the rest are unaffected.
        """
        reviews_by_item = reviews_by_item or {}
        built: List[CatalogItem] = []
        missing: List[str] = []
        for item in items:
            reviews = reviews_by_item.get(item.item_id)
            if reviews is None:
                missing.append(item.item_id)
                reviews = []
            # Reviews arrive newest first.
            trimmed = list(reviews)[: self._review_limit]
            built.append(item.model_copy(update={"reviews": trimmed}))
        if missing and reviews_by_item:
            logger.debug("catalog context built without reviews for items=%s", missing)
        logger.info("catalog context built items=%s", len(built))
        return CatalogContext(items=built)

