"""
Review side effects.

Every review write changes the owning tour's rating aggregates. The
recalculation runs as the reviews repository's ``after_write`` hook so the
generic CRUD handlers stay unaware of it.
"""

import math
from typing import Any, Mapping

import structlog

from api.src.models.entities import REVIEW_SCHEMA, TOUR_SCHEMA
from api.src.repositories.document_store import DocumentStore
from api.src.services.query_features import FilterClause, QueryRequest

logger = structlog.get_logger(__name__)

DEFAULT_RATINGS_AVERAGE = 4.5


def round_rating(value: float) -> float:
    """Round half up to one decimal place (4.666 -> 4.7)."""
    return math.floor(value * 10 + 0.5) / 10


class RatingsCalculator:
    """Recomputes ``ratingsQuantity`` / ``ratingsAverage`` for a tour."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def recalculate(self, tour_id: Any) -> None:
        request = QueryRequest(
            filters=(FilterClause("tour", "eq", tour_id),),
            include=("rating",),
            limit=None,
        )
        ratings = [
            r["rating"] for r in await self.store.find(REVIEW_SCHEMA.collection, request)
            if r.get("rating") is not None
        ]

        if ratings:
            stats = {
                "ratingsQuantity": len(ratings),
                "ratingsAverage": round_rating(sum(ratings) / len(ratings)),
            }
        else:
            stats = {"ratingsQuantity": 0, "ratingsAverage": DEFAULT_RATINGS_AVERAGE}

        await self.store.update_by_id(TOUR_SCHEMA.collection, tour_id, stats)
        logger.info("tour_ratings_recalculated", tour_id=str(tour_id), **stats)

    async def after_review_write(self, review: Mapping[str, Any]) -> None:
        tour_id = review.get("tour")
        if tour_id is not None:
            await self.recalculate(tour_id)
