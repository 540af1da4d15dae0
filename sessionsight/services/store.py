"""
Extraction persistence seam.

``ExtractionStore`` is what the pipeline and the review service talk to.
``InMemoryExtractionStore`` backs tests and the local CLI; the Supabase
implementation lives in ``sessionsight.db``.

``apply_review`` is the only write with a concurrency hazard. Every
implementation must append the review, set the status and bump the
version as one step, and reject the write when ``expected_version`` is
stale.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Optional, Protocol
from uuid import UUID

from sessionsight.errors import ConcurrencyConflictError, ExtractionNotFoundError
from sessionsight.logging_config import get_logger
from sessionsight.schemas.result import ExtractionResult
from sessionsight.schemas.review import SupervisorReview

logger = get_logger(__name__)


class ExtractionStore(Protocol):
    async def create_extraction(self, result: ExtractionResult) -> ExtractionResult:
        ...

    async def get_extraction(self, extraction_id: UUID) -> Optional[ExtractionResult]:
        ...

    async def get_extraction_by_session(self, session_id: str) -> Optional[ExtractionResult]:
        ...

    async def list_reviews(self, extraction_id: UUID) -> list[SupervisorReview]:
        """Reviews for one extraction, newest first."""
        ...

    async def apply_review(self, review: SupervisorReview, expected_version: int) -> ExtractionResult:
        ...


class InMemoryExtractionStore:
    """Process-local store. One lock per extraction serializes review writes."""

    def __init__(self) -> None:
        self._extractions: dict[UUID, ExtractionResult] = {}
        self._reviews: dict[UUID, list[SupervisorReview]] = defaultdict(list)
        self._locks: dict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_extraction(self, result: ExtractionResult) -> ExtractionResult:
        self._extractions[result.id] = result.model_copy(deep=True)
        logger.debug("extraction_stored", extraction_id=str(result.id), session_id=result.session_id)
        return result

    async def get_extraction(self, extraction_id: UUID) -> Optional[ExtractionResult]:
        stored = self._extractions.get(extraction_id)
        return stored.model_copy(deep=True) if stored else None

    async def get_extraction_by_session(self, session_id: str) -> Optional[ExtractionResult]:
        matches = [e for e in self._extractions.values() if e.session_id == session_id]
        if not matches:
            return None
        latest = max(matches, key=lambda e: e.extracted_at)
        return latest.model_copy(deep=True)

    async def list_reviews(self, extraction_id: UUID) -> list[SupervisorReview]:
        return list(reversed(self._reviews.get(extraction_id, [])))

    async def apply_review(self, review: SupervisorReview, expected_version: int) -> ExtractionResult:
        async with self._locks[review.extraction_id]:
            current = self._extractions.get(review.extraction_id)
            if current is None:
                raise ExtractionNotFoundError(str(review.extraction_id))
            if current.version != expected_version:
                raise ConcurrencyConflictError(str(review.extraction_id), expected_version, current.version)

            self._reviews[review.extraction_id].append(review)
            updated = current.model_copy(
                update={"review_status": review.action, "version": current.version + 1},
                deep=True,
            )
            self._extractions[review.extraction_id] = updated
            return updated.model_copy(deep=True)
