"""
Review Service.

Supervisor side of the review queue: validating and recording review
decisions, and the read projections a reviewer works from. Every
submission appends one immutable ``SupervisorReview``; the current
status is a projection the store updates in the same step.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union
from uuid import UUID, uuid4

from sessionsight.errors import ExtractionNotFoundError, ReviewValidationError
from sessionsight.logging_config import get_logger
from sessionsight.schemas.result import ExtractionResult, ReviewDetail
from sessionsight.schemas.review import REVIEWER_ACTIONS, ReviewStatus, SupervisorReview
from sessionsight.services.store import ExtractionStore

logger = get_logger(__name__)


def _parse_action(action: Union[ReviewStatus, str]) -> ReviewStatus:
    if isinstance(action, ReviewStatus):
        status = action
    else:
        wanted = str(action).strip().lower()
        status = next((s for s in ReviewStatus if s.value.lower() == wanted), None)
    if status not in REVIEWER_ACTIONS:
        raise ReviewValidationError(f"Action must be Approved or Dismissed, got {action!r}")
    return status


def _parse_id(extraction_id: Union[UUID, str]) -> UUID:
    if isinstance(extraction_id, UUID):
        return extraction_id
    try:
        return UUID(str(extraction_id))
    except ValueError:
        raise ExtractionNotFoundError(str(extraction_id)) from None


class ReviewService:
    def __init__(self, store: ExtractionStore) -> None:
        self._store = store

    async def _require(self, extraction_id: UUID) -> ExtractionResult:
        extraction = await self._store.get_extraction(extraction_id)
        if extraction is None:
            raise ExtractionNotFoundError(str(extraction_id))
        return extraction

    async def submit_review(
        self,
        extraction_id: Union[UUID, str],
        action: Union[ReviewStatus, str],
        reviewer_name: str,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> SupervisorReview:
        """
        Record a supervisor decision.

        Input is validated before anything is read or written. When
        ``expected_version`` is omitted the version read here is used, so
        a write racing in between is still caught by the store.

        Raises:
            ReviewValidationError: bad action or blank reviewer name.
            ExtractionNotFoundError: unknown extraction id.
            ConcurrencyConflictError: the extraction changed since it was read.
        """
        status = _parse_action(action)
        if not isinstance(reviewer_name, str) or not reviewer_name.strip():
            raise ReviewValidationError("Reviewer name is required")

        eid = _parse_id(extraction_id)
        extraction = await self._require(eid)
        version = extraction.version if expected_version is None else expected_version

        review = SupervisorReview(
            id=uuid4(),
            extraction_id=eid,
            action=status,
            reviewer_name=reviewer_name.strip(),
            notes=notes.strip() if notes and notes.strip() else None,
            reviewed_at=datetime.now(timezone.utc),
        )

        updated = await self._store.apply_review(review, version)

        logger.info(
            "review_submitted",
            extraction_id=str(eid),
            review_id=str(review.id),
            action=status.value,
            previous_status=extraction.review_status.value,
            version=updated.version,
        )
        return review

    async def get_review_detail(self, extraction_id: Union[UUID, str]) -> ReviewDetail:
        eid = _parse_id(extraction_id)
        extraction = await self._require(eid)
        reviews = await self._store.list_reviews(eid)

        return ReviewDetail(
            extraction_id=extraction.id,
            session_id=extraction.session_id,
            review_status=extraction.review_status,
            overall_confidence=extraction.overall_confidence,
            requires_review=extraction.requires_review,
            review_reasons=list(extraction.review_reasons),
            data=extraction.data,
            diagnostics=extraction.diagnostics(),
            reviews=reviews,
            version=extraction.version,
        )

    async def list_reviews(self, extraction_id: Union[UUID, str]) -> list[SupervisorReview]:
        eid = _parse_id(extraction_id)
        await self._require(eid)
        return await self._store.list_reviews(eid)
