from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest

from helpers import make_extraction
from sessionsight.errors import ConcurrencyConflictError, ExtractionNotFoundError, ReviewValidationError
from sessionsight.schemas.result import ExtractionResult
from sessionsight.schemas.review import ReviewStatus, SupervisorReview
from sessionsight.schemas.risk import RiskFieldDecision
from sessionsight.services.review_service import ReviewService


def _pending(store, **overrides) -> ExtractionResult:
    result = ExtractionResult(
        session_id="session-42",
        overall_confidence=0.55,
        requires_review=True,
        review_status=ReviewStatus.PENDING,
        review_reasons=["Low confidence (0.55)"],
        data=make_extraction(),
        **overrides,
    )
    asyncio.run(store.create_extraction(result))
    return result


@pytest.mark.parametrize("name", ["", "   ", None])
def test_blank_reviewer_is_rejected_without_state_change(store, name):
    extraction = _pending(store)
    service = ReviewService(store)

    with pytest.raises(ReviewValidationError):
        asyncio.run(service.submit_review(extraction.id, ReviewStatus.APPROVED, name))

    assert asyncio.run(service.list_reviews(extraction.id)) == []
    stored = asyncio.run(store.get_extraction(extraction.id))
    assert stored.review_status == ReviewStatus.PENDING
    assert stored.version == 0


@pytest.mark.parametrize("action", [ReviewStatus.PENDING, ReviewStatus.NOT_FLAGGED, "Pending", "Escalated"])
def test_system_statuses_are_not_reviewer_actions(store, action):
    extraction = _pending(store)
    service = ReviewService(store)

    with pytest.raises(ReviewValidationError):
        asyncio.run(service.submit_review(extraction.id, action, "Dr. Lee"))

    assert asyncio.run(service.list_reviews(extraction.id)) == []


def test_validation_runs_before_lookup(store):
    service = ReviewService(store)
    with pytest.raises(ReviewValidationError):
        asyncio.run(service.submit_review(uuid4(), ReviewStatus.APPROVED, ""))


def test_unknown_extraction_is_not_found(store):
    service = ReviewService(store)
    with pytest.raises(ExtractionNotFoundError):
        asyncio.run(service.submit_review(uuid4(), ReviewStatus.APPROVED, "Dr. Lee"))
    with pytest.raises(ExtractionNotFoundError):
        asyncio.run(service.submit_review("not-a-uuid", ReviewStatus.APPROVED, "Dr. Lee"))


def test_submission_appends_review_and_sets_status(store):
    extraction = _pending(store)
    service = ReviewService(store)

    review = asyncio.run(service.submit_review(str(extraction.id), "approved", "  Dr. Lee ", notes="  "))

    assert isinstance(review, SupervisorReview)
    assert review.action == ReviewStatus.APPROVED
    assert review.reviewer_name == "Dr. Lee"
    assert review.notes is None
    assert review.extraction_id == extraction.id

    stored = asyncio.run(store.get_extraction(extraction.id))
    assert stored.review_status == ReviewStatus.APPROVED
    assert stored.version == 1


def test_approved_then_dismissed_keeps_both_records(store):
    extraction = _pending(store)
    service = ReviewService(store)

    first = asyncio.run(service.submit_review(extraction.id, ReviewStatus.APPROVED, "Dr. Lee", notes="Looks right"))
    second = asyncio.run(service.submit_review(extraction.id, ReviewStatus.DISMISSED, "Dr. Park"))

    detail = asyncio.run(service.get_review_detail(extraction.id))
    assert detail.review_status == ReviewStatus.DISMISSED
    assert [r.id for r in detail.reviews] == [second.id, first.id]
    assert detail.reviews[1].notes == "Looks right"
    assert detail.version == 2


def test_stale_version_is_rejected_and_nothing_is_appended(store):
    extraction = _pending(store)
    service = ReviewService(store)
    asyncio.run(service.submit_review(extraction.id, ReviewStatus.APPROVED, "Dr. Lee", expected_version=0))

    with pytest.raises(ConcurrencyConflictError, match="Re-fetch") as exc_info:
        asyncio.run(service.submit_review(extraction.id, ReviewStatus.DISMISSED, "Dr. Park", expected_version=0))

    assert exc_info.value.actual_version == 1
    assert len(asyncio.run(service.list_reviews(extraction.id))) == 1
    assert asyncio.run(store.get_extraction(extraction.id)).review_status == ReviewStatus.APPROVED


def test_concurrent_submissions_accept_exactly_one(store):
    extraction = _pending(store)
    service = ReviewService(store)

    async def race():
        return await asyncio.gather(
            service.submit_review(extraction.id, ReviewStatus.APPROVED, "Dr. Lee", expected_version=0),
            service.submit_review(extraction.id, ReviewStatus.DISMISSED, "Dr. Park", expected_version=0),
            return_exceptions=True,
        )

    outcomes = asyncio.run(race())

    accepted = [o for o in outcomes if isinstance(o, SupervisorReview)]
    conflicts = [o for o in outcomes if isinstance(o, ConcurrencyConflictError)]
    assert len(accepted) == 1
    assert len(conflicts) == 1

    history = asyncio.run(service.list_reviews(extraction.id))
    assert [r.id for r in history] == [accepted[0].id]
    assert asyncio.run(store.get_extraction(extraction.id)).review_status == accepted[0].action


def test_detail_has_no_diagnostics_when_guardrail_never_ran(store):
    extraction = _pending(store)
    detail = asyncio.run(ReviewService(store).get_review_detail(extraction.id))
    assert detail.diagnostics is None
    assert detail.review_reasons == ["Low confidence (0.55)"]


def test_detail_exposes_diagnostics_after_reconciliation(store):
    decision = RiskFieldDecision(
        field="suicidal_ideation",
        original_value="None",
        re_extracted_value="ActiveWithPlan",
        final_value="ActiveWithPlan",
        rule_applied="conservative_merge",
        criteria_used=["low_confidence:0.60"],
        reasoning_used="Plan with method described.",
    )
    extraction = _pending(store, criteria_validation_attempts=2, discrepancy_count=1, risk_field_decisions=[decision])

    detail = asyncio.run(ReviewService(store).get_review_detail(extraction.id))

    assert detail.diagnostics is not None
    assert detail.diagnostics.discrepancy_count == 1
    assert detail.diagnostics.criteria_validation_attempts == 2
    assert detail.diagnostics.decisions == [decision]


def test_list_reviews_for_unknown_extraction(store):
    with pytest.raises(ExtractionNotFoundError):
        asyncio.run(ReviewService(store).list_reviews(uuid4()))
