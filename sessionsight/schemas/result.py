"""
Aggregate root for one session-note extraction, plus its read projection.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from sessionsight.schemas.extraction import ClinicalExtraction
from sessionsight.schemas.review import ReviewStatus, SupervisorReview
from sessionsight.schemas.risk import RiskDiagnostics, RiskFieldDecision

SCHEMA_VERSION = "1.0.0"


class ExtractionResult(BaseModel):
    """
    Full extraction result for one session note.

    Guardrail and decision fields keep their defaults unless the risk
    second opinion actually ran. ``version`` increases with every accepted
    review and backs the optimistic concurrency check.
    """

    id: UUID = Field(default_factory=uuid4)
    session_id: str
    schema_version: str = SCHEMA_VERSION
    model_used: str = ""
    overall_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    requires_review: bool = False
    review_status: ReviewStatus = ReviewStatus.NOT_FLAGGED
    review_reasons: list[str] = Field(default_factory=list)
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: ClinicalExtraction = Field(default_factory=ClinicalExtraction)

    # ── Risk guardrail outcome ───────────────────────────────────
    guardrail_applied: bool = False
    homicidal_guardrail_applied: bool = False
    homicidal_guardrail_reason: Optional[str] = None
    homicidal_keyword_matches: list[str] = Field(default_factory=list)
    self_harm_guardrail_applied: bool = False
    self_harm_guardrail_reason: Optional[str] = None
    criteria_validation_attempts: int = Field(default=1, ge=1)
    discrepancy_count: int = Field(default=0, ge=0)
    risk_field_decisions: list[RiskFieldDecision] = Field(default_factory=list)

    version: int = 0

    @property
    def has_diagnostics(self) -> bool:
        # Defaults are indistinguishable from "ran and found nothing" except
        # through these two counters.
        return self.criteria_validation_attempts > 1 or self.discrepancy_count > 0

    def diagnostics(self) -> Optional[RiskDiagnostics]:
        if not self.has_diagnostics:
            return None
        return RiskDiagnostics(
            guardrail_applied=self.guardrail_applied,
            homicidal_guardrail_applied=self.homicidal_guardrail_applied,
            homicidal_guardrail_reason=self.homicidal_guardrail_reason,
            homicidal_keyword_matches=list(self.homicidal_keyword_matches),
            self_harm_guardrail_applied=self.self_harm_guardrail_applied,
            self_harm_guardrail_reason=self.self_harm_guardrail_reason,
            criteria_validation_attempts=self.criteria_validation_attempts,
            discrepancy_count=self.discrepancy_count,
            decisions=list(self.risk_field_decisions),
        )


class ReviewDetail(BaseModel):
    """Everything a supervisor needs to decide on one extraction."""
    extraction_id: UUID
    session_id: str
    review_status: ReviewStatus
    overall_confidence: float
    requires_review: bool
    review_reasons: list[str]
    data: ClinicalExtraction
    diagnostics: Optional[RiskDiagnostics] = None
    reviews: list[SupervisorReview]
    version: int
