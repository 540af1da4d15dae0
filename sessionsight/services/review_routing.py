"""
Review routing at extraction-completion time.

Combines overall confidence with the guardrail outcome into
``requires_review``, a status, and an ordered list of reasons. The UI
renders reasons in list order, so the order below is part of the contract.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal

from sessionsight.schemas.review import ReviewStatus
from sessionsight.schemas.risk import is_high_risk
from sessionsight.services.risk_guardrail import RULE_RE_EXTRACTION_FAILED, GuardrailOutcome

REASON_HOMICIDAL_GUARDRAIL = "Homicidal ideation guardrail triggered"
REASON_SELF_HARM_GUARDRAIL = "Self-harm guardrail triggered"
REASON_DISCREPANCY = "Risk field discrepancy detected"
REASON_RE_EXTRACTION_FAILED = "Risk re-extraction failed"
REASON_HIGH_RISK = "High-risk indicators detected"


def _confidence_label(value: float) -> str:
    # Truncated so a score just under the threshold never prints as equal to it.
    return str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_DOWN))


@dataclass(frozen=True)
class ReviewRouting:
    requires_review: bool
    review_status: ReviewStatus
    review_reasons: list[str] = field(default_factory=list)


def route_for_review(
    overall_confidence: float,
    outcome: GuardrailOutcome,
    threshold: float = 0.7,
) -> ReviewRouting:
    reasons: list[str] = []

    if overall_confidence < threshold:
        reasons.append(f"Low confidence ({_confidence_label(overall_confidence)})")

    if outcome.homicidal_guardrail_applied:
        reasons.append(REASON_HOMICIDAL_GUARDRAIL)
    if outcome.self_harm_guardrail_applied:
        reasons.append(REASON_SELF_HARM_GUARDRAIL)

    reasons.extend(outcome.keyword_mismatch_reasons)

    if outcome.discrepancy_count > 0:
        reasons.append(REASON_DISCREPANCY)

    if any(d.rule_applied == RULE_RE_EXTRACTION_FAILED for d in outcome.decisions):
        reasons.append(REASON_RE_EXTRACTION_FAILED)

    risk_values = {name: f.value for name, f in outcome.risk_assessment.items()}
    if is_high_risk(risk_values):
        reasons.append(REASON_HIGH_RISK)

    if reasons:
        return ReviewRouting(True, ReviewStatus.PENDING, reasons)
    return ReviewRouting(False, ReviewStatus.NOT_FLAGGED, reasons)
