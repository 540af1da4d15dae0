from __future__ import annotations

from helpers import confident_risk, risk_field
from sessionsight.schemas.review import ReviewStatus
from sessionsight.schemas.risk import RiskFieldDecision
from sessionsight.services.review_routing import route_for_review
from sessionsight.services.risk_guardrail import GuardrailOutcome


def _decision(rule: str) -> RiskFieldDecision:
    return RiskFieldDecision(
        field="self_harm",
        original_value="None",
        re_extracted_value="",
        final_value="None",
        rule_applied=rule,
    )


def test_low_confidence_alone_routes_to_pending():
    routing = route_for_review(0.55, GuardrailOutcome(risk_assessment=confident_risk()), threshold=0.7)

    assert routing.requires_review
    assert routing.review_status == ReviewStatus.PENDING
    assert routing.review_reasons == ["Low confidence (0.55)"]


def test_score_just_under_threshold_is_not_printed_as_the_threshold():
    routing = route_for_review(0.699, GuardrailOutcome(risk_assessment=confident_risk()), threshold=0.7)

    assert routing.review_reasons == ["Low confidence (0.69)"]


def test_clean_high_confidence_is_not_flagged():
    routing = route_for_review(0.95, GuardrailOutcome(risk_assessment=confident_risk()), threshold=0.7)

    assert not routing.requires_review
    assert routing.review_status == ReviewStatus.NOT_FLAGGED
    assert routing.review_reasons == []


def test_threshold_boundary_passes():
    routing = route_for_review(0.7, GuardrailOutcome(risk_assessment=confident_risk()), threshold=0.7)
    assert not routing.requires_review


def test_reasons_follow_fixed_order():
    outcome = GuardrailOutcome(
        risk_assessment=confident_risk(suicidal_ideation=risk_field("ActiveWithPlan")),
        guardrail_applied=True,
        homicidal_guardrail_applied=True,
        homicidal_guardrail_reason="keyword_present",
        self_harm_guardrail_applied=True,
        self_harm_guardrail_reason="re_extraction_failed",
        discrepancy_count=1,
        decisions=[_decision("re_extraction_failed")],
        keyword_mismatch_reasons=["Homicidal keywords detected (kill them) but extraction shows 'None'"],
    )

    routing = route_for_review(0.62, outcome, threshold=0.7)

    assert routing.review_reasons == [
        "Low confidence (0.62)",
        "Homicidal ideation guardrail triggered",
        "Self-harm guardrail triggered",
        "Homicidal keywords detected (kill them) but extraction shows 'None'",
        "Risk field discrepancy detected",
        "Risk re-extraction failed",
        "High-risk indicators detected",
    ]
    assert routing.review_status == ReviewStatus.PENDING


def test_discrepancy_without_guardrail_flag_still_routes():
    outcome = GuardrailOutcome(risk_assessment=confident_risk(), discrepancy_count=2)
    routing = route_for_review(0.9, outcome)
    assert routing.review_reasons == ["Risk field discrepancy detected"]
    assert routing.requires_review


def test_high_risk_final_value_routes_even_when_confident():
    outcome = GuardrailOutcome(risk_assessment=confident_risk(risk_level_overall=risk_field("High")))
    routing = route_for_review(0.95, outcome)
    assert routing.review_reasons == ["High-risk indicators detected"]
