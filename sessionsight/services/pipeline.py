"""
Extraction Pipeline.

Entry point for one session note:

1. Clinical extraction (parallel, per category)
2. Overall confidence
3. Risk guardrail (second opinion + conservative merge)
4. Review routing
5. Persist the ``ExtractionResult`` with its risk decisions

Model and parse failures are absorbed along the way, so ``process`` only
raises when the store does.
"""

from __future__ import annotations

from typing import Optional
from uuid import uuid4

from sessionsight.config import Settings, get_settings
from sessionsight.logging_config import bind_note_context, get_logger
from sessionsight.schemas.result import ExtractionResult
from sessionsight.services.clinical_extractor import ClinicalExtractor
from sessionsight.services.confidence import calculate_overall_confidence, low_confidence_fields
from sessionsight.services.llm_client import ModelClient
from sessionsight.services.review_routing import route_for_review
from sessionsight.services.risk_guardrail import GuardrailOutcome, RiskGuardrail
from sessionsight.services.routing import ModelTask, select_model
from sessionsight.services.store import ExtractionStore

logger = get_logger(__name__)


class ExtractionPipeline:
    def __init__(
        self,
        model_client: ModelClient,
        store: ExtractionStore,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._store = store
        self._extractor = ClinicalExtractor(model_client, self._settings)
        self._guardrail = RiskGuardrail(model_client, self._settings)

    async def process(
        self,
        session_text: str,
        prior_clinical_history: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> ExtractionResult:
        session_id = session_id or str(uuid4())
        with bind_note_context(session_id):
            return await self._process(session_text, prior_clinical_history, session_id)

    async def _process(
        self,
        session_text: str,
        prior_clinical_history: Optional[str],
        session_id: str,
    ) -> ExtractionResult:
        settings = self._settings
        logger.info("pipeline_started", note_length=len(session_text or ""))

        extraction, models = await self._extractor.extract(session_text, prior_clinical_history, session_id)
        overall = calculate_overall_confidence(extraction)

        if session_text and session_text.strip():
            outcome = await self._guardrail.reconcile(session_text, extraction, session_id)
        else:
            outcome = GuardrailOutcome(risk_assessment=dict(extraction.risk_assessment))

        if outcome.criteria_validation_attempts > 1:
            models = sorted(set(models) | {select_model(ModelTask.RISK_ASSESSMENT)})

        data = extraction.with_category("risk_assessment", outcome.risk_assessment)
        routing = route_for_review(overall, outcome, settings.review_confidence_threshold)

        result = ExtractionResult(
            session_id=session_id,
            model_used=", ".join(models),
            overall_confidence=overall,
            requires_review=routing.requires_review,
            review_status=routing.review_status,
            review_reasons=list(routing.review_reasons),
            data=data,
            guardrail_applied=outcome.guardrail_applied,
            homicidal_guardrail_applied=outcome.homicidal_guardrail_applied,
            homicidal_guardrail_reason=outcome.homicidal_guardrail_reason,
            homicidal_keyword_matches=list(outcome.homicidal_keyword_matches),
            self_harm_guardrail_applied=outcome.self_harm_guardrail_applied,
            self_harm_guardrail_reason=outcome.self_harm_guardrail_reason,
            criteria_validation_attempts=outcome.criteria_validation_attempts,
            discrepancy_count=outcome.discrepancy_count,
            risk_field_decisions=list(outcome.decisions),
        )

        await self._store.create_extraction(result)

        logger.info(
            "pipeline_complete",
            extraction_id=str(result.id),
            overall_confidence=overall,
            requires_review=result.requires_review,
            review_reasons=result.review_reasons,
            low_confidence_fields=low_confidence_fields(data, settings.review_confidence_threshold),
            discrepancies=result.discrepancy_count,
        )
        return result
