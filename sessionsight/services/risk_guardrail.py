"""
Risk Guardrail Reconciliation Engine.

Risk fields (suicidal ideation, self-harm, homicidal ideation and the
overall level) get a second, independent extraction pass when the first
pass is unsure of them or the note contains danger keywords. The two
readings are then reconciled with the conservative merge: on
disagreement the more severe value wins, so detected risk is never
downgraded. Every re-checked field leaves a ``RiskFieldDecision``.

A failed second pass (model error, timeout, unparseable output) keeps the
original values and is recorded in the audit trail. It never raises out
of ``reconcile``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from sessionsight.config import Settings, get_settings
from sessionsight.errors import ReExtractionError
from sessionsight.logging_config import get_logger
from sessionsight.schemas.extraction import ClinicalExtraction, ExtractedField
from sessionsight.schemas.risk import (
    GUARDED_RISK_FIELDS,
    RISK_SCALES,
    RiskFieldDecision,
    canonical_risk_value,
    risk_severity,
)
from sessionsight.services.keyword_checker import KeywordMatches, check_keywords
from sessionsight.services.llm_client import ModelClient
from sessionsight.services.llm_json import (
    decode_category,
    decode_string_list_map,
    decode_string_map,
    parse_json_object,
)
from sessionsight.services.prompts import RISK_SYSTEM_PROMPT, build_risk_re_extraction_prompt
from sessionsight.services.routing import ModelTask

logger = get_logger(__name__)

RULE_AGREEMENT = "agreement"
RULE_CONSERVATIVE_MERGE = "conservative_merge"
RULE_RE_EXTRACTED = "re_extracted"
RULE_ORIGINAL_RETAINED = "original_retained"
RULE_RE_EXTRACTION_FAILED = "re_extraction_failed"

REASON_KEYWORD_PRESENT = "keyword_present"
REASON_LOW_CONFIDENCE = "low_confidence"
REASON_ROUTINE_RECHECK = "routine_recheck"
REASON_RE_EXTRACTION_FAILED = "re_extraction_failed"

MAX_SOURCE_CHARS = 220
MAX_REASONING_CHARS = 320

# Risk-section fields outside the guarded set, merged without audit records.
SEVERITY_SUPPORTING_FIELDS: tuple[str, ...] = ("si_frequency", "si_intensity")
TEXT_SUPPORTING_FIELDS: tuple[str, ...] = ("sh_recency", "hi_target")
LIST_SUPPORTING_FIELDS: tuple[str, ...] = ("protective_factors", "risk_factors")

# Keyword category → (guarded field, label used in review reasons)
_KEYWORD_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("suicidal", "suicidal_ideation", "Suicidal"),
    ("self_harm", "self_harm", "Self-harm"),
    ("homicidal", "homicidal_ideation", "Homicidal"),
)


@dataclass
class GuardrailOutcome:
    """What the guardrail did to one extraction's risk section."""

    risk_assessment: dict[str, ExtractedField]
    guardrail_applied: bool = False
    homicidal_guardrail_applied: bool = False
    homicidal_guardrail_reason: Optional[str] = None
    homicidal_keyword_matches: list[str] = field(default_factory=list)
    self_harm_guardrail_applied: bool = False
    self_harm_guardrail_reason: Optional[str] = None
    criteria_validation_attempts: int = 1
    discrepancy_count: int = 0
    decisions: list[RiskFieldDecision] = field(default_factory=list)
    keyword_mismatch_reasons: list[str] = field(default_factory=list)
    re_extraction_failed: bool = False


def _to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _trim(text: Optional[str], limit: int) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text if len(text) <= limit else text[:limit].rstrip()


def _source_text(extracted: ExtractedField) -> Optional[str]:
    if extracted.source is None or not extracted.source.text:
        return None
    return _trim(extracted.source.text, MAX_SOURCE_CHARS)


def _audit_value(field_name: str, value: Any) -> str:
    """The value as the model reported it, with null read as the scale floor."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return canonical_risk_value(field_name, value)


def _as_list(value: Any) -> list[str]:
    items = value if isinstance(value, list) else [value]
    return [item.strip() for item in items if isinstance(item, str) and item.strip()]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes")
    return value is True


def _trigger_reason(criteria: list[str]) -> str:
    if any(c.startswith("keyword:") for c in criteria):
        return REASON_KEYWORD_PRESENT
    if any(c.startswith("low_confidence") for c in criteria):
        return REASON_LOW_CONFIDENCE
    return REASON_ROUTINE_RECHECK


class RiskGuardrail:
    """Second-opinion pass over risk fields, with conservative reconciliation."""

    def __init__(self, model_client: ModelClient, settings: Optional[Settings] = None) -> None:
        self._client = model_client
        self._settings = settings or get_settings()

    # ── Triggers ─────────────────────────────────────────────────

    def find_triggers(
        self,
        risk: dict[str, ExtractedField],
        keywords: KeywordMatches,
    ) -> dict[str, list[str]]:
        """
        Map each guarded field that needs a re-check to the criteria that
        triggered it. Fields that need nothing are left out.

        A field the first pass did not return at all counts as confidence
        0.0 and is re-checked.
        """
        settings = self._settings
        triggers: dict[str, list[str]] = {}
        for name in GUARDED_RISK_FIELDS:
            criteria: list[str] = []
            if settings.always_re_extract:
                criteria.append(REASON_ROUTINE_RECHECK)

            confidence = risk.get(name, ExtractedField()).confidence
            if confidence < settings.risk_confidence_threshold:
                criteria.append(f"low_confidence:{confidence:.2f}")

            criteria.extend(f"keyword:{kw}" for kw in keywords.for_field(name))

            if criteria:
                triggers[name] = criteria
        return triggers

    # ── Entry point ──────────────────────────────────────────────

    async def reconcile(
        self,
        note_text: str,
        extraction: ClinicalExtraction,
        session_id: Optional[str] = None,
    ) -> GuardrailOutcome:
        risk = dict(extraction.risk_assessment)
        keywords = check_keywords(note_text) if self._settings.enable_keyword_safety_net else KeywordMatches()

        outcome = GuardrailOutcome(
            risk_assessment=risk,
            homicidal_keyword_matches=list(keywords.homicidal),
        )

        triggers = self.find_triggers(risk, keywords)
        if not triggers:
            logger.debug("risk_recheck_not_needed", session_id=session_id)
            outcome.keyword_mismatch_reasons = self._keyword_mismatches(keywords, risk)
            return outcome

        logger.info(
            "risk_recheck_started",
            session_id=session_id,
            fields=list(triggers),
            keyword_matches=keywords.all_matches,
        )

        try:
            payload = await self._re_extract(note_text, triggers, outcome, session_id)
        except ReExtractionError as e:
            logger.error(
                "risk_recheck_failed",
                session_id=session_id,
                attempts=outcome.criteria_validation_attempts,
                error=str(e),
            )
            self._record_failure(outcome, risk, triggers, str(e))
        else:
            self._merge(outcome, risk, triggers, payload)

        self._set_flags(outcome, triggers)
        outcome.keyword_mismatch_reasons = self._keyword_mismatches(keywords, outcome.risk_assessment)

        logger.info(
            "risk_recheck_complete",
            session_id=session_id,
            attempts=outcome.criteria_validation_attempts,
            discrepancies=outcome.discrepancy_count,
            failed=outcome.re_extraction_failed,
        )
        return outcome

    # ── Second pass ──────────────────────────────────────────────

    async def _re_extract(
        self,
        note_text: str,
        triggers: dict[str, list[str]],
        outcome: GuardrailOutcome,
        session_id: Optional[str],
    ) -> dict[str, Any]:
        """
        Run the risk re-extraction, retrying while the response is missing
        criteria or reasoning for a triggered field. Returns the last parsed
        payload; raises ReExtractionError when no attempt produced one.
        """
        settings = self._settings
        required_keys = [_to_camel(name) for name in triggers]
        best: Optional[dict[str, Any]] = None
        last_error = "no attempt made"

        for attempt in range(settings.criteria_validation_attempts):
            outcome.criteria_validation_attempts += 1
            prompt = build_risk_re_extraction_prompt(note_text, required_keys, is_retry=attempt > 0)

            try:
                raw = await asyncio.wait_for(
                    self._client.complete(RISK_SYSTEM_PROMPT, prompt, ModelTask.RISK_ASSESSMENT),
                    timeout=settings.re_extraction_timeout_seconds,
                )
            except asyncio.TimeoutError:
                last_error = f"Re-extraction timed out after {settings.re_extraction_timeout_seconds:g}s"
                logger.warning("risk_recheck_timeout", session_id=session_id, attempt=attempt + 1)
                continue
            except Exception as e:
                last_error = f"Re-extraction call failed: {e}"
                logger.warning("risk_recheck_call_error", session_id=session_id, attempt=attempt + 1, error=str(e))
                continue

            parsed = parse_json_object(raw)
            if parsed is None:
                last_error = "Re-extraction response could not be parsed as JSON"
                logger.warning("risk_recheck_unparseable", session_id=session_id, attempt=attempt + 1)
                continue

            best = parsed
            if not settings.require_criteria_used:
                break
            missing = self._missing_rationale(parsed, triggers)
            if not missing:
                break
            logger.info("risk_recheck_missing_criteria", session_id=session_id, attempt=attempt + 1, fields=missing)

        if best is None:
            raise ReExtractionError(last_error)
        return best

    @staticmethod
    def _missing_rationale(payload: dict[str, Any], triggers: dict[str, list[str]]) -> list[str]:
        criteria = decode_string_list_map(payload.get("criteria_used", payload.get("criteriaUsed")))
        reasoning = decode_string_map(payload.get("reasoning_used", payload.get("reasoningUsed")))
        return [name for name in triggers if not criteria.get(name) or not reasoning.get(name)]

    # ── Reconciliation ───────────────────────────────────────────

    def _merge(
        self,
        outcome: GuardrailOutcome,
        risk: dict[str, ExtractedField],
        triggers: dict[str, list[str]],
        payload: dict[str, Any],
    ) -> None:
        re_extracted = decode_category(payload)
        model_criteria = decode_string_list_map(payload.get("criteria_used", payload.get("criteriaUsed")))
        model_reasoning = decode_string_map(payload.get("reasoning_used", payload.get("reasoningUsed")))

        for name, criteria in triggers.items():
            original = risk.get(name, ExtractedField())
            candidate = re_extracted.get(name, ExtractedField())
            original_value = _audit_value(name, original.value)
            candidate_value = _audit_value(name, candidate.value)

            final, rule = self._resolve(name, original, candidate)
            if rule != RULE_AGREEMENT:
                outcome.discrepancy_count += 1
                logger.warning(
                    "risk_field_discrepancy",
                    field=name,
                    original=original_value,
                    re_extracted=candidate_value,
                    final=_audit_value(name, final.value),
                )

            final_value = _audit_value(name, final.value)
            reasoning = model_reasoning.get(name) or self._default_reasoning(
                rule, original_value, candidate_value, final_value
            )

            risk[name] = final
            outcome.decisions.append(
                RiskFieldDecision(
                    field=name,
                    original_value=original_value,
                    re_extracted_value=candidate_value,
                    final_value=final_value,
                    rule_applied=rule,
                    criteria_used=criteria + model_criteria.get(name, []),
                    reasoning_used=_trim(reasoning, MAX_REASONING_CHARS) or "",
                    original_source=_source_text(original),
                    re_extracted_source=_source_text(candidate),
                    final_source=_source_text(final),
                )
            )

        self._merge_supporting(risk, re_extracted)

    @staticmethod
    def _merge_supporting(risk: dict[str, ExtractedField], re_extracted: dict[str, ExtractedField]) -> None:
        """
        Fold the rest of the second reading into the risk section.

        Severity scales only move up, free-text fields keep whichever reading
        is non-empty (original first), lists are unioned case-insensitively,
        and ``means_restriction_discussed`` is true if either reading says so.
        ``safety_plan_status`` takes the re-extracted value when the model
        gave it any confidence.
        """
        def pair(name: str) -> tuple[ExtractedField, ExtractedField]:
            return risk.get(name, ExtractedField()), re_extracted.get(name, ExtractedField())

        for name in SEVERITY_SUPPORTING_FIELDS:
            original, candidate = pair(name)
            if not candidate.is_populated:
                continue
            if not original.is_populated or risk_severity(name, candidate.value) > risk_severity(name, original.value):
                risk[name] = candidate

        for name in TEXT_SUPPORTING_FIELDS:
            original, candidate = pair(name)
            if not original.is_populated and candidate.is_populated:
                risk[name] = candidate

        for name in LIST_SUPPORTING_FIELDS:
            original, candidate = pair(name)
            if not candidate.is_populated:
                continue
            combined = _as_list(original.value)
            seen = {item.lower() for item in combined}
            for item in _as_list(candidate.value):
                if item.lower() not in seen:
                    seen.add(item.lower())
                    combined.append(item)
            risk[name] = ExtractedField(
                value=combined,
                confidence=max(original.confidence, candidate.confidence),
                source=original.source or candidate.source,
            )

        original, candidate = pair("means_restriction_discussed")
        if original.is_populated or candidate.is_populated:
            discussed = _as_bool(original.value) or _as_bool(candidate.value)
            risk["means_restriction_discussed"] = ExtractedField(
                value=discussed,
                confidence=max(original.confidence, candidate.confidence),
                source=original.source or candidate.source,
            )

        original, candidate = pair("safety_plan_status")
        if candidate.is_populated and candidate.confidence > 0:
            risk["safety_plan_status"] = candidate

    def _resolve(
        self,
        name: str,
        original: ExtractedField,
        candidate: ExtractedField,
    ) -> tuple[ExtractedField, str]:
        original_key = canonical_risk_value(name, original.value).lower()
        candidate_key = canonical_risk_value(name, candidate.value).lower()
        if original_key == candidate_key:
            return original, RULE_AGREEMENT

        original_rank = risk_severity(name, original.value)
        candidate_rank = risk_severity(name, candidate.value)

        if self._settings.use_conservative_merge:
            # Ties keep the original reading.
            winner = candidate if candidate_rank > original_rank else original
            return winner, RULE_CONSERVATIVE_MERGE

        if candidate_rank >= original_rank:
            return candidate, RULE_RE_EXTRACTED
        return original, RULE_ORIGINAL_RETAINED

    @staticmethod
    def _default_reasoning(rule: str, original: str, candidate: str, final: str) -> str:
        if rule == RULE_AGREEMENT:
            return f"Original and re-extracted values agree on '{final}'."
        return f"Original '{original}' and re-extracted '{candidate}' disagree; kept the more severe '{final}'."

    def _record_failure(
        self,
        outcome: GuardrailOutcome,
        risk: dict[str, ExtractedField],
        triggers: dict[str, list[str]],
        message: str,
    ) -> None:
        outcome.re_extraction_failed = True
        for name, criteria in triggers.items():
            original = risk.get(name, ExtractedField())
            original_value = _audit_value(name, original.value)
            outcome.decisions.append(
                RiskFieldDecision(
                    field=name,
                    original_value=original_value,
                    re_extracted_value="",
                    final_value=original_value,
                    rule_applied=RULE_RE_EXTRACTION_FAILED,
                    criteria_used=list(criteria),
                    reasoning_used=_trim(message, MAX_REASONING_CHARS) or "",
                    original_source=_source_text(original),
                    final_source=_source_text(original),
                )
            )

    # ── Flags ────────────────────────────────────────────────────

    @staticmethod
    def _set_flags(outcome: GuardrailOutcome, triggers: dict[str, list[str]]) -> None:
        def reason_for(name: str) -> str:
            if outcome.re_extraction_failed:
                return REASON_RE_EXTRACTION_FAILED
            return _trigger_reason(triggers[name])

        if "homicidal_ideation" in triggers:
            outcome.homicidal_guardrail_applied = True
            outcome.homicidal_guardrail_reason = reason_for("homicidal_ideation")
        if "self_harm" in triggers:
            outcome.self_harm_guardrail_applied = True
            outcome.self_harm_guardrail_reason = reason_for("self_harm")
        outcome.guardrail_applied = outcome.homicidal_guardrail_applied or outcome.self_harm_guardrail_applied

    @staticmethod
    def _keyword_mismatches(keywords: KeywordMatches, risk: dict[str, ExtractedField]) -> list[str]:
        if not keywords.has_any:
            return []
        reasons: list[str] = []
        for category, field_name, label in _KEYWORD_CATEGORIES:
            matched = getattr(keywords, category)
            if not matched:
                continue
            final_value = canonical_risk_value(field_name, risk.get(field_name, ExtractedField()).value)
            if final_value == RISK_SCALES[field_name].floor().value:
                reasons.append(f"{label} keywords detected ({', '.join(matched)}) but extraction shows '{final_value}'")
        return reasons
