from __future__ import annotations

import asyncio
import json
from typing import Any, Optional, Union

from sessionsight.config import Settings
from sessionsight.schemas.extraction import CLINICAL_CATEGORIES, ClinicalExtraction, ExtractedField, SourceMapping
from sessionsight.services.routing import ModelTask

Scripted = Union[str, Exception]

NEUTRAL_NOTE = "Client discussed work stress and sleep. Practiced breathing exercises. Plan to continue CBT."


def make_settings(**overrides: Any) -> Settings:
    return Settings(_env_file=None, openai_api_key="test-key", **overrides)


def risk_field(value: Any, confidence: float = 0.95, quote: Optional[str] = None) -> ExtractedField:
    return ExtractedField(
        value=value,
        confidence=confidence,
        source=SourceMapping(text=quote) if quote is not None else None,
    )


def confident_risk(**overrides: ExtractedField) -> dict[str, ExtractedField]:
    risk = {
        "suicidal_ideation": risk_field("None"),
        "self_harm": risk_field("None"),
        "homicidal_ideation": risk_field("None"),
        "risk_level_overall": risk_field("Low"),
    }
    risk.update(overrides)
    return risk


def make_extraction(risk: Optional[dict[str, ExtractedField]] = None, **categories: dict) -> ClinicalExtraction:
    return ClinicalExtraction(risk_assessment=risk if risk is not None else confident_risk(), **categories)


def field_json(value: Any, confidence: Any = 0.95, quote: Optional[str] = None) -> dict[str, Any]:
    return {
        "value": value,
        "confidence": confidence,
        "source": {"text": quote, "section": "note"} if quote else None,
    }


def risk_response(
    values: dict[str, str],
    confidence: float = 0.95,
    criteria: bool = True,
) -> str:
    """A risk re-extraction response keyed the way the model sends it (camelCase)."""
    camel = {
        "suicidal_ideation": "suicidalIdeation",
        "self_harm": "selfHarm",
        "homicidal_ideation": "homicidalIdeation",
        "risk_level_overall": "riskLevelOverall",
    }
    payload: dict[str, Any] = {camel[name]: field_json(value, confidence) for name, value in values.items()}
    if criteria:
        payload["criteria_used"] = {camel[name]: [f"model criterion for {name}"] for name in values}
        payload["reasoning_used"] = {camel[name]: f"Model reasoning for {name}." for name in values}
    return json.dumps(payload)


def category_responses(confidence: float = 0.95, risk: Optional[dict[str, Any]] = None) -> dict[str, str]:
    """One plausible response per clinical category, all at the same confidence."""
    risk_payload = risk or {
        "suicidalIdeation": field_json("None", confidence, "Denies SI"),
        "selfHarm": field_json("None", confidence, "No self-harm"),
        "homicidalIdeation": field_json("None", confidence, "Denies HI"),
        "riskLevelOverall": field_json("Low", confidence, "Low risk"),
    }
    responses = {
        "session_info": {"sessionType": field_json("Individual", confidence), "sessionNumber": field_json("4", confidence)},
        "presenting_concerns": {"primaryConcern": field_json("work stress", confidence, "work stress")},
        "mood_assessment": {"selfReportedMood": field_json(6, confidence)},
        "risk_assessment": risk_payload,
        "mental_status_exam": {"insight": field_json("Good", confidence)},
        "interventions": {"techniquesUsed": field_json(["breathing exercises"], confidence)},
        "diagnoses": {"primaryDiagnosis": field_json("Adjustment disorder", confidence)},
        "treatment_progress": {"progressTowardGoals": field_json("Moderate", confidence)},
        "next_steps": {"followUpActions": field_json(["continue CBT"], confidence)},
    }
    return {name: "```json\n" + json.dumps(body) + "\n```" for name, body in responses.items()}


class FakeModelClient:
    """
    Scripted ModelClient.

    Category prompts are answered from ``categories`` (by category name);
    risk re-extraction calls pop from ``risk`` in order. Exceptions in the
    script are raised instead of returned.
    """

    def __init__(
        self,
        categories: Optional[dict[str, Scripted]] = None,
        risk: Optional[list[Scripted]] = None,
        risk_delay: float = 0.0,
    ) -> None:
        self.categories = categories or {}
        self.risk = list(risk or [])
        self.risk_delay = risk_delay
        self.calls: list[tuple[ModelTask, str]] = []

    async def complete(self, system_prompt: str, user_prompt: str, task: ModelTask) -> str:
        self.calls.append((task, user_prompt))
        if task == ModelTask.RISK_ASSESSMENT:
            if self.risk_delay:
                await asyncio.sleep(self.risk_delay)
            response: Scripted = self.risk.pop(0) if self.risk else "{}"
        else:
            category = next(
                (c for c in CLINICAL_CATEGORIES if user_prompt.startswith(f"Extract {c.replace('_', ' ')} ")),
                None,
            )
            response = self.categories.get(category, "{}")

        if isinstance(response, Exception):
            raise response
        return response

    @property
    def risk_prompts(self) -> list[str]:
        return [prompt for task, prompt in self.calls if task == ModelTask.RISK_ASSESSMENT]

    @property
    def category_prompts(self) -> list[str]:
        return [prompt for task, prompt in self.calls if task != ModelTask.RISK_ASSESSMENT]
