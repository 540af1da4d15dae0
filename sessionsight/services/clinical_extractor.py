"""
Clinical Extractor.

First extraction pass: one focused prompt per clinical category, all run
in parallel. A category whose call fails or whose response cannot be
parsed comes back empty; the rest of the note is still extracted.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from sessionsight.config import Settings, get_settings
from sessionsight.logging_config import get_logger
from sessionsight.schemas.extraction import CLINICAL_CATEGORIES, ClinicalExtraction, ExtractedField
from sessionsight.services.llm_client import ModelClient
from sessionsight.services.llm_json import decode_category, parse_json_object, to_snake_case, try_parse_int
from sessionsight.services.prompts import EXTRACTION_SYSTEM_PROMPT, build_category_prompt
from sessionsight.services.routing import ModelTask, select_model

logger = get_logger(__name__)

# Short, mostly-header categories go to the cheaper model.
CATEGORY_TASKS: dict[str, ModelTask] = {
    "session_info": ModelTask.EXTRACTION_SIMPLE,
    "next_steps": ModelTask.EXTRACTION_SIMPLE,
}

INT_FIELDS = frozenset({"session_duration_minutes", "session_number", "self_reported_mood"})

_VALUE_DECODERS: dict[str, Callable[[Any], Any]] = {name: try_parse_int for name in INT_FIELDS}


def task_for_category(category: str) -> ModelTask:
    return CATEGORY_TASKS.get(category, ModelTask.EXTRACTION)


def _unwrap(payload: dict[str, Any], category: str) -> dict[str, Any]:
    """Accept both a bare field map and one wrapped in its category key."""
    for key, value in payload.items():
        if to_snake_case(key) == category and isinstance(value, dict):
            return value
    return payload


class ClinicalExtractor:
    def __init__(self, model_client: ModelClient, settings: Optional[Settings] = None) -> None:
        self._client = model_client
        self._settings = settings or get_settings()

    async def extract(
        self,
        note_text: str,
        prior_clinical_history: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> tuple[ClinicalExtraction, list[str]]:
        """
        Extract every clinical category from a note.

        Returns:
            The extraction and the distinct model names that were used.
        """
        if not note_text or not note_text.strip():
            logger.warning("extraction_skipped_empty_note", session_id=session_id)
            return ClinicalExtraction(), []

        results = await asyncio.gather(
            *(self._extract_category(c, note_text, prior_clinical_history, session_id) for c in CLINICAL_CATEGORIES)
        )

        categories: dict[str, dict[str, ExtractedField]] = {}
        failed: list[str] = []
        for category, fields in zip(CLINICAL_CATEGORIES, results):
            if fields is None:
                failed.append(category)
                fields = {}
            categories[category] = fields

        metadata = {
            "note_length": ExtractedField(value=len(note_text), confidence=1.0),
            "failed_categories": ExtractedField(value=failed, confidence=1.0),
        }
        extraction = ClinicalExtraction(**categories, metadata=metadata)
        models = sorted({select_model(task_for_category(c)) for c in CLINICAL_CATEGORIES})

        logger.info(
            "clinical_extraction_complete",
            session_id=session_id,
            fields=sum(len(f) for f in categories.values()),
            failed_categories=failed,
        )
        return extraction, models

    async def _extract_category(
        self,
        category: str,
        note_text: str,
        prior_clinical_history: Optional[str],
        session_id: Optional[str],
    ) -> Optional[dict[str, ExtractedField]]:
        prompt = build_category_prompt(category, note_text, prior_clinical_history)
        try:
            raw = await self._client.complete(EXTRACTION_SYSTEM_PROMPT, prompt, task_for_category(category))
        except Exception as e:
            logger.error("category_extraction_error", session_id=session_id, category=category, error=str(e))
            return None

        payload = parse_json_object(raw)
        if payload is None:
            logger.warning("category_response_unparseable", session_id=session_id, category=category)
            return None

        return decode_category(_unwrap(payload, category), _VALUE_DECODERS)
