"""
Task → model lookup.

A constant table, not runtime state. Unknown tasks fall back to
``DEFAULT_MODEL``.
"""

from __future__ import annotations

from enum import Enum


class ModelTask(str, Enum):
    EXTRACTION = "extraction"
    EXTRACTION_SIMPLE = "extraction_simple"
    RISK_ASSESSMENT = "risk_assessment"


DEFAULT_MODEL = "gpt-4.1-mini"

MODEL_TABLE: dict[ModelTask, str] = {
    ModelTask.EXTRACTION: "gpt-4.1",
    ModelTask.EXTRACTION_SIMPLE: "gpt-4.1-nano",
    ModelTask.RISK_ASSESSMENT: "gpt-4.1-mini",
}


def select_model(task: ModelTask | str) -> str:
    try:
        return MODEL_TABLE[ModelTask(task)]
    except (ValueError, KeyError):
        return DEFAULT_MODEL
