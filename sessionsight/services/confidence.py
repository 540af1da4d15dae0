"""
Confidence aggregation for clinical extractions.

The overall score is the mean confidence of populated fields across the
nine clinical categories (metadata excluded); it drives display and the
review-routing threshold. Risk gating does not use the mean; the
guardrail looks at each guarded risk field's own confidence.
"""

from __future__ import annotations

from sessionsight.schemas.extraction import ClinicalExtraction, ExtractedField


def _counts(field: ExtractedField) -> bool:
    return field.is_populated and field.confidence > 0


def calculate_overall_confidence(extraction: ClinicalExtraction) -> float:
    scores = [field.confidence for _, _, field in extraction.iter_fields() if _counts(field)]
    if not scores:
        return 0.0
    return round(sum(scores) / len(scores), 3)


def low_confidence_fields(extraction: ClinicalExtraction, threshold: float = 0.7) -> list[str]:
    return [
        f"{category}.{name}"
        for category, name, field in extraction.iter_fields()
        if _counts(field) and field.confidence < threshold
    ]
