"""
Data models for structured clinical extraction results.
"""

from typing import Any, Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceMapping(BaseModel):
    """Provenance for an extracted value: the quoted note text and where it sits."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    start_char: int = 0
    end_char: int = 0
    section: Optional[str] = None


class ExtractedField(BaseModel):
    """A single field extracted from a session note. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    value: Any = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: Optional[SourceMapping] = None  # The quote that justified this extraction

    @property
    def is_populated(self) -> bool:
        if self.value is None:
            return False
        if isinstance(self.value, (str, list, dict)) and not self.value:
            return False
        return True


class ConfidenceScore(BaseModel):
    """A confidence value constrained to [0.0, 1.0] inclusive."""

    model_config = ConfigDict(frozen=True)

    value: float = Field(ge=0.0, le=1.0, allow_inf_nan=False)

    def __init__(self, value: float, **data: Any) -> None:
        super().__init__(value=value, **data)

    def meets_threshold(self, threshold: float) -> bool:
        return self.value >= threshold


CLINICAL_CATEGORIES: tuple[str, ...] = (
    "session_info",
    "presenting_concerns",
    "mood_assessment",
    "risk_assessment",
    "mental_status_exam",
    "interventions",
    "diagnoses",
    "treatment_progress",
    "next_steps",
)

ALL_CATEGORIES: tuple[str, ...] = CLINICAL_CATEGORIES + ("metadata",)


class ClinicalExtraction(BaseModel):
    """
    The full structured payload for one session note.

    Every category is always present. Missing data shows up as an empty
    mapping or null-valued fields, never as an absent category.
    """

    model_config = ConfigDict(frozen=True)

    session_info: dict[str, ExtractedField] = Field(default_factory=dict)
    presenting_concerns: dict[str, ExtractedField] = Field(default_factory=dict)
    mood_assessment: dict[str, ExtractedField] = Field(default_factory=dict)
    risk_assessment: dict[str, ExtractedField] = Field(default_factory=dict)
    mental_status_exam: dict[str, ExtractedField] = Field(default_factory=dict)
    interventions: dict[str, ExtractedField] = Field(default_factory=dict)
    diagnoses: dict[str, ExtractedField] = Field(default_factory=dict)
    treatment_progress: dict[str, ExtractedField] = Field(default_factory=dict)
    next_steps: dict[str, ExtractedField] = Field(default_factory=dict)
    metadata: dict[str, ExtractedField] = Field(default_factory=dict)

    @field_validator(*ALL_CATEGORIES, mode="before")
    @classmethod
    def _null_category_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def category(self, name: str) -> dict[str, ExtractedField]:
        if name not in ALL_CATEGORIES:
            raise KeyError(f"Unknown extraction category: {name}")
        return getattr(self, name)

    def with_category(self, name: str, fields: dict[str, ExtractedField]) -> "ClinicalExtraction":
        """Return a copy with one category replaced."""
        if name not in ALL_CATEGORIES:
            raise KeyError(f"Unknown extraction category: {name}")
        return self.model_copy(update={name: dict(fields)})

    def iter_fields(self, categories: tuple[str, ...] = CLINICAL_CATEGORIES) -> Iterator[tuple[str, str, ExtractedField]]:
        for name in categories:
            for field_name, field in self.category(name).items():
                yield name, field_name, field
