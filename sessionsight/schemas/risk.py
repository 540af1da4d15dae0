"""
Risk scales and the audit records produced by the risk guardrail.

Each scale owns its severity ordering. Declaration order is not used for
ranking; ``ordering()`` is the single source of truth per scale.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class RiskScale(str, Enum):
    """Base for ordered clinical risk enumerations."""

    @classmethod
    def ordering(cls) -> tuple["RiskScale", ...]:
        raise NotImplementedError

    @classmethod
    def floor(cls) -> "RiskScale":
        """The least severe value, used when the model reports nothing."""
        return cls.ordering()[0]

    @classmethod
    def parse(cls, value: Any) -> Optional["RiskScale"]:
        """Case-insensitive lookup by value or member name. Unknown gives None."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.strip().replace(" ", "").replace("_", "").lower()
        for member in cls:
            if wanted in (member.value.lower(), member.name.replace("_", "").lower()):
                return member
        return None

    @classmethod
    def severity(cls, value: Any) -> int:
        member = cls.parse(value)
        if member is None:
            return 0
        return cls.ordering().index(member)


class SuicidalIdeation(RiskScale):
    NONE = "None"
    PASSIVE = "Passive"
    ACTIVE_NO_PLAN = "ActiveNoPlan"
    ACTIVE_WITH_PLAN = "ActiveWithPlan"
    ACTIVE_WITH_INTENT = "ActiveWithIntent"

    @classmethod
    def ordering(cls) -> tuple[RiskScale, ...]:
        return (cls.NONE, cls.PASSIVE, cls.ACTIVE_NO_PLAN, cls.ACTIVE_WITH_PLAN, cls.ACTIVE_WITH_INTENT)


class SelfHarm(RiskScale):
    NONE = "None"
    HISTORICAL = "Historical"
    RECENT = "Recent"
    CURRENT = "Current"
    IMMINENT = "Imminent"

    @classmethod
    def ordering(cls) -> tuple[RiskScale, ...]:
        return (cls.NONE, cls.HISTORICAL, cls.RECENT, cls.CURRENT, cls.IMMINENT)


class HomicidalIdeation(RiskScale):
    NONE = "None"
    PASSIVE = "Passive"
    ACTIVE_NO_PLAN = "ActiveNoPlan"
    ACTIVE_WITH_PLAN = "ActiveWithPlan"

    @classmethod
    def ordering(cls) -> tuple[RiskScale, ...]:
        return (cls.NONE, cls.PASSIVE, cls.ACTIVE_NO_PLAN, cls.ACTIVE_WITH_PLAN)


class RiskLevelOverall(RiskScale):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    IMMINENT = "Imminent"

    @classmethod
    def ordering(cls) -> tuple[RiskScale, ...]:
        return (cls.LOW, cls.MODERATE, cls.HIGH, cls.IMMINENT)


class SiFrequency(RiskScale):
    RARE = "Rare"
    OCCASIONAL = "Occasional"
    FREQUENT = "Frequent"
    CONSTANT = "Constant"

    @classmethod
    def ordering(cls) -> tuple[RiskScale, ...]:
        return (cls.RARE, cls.OCCASIONAL, cls.FREQUENT, cls.CONSTANT)


class SiIntensity(RiskScale):
    FLEETING = "Fleeting"
    MILD = "Mild"
    MODERATE = "Moderate"
    SEVERE = "Severe"

    @classmethod
    def ordering(cls) -> tuple[RiskScale, ...]:
        return (cls.FLEETING, cls.MILD, cls.MODERATE, cls.SEVERE)


# Field key (snake_case, as stored in ClinicalExtraction.risk_assessment)
# to the scale that ranks it.
RISK_SCALES: dict[str, type[RiskScale]] = {
    "suicidal_ideation": SuicidalIdeation,
    "si_frequency": SiFrequency,
    "si_intensity": SiIntensity,
    "self_harm": SelfHarm,
    "homicidal_ideation": HomicidalIdeation,
    "risk_level_overall": RiskLevelOverall,
}

# Fields the guardrail re-checks, in audit order.
GUARDED_RISK_FIELDS: tuple[str, ...] = (
    "suicidal_ideation",
    "self_harm",
    "homicidal_ideation",
    "risk_level_overall",
)

_HIGH_RISK_VALUES: dict[str, frozenset[RiskScale]] = {
    "suicidal_ideation": frozenset({SuicidalIdeation.ACTIVE_WITH_PLAN, SuicidalIdeation.ACTIVE_WITH_INTENT}),
    "self_harm": frozenset({SelfHarm.CURRENT, SelfHarm.IMMINENT}),
    "homicidal_ideation": frozenset({HomicidalIdeation.ACTIVE_WITH_PLAN}),
    "risk_level_overall": frozenset({RiskLevelOverall.HIGH, RiskLevelOverall.IMMINENT}),
}


def canonical_risk_value(field: str, value: Any) -> str:
    """
    Render a risk value the way audit records store it.

    Null reads as the scale's floor ("None", or "Low" for the overall level).
    Strings the scale does not recognise are kept verbatim so the audit
    trail shows exactly what the model said.
    """
    scale = RISK_SCALES.get(field)
    if scale is None:
        return "" if value is None else str(value)
    if value is None or (isinstance(value, str) and not value.strip()):
        return scale.floor().value
    member = scale.parse(value)
    if member is None:
        return str(value).strip()
    return member.value


def risk_severity(field: str, value: Any) -> int:
    scale = RISK_SCALES.get(field)
    if scale is None:
        return 0
    return scale.severity(value)


def is_high_risk(risk_values: dict[str, Any]) -> bool:
    """True when any guarded field sits at a crisis-level value."""
    for field, high_values in _HIGH_RISK_VALUES.items():
        member = RISK_SCALES[field].parse(risk_values.get(field))
        if member is not None and member in high_values:
            return True
    return False


class RiskFieldDecision(BaseModel):
    """Immutable audit record for one risk field that got a second opinion."""

    model_config = ConfigDict(frozen=True)

    field: str
    original_value: str
    re_extracted_value: str
    final_value: str
    rule_applied: str
    criteria_used: list[str] = Field(default_factory=list)
    reasoning_used: str = ""
    original_source: Optional[str] = None
    re_extracted_source: Optional[str] = None
    final_source: Optional[str] = None


class RiskDiagnostics(BaseModel):
    """Read-side view of what the guardrail did for one extraction."""

    guardrail_applied: bool
    homicidal_guardrail_applied: bool
    homicidal_guardrail_reason: Optional[str] = None
    homicidal_keyword_matches: list[str] = Field(default_factory=list)
    self_harm_guardrail_applied: bool
    self_harm_guardrail_reason: Optional[str] = None
    criteria_validation_attempts: int
    discrepancy_count: int
    decisions: list[RiskFieldDecision] = Field(default_factory=list)
