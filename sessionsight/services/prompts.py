"""
Prompt templates for clinical extraction and the risk second opinion.

Templates use ``{note}`` style placeholders filled with ``str.replace`` so
the JSON examples inside them need no brace escaping.
"""

from __future__ import annotations

from typing import Optional

EXTRACTION_SYSTEM_PROMPT = """You are a clinical extraction assistant specializing in structured data from therapy session notes.
Extract only information that is explicitly stated or clearly implied in the note.
For risk assessment fields, be thorough and conservative: when in doubt, report concerns.
Return ONLY a JSON object. No markdown fences, no commentary."""

_COMMON_RULES = """Rules:
- Set value to null if the information is not found
- Confidence scoring:
  * 0.90-1.00: Explicitly stated in the text
  * 0.70-0.89: Clearly implied or can be inferred
  * Below 0.70: Uncertain or ambiguous
- Source text must be the exact quote from the note that supports the extraction
- Each field is an object: {"value": ..., "confidence": 0.0-1.0, "source": {"text": "exact quote", "section": "..."}}"""

# Field catalog per category. Keys are camelCase as the model sees them;
# the decoder snake_cases them on the way in.
CATEGORY_FIELDS: dict[str, str] = {
    "session_info": """- patientId (string): Patient/client identifier
- sessionDate (date): YYYY-MM-DD
- sessionDurationMinutes (int): Duration in minutes
- sessionType (enum): Intake|Individual|Group|Family|Couples|Crisis|Assessment|Termination
- sessionNumber (int): Session number in treatment sequence
- sessionModality (enum): InPerson|TelehealthVideo|TelehealthPhone|Hybrid""",
    "presenting_concerns": """- primaryConcern (string): Main reason for the session
- secondaryConcerns (list of strings)
- concernDuration (string): How long the concern has been present
- severity (enum): Mild|Moderate|Severe""",
    "mood_assessment": """- selfReportedMood (int): Client's own 1-10 rating
- observedAffect (enum): Flat|Blunted|Constricted|Full|Labile|Incongruent
- moodChange (enum): Improved|Stable|Worsened
- moodNotes (string)""",
    "risk_assessment": """- suicidalIdeation (enum): None|Passive|ActiveNoPlan|ActiveWithPlan|ActiveWithIntent
- siFrequency (enum): Rare|Occasional|Frequent|Constant
- siIntensity (enum): Fleeting|Mild|Moderate|Severe
- selfHarm (enum): None|Historical|Recent|Current|Imminent
- shRecency (string): When self-harm last occurred
- homicidalIdeation (enum): None|Passive|ActiveNoPlan|ActiveWithPlan
- hiTarget (string)
- safetyPlanStatus (enum): NotNeeded|InPlace|NeedsUpdate|NeedsCreation|Declined
- protectiveFactors (list of strings)
- riskFactors (list of strings)
- meansRestrictionDiscussed (bool)
- riskLevelOverall (enum): Low|Moderate|High|Imminent""",
    "mental_status_exam": """- appearance (string)
- behavior (string)
- speech (string)
- thoughtProcess (string)
- thoughtContent (string)
- cognition (string)
- insight (enum): Poor|Fair|Good
- judgment (enum): Poor|Fair|Good""",
    "interventions": """- techniquesUsed (list of strings)
- modality (string): e.g. CBT, DBT, ACT
- homeworkAssigned (string)
- clientResponse (string)""",
    "diagnoses": """- primaryDiagnosis (string)
- primaryDiagnosisCode (string): ICD-10 or DSM-5 code
- secondaryDiagnoses (list of strings)
- diagnosisStatus (enum): Provisional|Confirmed|RuledOut""",
    "treatment_progress": """- progressTowardGoals (enum): Regressed|NoChange|Minimal|Moderate|Significant
- treatmentGoals (list of strings)
- barriers (list of strings)
- medicationAdherence (string)""",
    "next_steps": """- nextSessionDate (date): YYYY-MM-DD
- followUpActions (list of strings)
- referrals (list of strings)
- levelOfCareChange (string)""",
}

_CATEGORY_TEMPLATE = """Extract {title} from this therapy note.

Fields to extract:
{fields}

{rules}
{history}
Therapy Note:
---
{note}
---"""

_HISTORY_TEMPLATE = """
Prior clinical history (context only; extract from the current note):
---
{history}
---
"""


def build_category_prompt(category: str, note_text: str, prior_clinical_history: Optional[str] = None) -> str:
    history = ""
    if prior_clinical_history and prior_clinical_history.strip():
        history = _HISTORY_TEMPLATE.replace("{history}", prior_clinical_history.strip())

    return (
        _CATEGORY_TEMPLATE.replace("{title}", category.replace("_", " "))
        .replace("{fields}", CATEGORY_FIELDS[category])
        .replace("{rules}", _COMMON_RULES)
        .replace("{history}", history)
        .replace("{note}", note_text)
    )


# ── Risk second opinion ──────────────────────────────────────────

RISK_SYSTEM_PROMPT = """You are a clinical safety specialist focused on risk assessment extraction.
Identify and extract risk indicators from therapy notes with the highest priority on patient safety.

CRITICAL SAFETY RULES:
1. When in doubt, report the MORE CONCERNING value
2. Do NOT downplay or minimize risk indicators
3. Subtle language like "thinking about not being here" IS suicidal ideation
4. Historical self-harm IS still a risk factor
5. Any mention of wanting to hurt others requires homicidal ideation assessment
6. Passive statements like "wish I wouldn't wake up" indicate passive suicidal ideation

READ THE NOTE TWICE before extracting."""

RISK_RE_EXTRACTION_PROMPT = """Carefully extract ALL risk assessment indicators from this therapy note.
This is a SAFETY-CRITICAL extraction. When uncertain, choose the MORE CONCERNING value.

Fields to extract:
{fields}

{rules}

For every field you extract, also explain yourself:
- criteria_used: object mapping each field name to a non-empty list of the clinical criteria you applied
- reasoning_used: object mapping each field name to a one or two sentence justification

Return JSON in this format:
{
  "suicidalIdeation": {"value": "None", "confidence": 0.95, "source": {"text": "exact quote", "section": "risk assessment"}},
  "selfHarm": {"value": "None", "confidence": 0.95, "source": {"text": "exact quote", "section": "risk assessment"}},
  "homicidalIdeation": {"value": "None", "confidence": 0.95, "source": {"text": "exact quote", "section": "risk assessment"}},
  "riskLevelOverall": {"value": "Low", "confidence": 0.90, "source": {"text": "exact quote", "section": "risk assessment"}},
  "criteria_used": {"suicidalIdeation": ["explicit denial of SI"]},
  "reasoning_used": {"suicidalIdeation": "Client explicitly denied suicidal thoughts."}
}

Therapy Note:
---
{note}
---"""

CRITERIA_RETRY_ADDENDUM = (
    "RETRY REQUIREMENT: Include non-empty criteria_used arrays and non-empty "
    "reasoning_used strings for all required keys."
)


def build_risk_re_extraction_prompt(
    note_text: str,
    required_keys: Optional[list[str]] = None,
    is_retry: bool = False,
) -> str:
    prompt = (
        RISK_RE_EXTRACTION_PROMPT.replace("{fields}", CATEGORY_FIELDS["risk_assessment"])
        .replace("{rules}", _COMMON_RULES)
        .replace("{note}", note_text)
    )
    if is_retry:
        prompt += "\n\n" + CRITERIA_RETRY_ADDENDUM
        if required_keys:
            prompt += "\nRequired keys: " + ", ".join(required_keys)
    return prompt
