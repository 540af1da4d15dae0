"""
Danger keyword safety net.

Surface heuristic run over the raw note text. A match does not decide
anything by itself; it makes the guardrail take a second look at the
matching risk field.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

SUICIDAL_KEYWORDS: tuple[str, ...] = (
    "suicide", "suicidal", "kill myself", "end my life", "not worth living",
    "want to die", "better off dead", "no reason to live", "end it all",
    "take my own life", "not be here", "not being here", "wouldn't wake up",
    "wish i was dead",
)

SELF_HARM_KEYWORDS: tuple[str, ...] = (
    "self-harm", "self harm", "cutting", "hurt myself",
    "burning myself", "scratching", "self-injury", "hurting myself",
    "harming myself", "cut myself", "burned myself",
    "attempted overdose", "overdose attempt", "overdosed",
)

HOMICIDAL_KEYWORDS: tuple[str, ...] = (
    "homicidal",
    "kill someone",
    "kill somebody",
    "hurt someone",
    "hurt somebody",
    "violent thoughts",
    "harm others",
    "harm other people",
    "kill them",
    "hurt them",
    "want to hurt others",
    "want to hurt someone",
    "want to hurt somebody",
    "thoughts of hurting others",
    "thoughts of hurting someone",
    "thoughts of hurting somebody",
    "thoughts of killing others",
    "thoughts of killing someone",
    "thoughts of killing somebody",
)


def _compile(keywords: tuple[str, ...]) -> list[tuple[str, re.Pattern[str]]]:
    # Word boundaries so "suicidal" does not fire inside "antisuicidal".
    return [(kw, re.compile(rf"\b{re.escape(kw)}\b", re.IGNORECASE)) for kw in keywords]


_SUICIDAL = _compile(SUICIDAL_KEYWORDS)
_SELF_HARM = _compile(SELF_HARM_KEYWORDS)
_HOMICIDAL = _compile(HOMICIDAL_KEYWORDS)


@dataclass
class KeywordMatches:
    suicidal: list[str] = field(default_factory=list)
    self_harm: list[str] = field(default_factory=list)
    homicidal: list[str] = field(default_factory=list)

    @property
    def has_any(self) -> bool:
        return bool(self.suicidal or self.self_harm or self.homicidal)

    @property
    def all_matches(self) -> list[str]:
        return (
            [f"suicidal:{k}" for k in self.suicidal]
            + [f"self-harm:{k}" for k in self.self_harm]
            + [f"homicidal:{k}" for k in self.homicidal]
        )

    def for_field(self, field_name: str) -> list[str]:
        """Keywords relevant to one guarded risk field."""
        if field_name == "suicidal_ideation":
            return list(self.suicidal)
        if field_name == "self_harm":
            return list(self.self_harm)
        if field_name == "homicidal_ideation":
            return list(self.homicidal)
        if field_name == "risk_level_overall":
            return self.suicidal + self.self_harm + self.homicidal
        return []


def check_keywords(note_text: str) -> KeywordMatches:
    if not note_text or not note_text.strip():
        return KeywordMatches()

    return KeywordMatches(
        suicidal=[kw for kw, pattern in _SUICIDAL if pattern.search(note_text)],
        self_harm=[kw for kw, pattern in _SELF_HARM if pattern.search(note_text)],
        homicidal=[kw for kw, pattern in _HOMICIDAL if pattern.search(note_text)],
    )
