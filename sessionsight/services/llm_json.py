"""
LLM Response Normalizer.

Model output is not a typed API: it arrives wrapped in code fences,
buried in prose, or with numbers sent as strings. Everything here is
total: malformed input decodes to "no value" and never raises.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, Callable, Optional

import regex

from sessionsight.logging_config import get_logger
from sessionsight.schemas.extraction import ExtractedField, SourceMapping

logger = get_logger(__name__)

# Upper bound on the fence scan so pathological input cannot stall a worker.
FENCE_MATCH_TIMEOUT_SECONDS = 1.0

_JSON_FENCE = "```json"
_FENCE = "```"
_FENCE_RE = regex.compile(r"```(?:json)?\s*\n?([\s\S]*?)```")

# Culture-invariant numeric forms: ASCII digits, optional sign, one decimal
# point, optional exponent. No thousands separators, no underscores.
_INVARIANT_FLOAT_RE = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?\s*")
_INVARIANT_INT_RE = re.compile(r"\s*[+-]?\d+\s*")

_CAMEL_BOUNDARY_RE = re.compile(r"(?<!^)(?=[A-Z])")
_FIELD_KEYS = frozenset({"value", "confidence", "source"})


def extract_json(content: str) -> str:
    """
    Pull the JSON payload out of a model response.

    Tried in order: a leading ```json fence (closed by the LAST fence in the
    text), a leading bare fence, a fence anywhere in surrounding prose, the
    outermost ``{...}`` span, and finally the trimmed input itself. The
    result may still not be valid JSON; callers handle that.
    """
    trimmed = (content or "").strip()

    if trimmed[: len(_JSON_FENCE)].lower() == _JSON_FENCE:
        end_index = trimmed.rfind(_FENCE)
        if end_index > len(_JSON_FENCE):
            return trimmed[len(_JSON_FENCE):end_index].strip()

    if trimmed.startswith(_FENCE):
        start_index = trimmed.find("\n") + 1
        end_index = trimmed.rfind(_FENCE)
        if end_index > start_index:
            return trimmed[start_index:end_index].strip()

    try:
        match = _FENCE_RE.search(trimmed, timeout=FENCE_MATCH_TIMEOUT_SECONDS)
    except TimeoutError:
        logger.warning("fence_scan_timeout", content_length=len(trimmed))
        match = None
    if match:
        return match.group(1).strip()

    first_brace = trimmed.find("{")
    last_brace = trimmed.rfind("}")
    if first_brace >= 0 and last_brace > first_brace:
        return trimmed[first_brace:last_brace + 1]

    return trimmed


def parse_json_object(content: str) -> Optional[dict[str, Any]]:
    """Normalize and load a model response. Anything but a JSON object gives None."""
    try:
        parsed = json.loads(extract_json(content))
    except (json.JSONDecodeError, TypeError):
        return None
    return parsed if isinstance(parsed, dict) else None


# ── Scalar decoding ──────────────────────────────────────────────


def _is_number(value: Any) -> bool:
    # bool is an int subclass; a model's `true` is never a number.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def try_parse_double(value: Any) -> Optional[float]:
    """Decode a JSON number or numeric string. Non-finite or unparseable gives None."""
    if _is_number(value):
        result = float(value)
    elif isinstance(value, str) and _INVARIANT_FLOAT_RE.fullmatch(value):
        result = float(value)
    else:
        return None
    return result if math.isfinite(result) else None


def try_parse_confidence(value: Any) -> Optional[float]:
    return try_parse_double(value)


def try_parse_int(value: Any) -> Optional[int]:
    """Decode an int. Floats truncate toward zero; numeric strings must be integral."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str) and _INVARIANT_INT_RE.fullmatch(value):
        return int(value)
    return None


# ── Structured decoding ──────────────────────────────────────────


def to_snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY_RE.sub("_", name).lower()


def decode_source_mapping(value: Any) -> Optional[SourceMapping]:
    """
    Decode a source citation sent either as a bare quote or as an object.

    Unknown properties are ignored. Any other shape gives None.
    """
    if isinstance(value, str):
        return SourceMapping(text=value)
    if not isinstance(value, dict):
        return None

    text = value.get("text")
    start = try_parse_int(value.get("startChar", value.get("start_char")))
    end = try_parse_int(value.get("endChar", value.get("end_char")))
    section = value.get("section")

    return SourceMapping(
        text=text if isinstance(text, str) else "",
        start_char=start if start is not None else 0,
        end_char=end if end is not None else 0,
        section=section if isinstance(section, str) else None,
    )


def decode_extracted_field(
    raw: Any,
    value_decoder: Optional[Callable[[Any], Any]] = None,
) -> ExtractedField:
    """
    Decode one ``{"value", "confidence", "source"}`` object.

    A confidence that is missing, unparseable or outside [0, 1] becomes 0.0
    so it routes toward review instead of aborting the decode.
    """
    if not isinstance(raw, dict):
        return ExtractedField()

    value = raw.get("value")
    if value is not None and value_decoder is not None:
        value = value_decoder(value)

    confidence = try_parse_confidence(raw.get("confidence"))
    if confidence is None or not 0.0 <= confidence <= 1.0:
        confidence = 0.0

    return ExtractedField(
        value=value,
        confidence=confidence,
        source=decode_source_mapping(raw.get("source")),
    )


def decode_category(
    payload: dict[str, Any],
    value_decoders: Optional[dict[str, Callable[[Any], Any]]] = None,
) -> dict[str, ExtractedField]:
    """
    Decode every field-shaped entry of a category payload.

    Keys are normalized to snake_case. Entries that are not field objects
    (for example ``criteria_used``) are skipped.
    """
    decoders = value_decoders or {}
    fields: dict[str, ExtractedField] = {}
    for key, raw in payload.items():
        if not isinstance(raw, dict) or not _FIELD_KEYS.intersection(raw):
            continue
        name = to_snake_case(key)
        fields[name] = decode_extracted_field(raw, decoders.get(name))
    return fields


def decode_string_list_map(value: Any) -> dict[str, list[str]]:
    """Decode ``{"field": ["a", "b"] | "a"}`` with blank entries dropped."""
    result: dict[str, list[str]] = {}
    if not isinstance(value, dict):
        return result
    for key, raw in value.items():
        items = raw if isinstance(raw, list) else [raw]
        cleaned = [item.strip() for item in items if isinstance(item, str) and item.strip()]
        if cleaned:
            result[to_snake_case(key)] = cleaned
    return result


def decode_string_map(value: Any) -> dict[str, str]:
    result: dict[str, str] = {}
    if not isinstance(value, dict):
        return result
    for key, raw in value.items():
        if isinstance(raw, str) and raw.strip():
            result[to_snake_case(key)] = raw.strip()
    return result
