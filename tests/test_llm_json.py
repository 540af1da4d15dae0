from __future__ import annotations

import math

import pytest

from sessionsight.services import llm_json
from sessionsight.services.llm_json import (
    decode_category,
    decode_extracted_field,
    decode_source_mapping,
    decode_string_list_map,
    extract_json,
    parse_json_object,
    try_parse_confidence,
    try_parse_double,
    try_parse_int,
)


def test_extract_json_strips_json_fence():
    assert extract_json('```json\n{"a":1}\n```') == '{"a":1}'


def test_extract_json_fence_tag_is_case_insensitive():
    assert extract_json('```JSON\n{"a":1}\n```') == '{"a":1}'


def test_extract_json_uses_last_closing_fence():
    content = '```json\n{"code": "```x```"}\n```'
    assert extract_json(content) == '{"code": "```x```"}'


def test_extract_json_bare_fence_starts_after_first_line():
    assert extract_json('```\n{"b":2}\n```') == '{"b":2}'


def test_extract_json_finds_fence_inside_prose():
    assert extract_json('I think ```json\n{"k":"v"}\n``` final thoughts') == '{"k":"v"}'


def test_extract_json_falls_back_to_outer_braces():
    assert extract_json('Answer: {"x":2} done.') == '{"x":2}'


def test_extract_json_unclosed_fence_falls_through_to_braces():
    assert extract_json('```json\n{"a":1}') == '{"a":1}'


def test_extract_json_returns_trimmed_input_when_nothing_matches():
    assert extract_json("   no payload here  ") == "no payload here"
    assert extract_json("") == ""
    assert extract_json(None) == ""


def test_extract_json_fence_scan_timeout_falls_through(monkeypatch):
    class _SlowPattern:
        def search(self, *args, **kwargs):
            raise TimeoutError("regex timed out")

    monkeypatch.setattr(llm_json, "_FENCE_RE", _SlowPattern())
    assert extract_json('prose ```{"a":1}``` more') == '{"a":1}'


def test_parse_json_object_rejects_non_objects():
    assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("not json") is None
    assert parse_json_object('{"a": }') is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        (0.8, 0.8),
        (1, 1.0),
        ("0.85", 0.85),
        (" .5 ", 0.5),
        ("1e-1", 0.1),
        ("1,5", None),
        ("0,85", None),
        ("NaN", None),
        (True, None),
        (None, None),
        ([0.5], None),
        (float("inf"), None),
    ],
)
def test_try_parse_confidence(raw, expected):
    result = try_parse_confidence(raw)
    if expected is None:
        assert result is None
    else:
        assert math.isclose(result, expected)


def test_try_parse_double_matches_confidence_decoding():
    assert try_parse_double("-2.5") == -2.5
    assert try_parse_double("1_000") is None


@pytest.mark.parametrize(
    "raw, expected",
    [(3, 3), (3.9, 3), (-3.9, -3), ("12", 12), (" 7 ", 7), ("12.5", None), ("twelve", None), (False, None), (None, None)],
)
def test_try_parse_int(raw, expected):
    assert try_parse_int(raw) == expected


def test_decode_source_mapping_accepts_bare_string():
    mapping = decode_source_mapping("Client denied SI")
    assert mapping.text == "Client denied SI"
    assert mapping.start_char == 0
    assert mapping.section is None


def test_decode_source_mapping_reads_object_and_ignores_unknown_keys():
    mapping = decode_source_mapping(
        {"text": "denied SI", "startChar": "10", "end_char": 19, "section": "risk", "page": 4}
    )
    assert (mapping.text, mapping.start_char, mapping.end_char, mapping.section) == ("denied SI", 10, 19, "risk")


def test_decode_source_mapping_other_shapes_give_none():
    assert decode_source_mapping(42) is None
    assert decode_source_mapping(None) is None
    assert decode_source_mapping(["a"]) is None


def test_decode_extracted_field_out_of_range_confidence_becomes_zero():
    field = decode_extracted_field({"value": "Passive", "confidence": "1.7"})
    assert field.value == "Passive"
    assert field.confidence == 0.0

    field = decode_extracted_field({"value": "Passive", "confidence": "high"})
    assert field.confidence == 0.0


def test_decode_extracted_field_non_object_is_empty():
    field = decode_extracted_field("Passive")
    assert field.value is None
    assert field.confidence == 0.0
    assert field.source is None


def test_decode_extracted_field_applies_value_decoder():
    field = decode_extracted_field({"value": "45", "confidence": 0.9}, try_parse_int)
    assert field.value == 45


def test_decode_category_snake_cases_keys_and_skips_non_fields():
    fields = decode_category(
        {
            "suicidalIdeation": {"value": "None", "confidence": "0.92", "source": "denies SI"},
            "criteria_used": ["explicit denial"],
            "summary": "free text",
        }
    )
    assert list(fields) == ["suicidal_ideation"]
    assert fields["suicidal_ideation"].confidence == pytest.approx(0.92)
    assert fields["suicidal_ideation"].source.text == "denies SI"


def test_decode_string_list_map_drops_blanks_and_wraps_scalars():
    assert decode_string_list_map({"selfHarm": ["  ", "scars noted"], "suicidalIdeation": "denial", "x": []}) == {
        "self_harm": ["scars noted"],
        "suicidal_ideation": ["denial"],
    }
    assert decode_string_list_map("nope") == {}
