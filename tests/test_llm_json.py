"""
Structured output parsing tests
"""

from agenthub.agent.llm_json import (
    Malformed,
    Parsed,
    extract_json_object,
    parse_json_array,
    parse_json_object,
    string_list,
)


def test_object_inside_prose_and_fences():
    text = 'Sure! Here it is:\n```json\n{"confidence": 82, "reasoning": "fits {well}"}\n```\nAnything else?'
    result = parse_json_object(text, required=("confidence", "reasoning"))
    assert isinstance(result, Parsed)
    assert result.value == {"confidence": 82, "reasoning": "fits {well}"}


def test_braces_inside_strings_do_not_end_block():
    assert extract_json_object('x {"a": "}"} y') == '{"a": "}"}'


def test_missing_required_field():
    result = parse_json_object('{"confidence": 80, "reasoning": ""}', required=("confidence", "reasoning"))
    assert isinstance(result, Malformed)
    assert "reasoning" in result.reason


def test_no_object():
    result = parse_json_object("I cannot help with that.")
    assert isinstance(result, Malformed)
    assert result.raw == "I cannot help with that."


def test_invalid_json():
    result = parse_json_object("{'single': 'quotes'}")
    assert isinstance(result, Malformed)
    assert result.reason.startswith("invalid JSON")


def test_array():
    result = parse_json_array('Capabilities:\n["Plan hives", "Treat mites"]')
    assert isinstance(result, Parsed)
    assert result.value == ["Plan hives", "Treat mites"]
    assert isinstance(parse_json_array("none"), Malformed)


def test_string_list_filters_junk():
    assert string_list([" a ", "", 3, None, "b"]) == ["a", "b"]
    assert string_list("not a list") == []
