"""Tests for turning raw model text into decisions."""

import pytest

from aion.agent.decision_parser import (
    DecisionParseError,
    extract_brace_span,
    parse_decision,
)


def test_strict_json_decision() -> None:
    text = (
        '{"thought": "look around", '
        '"toolCalls": [{"name": "list_dir", "args": {"dir_path": "src"}, "callId": "c1"}], '
        '"content": null}'
    )
    decision = parse_decision(text)

    assert decision.thought == "look around"
    assert decision.content is None
    assert len(decision.tool_calls) == 1
    call = decision.tool_calls[0]
    assert (call.name, call.args, call.call_id) == ("list_dir", {"dir_path": "src"}, "c1")


def test_missing_call_id_is_generated() -> None:
    decision = parse_decision('{"toolCalls": [{"name": "get_context"}]}')
    assert decision.tool_calls[0].call_id.startswith("call_")
    assert decision.tool_calls[0].args == {}


def test_json_embedded_in_prose() -> None:
    text = 'Sure! Here you go:\n```json\n{"content": "All done."}\n```\nAnything else?'
    decision = parse_decision(text)
    assert decision.content == "All done."
    assert decision.tool_calls == []


def test_braces_inside_strings_do_not_confuse_span() -> None:
    text = 'prefix {"content": "use {braces} and \\"quotes\\" freely"} suffix {"x": 1}'
    decision = parse_decision(text)
    assert decision.content == 'use {braces} and "quotes" freely'


def test_plain_text_becomes_content() -> None:
    text = "I could not produce JSON, but the answer is 42."
    decision = parse_decision(text)
    assert decision.content == text
    assert decision.thought is None
    assert decision.tool_calls == []


def test_json_array_falls_back_to_content() -> None:
    decision = parse_decision("[1, 2, 3]")
    assert decision.content == "[1, 2, 3]"


def test_snake_case_aliases_accepted() -> None:
    decision = parse_decision(
        '{"tool_calls": [{"name": "read_file", "arguments": {"file_path": "a"}, "id": "x"}]}'
    )
    call = decision.tool_calls[0]
    assert call.args == {"file_path": "a"}
    assert call.call_id == "x"


def test_invalid_tool_call_shape_falls_back() -> None:
    text = '{"toolCalls": [{"args": {}}]}'  # no name
    assert parse_decision(text).content == text


@pytest.mark.parametrize("text", ["no braces", '{"open": "never closed"', '{"s": "unterminated}'])
def test_extract_brace_span_errors(text: str) -> None:
    with pytest.raises(DecisionParseError):
        extract_brace_span(text)


def test_extract_brace_span_nested() -> None:
    text = 'xx {"a": {"b": "}"}} yy'
    start, end = extract_brace_span(text)
    assert text[start:end] == '{"a": {"b": "}"}}'


def test_null_fields_are_accepted() -> None:
    decision = parse_decision('{"thought": null, "toolCalls": null, "content": "hi"}')
    assert decision.content == "hi"
    assert decision.thought is None
    assert decision.tool_calls == []


def test_null_tool_args_become_empty() -> None:
    decision = parse_decision('{"toolCalls": [{"name": "get_context", "args": null}]}')
    assert decision.tool_calls[0].args == {}
