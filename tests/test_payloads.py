"""Tests for payload extraction from generator replies."""

import pytest

from capsmith.errors import GeneratorProtocolError
from capsmith.payloads import (
    extract_payloads,
    parse_json_object,
    parse_module,
    parse_repair_reply,
    parse_spec,
    trim_backticks,
)


MODULE_REPLY = """Here is the module:
---
def addNumbers(args):
    return args["a"] + args["b"]
---
Let me know if you need anything else."""

FENCED_REPLY = """---
```python
def addNumbers(args):
    return 1
```
---"""


class TestExtractPayloads:
    """Tests for delimiter pairing."""

    def test_single_payload(self):
        assert extract_payloads(MODULE_REPLY) == [
            'def addNumbers(args):\n    return args["a"] + args["b"]'
        ]

    def test_backticks_trimmed(self):
        assert extract_payloads(FENCED_REPLY) == ["def addNumbers(args):\n    return 1"]

    def test_multiple_payloads_pair_in_order(self):
        text = "---\nfirst\n---\nbetween\n---\nsecond\n---"
        assert extract_payloads(text) == ["first", "second"]

    def test_unpaired_delimiter_ignored(self):
        assert extract_payloads("---\nfirst\n---\n---\ndangling") == ["first"]

    def test_empty_payload_skipped(self):
        assert extract_payloads("---\n---") == []

    def test_no_payload(self):
        assert extract_payloads("I could not work out the problem.") == []
        assert extract_payloads("") == []
        assert extract_payloads(None) == []

    def test_fenced_block_fallback(self):
        text = "Sure:\n```python\ndef f(args):\n    return 1\n```\n"
        assert extract_payloads(text) == ["def f(args):\n    return 1"]

    def test_trim_backticks(self):
        assert trim_backticks("```json\n{}\n```") == "{}"
        assert trim_backticks("plain") == "plain"


class TestParseModule:
    """Tests for parse_module."""

    def test_returns_first_payload(self):
        assert parse_module(MODULE_REPLY).startswith("def addNumbers")

    def test_missing_payload(self):
        with pytest.raises(GeneratorProtocolError):
            parse_module("no code here")


class TestParseSpec:
    """Tests for spec parsing."""

    SPEC_REPLY = """---
{
  "name": "add_numbers",
  "description": "Adds two numbers",
  "parameters": {"type": "object", "properties": {"a": {"type": "number"}}}
}
---"""

    def test_parses_and_forces_name(self):
        spec = parse_spec(self.SPEC_REPLY, name="addNumbers")
        assert spec["name"] == "addNumbers"
        assert spec["description"] == "Adds two numbers"
        assert spec["parameters"]["properties"]["a"] == {"type": "number"}

    def test_keeps_name_without_override(self):
        assert parse_spec(self.SPEC_REPLY)["name"] == "add_numbers"

    def test_fills_parameter_defaults(self):
        spec = parse_spec('---\n{"description": "x", "parameters": {}}\n---', name="thing")
        assert spec["parameters"] == {"type": "object", "properties": {}}

    def test_missing_description(self):
        with pytest.raises(GeneratorProtocolError, match="description"):
            parse_spec('---\n{"name": "x", "parameters": {}}\n---')

    def test_non_object_parameters(self):
        with pytest.raises(GeneratorProtocolError, match="parameters"):
            parse_spec('---\n{"name": "x", "description": "d", "parameters": {"type": "array"}}\n---')

    def test_not_json(self):
        with pytest.raises(GeneratorProtocolError):
            parse_spec("---\nnot json\n---")

    def test_parse_json_object_skips_non_objects(self):
        assert parse_json_object('---\n[1, 2]\n---\n---\n{"a": 1}\n---') == {"a": 1}


class TestParseRepairReply:
    """Tests for classifying repair replies."""

    def test_code(self):
        reply = parse_repair_reply(MODULE_REPLY)
        assert reply.kind == "code"
        assert reply.code.startswith("def addNumbers")
        assert reply.arguments is None

    def test_arguments(self):
        reply = parse_repair_reply('The input was wrong.\n---\n{"a": 2, "b": 3}\n---')
        assert reply.kind == "arguments"
        assert reply.arguments == {"a": 2, "b": 3}

    def test_answer(self):
        reply = parse_repair_reply("The service is down; I cannot fix this.")
        assert reply.kind == "answer"
        assert reply.text == "The service is down; I cannot fix this."

    def test_code_wins_over_arguments(self):
        text = '---\n{"a": 1}\n---\n---\ndef f(args):\n    return 1\n---'
        reply = parse_repair_reply(text)
        assert reply.kind == "code"
        assert reply.arguments is None
        assert reply.ignored == ['{"a": 1}']

    def test_extra_payloads_ignored(self):
        text = "---\ndef f(args):\n    return 1\n---\n---\ndef g(args):\n    return 2\n---"
        reply = parse_repair_reply(text)
        assert reply.code == "def f(args):\n    return 1"
        assert reply.ignored == ["def g(args):\n    return 2"]
