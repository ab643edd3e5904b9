"""Extract structured payloads from generator text.

The generator is asked to wrap each payload between two lines consisting of
``---``. Payloads may additionally be fenced with triple backticks, which are
stripped. Replies that ignore the ``---`` convention but contain fenced
blocks are accepted as a fallback. All scraping lives here so the rest of the
system only sees parsed values or a GeneratorProtocolError.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

from capsmith.errors import GeneratorProtocolError

DELIMITER = "---"

_FENCE_RE = re.compile(r"^```[^\n]*\n(.*?)^```\s*$", re.DOTALL | re.MULTILINE)


def trim_backticks(content: str) -> str:
    """Drop a leading and trailing ``` fence line, if present."""
    lines = content.split("\n")
    if lines and lines[0].startswith("```"):
        lines.pop(0)
    if lines and lines[-1].startswith("```"):
        lines.pop()
    return "\n".join(lines)


def extract_payloads(text: str | None) -> list[str]:
    """Return every delimited payload in ``text``, in order.

    Delimiter lines pair up: the 1st and 2nd enclose the first payload, the
    3rd and 4th the second, and so on. Empty payloads are skipped.
    """
    if not text:
        return []

    lines = text.strip().split("\n")
    markers = [i for i, line in enumerate(lines) if line.strip() == DELIMITER]

    payloads = []
    for start, end in zip(markers[0::2], markers[1::2]):
        body = trim_backticks("\n".join(lines[start + 1 : end]).strip()).strip()
        if body:
            payloads.append(body)

    if not payloads:
        payloads = [m.strip() for m in _FENCE_RE.findall(text) if m.strip()]
    return payloads


def parse_module(text: str | None) -> str:
    """Return the first payload as module source."""
    payloads = extract_payloads(text)
    if not payloads:
        raise GeneratorProtocolError("Generator reply did not contain a delimited module")
    return payloads[0]


def _as_json_object(payload: str) -> dict[str, Any] | None:
    try:
        value = json.loads(payload)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def parse_json_object(text: str | None) -> dict[str, Any]:
    """Return the first payload that is a JSON object."""
    for payload in extract_payloads(text):
        value = _as_json_object(payload)
        if value is not None:
            return value
    raise GeneratorProtocolError("Generator reply did not contain a delimited JSON object")


def parse_spec(text: str | None, name: str | None = None) -> dict[str, Any]:
    """Parse and check a capability spec.

    A spec needs a ``name``, a ``description`` and a ``parameters`` object
    schema. When ``name`` is given the spec is forced to carry it, since
    the agent will call the capability by that name.
    """
    spec = parse_json_object(text)
    if name is not None:
        spec["name"] = name
    if not isinstance(spec.get("name"), str) or not spec["name"]:
        raise GeneratorProtocolError("Capability spec is missing 'name'")
    if not isinstance(spec.get("description"), str):
        raise GeneratorProtocolError("Capability spec is missing 'description'")
    parameters = spec.get("parameters")
    if not isinstance(parameters, dict) or parameters.get("type", "object") != "object":
        raise GeneratorProtocolError("Capability spec 'parameters' must be an object schema")
    parameters.setdefault("type", "object")
    parameters.setdefault("properties", {})
    return spec


@dataclass
class RepairReply:
    """What the generator proposed after a fault."""

    code: str | None = None
    """A complete replacement module."""

    arguments: dict[str, Any] | None = None
    """Revised arguments to retry the unchanged module with."""

    text: str = ""
    """The raw reply."""

    ignored: list[str] = field(default_factory=list)
    """Payloads that were present but not used."""

    @property
    def kind(self) -> str:
        if self.code is not None:
            return "code"
        if self.arguments is not None:
            return "arguments"
        return "answer"


def parse_repair_reply(text: str | None) -> RepairReply:
    """Classify a repair reply.

    A JSON object payload is read as revised arguments; any other payload as
    a replacement module. When both appear the module wins. A reply with no
    payload at all is a final answer.
    """
    reply = RepairReply(text=text or "")
    for payload in extract_payloads(text):
        value = _as_json_object(payload)
        if value is not None and reply.arguments is None:
            reply.arguments = value
        elif value is None and reply.code is None:
            reply.code = payload
        else:
            reply.ignored.append(payload)
    if reply.code is not None and reply.arguments is not None:
        reply.ignored.append(json.dumps(reply.arguments))
        reply.arguments = None
    return reply


__all__ = [
    "DELIMITER",
    "trim_backticks",
    "extract_payloads",
    "parse_module",
    "parse_json_object",
    "parse_spec",
    "RepairReply",
    "parse_repair_reply",
]
