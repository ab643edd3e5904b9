"""The boundary to the external code generator (an LLM).

The rest of the system speaks in Message / GeneratorReply and never touches
a provider SDK directly. AnthropicGenerator adapts that conversation to the
Anthropic Messages API, mapping declared capability specs to tools and
function-call turns to tool_use / tool_result blocks.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

import anthropic

from capsmith.logging_utils import abbreviate

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass
class FunctionCall:
    """A request from the generator to call one declared capability."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str = field(default_factory=lambda: f"call_{uuid.uuid4().hex[:12]}")


@dataclass
class Message:
    """A turn in the conversation history."""

    role: str  # "system", "user", "assistant", "function"
    content: str = ""
    name: str | None = None
    """For function turns: the capability whose result this is."""

    function_call: FunctionCall | None = None
    """For assistant turns that asked to call a capability."""

    call_id: str | None = None
    """For function turns: the id of the call being answered."""

    def to_dict(self) -> dict:
        """Convert to serializable dict."""
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.name is not None:
            data["name"] = self.name
        if self.call_id is not None:
            data["call_id"] = self.call_id
        if self.function_call is not None:
            data["function_call"] = {
                "name": self.function_call.name,
                "arguments": self.function_call.arguments,
                "call_id": self.function_call.call_id,
            }
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Create from serialized dict."""
        call = data.get("function_call")
        return cls(
            role=data["role"],
            content=data.get("content", ""),
            name=data.get("name"),
            call_id=data.get("call_id"),
            function_call=FunctionCall(**call) if call else None,
        )


@dataclass
class GeneratorReply:
    """A single assistant turn."""

    text: str = ""
    function_call: FunctionCall | None = None
    stop_reason: str | None = None

    def to_message(self) -> Message:
        return Message(role="assistant", content=self.text, function_call=self.function_call)


@runtime_checkable
class Generator(Protocol):
    """Maps a conversation (and optional function specs) to one reply."""

    def complete(
        self,
        messages: Sequence[Message],
        functions: Sequence[dict[str, Any]] | None = None,
    ) -> GeneratorReply:
        ...


def spec_to_tool(spec: dict[str, Any]) -> dict[str, Any]:
    """Convert a capability spec to an Anthropic tool definition."""
    return {
        "name": spec["name"],
        "description": spec.get("description", ""),
        "input_schema": spec.get("parameters") or {"type": "object", "properties": {}},
    }


def _blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, list):
        return content
    return [{"type": "text", "text": content}] if content else []


def to_api_messages(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
    """Split out the system prompt and convert the rest to API format.

    Consecutive turns with the same API role are merged, since function
    results travel as user turns.
    """
    system_parts: list[str] = []
    converted: list[dict[str, Any]] = []

    for message in messages:
        if message.role == "system":
            system_parts.append(message.content.strip())
            continue

        if message.role == "function":
            role = "user"
            content: str | list[dict[str, Any]] = [
                {
                    "type": "tool_result",
                    "tool_use_id": message.call_id,
                    "content": message.content,
                }
            ]
        elif message.role == "assistant" and message.function_call is not None:
            role = "assistant"
            call = message.function_call
            content = _blocks(message.content) + [
                {
                    "type": "tool_use",
                    "id": call.call_id,
                    "name": call.name,
                    "input": call.arguments,
                }
            ]
        else:
            role = message.role
            content = message.content

        if converted and converted[-1]["role"] == role:
            converted[-1]["content"] = _blocks(converted[-1]["content"]) + _blocks(content)
        else:
            converted.append({"role": role, "content": content})

    return "\n\n".join(p for p in system_parts if p), converted


class AnthropicGenerator:
    """Generator backed by the Anthropic Messages API."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        client: anthropic.Anthropic | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or anthropic.Anthropic()

    def complete(
        self,
        messages: Sequence[Message],
        functions: Sequence[dict[str, Any]] | None = None,
    ) -> GeneratorReply:
        system, api_messages = to_api_messages(messages)
        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": api_messages,
        }
        if system:
            request["system"] = system
        if functions:
            request["tools"] = [spec_to_tool(f) for f in functions]

        logger.debug(
            "generator request model=%s messages=%s tools=%s last=%s",
            self.model,
            len(api_messages),
            [f["name"] for f in functions or []],
            abbreviate(messages[-1].content if messages else ""),
        )
        response = self._client.messages.create(**request)

        text_parts = []
        call = None
        for block in response.content:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(block.text)
            elif block_type == "tool_use" and call is None:
                call = FunctionCall(name=block.name, arguments=dict(block.input or {}), call_id=block.id)

        reply = GeneratorReply(
            text="".join(text_parts),
            function_call=call,
            stop_reason=getattr(response, "stop_reason", None),
        )
        logger.debug(
            "generator response stop_reason=%s call=%s text=%s",
            reply.stop_reason,
            call.name if call else None,
            abbreviate(reply.text),
        )
        return reply


__all__ = [
    "DEFAULT_MODEL",
    "FunctionCall",
    "Message",
    "GeneratorReply",
    "Generator",
    "AnthropicGenerator",
    "spec_to_tool",
    "to_api_messages",
]
