"""Conversational agent that grows its own capabilities.

The agent orchestrates:
1. Conversation with the generator, declaring every known capability spec
   plus the requestFunction meta-capability
2. Authoring new capabilities when the generator asks for one
3. Running requested capabilities through the repair loop
4. Feeding results back as function turns until the generator answers
5. Session persistence
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from capsmith import paths, prompts
from capsmith.codegen import CapabilityAuthor
from capsmith.core import ExecutionOutcome
from capsmith.errors import CapsmithError
from capsmith.generator import DEFAULT_MODEL, AnthropicGenerator, FunctionCall, Generator, Message
from capsmith.quarantine import Approver, QuarantineGate
from capsmith.repair import DEFAULT_MAX_ATTEMPTS, RepairLoop
from capsmith.resolver import DependencyInstaller
from capsmith.sandbox import ExecutionSandbox
from capsmith.store import CapabilityStore

logger = logging.getLogger(__name__)

FUNCTION_CREATED = "Function created successfully."


@dataclass
class ConversationTurn:
    """A complete turn in the conversation."""

    user_message: str
    assistant_response: str
    function_calls: list[FunctionCall] = field(default_factory=list)
    outcomes: list[ExecutionOutcome] = field(default_factory=list)


@dataclass
class AgentConfig:
    """Configuration for the agent."""

    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    output_dir: Path = field(default_factory=paths.default_output_root)

    @classmethod
    def from_env(cls, **overrides: Any) -> "AgentConfig":
        """Build a config from CAPSMITH_* environment variables.

        Explicit keyword overrides that are not None win over the environment.
        """
        config = cls()
        if os.environ.get("CAPSMITH_MODEL"):
            config.model = os.environ["CAPSMITH_MODEL"]
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)
        config.output_dir = Path(config.output_dir).expanduser().resolve()
        return config


class DynamicAgent:
    """An agent that requests, writes and repairs functions as it goes.

    The generator sees a requestFunction tool and one tool per stored
    capability. Asking for requestFunction authors a new capability (with
    human review); asking for any other tool runs it in the sandbox with
    automatic repair.
    """

    def __init__(
        self,
        config: AgentConfig | None = None,
        generator: Generator | None = None,
        approver: Approver | None = None,
        installer: DependencyInstaller | None = None,
        system_prompt: str | None = None,
    ):
        """Initialize the agent.

        Args:
            config: Agent configuration. If None, read from the environment.
            generator: The code/chat generator. Defaults to AnthropicGenerator.
            approver: Reviews generated code. Defaults to a console prompt.
            installer: Installs capability dependencies. Defaults to pip.
            system_prompt: Custom system prompt. If None, uses default.
        """
        self.config = config or AgentConfig.from_env()
        root = Path(self.config.output_dir)

        self.store = CapabilityStore(paths.code_dir(root), installer=installer)
        self.gate = QuarantineGate(paths.quarantine_dir(root), self.store, approver)
        self.sandbox = ExecutionSandbox(self.store)
        self.generator = generator or AnthropicGenerator(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
        )
        self.author = CapabilityAuthor(self.store, self.gate, self.generator)
        self.repair = RepairLoop(
            self.store,
            self.sandbox,
            self.gate,
            self.generator,
            working_dir=paths.files_dir(root),
            max_attempts=self.config.max_attempts,
        )

        self.system_prompt = system_prompt or prompts.MAIN_SYSTEM_MESSAGE
        self.messages: list[Message] = [Message(role="system", content=self.system_prompt)]
        self.turns: list[ConversationTurn] = []
        self.function_specs: list[dict[str, Any]] = [prompts.REQUEST_FUNCTION_SPEC]
        for spec in self.store.list_specs():
            self.declare(spec)

    # =========================================================================
    # Main conversation interface
    # =========================================================================

    def chat(self, user_message: str) -> str:
        """Send a message and get the final response.

        The generator may request and call any number of functions before it
        answers. Lifecycle errors (declined review, exhausted repairs,
        malformed generator output) are raised after the failed call has
        been answered in the history, so the conversation can continue.
        """
        self.messages.append(Message(role="user", content=user_message))
        turn = ConversationTurn(user_message=user_message, assistant_response="")

        while True:
            logger.info("waiting for generator functions=%s", [f["name"] for f in self.function_specs])
            reply = self.generator.complete(self.messages, self.function_specs)
            self.messages.append(reply.to_message())

            call = reply.function_call
            if call is None:
                turn.assistant_response = reply.text
                self.turns.append(turn)
                return reply.text

            turn.function_calls.append(call)
            try:
                result = self._dispatch(call, turn)
            except CapsmithError as e:
                self._answer(call, f"Error: {e}")
                self.turns.append(turn)
                raise
            self._answer(call, result)

    def _dispatch(self, call: FunctionCall, turn: ConversationTurn) -> str:
        if call.name == prompts.REQUEST_FUNCTION_NAME:
            logger.info("generator requested a function name=%s", call.arguments.get("name"))
            spec = self.author.create(
                call.arguments.get("name", ""),
                call.arguments.get("description", ""),
            )
            self.declare(spec)
            return FUNCTION_CREATED

        outcome = self.repair.run(call.name, call.arguments)
        turn.outcomes.append(outcome)
        return self.describe_outcome(outcome)

    def _answer(self, call: FunctionCall, content: str) -> None:
        self.messages.append(
            Message(role="function", name=call.name, content=content, call_id=call.call_id)
        )

    @staticmethod
    def describe_outcome(outcome: ExecutionOutcome) -> str:
        """Render an outcome as the content of a function turn."""
        if outcome.success:
            return outcome.describe_result()
        lines = [f"Error: {outcome.fault}"]
        if outcome.final_answer:
            lines.append(outcome.final_answer)
        return "\n".join(lines)

    def declare(self, spec: dict[str, Any]) -> None:
        """Make a capability spec visible to the generator (replacing any old one)."""
        self.function_specs = [s for s in self.function_specs if s["name"] != spec["name"]]
        self.function_specs.append(spec)

    def call(self, name: str, args: dict[str, Any]) -> ExecutionOutcome:
        """Run a stored capability directly, with repair, bypassing the chat."""
        return self.repair.run(name, args)

    # =========================================================================
    # Session management
    # =========================================================================

    def save_session(self, path: Path | str) -> None:
        """Save the conversation history to a file."""
        path = Path(path)
        data = {
            "messages": [m.to_dict() for m in self.messages],
            "config": {
                "model": self.config.model,
                "max_tokens": self.config.max_tokens,
                "max_attempts": self.config.max_attempts,
            },
        }
        path.write_text(json.dumps(data, indent=2))

    def load_session(self, path: Path | str) -> None:
        """Load a conversation history from a file."""
        path = Path(path)
        data = json.loads(path.read_text())
        self.messages = [Message.from_dict(m) for m in data["messages"]]
        if "config" in data:
            self.config.model = data["config"].get("model", self.config.model)
            self.config.max_tokens = data["config"].get("max_tokens", self.config.max_tokens)

    def clear_history(self) -> None:
        """Clear the conversation history, keeping the system prompt."""
        self.messages = [Message(role="system", content=self.system_prompt)]
        self.turns = []

    # =========================================================================
    # Introspection
    # =========================================================================

    def describe(self) -> str:
        """Get a description of the agent's current state."""
        lines = [
            "DynamicAgent",
            f"  Model: {self.config.model}",
            f"  Output: {self.config.output_dir}",
            f"  Messages: {len(self.messages)}",
            f"  Turns: {len(self.turns)}",
            "",
            "Capabilities:",
        ]
        names = self.store.names()
        if not names:
            lines.append("  (none)")
        for name in names:
            lines.append(f"  - {name} (v{self.store.latest_version(name)})")
        return "\n".join(lines)


__all__ = ["AgentConfig", "ConversationTurn", "DynamicAgent", "FUNCTION_CREATED"]
