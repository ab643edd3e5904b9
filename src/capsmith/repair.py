"""Self-healing execution of stored capabilities.

One call to RepairLoop.run() moves through::

    RUNNING -> FAULTED -> REPAIRING -> RUNNING -> ... -> SUCCEEDED | EXHAUSTED

Every fault counts against the budget. While budget remains, the fault, the
module, its spec, the input and the captured output are sent to the
generator, which may answer with:

- a replacement module: staged in quarantine, committed to the store on
  approval, then re-run with the same arguments;
- revised arguments: re-run the unchanged module with them;
- neither: the generator has given up; the loop stops and returns the faulted
  outcome with the generator's answer attached.

A declined review ends the call with DeclinedError.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Mapping

from capsmith import prompts
from capsmith.core import ExecutionOutcome
from capsmith.errors import NotFoundError, RepairExhaustedError
from capsmith.generator import Generator, Message
from capsmith.logging_utils import abbreviate
from capsmith.payloads import RepairReply, parse_repair_reply
from capsmith.quarantine import QuarantineGate
from capsmith.sandbox import ExecutionSandbox
from capsmith.store import CapabilityStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class RepairLoop:
    """Run a capability, repairing it on failure up to a fixed budget."""

    def __init__(
        self,
        store: CapabilityStore,
        sandbox: ExecutionSandbox,
        gate: QuarantineGate,
        generator: Generator,
        working_dir: Path | str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        """Wire the loop to its collaborators.

        Args:
            store: Where repaired versions are committed.
            sandbox: Runs each attempt.
            gate: Reviews replacement modules before they are committed.
            generator: Proposes repairs.
            working_dir: Directory capabilities run in.
            max_attempts: Sandbox executions allowed per call.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.store = store
        self.sandbox = sandbox
        self.gate = gate
        self.generator = generator
        self.working_dir = Path(working_dir)
        self.max_attempts = max_attempts

    def run(self, name: str, args: Mapping[str, Any]) -> ExecutionOutcome:
        """Execute ``name`` with ``args``, repairing as needed.

        Raises:
            NotFoundError: If the capability has never been stored.
            RepairExhaustedError: If every attempt faulted.
            DeclinedError: If a proposed fix was rejected in review.
            GeneratorProtocolError: Propagated from the generator boundary.
        """
        attempts = 0
        arguments = dict(args)

        while True:
            logger.info(
                "running capability name=%s attempt=%s args=%s",
                name,
                attempts + 1,
                abbreviate(json.dumps(arguments, default=str)),
            )
            outcome = self.sandbox.execute(name, self.working_dir, arguments)
            if outcome.success:
                return outcome

            attempts += 1
            if attempts >= self.max_attempts:
                logger.warning("repair budget exhausted name=%s attempts=%s", name, attempts)
                raise RepairExhaustedError(name, attempts, outcome.fault)

            reply = self.request_repair(name, arguments, outcome)
            logger.info("repair proposed name=%s kind=%s", name, reply.kind)

            if reply.kind == "code":
                approved = self.gate.stage(name, reply.code)
                version = self.store.put(name, approved)
                logger.info("installed repaired capability name=%s version=%s", name, version)
            elif reply.kind == "arguments":
                arguments = reply.arguments
            else:
                return dataclasses.replace(outcome, final_answer=reply.text)

    def request_repair(self, name: str, arguments: Mapping[str, Any], outcome: ExecutionOutcome) -> RepairReply:
        """Ask the generator how to recover from a faulted outcome."""
        messages = [
            Message(role="system", content=prompts.DEBUG_SYSTEM_MESSAGE),
            Message(role="user", content=self.build_debug_prompt(name, arguments, outcome)),
        ]
        reply = self.generator.complete(messages)
        return parse_repair_reply(reply.text)

    def build_debug_prompt(self, name: str, arguments: Mapping[str, Any], outcome: ExecutionOutcome) -> str:
        try:
            spec = json.dumps(self.store.read_spec(name), indent=2)
        except NotFoundError:
            spec = "(no spec available)"

        return prompts.debug_prompt(
            function_name=name,
            function_spec=spec,
            module_code=self.store.read(name),
            function_input=json.dumps(arguments, default=str),
            console_output=outcome.console_output(),
            function_error=outcome.fault.describe() if outcome.fault else "",
        )


__all__ = ["DEFAULT_MAX_ATTEMPTS", "RepairLoop"]
