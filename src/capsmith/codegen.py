"""Author new capabilities with the generator.

The author asks for a module, puts it through quarantine, stores it, then
asks (in the same conversation, so the generator can see the code) for a
JSON spec that the agent can declare to the generator from then on.
"""

from __future__ import annotations

import logging
from typing import Any

from capsmith import prompts
from capsmith.generator import Generator, Message
from capsmith.payloads import parse_module, parse_spec
from capsmith.quarantine import QuarantineGate
from capsmith.store import CapabilityStore, validate_name

logger = logging.getLogger(__name__)


class CapabilityAuthor:
    """Generate, review and install a new capability."""

    def __init__(self, store: CapabilityStore, gate: QuarantineGate, generator: Generator):
        self.store = store
        self.gate = gate
        self.generator = generator

    def create(self, name: str, description: str) -> dict[str, Any]:
        """Create capability ``name`` from a natural-language description.

        Returns:
            The stored spec.

        Raises:
            GeneratorProtocolError: If a reply lacks its delimited payload.
            DeclinedError: If the reviewer rejects the module.
        """
        validate_name(name)
        messages = [
            Message(role="system", content=prompts.IMPLEMENTATION_SYSTEM_MESSAGE),
            Message(role="user", content=prompts.implementation_prompt(name, description)),
        ]

        logger.info("requesting implementation name=%s", name)
        reply = self.generator.complete(messages)
        candidate = parse_module(reply.text)
        messages.append(reply.to_message())

        approved = self.gate.stage(name, candidate)
        version = self.store.put(name, approved)
        logger.info("installed capability name=%s version=%s", name, version)

        logger.info("requesting spec name=%s", name)
        messages.append(Message(role="user", content=prompts.spec_prompt()))
        spec_reply = self.generator.complete(messages)
        spec = parse_spec(spec_reply.text, name=name)
        self.store.put_spec(name, spec)
        return spec


__all__ = ["CapabilityAuthor"]
