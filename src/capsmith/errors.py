"""Exceptions raised by the capability lifecycle.

Faults raised *by a capability itself* are not exceptions here: the sandbox
turns them into RuntimeFault records (see capsmith.core) and the repair loop
acts on those. Everything below ends the current request.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from capsmith.core import RuntimeFault


class CapsmithError(Exception):
    """Base class for all capsmith errors."""


class ValidationError(CapsmithError, ValueError):
    """Missing or malformed input to a store or sandbox operation."""


class NotFoundError(CapsmithError, LookupError):
    """No stored version exists for the requested capability."""

    def __init__(self, name: str, message: str | None = None):
        self.name = name
        super().__init__(message or f"No versions found for capability '{name}'")


class DeclinedError(CapsmithError):
    """A human rejected a quarantined candidate."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Capability '{name}' declined by user.")


class RepairExhaustedError(CapsmithError):
    """The repair budget ran out without a successful execution."""

    def __init__(self, name: str, attempts: int, fault: "RuntimeFault"):
        self.name = name
        self.attempts = attempts
        self.fault = fault
        super().__init__(
            f"Failed to fix capability '{name}' after {attempts} attempts. "
            f"Last error: {fault.describe(include_traceback=False)}"
        )


class GeneratorProtocolError(CapsmithError):
    """The generator's reply lacked the expected delimited payload."""


class DependencyInstallError(CapsmithError):
    """Installing the shared dependency manifest failed."""


__all__ = [
    "CapsmithError",
    "ValidationError",
    "NotFoundError",
    "DeclinedError",
    "RepairExhaustedError",
    "GeneratorProtocolError",
    "DependencyInstallError",
]
