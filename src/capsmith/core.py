"""Core types shared across the capability lifecycle.

- LogLine: one line of console or logging output captured during a run
- RuntimeFault: what went wrong when a capability raised
- ExecutionOutcome: the result of one sandboxed run
- ExecutionContext: per-call state handed to capabilities that ask for it
"""

from __future__ import annotations

import json
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable


@dataclass(frozen=True)
class LogLine:
    """A captured line of output, tagged by severity."""

    level: str
    """Lowercase severity: "debug", "info", "warning", "error" or "critical"."""

    message: str

    def __str__(self) -> str:
        return f"[{self.level}] {self.message}"


@dataclass(frozen=True)
class RuntimeFault:
    """A normalized description of something a capability raised."""

    type_name: str
    """Exception class name (e.g. 'ValueError')."""

    message: str
    """str() of the exception, or a descriptive wrapper for odd throws."""

    traceback: str = ""
    """Formatted traceback, empty when unavailable."""

    @classmethod
    def from_exception(cls, exc: BaseException) -> "RuntimeFault":
        """Build a fault from a caught exception."""
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if isinstance(exc, SystemExit):
            return cls(
                type_name="SystemExit",
                message=f"Capability attempted to exit the process with code {exc.code!r}",
                traceback=tb,
            )
        return cls(type_name=type(exc).__name__, message=str(exc), traceback=tb)

    def describe(self, include_traceback: bool = True) -> str:
        """Human- and generator-readable description."""
        description = f"{self.type_name}: {self.message}"
        if include_traceback and self.traceback:
            return f"{description}\n{self.traceback}"
        return description

    def __str__(self) -> str:
        return self.describe(include_traceback=False)


@dataclass(frozen=True)
class ExecutionOutcome:
    """The result of running a capability in the sandbox.

    A return value and a fault are never both present. Log lines are always
    captured, whether the run succeeded or not.
    """

    return_value: Any = None
    logs: tuple[LogLine, ...] = ()
    fault: RuntimeFault | None = None

    final_answer: str | None = None
    """Set by the repair loop when the generator gave up and answered in prose."""

    def __post_init__(self) -> None:
        if self.fault is not None and self.return_value is not None:
            raise ValueError("An execution outcome cannot carry both a return value and a fault")

    @property
    def success(self) -> bool:
        return self.fault is None

    def console_output(self) -> str:
        """All captured lines, one per row, tagged by severity."""
        return "\n".join(str(line) for line in self.logs)

    def describe_result(self) -> str:
        """Describe the return value for a function-result turn."""
        if self.return_value is None:
            return "Function executed successfully but returned no value."
        try:
            return json.dumps(self.return_value)
        except (TypeError, ValueError):
            return repr(self.return_value)

    def __str__(self) -> str:
        parts = []
        if self.logs:
            parts.append(self.console_output())
        if self.fault is not None:
            parts.append(f"Error: {self.fault}")
        elif self.return_value is not None:
            parts.append(f"=> {self.return_value!r}")
        return "\n".join(parts) if parts else "(no output)"


@dataclass
class ExecutionContext:
    """Per-call state offered to capabilities.

    Entry points that declare a ``context`` parameter receive one of these,
    so they can work against an explicit directory and log sink instead of
    the process-wide ones.
    """

    working_dir: Path
    log: Callable[[str, str], None] = field(repr=False, default=lambda level, message: None)

    def path(self, *parts: str) -> Path:
        """Resolve a path inside the working directory."""
        return self.working_dir.joinpath(*parts)

    def info(self, message: str) -> None:
        self.log("info", message)

    def warning(self, message: str) -> None:
        self.log("warning", message)

    def error(self, message: str) -> None:
        self.log("error", message)


__all__ = [
    "LogLine",
    "RuntimeFault",
    "ExecutionOutcome",
    "ExecutionContext",
]
