"""Human-in-the-loop staging for generated code.

Candidates are written to a quarantine directory under the version number
they would receive if accepted, so the reviewer sees exactly what would
become "latest". Nothing reaches the store until the reviewer says yes, and
the reviewer may edit the staged file before answering.

Key classes:
- QuarantineGate: stage a candidate and wait for a decision
- Approver: protocol for asking the human
- ConsoleApprover: ask on the terminal via prompt_toolkit
- AutoApprover / AutoDecliner: fixed answers for tests and trusted runs
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

from prompt_toolkit import prompt

from capsmith.errors import DeclinedError
from capsmith.store import CapabilityStore, module_filename, validate_name

logger = logging.getLogger(__name__)

APPROVE_ANSWER = "y"


@runtime_checkable
class Approver(Protocol):
    """Asks a human whether a staged file may be installed."""

    def confirm(self, name: str, path: Path) -> str:
        """Return the raw answer; "y" (any case) approves."""
        ...


class ConsoleApprover:
    """Ask on the terminal.

    The staged file can be opened and edited while the prompt is waiting.
    """

    def __init__(self, message: str | None = None):
        self.message = message or (
            "Capability '{name}' is waiting for review at:\n"
            "  {path}\n"
            "Edit the file if needed. Install it? (y/n) "
        )

    def confirm(self, name: str, path: Path) -> str:
        print()
        print("=" * 60)
        print("REVIEW GENERATED CODE")
        print("=" * 60)
        return prompt(self.message.format(name=name, path=path))


class AutoApprover:
    """Approve every candidate. Use for tests and trusted contexts."""

    def confirm(self, name: str, path: Path) -> str:
        return APPROVE_ANSWER


class AutoDecliner:
    """Decline every candidate."""

    def confirm(self, name: str, path: Path) -> str:
        return "n"


def reset_directory(path: Path) -> None:
    """Remove ``path`` entirely and recreate it empty."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


class QuarantineGate:
    """Stage candidates for review before they are committed."""

    def __init__(self, directory: Path | str, store: CapabilityStore, approver: Approver | None = None):
        self.directory = Path(directory)
        self.store = store
        self.approver = approver or ConsoleApprover()
        self.directory.mkdir(parents=True, exist_ok=True)

    def stage(self, name: str, candidate: str) -> str:
        """Hold ``candidate`` for review and return the approved text.

        Returns:
            The staged file's contents at approval time, including any edits
            the reviewer made.

        Raises:
            DeclinedError: If the reviewer answers anything but "y".
        """
        validate_name(name)
        reset_directory(self.directory)

        version = self.store.next_version(name)
        staged = self.directory / module_filename(name, version)
        staged.write_text(candidate, encoding="utf-8")
        logger.info("staged candidate name=%s version=%s path=%s", name, version, staged)

        try:
            answer = self.approver.confirm(name, staged)
            if (answer or "").strip().lower() != APPROVE_ANSWER:
                logger.info("candidate declined name=%s version=%s", name, version)
                raise DeclinedError(name)
            approved = staged.read_text(encoding="utf-8")
        finally:
            staged.unlink(missing_ok=True)

        if approved != candidate:
            logger.info("candidate edited during review name=%s", name)
        logger.info("candidate approved name=%s version=%s", name, version)
        return approved

    def staged_files(self) -> list[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(p for p in self.directory.iterdir() if p.is_file())


__all__ = [
    "Approver",
    "ConsoleApprover",
    "AutoApprover",
    "AutoDecliner",
    "QuarantineGate",
    "reset_directory",
]
