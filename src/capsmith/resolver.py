"""Dependency resolution for generated capability modules.

find_imports() reads source statically with ``ast``; nothing is executed.
Installation of the resulting manifest is delegated to an installer so tests
(and hosts with their own packaging policy) can swap it out.
"""

from __future__ import annotations

import ast
import logging
import subprocess
import sys
from typing import Mapping, Protocol, runtime_checkable

from capsmith.errors import DependencyInstallError, ValidationError

logger = logging.getLogger(__name__)

WILDCARD = "*"

BUILTIN_MODULES = frozenset(sys.stdlib_module_names) | frozenset(sys.builtin_module_names)

# Import names whose distribution on the package index has a different name.
DISTRIBUTION_NAMES = {
    "bs4": "beautifulsoup4",
    "cv2": "opencv-python",
    "dateutil": "python-dateutil",
    "docx": "python-docx",
    "dotenv": "python-dotenv",
    "jwt": "PyJWT",
    "PIL": "Pillow",
    "sklearn": "scikit-learn",
    "yaml": "PyYAML",
}


def find_imports(source: str) -> frozenset[str]:
    """Return the top-level, non-builtin module names imported by ``source``.

    Relative imports and ``__future__`` are ignored.

    Raises:
        ValidationError: If the source does not parse.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise ValidationError(f"Syntax error in capability source: {e}") from e

    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            if node.level or not node.module:
                continue
            names.add(node.module.split(".")[0])

    return frozenset(name for name in names if not is_builtin_module(name))


def is_builtin_module(name: str) -> bool:
    return name == "__future__" or name in BUILTIN_MODULES


def merge_dependencies(dependencies: Mapping[str, str], modules: frozenset[str]) -> dict[str, str]:
    """Add ``modules`` to ``dependencies`` with a wildcard constraint.

    Existing entries keep their constraint; nothing is removed.
    """
    merged = dict(dependencies)
    for module in sorted(modules):
        merged.setdefault(module, WILDCARD)
    return merged


def requirement_for(module: str, constraint: str = WILDCARD) -> str:
    """Turn a manifest entry into a pip requirement string."""
    distribution = DISTRIBUTION_NAMES.get(module, module)
    if not constraint or constraint == WILDCARD:
        return distribution
    if constraint[0].isdigit():
        return f"{distribution}=={constraint}"
    return f"{distribution}{constraint}"


@runtime_checkable
class DependencyInstaller(Protocol):
    """Installs every dependency in a manifest."""

    def install(self, dependencies: Mapping[str, str]) -> None:
        ...


class PipInstaller:
    """Install the manifest into the running interpreter with pip."""

    def __init__(self, python: str | None = None, extra_args: list[str] | None = None):
        self.python = python or sys.executable
        self.extra_args = list(extra_args or [])

    def command(self, dependencies: Mapping[str, str]) -> list[str]:
        requirements = [requirement_for(m, c) for m, c in sorted(dependencies.items())]
        return [self.python, "-m", "pip", "install", "--quiet", *self.extra_args, *requirements]

    def install(self, dependencies: Mapping[str, str]) -> None:
        if not dependencies:
            return
        cmd = self.command(dependencies)
        logger.info("installing dependencies count=%s", len(dependencies))
        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            logger.warning("pip install failed returncode=%s", result.returncode)
            raise DependencyInstallError(
                f"pip install failed with exit code {result.returncode}:\n{result.stderr.strip()}"
            )


class NullInstaller:
    """Record install requests without touching the environment."""

    def __init__(self):
        self.calls: list[dict[str, str]] = []

    def install(self, dependencies: Mapping[str, str]) -> None:
        self.calls.append(dict(dependencies))


__all__ = [
    "WILDCARD",
    "find_imports",
    "is_builtin_module",
    "merge_dependencies",
    "requirement_for",
    "DependencyInstaller",
    "PipInstaller",
    "NullInstaller",
]
