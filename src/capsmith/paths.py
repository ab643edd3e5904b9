"""Default filesystem locations."""

from __future__ import annotations

import os
from pathlib import Path


CODE_DIR_NAME = "code"
QUARANTINE_DIR_NAME = "quarantine"
FILES_DIR_NAME = "files"


def default_output_root() -> Path:
    """Root for generated code, quarantine and capability files.

    ``CAPSMITH_OUTPUT_DIR`` wins; otherwise ``./output``.
    """
    env_root = os.environ.get("CAPSMITH_OUTPUT_DIR")
    if env_root:
        return Path(env_root).expanduser().resolve()
    return (Path.cwd() / "output").resolve()


def code_dir(root: Path) -> Path:
    return root / CODE_DIR_NAME


def quarantine_dir(root: Path) -> Path:
    return root / QUARANTINE_DIR_NAME


def files_dir(root: Path) -> Path:
    return root / FILES_DIR_NAME


__all__ = [
    "CODE_DIR_NAME",
    "QUARANTINE_DIR_NAME",
    "FILES_DIR_NAME",
    "default_output_root",
    "code_dir",
    "quarantine_dir",
    "files_dir",
]
