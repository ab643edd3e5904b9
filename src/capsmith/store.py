"""Durable, versioned storage of generated capabilities.

Layout of a store directory::

    code/
      dependencies.json      shared manifest for every capability
      addNumbers.py          version 1
      addNumbers2.py         version 2
      addNumbers.json        spec (overwritten on regeneration)

Versions are append-only: put() always writes a new file and never touches an
existing one. The latest version is whatever the directory says it is.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from capsmith.errors import NotFoundError, ValidationError
from capsmith.resolver import DependencyInstaller, PipInstaller, find_imports, merge_dependencies

logger = logging.getLogger(__name__)

MODULE_SUFFIX = ".py"
SPEC_SUFFIX = ".json"
MANIFEST_NAME = "dependencies.json"
MANIFEST_PROJECT_NAME = "capsmith-capabilities"

# A trailing digit would collide with the version suffix ("tool2.py").
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*[A-Za-z_]$|^[A-Za-z_]$")


def validate_name(name: Any) -> str:
    """Return ``name`` if it is usable as a capability name."""
    if not isinstance(name, str) or not name:
        raise ValidationError("Capability name is required")
    if not _NAME_RE.match(name):
        raise ValidationError(
            f"Capability name must be an identifier that does not end in a digit: {name!r}"
        )
    return name


def module_filename(name: str, version: int) -> str:
    """File name for a version; version 1 carries no numeric suffix."""
    if version < 1:
        raise ValidationError(f"Version numbers start at 1, got {version}")
    if version == 1:
        return f"{name}{MODULE_SUFFIX}"
    return f"{name}{version}{MODULE_SUFFIX}"


def scan_latest_version(directory: Path, name: str) -> int | None:
    """Highest version of ``name`` stored in ``directory``, or None."""
    if not directory.is_dir():
        return None
    pattern = re.compile(rf"^{re.escape(name)}(\d*){re.escape(MODULE_SUFFIX)}$")
    latest: int | None = None
    for entry in directory.iterdir():
        match = pattern.match(entry.name)
        if not match or not entry.is_file():
            continue
        version = int(match.group(1)) if match.group(1) else 1
        latest = version if latest is None else max(latest, version)
    return latest


class CapabilityStore:
    """Versioned source modules, specs and a shared dependency manifest."""

    def __init__(self, root: Path | str, installer: DependencyInstaller | None = None):
        """Open (and create if needed) a store.

        Args:
            root: Directory holding modules, specs and the manifest.
            installer: Runs after each put(). Defaults to PipInstaller.
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self.installer = installer if installer is not None else PipInstaller()

    # =========================================================================
    # Versions
    # =========================================================================

    def latest_version(self, name: str) -> int | None:
        """Return the latest stored version of ``name``, or None."""
        return scan_latest_version(self.root, validate_name(name))

    def next_version(self, name: str) -> int:
        latest = self.latest_version(name)
        return 1 if latest is None else latest + 1

    def module_path(self, name: str, version: int) -> Path:
        return self.root / module_filename(validate_name(name), version)

    def latest_path(self, name: str) -> Path:
        """Path of the latest version, raising NotFoundError when absent."""
        version = self.latest_version(name)
        if version is None:
            raise NotFoundError(name)
        return self.module_path(name, version)

    def put(self, name: str, source: str) -> int:
        """Store ``source`` as the next version of ``name``.

        Also merges the module's imports into the manifest and runs the
        installer once for the whole store.

        Returns:
            The version number that was written.
        """
        validate_name(name)
        if not isinstance(source, str) or not source.strip():
            raise ValidationError(f"Source code for capability '{name}' is required")

        version = self.next_version(name)
        path = self.module_path(name, version)
        if path.exists():
            raise ValidationError(f"Refusing to overwrite existing version: {path}")
        path.write_text(source, encoding="utf-8")
        logger.info("stored capability name=%s version=%s path=%s", name, version, path)

        # Unparseable source is still stored: loading it faults in the
        # sandbox, which is what drives the repair loop.
        try:
            modules = find_imports(source)
        except ValidationError as e:
            logger.warning("skipping dependency scan name=%s version=%s error=%s", name, version, e)
            modules = frozenset()

        self.update_dependencies(modules)
        return version

    def read(self, name: str, version: int | None = None) -> str:
        """Return the source of ``version`` (default: latest)."""
        if version is None:
            path = self.latest_path(name)
        else:
            path = self.module_path(name, version)
            if not path.is_file():
                raise NotFoundError(name, f"Capability '{name}' has no version {version}")
        return path.read_text(encoding="utf-8")

    def names(self) -> list[str]:
        """Names of all capabilities with at least one stored version."""
        found = set()
        for entry in self.root.glob(f"*{MODULE_SUFFIX}"):
            base = entry.name[: -len(MODULE_SUFFIX)].rstrip("0123456789")
            if _NAME_RE.match(base):
                found.add(base)
        return sorted(found)

    # =========================================================================
    # Specs
    # =========================================================================

    def spec_path(self, name: str) -> Path:
        return self.root / f"{validate_name(name)}{SPEC_SUFFIX}"

    def put_spec(self, name: str, spec: dict[str, Any] | str) -> Path:
        """Write (or overwrite) the spec document for ``name``."""
        path = self.spec_path(name)
        if isinstance(spec, str):
            spec = json.loads(spec)
        path.write_text(json.dumps(spec, indent=2), encoding="utf-8")
        logger.info("stored spec name=%s path=%s", name, path)
        return path

    def read_spec(self, name: str) -> dict[str, Any]:
        path = self.spec_path(name)
        if not path.is_file():
            raise NotFoundError(name, f"No spec found for capability '{name}'")
        return json.loads(path.read_text(encoding="utf-8"))

    def list_specs(self) -> list[dict[str, Any]]:
        """All stored specs for capabilities that have source."""
        specs = []
        for name in self.names():
            if self.spec_path(name).is_file():
                specs.append(self.read_spec(name))
        return specs

    # =========================================================================
    # Dependency manifest
    # =========================================================================

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_NAME

    def read_manifest(self) -> dict[str, Any]:
        if self.manifest_path.is_file():
            return json.loads(self.manifest_path.read_text(encoding="utf-8"))
        return {"name": MANIFEST_PROJECT_NAME, "version": "1.0.0", "dependencies": {}}

    def dependencies(self) -> dict[str, str]:
        return dict(self.read_manifest().get("dependencies") or {})

    def update_dependencies(self, modules: frozenset[str]) -> dict[str, str]:
        """Merge ``modules`` into the manifest and install the result."""
        manifest = self.read_manifest()
        merged = merge_dependencies(manifest.get("dependencies") or {}, modules)
        manifest["dependencies"] = merged
        self.manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        logger.debug("manifest updated dependencies=%s", sorted(merged))
        self.installer.install(merged)
        return merged


__all__ = [
    "MODULE_SUFFIX",
    "MANIFEST_NAME",
    "CapabilityStore",
    "module_filename",
    "scan_latest_version",
    "validate_name",
]
