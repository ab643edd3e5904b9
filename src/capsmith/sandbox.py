"""Execution sandbox for generated capabilities.

The sandbox:
1. Looks up the latest stored version of a capability
2. Points the process working directory at a dedicated directory
3. Captures stdout, stderr and root-logger records into tagged lines
4. Loads the module through a pluggable loader and calls its entry point
   with a single argument mapping (awaiting it if it is async)
5. Restores the working directory and output streams on every exit path

Capability faults are returned as data in the ExecutionOutcome; they never
escape execute(). This is isolation of ambient state, not a security
boundary: the module runs in-process with full interpreter access.
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import io
import logging
import os
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Protocol, runtime_checkable

from capsmith.core import ExecutionContext, ExecutionOutcome, LogLine, RuntimeFault
from capsmith.errors import ValidationError
from capsmith.store import CapabilityStore

logger = logging.getLogger(__name__)

FALLBACK_ENTRY_POINT = "main"
CONTEXT_PARAMETER = "context"


@runtime_checkable
class ModuleLoader(Protocol):
    """Turns a stored module file into a callable entry point."""

    def load(self, path: Path, name: str) -> Callable[..., Any]:
        ...


class ImportlibLoader:
    """Load capability modules in-process with importlib.

    Every call executes the file afresh, so a new version (or a file edited
    during review) is always what runs.
    """

    module_prefix = "_capsmith_capability_"

    def load(self, path: Path, name: str) -> Callable[..., Any]:
        module_name = f"{self.module_prefix}{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load capability module from {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        spec.loader.exec_module(module)
        return resolve_entry_point(module, name)


def resolve_entry_point(module: Any, name: str) -> Callable[..., Any]:
    """Find the function named after the capability, falling back to main()."""
    for attr in (name, FALLBACK_ENTRY_POINT):
        entry = getattr(module, attr, None)
        if callable(entry):
            return entry
    module_name = getattr(module, "__name__", "module")
    raise AttributeError(
        f"{module_name} does not define a callable '{name}' or '{FALLBACK_ENTRY_POINT}'"
    )


class _LineCapture(io.TextIOBase):
    """A text stream that turns complete lines into tagged LogLines."""

    def __init__(self, sink: list[LogLine], level: str):
        self._sink = sink
        self._level = level
        self._pending = ""

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._sink.append(LogLine(self._level, line))
        return len(text)

    def flush_pending(self) -> None:
        if self._pending:
            self._sink.append(LogLine(self._level, self._pending))
            self._pending = ""


class _CaptureHandler(logging.Handler):
    """Route log records into the capture sink, tagged by level."""

    def __init__(self, sink: list[LogLine]):
        super().__init__(level=logging.DEBUG)
        self._sink = sink
        self.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._sink.append(LogLine(record.levelname.lower(), self.format(record)))
        except Exception:
            self.handleError(record)


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """Temporarily change the process working directory."""
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield path
    finally:
        os.chdir(previous)


@contextmanager
def captured_output(sink: list[LogLine], log_level: int = logging.INFO) -> Iterator[list[LogLine]]:
    """Temporarily send stdout, stderr and root logging into ``sink``."""
    stdout = _LineCapture(sink, "info")
    stderr = _LineCapture(sink, "error")
    handler = _CaptureHandler(sink)

    root = logging.getLogger()
    old_stdout, old_stderr = sys.stdout, sys.stderr
    old_handlers, old_level = root.handlers[:], root.level

    sys.stdout, sys.stderr = stdout, stderr
    root.handlers = [handler]
    root.setLevel(log_level)
    try:
        yield sink
    finally:
        sys.stdout, sys.stderr = old_stdout, old_stderr
        root.handlers = old_handlers
        root.setLevel(old_level)
        stdout.flush_pending()
        stderr.flush_pending()


def _accepts_context(entry: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(entry).parameters
    except (TypeError, ValueError):
        return False
    return CONTEXT_PARAMETER in params


async def _await(awaitable: Any) -> Any:
    return await awaitable


class ExecutionSandbox:
    """Run stored capabilities with their side effects contained."""

    def __init__(self, store: CapabilityStore, loader: ModuleLoader | None = None):
        self.store = store
        self.loader = loader or ImportlibLoader()

    def execute(self, name: str, working_dir: Path | str, args: Mapping[str, Any]) -> ExecutionOutcome:
        """Run the latest version of ``name`` with ``args``.

        Raises:
            NotFoundError: If no version of ``name`` is stored.
            ValidationError: If ``args`` is not a mapping.

        Returns:
            An ExecutionOutcome; anything the capability raises is recorded
            as its fault.
        """
        if not isinstance(args, Mapping):
            raise ValidationError(f"Capability arguments must be an object, got {type(args).__name__}")
        path = self.store.latest_path(name)

        working_dir = Path(working_dir).resolve()
        working_dir.mkdir(parents=True, exist_ok=True)

        logs: list[LogLine] = []
        context = ExecutionContext(
            working_dir=working_dir,
            log=lambda level, message: logs.append(LogLine(level, str(message))),
        )

        logger.debug("execute name=%s path=%s", name, path.name)
        try:
            with working_directory(working_dir), captured_output(logs):
                value = self._invoke(path, name, dict(args), context)
        except (Exception, SystemExit) as exc:
            fault = RuntimeFault.from_exception(exc)
            logger.info("capability faulted name=%s error=%s", name, fault)
            return ExecutionOutcome(logs=tuple(logs), fault=fault)

        logger.info("capability succeeded name=%s", name)
        return ExecutionOutcome(return_value=value, logs=tuple(logs))

    def _invoke(
        self,
        path: Path,
        name: str,
        args: dict[str, Any],
        context: ExecutionContext,
    ) -> Any:
        entry = self.loader.load(path, name)
        if _accepts_context(entry):
            result = entry(args, context=context)
        else:
            result = entry(args)
        if inspect.isawaitable(result):
            result = asyncio.run(_await(result))
        return result


__all__ = [
    "ModuleLoader",
    "ImportlibLoader",
    "ExecutionSandbox",
    "resolve_entry_point",
    "working_directory",
    "captured_output",
]
