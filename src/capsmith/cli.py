"""Terminal entry point for chatting with a capsmith agent."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory

from capsmith import paths
from capsmith.agent import AgentConfig, DynamicAgent
from capsmith.errors import CapsmithError
from capsmith.logging_utils import configure_logging
from capsmith.quarantine import reset_directory

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", ":q", ":quit"}
HISTORY_FILE = ".prompt_history"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chat with an agent that writes, installs and repairs its own functions.",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Root for generated code, quarantine and files (overrides CAPSMITH_OUTPUT_DIR).",
    )
    parser.add_argument("--model", default=None, help="Model name (overrides CAPSMITH_MODEL).")
    parser.add_argument("--max-tokens", type=int, default=None, help="Max tokens per reply.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete previously generated code and files before starting.",
    )
    parser.add_argument("--session", default=None, help="Load and save conversation history here.")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (overrides CAPSMITH_LOG_LEVEL).",
    )
    parser.add_argument("--log-file", default=None, help="Log file path (defaults to stderr).")
    return parser


def _handle_command(agent: DynamicAgent, line: str) -> bool:
    """Handle a ':' command. Returns True if the line was a command."""
    if line in (":caps", ":describe"):
        print(agent.describe())
        return True
    if line == ":clear":
        agent.clear_history()
        print("History cleared.")
        return True
    return False


def run(agent: DynamicAgent, session: PromptSession, session_file: Path | None = None) -> None:
    print("Ask anything. Commands: :caps, :clear, exit")
    while True:
        try:
            question = session.prompt("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            print("Exiting...")
            break
        if _handle_command(agent, question):
            continue

        try:
            answer = agent.chat(question)
        except CapsmithError as e:
            logger.info("request failed error=%s", e)
            print(f"An error occurred: {e}", file=sys.stderr)
        else:
            print(f"agent> {answer}")
        if session_file is not None:
            agent.save_session(session_file)


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    config = AgentConfig.from_env(
        model=args.model,
        max_tokens=args.max_tokens,
        output_dir=Path(args.output_dir) if args.output_dir else None,
    )
    if args.reset:
        reset_directory(paths.code_dir(config.output_dir))
        reset_directory(paths.files_dir(config.output_dir))
        logger.info("reset generated code root=%s", config.output_dir)

    agent = DynamicAgent(config=config)

    session_file = Path(args.session).expanduser() if args.session else None
    if session_file is not None and session_file.exists():
        agent.load_session(session_file)

    history_path = config.output_dir / HISTORY_FILE
    history_path.parent.mkdir(parents=True, exist_ok=True)
    run(agent, PromptSession(history=FileHistory(str(history_path))), session_file)


__all__ = ["build_parser", "main", "run"]
