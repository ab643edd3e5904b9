"""Tests for the command-line entry point."""

from unittest.mock import MagicMock, patch

from capsmith import cli
from capsmith.errors import DeclinedError


class TestBuildParser:
    """Tests for argument parsing."""

    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.output_dir is None
        assert args.model is None
        assert args.reset is False

    def test_options(self):
        args = cli.build_parser().parse_args(
            ["--output-dir", "/tmp/x", "--model", "m", "--reset", "--log-level", "DEBUG"]
        )
        assert args.output_dir == "/tmp/x"
        assert args.model == "m"
        assert args.reset is True
        assert args.log_level == "DEBUG"


class TestRun:
    """Tests for the REPL loop."""

    def make_session(self, *lines):
        session = MagicMock()
        session.prompt.side_effect = list(lines)
        return session

    def test_chat_and_exit(self, capsys):
        agent = MagicMock()
        agent.chat.return_value = "5"

        cli.run(agent, self.make_session("what is 2+3?", "", "exit"))

        agent.chat.assert_called_once_with("what is 2+3?")
        out = capsys.readouterr().out
        assert "agent> 5" in out
        assert "Exiting..." in out

    def test_errors_do_not_end_session(self, capsys):
        agent = MagicMock()
        agent.chat.side_effect = [DeclinedError("addNumbers"), "ok"]

        cli.run(agent, self.make_session("first", "second", "quit"))

        captured = capsys.readouterr()
        assert "declined by user" in captured.err
        assert "agent> ok" in captured.out

    def test_eof_ends_session(self):
        agent = MagicMock()
        cli.run(agent, self.make_session(EOFError()))
        agent.chat.assert_not_called()

    def test_commands(self, capsys):
        agent = MagicMock()
        agent.describe.return_value = "DynamicAgent state"

        cli.run(agent, self.make_session(":caps", ":clear", "exit"))

        agent.clear_history.assert_called_once()
        agent.chat.assert_not_called()
        assert "DynamicAgent state" in capsys.readouterr().out

    def test_session_saved_after_each_request(self, tmp_path):
        agent = MagicMock()
        agent.chat.return_value = "hi"
        session_file = tmp_path / "session.json"

        cli.run(agent, self.make_session("hello", "exit"), session_file)

        agent.save_session.assert_called_once_with(session_file)


class TestMain:
    """Tests for main()."""

    def test_main_wires_agent(self, tmp_path):
        with (
            patch("capsmith.cli.DynamicAgent") as agent_cls,
            patch("capsmith.cli.PromptSession") as session_cls,
            patch("capsmith.cli.run") as run,
        ):
            cli.main(["--output-dir", str(tmp_path), "--model", "m"])

        config = agent_cls.call_args.kwargs["config"]
        assert config.model == "m"
        assert config.output_dir == tmp_path.resolve()
        run.assert_called_once()
        assert run.call_args[0][1] is session_cls.return_value

    def test_reset_clears_generated_code(self, tmp_path):
        stale = tmp_path / "code" / "old.py"
        stale.parent.mkdir(parents=True)
        stale.write_text("x")

        with (
            patch("capsmith.cli.DynamicAgent"),
            patch("capsmith.cli.PromptSession"),
            patch("capsmith.cli.run"),
        ):
            cli.main(["--output-dir", str(tmp_path), "--reset"])

        assert not stale.exists()
        assert (tmp_path / "code").is_dir()
        assert (tmp_path / "files").is_dir()
