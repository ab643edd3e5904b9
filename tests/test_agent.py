"""Tests for the DynamicAgent conversation loop."""

from unittest.mock import MagicMock

import pytest

from capsmith.agent import FUNCTION_CREATED, AgentConfig, DynamicAgent
from capsmith.errors import DeclinedError, RepairExhaustedError
from capsmith.generator import DEFAULT_MODEL, FunctionCall, GeneratorReply
from capsmith.prompts import REQUEST_FUNCTION_NAME
from capsmith.quarantine import AutoApprover, AutoDecliner
from capsmith.resolver import NullInstaller


ADD_MODULE = GeneratorReply(
    text="---\ndef addNumbers(args):\n    return args['a'] + args['b']\n---"
)
ADD_SPEC = GeneratorReply(
    text=(
        '---\n{"name": "addNumbers", "description": "Add two numbers", '
        '"parameters": {"type": "object", "properties": {"a": {"type": "number"}, '
        '"b": {"type": "number"}}}}\n---'
    )
)


def call_reply(name, arguments, text=""):
    return GeneratorReply(text=text, function_call=FunctionCall(name=name, arguments=arguments))


class TestAgentConfig:
    """Tests for AgentConfig."""

    def test_default_values(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CAPSMITH_MODEL", raising=False)
        monkeypatch.setenv("CAPSMITH_OUTPUT_DIR", str(tmp_path))
        config = AgentConfig.from_env()
        assert config.model == DEFAULT_MODEL
        assert config.max_tokens == 4096
        assert config.max_attempts == 3
        assert config.output_dir == tmp_path.resolve()

    def test_env_model(self, monkeypatch):
        monkeypatch.setenv("CAPSMITH_MODEL", "env-model")
        assert AgentConfig.from_env().model == "env-model"

    def test_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("CAPSMITH_MODEL", "env-model")
        config = AgentConfig.from_env(model="cli-model", output_dir=tmp_path, max_tokens=None)
        assert config.model == "cli-model"
        assert config.max_tokens == 4096
        assert config.output_dir == tmp_path.resolve()


class TestDynamicAgent:
    """Tests for DynamicAgent with a scripted generator."""

    @pytest.fixture
    def generator(self):
        return MagicMock()

    @pytest.fixture
    def config(self, tmp_path):
        return AgentConfig(output_dir=tmp_path)

    @pytest.fixture
    def agent(self, config, generator):
        return DynamicAgent(
            config=config,
            generator=generator,
            approver=AutoApprover(),
            installer=NullInstaller(),
        )

    def test_initial_state(self, agent):
        assert agent.messages[0].role == "system"
        assert [s["name"] for s in agent.function_specs] == [REQUEST_FUNCTION_NAME]

    def test_plain_answer(self, agent, generator):
        generator.complete.return_value = GeneratorReply(text="Hello!")
        assert agent.chat("Hi") == "Hello!"
        assert [m.role for m in agent.messages] == ["system", "user", "assistant"]
        assert len(agent.turns) == 1

    def test_request_then_call(self, agent, generator, tmp_path):
        generator.complete.side_effect = [
            call_reply(REQUEST_FUNCTION_NAME, {"name": "addNumbers", "description": "Add a and b"}),
            ADD_MODULE,
            ADD_SPEC,
            call_reply("addNumbers", {"a": 2, "b": 3}),
            GeneratorReply(text="2 + 3 = 5"),
        ]

        assert agent.chat("What is 2 + 3?") == "2 + 3 = 5"

        function_turns = [m for m in agent.messages if m.role == "function"]
        assert [m.content for m in function_turns] == [FUNCTION_CREATED, "5"]
        assert function_turns[1].name == "addNumbers"
        assert "addNumbers" in [s["name"] for s in agent.function_specs]
        assert (tmp_path / "code" / "addNumbers.py").is_file()
        assert agent.turns[0].outcomes[0].return_value == 5

    def test_tools_offered_to_generator(self, agent, generator):
        generator.complete.return_value = GeneratorReply(text="ok")
        agent.chat("Hi")
        functions = generator.complete.call_args[0][1]
        assert functions[0]["name"] == REQUEST_FUNCTION_NAME

    def test_loads_existing_specs(self, config, generator, agent):
        agent.store.put("addNumbers", "def addNumbers(args):\n    return 0\n")
        agent.store.put_spec("addNumbers", {"name": "addNumbers", "description": "Add"})

        fresh = DynamicAgent(config=config, generator=generator, installer=NullInstaller())

        assert [s["name"] for s in fresh.function_specs] == [REQUEST_FUNCTION_NAME, "addNumbers"]

    def test_declare_replaces_existing(self, agent):
        agent.declare({"name": "addNumbers", "description": "v1"})
        agent.declare({"name": "addNumbers", "description": "v2"})
        specs = [s for s in agent.function_specs if s["name"] == "addNumbers"]
        assert specs == [{"name": "addNumbers", "description": "v2"}]

    def test_declined_request_is_answered_then_raised(self, config, generator):
        agent = DynamicAgent(
            config=config,
            generator=generator,
            approver=AutoDecliner(),
            installer=NullInstaller(),
        )
        generator.complete.side_effect = [
            call_reply(REQUEST_FUNCTION_NAME, {"name": "addNumbers", "description": "Add"}),
            ADD_MODULE,
        ]

        with pytest.raises(DeclinedError):
            agent.chat("What is 2 + 3?")

        last = agent.messages[-1]
        assert last.role == "function"
        assert last.content.startswith("Error: ")
        assert "declined" in last.content

    def test_exhausted_repairs_raise(self, agent, generator):
        agent.store.put("alwaysFails", "def alwaysFails(args):\n    raise ValueError('boom')\n")
        failing = "---\ndef alwaysFails(args):\n    raise ValueError('boom')\n---"
        generator.complete.side_effect = [
            call_reply("alwaysFails", {}),
            GeneratorReply(text=failing),
            GeneratorReply(text=failing),
        ]
        with pytest.raises(RepairExhaustedError, match="boom"):
            agent.chat("Do the thing")

    def test_final_answer_reported(self, agent, generator):
        agent.store.put("alwaysFails", "def alwaysFails(args):\n    raise ValueError('boom')\n")
        generator.complete.side_effect = [
            call_reply("alwaysFails", {}),
            GeneratorReply(text="The remote API is gone."),
            GeneratorReply(text="Sorry, that service is unavailable."),
        ]

        assert agent.chat("Do the thing") == "Sorry, that service is unavailable."
        result = [m for m in agent.messages if m.role == "function"][0].content
        assert "ValueError: boom" in result
        assert "The remote API is gone." in result

    def test_direct_call(self, agent):
        agent.store.put("addNumbers", "def addNumbers(args):\n    return args['a'] + args['b']\n")
        assert agent.call("addNumbers", {"a": 1, "b": 2}).return_value == 3


class TestDynamicAgentSessionManagement:
    """Tests for session persistence."""

    @pytest.fixture
    def agent(self, tmp_path):
        generator = MagicMock()
        generator.complete.return_value = GeneratorReply(text="Hello!")
        return DynamicAgent(
            config=AgentConfig(output_dir=tmp_path / "out"),
            generator=generator,
            installer=NullInstaller(),
        )

    def test_save_and_load(self, agent, tmp_path):
        agent.chat("Hi")
        session = tmp_path / "session.json"
        agent.save_session(session)

        agent.clear_history()
        assert len(agent.messages) == 1

        agent.load_session(session)
        assert [m.content for m in agent.messages[1:]] == ["Hi", "Hello!"]

    def test_clear_history(self, agent):
        agent.chat("Hi")
        agent.clear_history()
        assert [m.role for m in agent.messages] == ["system"]
        assert agent.turns == []


class TestDynamicAgentIntrospection:
    """Tests for describe()."""

    def test_describe(self, tmp_path):
        agent = DynamicAgent(
            config=AgentConfig(output_dir=tmp_path),
            generator=MagicMock(),
            installer=NullInstaller(),
        )
        assert "(none)" in agent.describe()

        agent.store.put("addNumbers", "def addNumbers(args):\n    return 0\n")
        agent.store.put("addNumbers", "def addNumbers(args):\n    return 1\n")
        desc = agent.describe()
        assert "DynamicAgent" in desc
        assert "addNumbers (v2)" in desc
