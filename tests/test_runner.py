"""Tests for telegram_bot_core.runner"""

import os
from unittest.mock import MagicMock, patch

import pytest

from telegram_bot_core.runner import BotConfig, BotRunner
from telegram_bot_core.skills import SkillLoadError, create_empty_registry, load_skills

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")


@pytest.fixture
def mock_config():
    """Create a test config."""
    return BotConfig(
        bot_name="Test Bot",
        version="1.0.0",
        system_prompt="You are a test bot.",
        allowed_user_ids=[42],
    )


@pytest.fixture
def mock_adapter():
    """Mock adapter that doesn't require a Telegram token."""
    return MagicMock()


@pytest.fixture
def mock_chat_fn():
    """Create a mock chat function."""
    def chat_fn(messages, system_prompt=None):
        return "Mock response"
    return chat_fn


class TestBotConfig:
    """Tests for BotConfig dataclass"""

    def test_required_fields(self):
        config = BotConfig(bot_name="Test", version="1.0.0", system_prompt="Test prompt")
        assert config.bot_name == "Test"
        assert config.version == "1.0.0"
        assert config.system_prompt == "Test prompt"

    def test_defaults(self):
        config = BotConfig(bot_name="Test", version="1.0.0", system_prompt="Test prompt")
        assert config.model == "anthropic/claude-sonnet-4"
        assert config.skill_dirs == []
        assert config.allowed_user_ids == []
        assert config.poll_timeout_seconds == 20
        assert "status" in config.diagnostic_commands
        assert "ping" in config.diagnostic_commands

    @patch.dict(
        "os.environ",
        {"TELEGRAM_ALLOWED_USER_IDS": "42, 77,", "BOT_SKILL_DIRS": os.pathsep.join(["/a", "/b"])},
    )
    def test_from_env(self):
        config = BotConfig.from_env(bot_name="Test", version="1.0.0", system_prompt="p")
        assert config.allowed_user_ids == [42, 77]
        assert config.skill_dirs == ["/a", "/b"]

    @patch.dict("os.environ", {"TELEGRAM_ALLOWED_USER_IDS": "42"})
    def test_from_env_explicit_values_win(self):
        config = BotConfig.from_env(
            bot_name="Test", version="1.0.0", system_prompt="p", allowed_user_ids=[1]
        )
        assert config.allowed_user_ids == [1]

    @patch.dict("os.environ", {}, clear=True)
    def test_from_env_empty(self):
        config = BotConfig.from_env(bot_name="Test", version="1.0.0", system_prompt="p")
        assert config.allowed_user_ids == []
        assert config.skill_dirs == []

    @patch.dict("os.environ", {"TELEGRAM_ALLOWED_USER_IDS": "42,alice"})
    def test_from_env_invalid_user_id(self):
        with pytest.raises(ValueError, match="alice"):
            BotConfig.from_env(bot_name="Test", version="1.0.0", system_prompt="p")


class TestBotRunnerInit:
    """Tests for BotRunner initialization"""

    def test_init_with_chat_fn(self, mock_config, mock_chat_fn, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter, chat_fn=mock_chat_fn)

        assert runner.chat_fn == mock_chat_fn
        assert runner.ai is None
        assert len(runner.registry) == 0

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "sk-test-key"})
    def test_init_with_built_in_ai(self, mock_config, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter)

        assert runner.ai is not None
        assert runner.ai.bot_name == "Test Bot"

    @patch.dict("os.environ", {}, clear=True)
    def test_init_missing_api_key_raises(self, mock_config, mock_adapter):
        with pytest.raises(ValueError, match="Missing OPENROUTER_API_KEY"):
            BotRunner(config=mock_config, adapter=mock_adapter)

    @patch.dict("os.environ", {"TELEGRAM_BOT_TOKEN": "123:abc", "OPENROUTER_API_KEY": "sk-test"})
    def test_default_telegram_adapter(self, mock_config):
        from telegram_bot_core.telegram_adapter import TelegramAdapter

        runner = BotRunner(config=mock_config)
        assert isinstance(runner.adapter, TelegramAdapter)

    def test_loads_skills_from_config(self, mock_chat_fn, mock_adapter):
        config = BotConfig(
            bot_name="Test",
            version="1.0.0",
            system_prompt="p",
            skill_dirs=[os.path.join(FIXTURES, "skills_valid")],
        )
        runner = BotRunner(config=config, adapter=mock_adapter, chat_fn=mock_chat_fn)
        assert "echo.say" in runner.registry

    def test_skill_load_failure_propagates(self, mock_chat_fn, mock_adapter):
        config = BotConfig(
            bot_name="Test",
            version="1.0.0",
            system_prompt="p",
            skill_dirs=[os.path.join(FIXTURES, "skills_dup")],
        )
        with pytest.raises(SkillLoadError):
            BotRunner(config=config, adapter=mock_adapter, chat_fn=mock_chat_fn)

    def test_start_delegates_to_adapter(self, mock_config, mock_chat_fn, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter, chat_fn=mock_chat_fn)

        runner.start(register_signals=False)

        mock_adapter.start.assert_called_once_with(runner, register_signals=False)
        assert runner._start_time > 0


class TestBotRunnerDiagnostics:
    def test_diagnostic_via_handle_message(self, mock_config, mock_chat_fn, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter, chat_fn=mock_chat_fn)
        runner._start_time = 1000

        with patch("time.time", return_value=1060):
            result = runner.handle_message("status", [{"role": "user", "content": "status"}])

        assert "1.0.0" in result
        assert "Test Bot" in result
        assert "1m" in result

    def test_slash_command(self, mock_config, mock_chat_fn, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter, chat_fn=mock_chat_fn)

        result = runner.handle_message("/ping", [{"role": "user", "content": "/ping"}])

        assert "Test Bot diagnostics" in result

    def test_diagnostic_info_uptime_formatting(self, mock_config, mock_chat_fn, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter, chat_fn=mock_chat_fn)
        runner._start_time = 1000

        with patch("time.time", return_value=1000 + 3661):
            info = runner._get_diagnostic_info()

        assert "1h" in info
        assert "1m" in info
        assert "Tools: 0" in info


class TestBotRunnerChatFn:
    def test_chat_fn_called_with_messages_and_prompt(self, mock_config, mock_adapter):
        received = {}

        def capture_fn(messages, system_prompt=None):
            received["messages"] = messages
            received["system_prompt"] = system_prompt
            return "response"

        runner = BotRunner(config=mock_config, adapter=mock_adapter, chat_fn=capture_fn)
        messages = [{"role": "user", "content": "Hello"}]
        result = runner.handle_message("Hello", messages)

        assert result == "response"
        assert received["messages"] == messages
        assert received["system_prompt"] == "You are a test bot."


class TestBotRunnerBuiltInAI:
    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "sk-test"})
    def test_simple_chat_without_skills(self, mock_config, mock_adapter):
        runner = BotRunner(config=mock_config, adapter=mock_adapter, registry=create_empty_registry())
        runner.ai.chat = MagicMock(return_value={"content": "AI says hello"})

        result = runner.handle_message("Hello", [{"role": "user", "content": "Hello"}])

        assert result == "AI says hello"
        conversation = runner.ai.chat.call_args[0][0]
        assert conversation[0] == {"role": "system", "content": "You are a test bot."}

    @patch.dict("os.environ", {"OPENROUTER_API_KEY": "sk-test"})
    def test_tool_loop_with_skills(self, mock_config, mock_adapter):
        registry = load_skills([os.path.join(FIXTURES, "skills_valid")])
        runner = BotRunner(config=mock_config, adapter=mock_adapter, registry=registry)
        runner.ai.chat_with_tools = MagicMock(return_value="Tool result")

        messages = [{"role": "user", "content": "Use the tool"}]
        log_context = {"context": {"topic_key": "555"}}
        result = runner.handle_message("Use the tool", messages, log_context=log_context)

        assert result == "Tool result"
        kwargs = runner.ai.chat_with_tools.call_args.kwargs
        assert kwargs["messages"] == messages
        assert kwargs["registry"] is registry
        assert kwargs["system_prompt"] == "You are a test bot."
        assert kwargs["log_context"] == log_context
