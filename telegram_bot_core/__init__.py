"""
telegram-bot-core: Telegram Bot API client, skill plugins and a long-polling bot runner.

Gateway calls:
    from telegram_bot_core import get_updates, send_message, GatewayError

    updates = get_updates(token, offset=42)
    sent = send_message(token, chat_id, "hello", thread_id=7, parse_mode="MarkdownV2")

Bot with skills:
    from telegram_bot_core import BotRunner, BotConfig

    config = BotConfig.from_env(
        bot_name="Cortex",
        version="1.0.0",
        system_prompt="You are a helpful assistant...",
    )
    BotRunner(config=config).start()
"""

from .telegram import GatewayError, SentMessage, get_updates, send_message
from .utils import (
    TelegramTopic,
    escape_markdown_v2,
    escape_markdown_v2_code,
    format_topic_key,
    parse_topic_key,
    split_message_text,
)
from .skills import (
    SkillError,
    SkillLoadError,
    SkillRegistry,
    SkillRuntimeContext,
    SkillToolCall,
    SkillToolResult,
    ToolDefinition,
    create_empty_registry,
    load_skills,
)
from .runner import BotConfig, BotRunner
from .telegram_adapter import TelegramAdapter

__all__ = [
    "GatewayError",
    "SentMessage",
    "get_updates",
    "send_message",
    "TelegramTopic",
    "escape_markdown_v2",
    "escape_markdown_v2_code",
    "format_topic_key",
    "parse_topic_key",
    "split_message_text",
    "SkillError",
    "SkillLoadError",
    "SkillRegistry",
    "SkillRuntimeContext",
    "SkillToolCall",
    "SkillToolResult",
    "ToolDefinition",
    "create_empty_registry",
    "load_skills",
    "BotConfig",
    "BotRunner",
    "TelegramAdapter",
]
__version__ = "0.1.0"
