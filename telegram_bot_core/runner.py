"""
BotRunner — Core bot orchestrator.

The runner owns:
- LLM client (built in) and the skill registry it calls tools from
- Message processing (diagnostics, tool-use loop, simple chat)
- Bot configuration (identity, system prompt, skills, allowed users)

The adapter (TelegramAdapter) owns the Telegram side: polling and replies.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .ai import DEFAULT_MODEL, OPENROUTER_BASE_URL, LLMClient
from .skills import SkillRegistry, SkillRuntimeContext, create_empty_registry, load_skills

logger = logging.getLogger(__name__)


def _parse_user_ids(raw: str) -> List[int]:
    ids = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError:
            raise ValueError(f"Invalid TELEGRAM_ALLOWED_USER_IDS entry: {part!r}") from None
    return ids


@dataclass
class BotConfig:
    """Configuration for a bot.

    Required:
        bot_name: Bot display name (also sent as X-Title to the LLM API)
        version: Version string
        system_prompt: AI system prompt

    AI options:
        model: Model ID (default: anthropic/claude-sonnet-4)
        llm_base_url: OpenAI-compatible API base URL

    Skills:
        skill_dirs: Directories to load skills from
        skill_config: Per-skill config keyed by skill id

    Telegram:
        allowed_user_ids: Telegram user IDs the bot answers; everyone else is dropped
        poll_timeout_seconds: getUpdates long-poll wait

    Optional:
        diagnostic_commands: Commands that trigger diagnostic info
    """

    bot_name: str
    version: str
    system_prompt: str
    model: str = DEFAULT_MODEL
    llm_base_url: str = OPENROUTER_BASE_URL
    skill_dirs: List[str] = field(default_factory=list)
    skill_config: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    allowed_user_ids: List[int] = field(default_factory=list)
    poll_timeout_seconds: int = 20
    diagnostic_commands: List[str] = field(
        default_factory=lambda: [
            "status", "info", "diag", "diagnostics", "version", "health", "ping"
        ]
    )

    @classmethod
    def from_env(cls, **kwargs) -> "BotConfig":
        """Build a config, filling allowed users and skill dirs from the environment.

        TELEGRAM_ALLOWED_USER_IDS: comma-separated user IDs
        BOT_SKILL_DIRS: skill directories separated by os.pathsep
        """
        if "allowed_user_ids" not in kwargs:
            kwargs["allowed_user_ids"] = _parse_user_ids(
                os.environ.get("TELEGRAM_ALLOWED_USER_IDS", "")
            )
        if "skill_dirs" not in kwargs:
            raw_dirs = os.environ.get("BOT_SKILL_DIRS", "")
            kwargs["skill_dirs"] = [d for d in raw_dirs.split(os.pathsep) if d]
        return cls(**kwargs)


class BotRunner:
    """
    Core bot orchestrator with built-in AI.

        config = BotConfig.from_env(
            bot_name="Cortex",
            version="1.0.0",
            system_prompt="You are a helpful assistant...",
        )
        BotRunner(config=config).start()

    Pass chat_fn to bypass the built-in AI (tests, custom backends):
        BotRunner(config=config, chat_fn=my_chat_fn).start()
    """

    def __init__(
        self,
        config: BotConfig,
        adapter=None,
        chat_fn: Optional[Callable[[List[Dict], Optional[str]], str]] = None,
        registry: Optional[SkillRegistry] = None,
    ):
        self.config = config
        self.chat_fn = chat_fn
        self._start_time = 0.0

        if registry is not None:
            self.registry = registry
        elif config.skill_dirs:
            self.registry = load_skills(config.skill_dirs, config.skill_config)
        else:
            self.registry = create_empty_registry()

        # Built-in AI (unless chat_fn is injected)
        if not chat_fn:
            api_key = os.environ.get("OPENROUTER_API_KEY")
            if not api_key:
                raise ValueError("Missing OPENROUTER_API_KEY")
            self.ai = LLMClient(
                api_key=api_key,
                bot_name=config.bot_name,
                model=config.model,
                base_url=config.llm_base_url,
            )
        else:
            self.ai = None

        # Lazy import avoids requiring TELEGRAM_BOT_TOKEN at import time
        if adapter is not None:
            self.adapter = adapter
        else:
            from .telegram_adapter import TelegramAdapter

            self.adapter = TelegramAdapter()

    def _skill_context(self) -> SkillRuntimeContext:
        return SkillRuntimeContext()

    def handle_message(
        self,
        user_text: str,
        messages: List[Dict],
        log_context: Optional[Dict] = None,
    ) -> str:
        """
        Process a message. Called by the adapter.

        Args:
            user_text: Raw user text (for diagnostic command detection)
            messages: Conversation as LLM messages [{"role": ..., "content": ...}]
            log_context: Structured logging context from the adapter

        Returns:
            Response string
        """
        command = user_text.strip().lstrip("/").lower()
        if command in self.config.diagnostic_commands:
            return self._get_diagnostic_info()

        if self.chat_fn:
            return self.chat_fn(messages, self.config.system_prompt)

        if len(self.registry):
            return self.ai.chat_with_tools(
                messages=messages,
                system_prompt=self.config.system_prompt,
                registry=self.registry,
                context_factory=self._skill_context,
                log_context=log_context,
            )

        # Simple chat (no tools)
        conversation = []
        if self.config.system_prompt:
            conversation.append({"role": "system", "content": self.config.system_prompt})
        conversation.extend(messages)
        response = self.ai.chat(conversation, log_context=log_context)
        return response.get("content") or "I wasn't able to generate a response."

    def _get_diagnostic_info(self) -> str:
        """Generate diagnostic information."""
        uptime_seconds = int(time.time() - self._start_time) if self._start_time else 0
        hours, remainder = divmod(uptime_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        uptime_str = f"{hours}h {minutes}m {seconds}s"

        return (
            f"{self.config.bot_name} diagnostics\n"
            f"Version: {self.config.version}\n"
            f"Uptime: {uptime_str}\n"
            f"Tools: {len(self.registry)}"
        )

    def start(self, **adapter_kwargs):
        """Start the bot via its adapter.

        Args:
            **adapter_kwargs: Passed to adapter.start() (e.g., register_signals=False).
        """
        self._start_time = time.time()
        logger.info(f"Starting {self.config.bot_name} v{self.config.version}...")
        self.adapter.start(self, **adapter_kwargs)
