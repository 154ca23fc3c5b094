"""
LLM client for chat completions over an OpenAI-compatible API (OpenRouter by default).

Handles:
- Chat completions with optional tool-use
- Token usage logging per bot
- Tool-use loop dispatching to a SkillRegistry (call -> execute -> call -> ... -> text)
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx

from .skills import SkillError, SkillRegistry, SkillRuntimeContext

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "anthropic/claude-sonnet-4"


class LLMClient:
    """Chat-completions client that can run skill tools."""

    def __init__(
        self,
        api_key: str,
        bot_name: str,
        model: str = DEFAULT_MODEL,
        base_url: str = OPENROUTER_BASE_URL,
    ):
        self.api_key = api_key
        self.bot_name = bot_name
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(timeout=60.0)

    def chat(
        self,
        messages: List[Dict],
        tools: Optional[List[Dict]] = None,
        log_context: Optional[Dict] = None,
    ) -> Dict:
        """Single chat completion. Returns the assistant message dict."""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.bot_name,
        }

        payload: Dict[str, Any] = {"model": self.model, "messages": messages}
        if tools:
            payload["tools"] = tools

        start = time.time()
        response = self.client.post(
            f"{self.base_url}/chat/completions",
            headers=headers,
            json=payload,
        )
        response.raise_for_status()
        result = response.json()
        duration_ms = round((time.time() - start) * 1000)

        usage = result.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)

        logger.info(
            f"[{self.bot_name}] tokens: {prompt_tokens}p + {completion_tokens}c",
            extra={
                "model": self.model,
                "tokens_in": prompt_tokens,
                "tokens_out": completion_tokens,
                "duration_ms": duration_ms,
                **(log_context or {}),
            },
        )

        return result["choices"][0]["message"]

    def _run_tool(
        self,
        registry: SkillRegistry,
        wire_name: str,
        raw_args: Any,
        context: SkillRuntimeContext,
    ) -> Dict[str, Any]:
        name = registry.resolve_wire_name(wire_name)
        if not isinstance(raw_args, str):
            raw_args = json.dumps(raw_args or {})

        try:
            result = registry.execute_tool(name, raw_args, context)
        except SkillError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return {"error": str(e)}

        payload: Dict[str, Any] = {"content": result.content}
        if result.metadata:
            payload["metadata"] = result.metadata
        return payload

    def chat_with_tools(
        self,
        messages: List[Dict],
        system_prompt: Optional[str],
        registry: SkillRegistry,
        context_factory: Callable[[], SkillRuntimeContext] = SkillRuntimeContext,
        max_iterations: int = 5,
        log_context: Optional[Dict] = None,
    ) -> str:
        """
        Full tool-use loop. Returns final text response.

        Args:
            messages: Conversation messages [{"role": ..., "content": ...}]
            system_prompt: System prompt to prepend
            registry: Skills whose tools the model may call
            context_factory: Builds a fresh SkillRuntimeContext per tool call
            max_iterations: Max tool-use rounds
            log_context: Structured logging context (chat_id, user_id, etc.)
        """
        conversation: List[Dict] = []
        if system_prompt:
            conversation.append({"role": "system", "content": system_prompt})
        conversation.extend(messages)

        tools = registry.to_openai_tools()

        for iteration in range(max_iterations):
            try:
                response = self.chat(conversation, tools=tools, log_context=log_context)
            except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
                logger.error(f"LLM API error: {e}", extra=log_context or {})
                return f"Error communicating with AI: {e}"

            tool_calls = response.get("tool_calls")
            if not tool_calls:
                return response.get("content") or "I wasn't able to generate a response."

            conversation.append(response)

            for tool_call in tool_calls:
                fn = tool_call["function"]
                wire_name = fn["name"]
                logger.info(f"Tool call [{iteration + 1}]: {wire_name}", extra=log_context or {})

                tool_start = time.time()
                result = self._run_tool(registry, wire_name, fn.get("arguments", ""), context_factory())
                logger.debug(
                    f"Tool result [{iteration + 1}]: {wire_name}",
                    extra={
                        "duration_ms": round((time.time() - tool_start) * 1000),
                        "success": "error" not in result,
                        **(log_context or {}),
                    },
                )

                conversation.append({
                    "role": "tool",
                    "tool_call_id": tool_call["id"],
                    "content": json.dumps(result, default=str),
                })

        return "I hit the maximum number of steps. Could you simplify your request?"
