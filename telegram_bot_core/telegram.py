"""
Telegram Bot API client - the two calls a bot needs: getUpdates and sendMessage.

Every failure surfaces as a GatewayError. status_code 0 means no HTTP response
was obtained (timeout, DNS, connection refused); anything else is the HTTP
status or the Bot API error_code. Nothing here retries.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE_URL = "https://api.telegram.org"
SEND_MESSAGE_TIMEOUT = 15.0


class GatewayError(Exception):
    """A failed Bot API call."""

    def __init__(self, method: str, status_code: int, message: str):
        super().__init__(message)
        self.method = method
        self.status_code = status_code
        self.message = message

    @property
    def is_transport_error(self) -> bool:
        return self.status_code == 0

    def __repr__(self):
        return f"GatewayError(method={self.method!r}, status_code={self.status_code}, message={self.message!r})"


@dataclass
class SentMessage:
    """Telegram's acknowledgment of a sent message."""

    message_id: int
    date: Optional[int]
    chat_id: Optional[int]
    text: Optional[str]
    thread_id: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_api(cls, result: Dict[str, Any]) -> "SentMessage":
        chat = result.get("chat") or {}
        return cls(
            message_id=result["message_id"],
            date=result.get("date"),
            chat_id=chat.get("id"),
            text=result.get("text"),
            thread_id=result.get("message_thread_id"),
            raw=result,
        )


def _redact(text: str, bot_token: str) -> str:
    if not bot_token:
        return text
    return text.replace(bot_token, "<redacted>")


def _call_api(
    bot_token: str,
    method: str,
    payload: Dict[str, Any],
    timeout: float,
) -> Tuple[int, Any]:
    """
    POST one JSON payload to a Bot API method.

    Args:
        bot_token: Bot token from @BotFather
        method: Bot API method name (getUpdates, sendMessage)
        payload: JSON-serializable request body
        timeout: Request timeout in seconds

    Returns:
        (HTTP status, decoded JSON response body unmodified)
    """
    url = f"{TELEGRAM_API_BASE_URL}/bot{bot_token}/{method}"

    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.post(
                url,
                headers={"Content-Type": "application/json"},
                json=payload,
            )
    except httpx.TimeoutException:
        raise GatewayError(
            method, 0, f"Telegram {method} request timed out after {timeout:g}s"
        ) from None
    except httpx.RequestError as e:
        raise GatewayError(
            method, 0, f"Telegram {method} request failed: {_redact(str(e), bot_token)}"
        ) from None

    status = response.status_code
    logger.debug(f"Telegram {method} -> {status}")

    if not 200 <= status < 300:
        body = response.text.strip() or "(empty response body)"
        raise GatewayError(method, status, f"Telegram {method} returned {status}: {body}")

    try:
        return status, response.json()
    except ValueError:
        raise GatewayError(method, status, f"Telegram {method} returned invalid JSON") from None


def _unwrap_result(method: str, status: int, envelope: Any) -> Any:
    """Return envelope["result"], raising GatewayError unless ok is true.

    The error status is Telegram's error_code, or the HTTP status when absent.
    """
    if not isinstance(envelope, dict) or envelope.get("ok") is not True:
        envelope = envelope if isinstance(envelope, dict) else {}
        error_code = envelope.get("error_code")
        if isinstance(error_code, int):
            status = error_code
        detail = envelope.get("description")
        if not isinstance(detail, str):
            detail = "unknown Telegram API error"
        raise GatewayError(method, status, f"Telegram {method} error: {detail}")
    return envelope.get("result")


def get_updates(
    bot_token: str,
    offset: Optional[int] = None,
    timeout_seconds: int = 20,
) -> List[Dict[str, Any]]:
    """
    Long-poll for new message updates.

    Args:
        bot_token: Bot token
        offset: First update_id to return; omitted from the request when None
        timeout_seconds: Server-side long-poll wait

    Returns:
        Update dicts in the order Telegram sent them
    """
    payload: Dict[str, Any] = {
        "timeout": timeout_seconds,
        "allowed_updates": ["message"],
    }
    if offset is not None:
        payload["offset"] = offset

    # the HTTP deadline has to outlast the long-poll itself
    request_timeout = max(5.0, float(timeout_seconds + 10))
    status, envelope = _call_api(bot_token, "getUpdates", payload, request_timeout)
    updates = _unwrap_result("getUpdates", status, envelope)
    return updates if updates is not None else []


def send_message(
    bot_token: str,
    chat_id: int,
    text: str,
    thread_id: Optional[int] = None,
    parse_mode: Optional[str] = None,
) -> SentMessage:
    """
    Send one text message.

    Args:
        bot_token: Bot token
        chat_id: Target chat
        text: Message text (at most 4096 characters, see utils.split_message_text)
        thread_id: Forum topic to post into
        parse_mode: "MarkdownV2", "HTML" or "Markdown"

    Returns:
        SentMessage built from the API result
    """
    payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
    if thread_id is not None:
        payload["message_thread_id"] = thread_id
    if parse_mode is not None:
        payload["parse_mode"] = parse_mode

    status, envelope = _call_api(bot_token, "sendMessage", payload, SEND_MESSAGE_TIMEOUT)
    result = _unwrap_result("sendMessage", status, envelope)
    if not isinstance(result, dict) or "message_id" not in result:
        raise GatewayError("sendMessage", status, "Telegram sendMessage error: result missing message_id")
    return SentMessage.from_api(result)
