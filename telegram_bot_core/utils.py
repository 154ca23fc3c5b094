"""
Telegram utilities - pure functions for message chunking, topic keys, MarkdownV2 escaping.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

TELEGRAM_MAX_MESSAGE_LENGTH = 4096

_SPLIT_BOUNDARIES = ("\n\n", "\n", " ")
_INTEGER_RE = re.compile(r"-?[0-9]+")
_MARKDOWN_V2_SPECIAL_RE = re.compile(r"([\\_*\[\]()~`>#+\-=|{}.!])")
_MARKDOWN_V2_CODE_RE = re.compile(r"([\\`])")


@dataclass(frozen=True)
class TelegramTopic:
    """A chat, or a forum thread inside a chat."""
    chat_id: int
    thread_id: Optional[int] = None

    @property
    def key(self) -> str:
        return format_topic_key(self.chat_id, self.thread_id)


def _take_chunk(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text

    for boundary in _SPLIT_BOUNDARIES:
        max_start = max_length - len(boundary)
        if max_start < 0:
            continue
        split_at = text.rfind(boundary, 0, max_start + len(boundary))
        if split_at > 0:
            return text[:split_at + len(boundary)]

    return text[:max_length]


def split_message_text(
    text: str,
    max_length: int = TELEGRAM_MAX_MESSAGE_LENGTH,
) -> List[str]:
    """
    Split text into chunks Telegram will accept.

    Prefers paragraph breaks, then line breaks, then spaces. The separator
    stays at the end of the chunk it follows, so "".join(chunks) == text.

    Args:
        text: Message text
        max_length: Max characters per chunk (values below 1 are treated as 1)

    Returns:
        List of chunks, never empty
    """
    limit = max(1, int(max_length))
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while remaining:
        chunk = _take_chunk(remaining, limit)
        chunks.append(chunk)
        remaining = remaining[len(chunk):]

    logger.debug(f"Split {len(text)} chars into {len(chunks)} chunks")
    return chunks


def _parse_int(raw: str) -> Optional[int]:
    if not _INTEGER_RE.fullmatch(raw):
        return None
    return int(raw)


def parse_topic_key(topic_key: str) -> Optional[TelegramTopic]:
    """
    Parse "<chat_id>" or "<chat_id>:<thread_id>".

    Returns:
        TelegramTopic, or None if the key is malformed
    """
    parts = topic_key.split(":")
    if len(parts) not in (1, 2):
        return None

    chat_id = _parse_int(parts[0])
    if chat_id is None:
        return None
    if len(parts) == 1:
        return TelegramTopic(chat_id=chat_id)

    thread_id = _parse_int(parts[1])
    if thread_id is None:
        return None
    return TelegramTopic(chat_id=chat_id, thread_id=thread_id)


def format_topic_key(chat_id: int, thread_id: Optional[int] = None) -> str:
    if thread_id is None:
        return str(chat_id)
    return f"{chat_id}:{thread_id}"


def escape_markdown_v2(text: str) -> str:
    """Escape every MarkdownV2 special character in plain text."""
    return _MARKDOWN_V2_SPECIAL_RE.sub(r"\\\1", text)


def escape_markdown_v2_code(text: str) -> str:
    """Escape text for use inside `code` or ```pre``` entities."""
    return _MARKDOWN_V2_CODE_RE.sub(r"\\\1", text)
