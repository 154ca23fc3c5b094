"""
TelegramAdapter — Telegram interface for bots.

Long-polls getUpdates, drops messages from users outside the allow-list,
routes text messages to BotRunner and posts the reply back into the same
chat (and forum thread), split into 4096-character chunks.
"""

import logging
import os
import signal
import time
from typing import Any, Dict, Optional

from .telegram import GatewayError, get_updates, send_message
from .utils import format_topic_key, parse_topic_key, split_message_text

logger = logging.getLogger(__name__)


class TelegramAdapter:
    """Long-polling Telegram adapter. Routes messages to a BotRunner."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        on_error_delay: float = 1.0,
        on_empty_delay: float = 0.25,
    ):
        self.bot_token = bot_token or os.environ.get("TELEGRAM_BOT_TOKEN")
        if not self.bot_token:
            raise ValueError("Missing TELEGRAM_BOT_TOKEN")

        self.on_error_delay = on_error_delay
        self.on_empty_delay = on_empty_delay
        self.offset: Optional[int] = None
        self.runner = None
        self._running = False

    def start(self, runner, register_signals: bool = True):
        """Poll until stop() or a shutdown signal, routing messages to runner."""
        self.runner = runner
        if register_signals:
            signal.signal(signal.SIGTERM, self._shutdown_handler)
            signal.signal(signal.SIGINT, self._shutdown_handler)
        self.run_forever()

    def stop(self):
        self._running = False

    def run_forever(self):
        self._running = True
        logger.info(f"{self.runner.config.bot_name} polling Telegram for updates")

        while self._running:
            try:
                count = self.poll_once()
            except Exception as e:
                logger.error(
                    f"Telegram ingestion error: {e}",
                    exc_info=not isinstance(e, GatewayError),
                )
                if self._running and self.on_error_delay > 0:
                    time.sleep(self.on_error_delay)
                continue

            if count == 0 and self._running and self.on_empty_delay > 0:
                time.sleep(self.on_empty_delay)

    def poll_once(self) -> int:
        """
        Fetch one batch of updates and handle them.

        Returns:
            Number of updates received
        """
        updates = get_updates(
            self.bot_token,
            offset=self.offset,
            timeout_seconds=self.runner.config.poll_timeout_seconds,
        )
        if not updates:
            return 0

        logger.info(f"getUpdates: {len(updates)} updates")

        max_update_id = -1
        for update in updates:
            if not isinstance(update, dict):
                continue
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                max_update_id = max(max_update_id, update_id)
            self._handle_update(update)

        if max_update_id >= 0:
            self.offset = max_update_id + 1
        return len(updates)

    def _handle_update(self, update: Dict[str, Any]):
        """Handle one update; errors are logged so the batch keeps going."""
        message = update.get("message")
        if not isinstance(message, dict):
            return

        text = message.get("text")
        from_id = (message.get("from") or {}).get("id")
        chat_id = (message.get("chat") or {}).get("id")
        if not isinstance(text, str) or not isinstance(from_id, int) or not isinstance(chat_id, int):
            return

        if from_id not in self.runner.config.allowed_user_ids:
            logger.warning(f"Dropped message from unauthorized user {from_id}")
            return

        thread_id = message.get("message_thread_id")
        topic_key = format_topic_key(chat_id, thread_id if isinstance(thread_id, int) else None)
        log_context = {
            "context": {
                "event_type": "message",
                "topic_key": topic_key,
                "user_id": from_id,
                "update_id": update.get("update_id"),
            }
        }

        try:
            messages = [{"role": "user", "content": text}]
            response = self.runner.handle_message(text, messages, log_context=log_context)
            self.deliver(topic_key, response)
        except Exception as e:
            logger.error(f"Error processing message [{topic_key}]: {e}", exc_info=True)
            try:
                self.deliver(topic_key, f"Sorry, I encountered an error: {e}")
            except GatewayError as send_error:
                logger.error(f"Failed to send error reply [{topic_key}]: {send_error}")

    def deliver(self, topic_key: str, text: str) -> int:
        """
        Send text to a topic, chunked.

        Returns:
            Number of chunks sent
        """
        topic = parse_topic_key(topic_key)
        if topic is None:
            raise ValueError(f"Invalid telegram topic key: {topic_key}")
        if not text.strip():
            logger.warning(f"Skipping empty reply [{topic_key}]")
            return 0

        chunks = split_message_text(text)
        for chunk in chunks:
            send_message(self.bot_token, topic.chat_id, chunk, thread_id=topic.thread_id)

        logger.info(f"Delivered [{topic_key}] ({len(chunks)} chunks)")
        return len(chunks)

    def _shutdown_handler(self, signum, frame):
        """Graceful shutdown: finish the current poll, then exit the loop."""
        logger.info("Shutdown signal received...")
        self.stop()
