"""
Notification channels.

Notifications are best effort: a failed send is logged and never
raised, so a committed state change is not affected by the channel
being down.
"""

from __future__ import annotations

import logging
from typing import Optional
import requests

from ..config.schema import TelegramConfig


logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class LogNotifier:
    """Fallback channel that only writes messages to the log."""

    def notify(self, message: str) -> None:
        logger.info("Notification: %s", message)


class TelegramNotifier:
    """Send messages to a Telegram chat through the Bot API."""

    def __init__(self, config: TelegramConfig, session: Optional[requests.Session] = None) -> None:
        if not config.enabled:
            raise ValueError("Telegram token and chat_id are required")
        self.config = config
        self.session = session or requests.Session()

    def notify(self, message: str) -> None:
        url = f"{TELEGRAM_API}/bot{self.config.token}/sendMessage"
        try:
            resp = self.session.post(
                url,
                json={'chat_id': self.config.chat_id, 'text': message},
                timeout=self.config.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.error("Telegram notification failed: %s", exc)
            return
        logger.debug("Telegram message sent to %s", self.config.chat_id)


def build_notifier(config: TelegramConfig):
    """Return a Telegram notifier when configured, else a `LogNotifier`."""
    if config.enabled:
        return TelegramNotifier(config)
    logger.info("Telegram not configured; notifications go to the log only")
    return LogNotifier()
