"""Tenant feedback surface for payment outcomes.

Feedback is fire-and-forget: sinks may fail, and the caller only logs it.
"""

import enum
import html
import logging
from dataclasses import dataclass
from typing import Protocol

from telegram import Bot

logger = logging.getLogger(__name__)


class Severity(str, enum.Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class Feedback:
    """One user-facing notice."""

    title: str
    description: str
    severity: Severity = Severity.INFO


class FeedbackSink(Protocol):
    async def publish(self, feedback: Feedback) -> None: ...


class LogFeedbackSink:
    """Writes feedback to the application log and keeps the last notices."""

    def __init__(self, history: int = 20):
        self.history = history
        self.sent: list[Feedback] = []

    async def publish(self, feedback: Feedback) -> None:
        level = logging.WARNING if feedback.severity == Severity.ERROR else logging.INFO
        logger.log(level, "feedback: %s - %s", feedback.title, feedback.description)
        self.sent.append(feedback)
        if len(self.sent) > self.history:
            del self.sent[: len(self.sent) - self.history]


class TelegramFeedbackSink:
    """Sends feedback to the tenant's Telegram chat."""

    def __init__(self, bot: Bot, chat_id: str):
        self.bot = bot
        self.chat_id = chat_id

    async def publish(self, feedback: Feedback) -> None:
        """Send feedback as an HTML message.

        Args:
            feedback: Notice to deliver
        """
        icon = {"success": "✅", "error": "❌"}.get(feedback.severity.value, "ℹ️")
        text = f"{icon} <b>{html.escape(feedback.title)}</b>\n{html.escape(feedback.description)}"
        try:
            await self.bot.send_message(chat_id=int(self.chat_id), text=text, parse_mode="HTML")
        except Exception as e:
            logger.error("Error sending feedback to %s: %s", self.chat_id, e)
            raise


__all__ = ["Feedback", "FeedbackSink", "LogFeedbackSink", "Severity", "TelegramFeedbackSink"]
