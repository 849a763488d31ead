"""
Failure alerting for scheduled jobs.

When a job run is closed as failed, a formatted message is sent to every
configured webhook channel. Channels are independent: one channel failing
never prevents the others from being attempted, and alert delivery never
changes the job status that was already persisted.
"""

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from app.constants import JobNames

if TYPE_CHECKING:
    from app.config import Settings

logger = logging.getLogger(__name__)


class AlertCode(str, Enum):
    """Alert codes for scheduled job failures."""

    PIPELINE_FAILED = "pipeline_failed"
    RETENTION_FAILED = "retention_failed"
    JOB_FAILED = "job_failed"


_JOB_ALERT_CODES = {
    JobNames.PIPELINE: AlertCode.PIPELINE_FAILED,
    JobNames.RETENTION: AlertCode.RETENTION_FAILED,
}


def alert_code_for_job(job_name: str | None) -> AlertCode:
    return _JOB_ALERT_CODES.get(job_name or "", AlertCode.JOB_FAILED)


def get_alert_description(alert_code: str) -> str:
    """Get human-readable description for an alert code."""
    descriptions = {
        AlertCode.PIPELINE_FAILED.value: "Psyop analysis pipeline run failed",
        AlertCode.RETENTION_FAILED.value: "Retention cleanup run failed",
        AlertCode.JOB_FAILED.value: "Scheduled job failed",
    }
    return descriptions.get(alert_code, f"Unknown alert: {alert_code}")


def build_failure_alert(
    job_name: str | None,
    error_message: str | None,
    metadata: dict[str, Any] | None = None,
) -> str:
    """Format the failure message: description, job, error and pretty-printed metadata."""
    code = alert_code_for_job(job_name)
    lines = [f"🚨 *{get_alert_description(code.value)}*", ""]
    if job_name:
        lines.append(f"Job: {job_name}")
    lines.append(f"Error: {error_message or 'Unknown error'}")
    text = "\n".join(lines)
    if metadata:
        text += "\n```json\n" + json.dumps(metadata, indent=2, default=str) + "\n```"
    return text


# -----------------------------------------------------------------------------
# Channels
# -----------------------------------------------------------------------------


class AlertChannel(ABC):
    """A webhook-based messaging integration."""

    name = "channel"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    @abstractmethod
    def send(self, text: str) -> None:
        """Deliver the message. Raises on failure."""
        pass

    def _post(self, url: str, payload: dict) -> None:
        response = httpx.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()


class TelegramChannel(AlertChannel):
    name = "telegram"

    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.bot_token = bot_token
        self.chat_id = chat_id

    def send(self, text: str) -> None:
        self._post(
            f"https://api.telegram.org/bot{self.bot_token}/sendMessage",
            {"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"},
        )


class DiscordChannel(AlertChannel):
    name = "discord"

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.webhook_url = webhook_url

    def send(self, text: str) -> None:
        self._post(self.webhook_url, {"content": text})


class SlackChannel(AlertChannel):
    name = "slack"

    def __init__(self, webhook_url: str, timeout: float = 10.0):
        super().__init__(timeout)
        self.webhook_url = webhook_url

    def send(self, text: str) -> None:
        self._post(self.webhook_url, {"text": text, "unfurl_links": False, "unfurl_media": False})


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------


class AlertDispatcher:
    """Sends one message to every configured channel, isolating failures."""

    def __init__(self, channels: list[AlertChannel] | None = None):
        self.channels = list(channels or [])

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AlertDispatcher":
        """Build channels for whichever integrations are configured. None is fine."""
        timeout = settings.ALERT_TIMEOUT_SECONDS
        channels: list[AlertChannel] = []
        if settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID:
            channels.append(TelegramChannel(settings.TELEGRAM_BOT_TOKEN, settings.TELEGRAM_CHAT_ID, timeout))
        if settings.DISCORD_WEBHOOK_URL:
            channels.append(DiscordChannel(settings.DISCORD_WEBHOOK_URL, timeout))
        if settings.SLACK_WEBHOOK_URL:
            channels.append(SlackChannel(settings.SLACK_WEBHOOK_URL, timeout))
        return cls(channels)

    def dispatch(self, text: str) -> list[str]:
        """
        Send text to every channel.

        Returns:
            Names of the channels that accepted the message
        """
        if not self.channels:
            logger.debug("No alert channels configured; skipping alert")
            return []

        delivered = []
        for channel in self.channels:
            try:
                channel.send(text)
            except Exception as e:
                logger.error(
                    f"{channel.name} alert failed: {e}",
                    extra={"event": "alert_failed", "channel": channel.name},
                )
                continue
            delivered.append(channel.name)
            logger.info(f"Sent {channel.name} alert", extra={"event": "alert_sent", "channel": channel.name})
        return delivered
