# tests/unit/test_alerts.py
"""Unit tests for failure alert formatting and channel dispatch."""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from app.config import Settings
from app.services.alerts import (
    AlertChannel,
    AlertCode,
    AlertDispatcher,
    DiscordChannel,
    SlackChannel,
    TelegramChannel,
    alert_code_for_job,
    build_failure_alert,
    get_alert_description,
)


class TestBuildFailureAlert:
    def test_contains_error_and_pretty_metadata(self):
        text = build_failure_alert("auto-cleanup", "relation posts does not exist", {"retention_hours": 24})

        assert text.startswith("🚨 *Retention cleanup run failed*")
        assert "Job: auto-cleanup" in text
        assert "Error: relation posts does not exist" in text
        assert '```json\n{\n  "retention_hours": 24\n}\n```' in text

    def test_without_metadata(self):
        text = build_failure_alert(None, None)

        assert "Error: Unknown error" in text
        assert "```" not in text

    def test_alert_codes(self):
        assert alert_code_for_job("psyop-batch-pipeline") == AlertCode.PIPELINE_FAILED
        assert alert_code_for_job("something-else") == AlertCode.JOB_FAILED
        assert get_alert_description("nope") == "Unknown alert: nope"


class TestChannels:
    def test_base_channel_is_abstract(self):
        with pytest.raises(TypeError):
            AlertChannel()

        class IncompleteChannel(AlertChannel):
            name = "incomplete"

        with pytest.raises(TypeError):
            IncompleteChannel()

    def test_telegram_payload(self):
        with patch("app.services.alerts.httpx.post") as mock_post:
            mock_post.return_value = MagicMock()
            TelegramChannel("token123", "chat42").send("hello")

        url = mock_post.call_args[0][0]
        assert url == "https://api.telegram.org/bottoken123/sendMessage"
        assert mock_post.call_args.kwargs["json"] == {"chat_id": "chat42", "text": "hello", "parse_mode": "Markdown"}

    def test_discord_payload(self):
        with patch("app.services.alerts.httpx.post") as mock_post:
            mock_post.return_value = MagicMock()
            DiscordChannel("https://discord.example/hook").send("hello")

        assert mock_post.call_args.kwargs["json"] == {"content": "hello"}

    def test_http_error_raises(self):
        request = httpx.Request("POST", "https://hooks.slack.example/x")
        response = httpx.Response(500, request=request)
        with patch("app.services.alerts.httpx.post", return_value=response):
            with pytest.raises(httpx.HTTPStatusError):
                SlackChannel("https://hooks.slack.example/x").send("hello")


class TestAlertDispatcher:
    def test_no_channels_is_silent_noop(self):
        assert AlertDispatcher().dispatch("text") == []

    def test_one_channel_failure_does_not_block_others(self):
        broken = MagicMock()
        broken.name = "telegram"
        broken.send.side_effect = httpx.ConnectError("unreachable")
        working = MagicMock()
        working.name = "discord"

        delivered = AlertDispatcher([broken, working]).dispatch("text")

        assert delivered == ["discord"]
        broken.send.assert_called_once_with("text")
        working.send.assert_called_once_with("text")

    def test_from_settings_builds_configured_channels(self):
        settings = Settings(
            DATABASE_URL="sqlite:///:memory:",
            TELEGRAM_BOT_TOKEN="token",
            TELEGRAM_CHAT_ID=None,
            DISCORD_WEBHOOK_URL="https://discord.example/hook",
        )

        dispatcher = AlertDispatcher.from_settings(settings)

        # Telegram needs both token and chat id
        assert [channel.name for channel in dispatcher.channels] == ["discord"]
