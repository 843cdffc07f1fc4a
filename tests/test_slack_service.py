import hashlib
import hmac
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from teledesk.services.slack_service import (
    ACK_ACTION_ID,
    SlackService,
    build_acknowledged_blocks,
    build_forward_blocks,
    verify_slack_signature,
)

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
BODY = b"payload=%7B%22type%22%3A%22block_actions%22%7D"


def sign(timestamp: str, body: bytes = BODY, secret: str = SECRET) -> str:
    base = f"v0:{timestamp}:".encode() + body
    return "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()


class TestVerifySlackSignature:
    def test_valid_signature(self):
        assert verify_slack_signature(SECRET, "1700000000", BODY, sign("1700000000"), now=1700000010) is True

    def test_wrong_secret(self):
        signature = sign("1700000000", secret="other")
        assert verify_slack_signature(SECRET, "1700000000", BODY, signature, now=1700000010) is False

    def test_tampered_body(self):
        signature = sign("1700000000")
        assert verify_slack_signature(SECRET, "1700000000", BODY + b"x", signature, now=1700000010) is False

    def test_stale_timestamp_rejected(self):
        signature = sign("1700000000")
        assert verify_slack_signature(SECRET, "1700000000", BODY, signature, now=1700000301) is False

    def test_timestamp_at_window_edge_accepted(self):
        signature = sign("1700000000")
        assert verify_slack_signature(SECRET, "1700000000", BODY, signature, now=1700000300) is True

    def test_missing_headers(self):
        assert verify_slack_signature(SECRET, None, BODY, sign("1700000000")) is False
        assert verify_slack_signature(SECRET, "1700000000", BODY, None) is False
        assert verify_slack_signature(SECRET, "not-a-number", BODY, "v0=abc") is False


class TestBlocks:
    def test_forward_blocks_layout(self):
        blocks = build_forward_blocks("disk full", "Group: Ops", "bob", "prod db", "https://t.me/ops/1")

        header = blocks[0]["text"]["text"]
        assert header.startswith("📢 *Forwarded Message*")
        assert "*Forwarded by:* bob" in header
        assert "<https://t.me/ops/1|Open original>" in header
        assert blocks[1]["text"]["text"] == "*Message:*\ndisk full"
        assert "React with :white_check_mark: or :thumbsup:" in blocks[2]["elements"][0]["text"]
        assert blocks[3]["elements"][0]["action_id"] == ACK_ACTION_ID

    def test_acknowledged_blocks_replace_previous_status(self):
        original = build_forward_blocks("disk full", "Group: Ops", "bob", "prod db")
        once = build_acknowledged_blocks(original, "<@U1>", "10:00 UTC")
        twice = build_acknowledged_blocks(once, "<@U2>", "10:05 UTC", notified=False)

        statuses = [b for b in twice if b.get("block_id") == "ack_status"]
        assert len(statuses) == 1
        assert statuses[0]["elements"][0]["text"] == (
            "🟢 Acknowledged by <@U2> at 10:05 UTC (no Telegram notification sent)"
        )
        assert len(twice) == 3

    def test_acknowledged_blocks_without_original(self):
        blocks = build_acknowledged_blocks(None, "Carol", "10:00 UTC")
        assert len(blocks) == 1


class TestSlackService:
    @pytest.mark.asyncio
    @patch("teledesk.services.slack_service.httpx.AsyncClient")
    async def test_post_message_sends_channel_and_blocks(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        response = Mock()
        response.json.return_value = {"ok": True, "ts": "1700000000.000100"}
        mock_client.post = AsyncMock(return_value=response)

        service = SlackService("xoxb-test", "C123")
        result = await service.post_message("hello", [{"type": "section"}])

        assert result["ts"] == "1700000000.000100"
        call_args = mock_client.post.call_args
        assert call_args[0][0] == "https://slack.com/api/chat.postMessage"
        assert call_args[1]["json"]["channel"] == "C123"
        assert call_args[1]["headers"]["Authorization"] == "Bearer xoxb-test"

    @pytest.mark.asyncio
    @patch("teledesk.services.slack_service.httpx.AsyncClient")
    async def test_get_user_name_prefers_real_name(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        response = Mock()
        response.json.return_value = {"ok": True, "user": {"name": "dana", "real_name": "Dana Scully"}}
        mock_client.get = AsyncMock(return_value=response)

        service = SlackService("xoxb-test", "C123")

        assert await service.get_user_name("U42") == "Dana Scully"
        assert mock_client.get.call_args[1]["params"] == {"user": "U42"}

    @pytest.mark.asyncio
    @patch("teledesk.services.slack_service.httpx.AsyncClient")
    async def test_transport_error_returns_not_ok(self, mock_client_class):
        mock_client_class.return_value.__aenter__.side_effect = Exception("Network error")

        service = SlackService("xoxb-test", "C123")
        result = await service.post_message("hello")

        assert result["ok"] is False
        assert await service.get_user_name("U42") == "Team Member"
