from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from teledesk.services.alert_service import alert_error, format_alert, send_alert


class TestSendAlert:
    @pytest.mark.asyncio
    async def test_returns_false_when_not_configured(self):
        assert await send_alert("ERROR", "Test message") is False

    @pytest.mark.asyncio
    @patch("teledesk.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("teledesk.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("teledesk.services.alert_service.httpx.AsyncClient")
    async def test_sends_alert_with_context(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_response = Mock()
        mock_response.status_code = 200
        mock_client.post = AsyncMock(return_value=mock_response)

        result = await alert_error("Forward relay to Slack failed", {"origin_chat_id": 2002})

        assert result is True
        call_args = mock_client.post.call_args
        assert "api.telegram.org/bottest-token" in call_args[0][0]
        text = call_args[1]["json"]["text"]
        assert "ERROR" in text
        assert "origin_chat_id: 2002" in text

    @pytest.mark.asyncio
    @patch("teledesk.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("teledesk.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("teledesk.services.alert_service.httpx.AsyncClient")
    async def test_returns_false_on_exception(self, mock_client_class):
        mock_client_class.return_value.__aenter__.side_effect = Exception("Network error")

        assert await send_alert("ERROR", "Test message") is False

    @pytest.mark.asyncio
    @patch("teledesk.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("teledesk.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("teledesk.services.alert_service.httpx.AsyncClient")
    async def test_identical_alert_suppressed_within_cooldown(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client.post = AsyncMock(return_value=Mock(status_code=200))

        assert await alert_error("Ticket creation failed") is True
        assert await alert_error("Ticket creation failed") is False
        assert await alert_error("Forward relay to Slack failed") is True
        assert mock_client.post.call_count == 2

    @pytest.mark.asyncio
    @patch("teledesk.services.alert_service.ALERT_BOT_TOKEN", "test-token")
    @patch("teledesk.services.alert_service.ALERT_CHAT_ID", "test-chat")
    @patch("teledesk.services.alert_service.httpx.AsyncClient")
    async def test_rejected_alert_is_not_cooled_down(self, mock_client_class):
        mock_client = MagicMock()
        mock_client_class.return_value.__aenter__.return_value = mock_client
        mock_client.post = AsyncMock(return_value=Mock(status_code=400))

        assert await send_alert("ERROR", "Test message") is False
        assert await send_alert("ERROR", "Test message") is False
        assert mock_client.post.call_count == 2


class TestFormatAlert:
    def test_includes_level_environment_and_context(self):
        text = format_alert("WARNING", "Slack reactions unavailable", {"ts": "1700000000.000001"})

        assert text.startswith("⚠️ *WARNING* [teledesk/")
        assert "Slack reactions unavailable" in text
        assert "  ts: 1700000000.000001" in text

    def test_unknown_level_uses_generic_emoji(self):
        assert format_alert("NOTICE", "hello").startswith("📢 *NOTICE*")
