from typing import Optional

import httpx

from teledesk.logging_config import get_logger

logger = get_logger("telegram_service")


class TelegramService:
    """Service for talking to the Telegram Bot API."""

    BASE_URL = "https://api.telegram.org/bot{token}"

    def __init__(self, bot_token: str, timeout: float = 10.0):
        self.bot_token = bot_token
        self.base_url = self.BASE_URL.format(token=bot_token)
        self.timeout = timeout

    async def _make_request(self, method: str, data: Optional[dict] = None) -> dict:
        """Make request to Telegram API."""
        url = f"{self.base_url}/{method}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=data or {})
                return response.json()
        except Exception as e:
            logger.error(f"Telegram API error: {e}", extra={"context": {"method": method}})
            return {"ok": False, "error": str(e)}

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = "Markdown",
        disable_web_page_preview: bool = False,
    ) -> dict:
        """Send message to Telegram chat."""
        data = {"chat_id": chat_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup
        if disable_web_page_preview:
            data["disable_web_page_preview"] = True

        return await self._make_request("sendMessage", data)

    async def edit_message(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: Optional[dict] = None,
        parse_mode: Optional[str] = None,
    ) -> dict:
        """Edit existing message text."""
        data = {"chat_id": chat_id, "message_id": message_id, "text": text}
        if parse_mode:
            data["parse_mode"] = parse_mode
        if reply_markup:
            data["reply_markup"] = reply_markup

        return await self._make_request("editMessageText", data)

    async def delete_message(self, chat_id: int, message_id: int) -> dict:
        return await self._make_request("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def answer_callback_query(self, callback_query_id: str, text: Optional[str] = None) -> dict:
        """Answer callback query (removes loading state from button)."""
        data = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        return await self._make_request("answerCallbackQuery", data)


def sent_message_id(response: dict) -> Optional[int]:
    """Extract message_id from a sendMessage response, None if the call failed."""
    if not response.get("ok"):
        return None
    result = response.get("result") or {}
    return result.get("message_id")


def build_inline_keyboard(rows: list[list[tuple[str, str]]]) -> dict:
    """Build inline keyboard from rows of (text, callback_data).

    Values starting with http(s):// become URL buttons.
    """
    keyboard = []
    for row in rows:
        buttons = []
        for text, value in row:
            if value.startswith("http://") or value.startswith("https://"):
                buttons.append({"text": text, "url": value})
            else:
                buttons.append({"text": text, "callback_data": value})
        keyboard.append(buttons)
    return {"inline_keyboard": keyboard}
