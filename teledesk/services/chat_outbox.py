from teledesk.logging_config import get_logger
from teledesk.models.actions import (
    AnswerCallback,
    ChatAction,
    ClearMenus,
    DeleteMessage,
    EditMessage,
    SendMessage,
)
from teledesk.services.session_store import SessionStore
from teledesk.services.telegram_service import TelegramService, sent_message_id

logger = get_logger("chat_outbox")


class ChatOutbox:
    """Performs chat actions against Telegram and keeps one live menu per chat."""

    def __init__(self, telegram: TelegramService, store: SessionStore):
        self.telegram = telegram
        self.store = store

    async def execute(self, actions: list[ChatAction]) -> None:
        for action in actions:
            if isinstance(action, SendMessage):
                await self._send(action)
            elif isinstance(action, EditMessage):
                result = await self.telegram.edit_message(
                    action.chat_id, action.message_id, action.text, action.reply_markup
                )
                if not result.get("ok"):
                    logger.debug(
                        "Could not edit message",
                        extra={"context": {"chat_id": action.chat_id, "message_id": action.message_id}},
                    )
            elif isinstance(action, DeleteMessage):
                await self._delete(action.chat_id, action.message_id)
            elif isinstance(action, ClearMenus):
                await self.clear_menus(action.chat_id)
            elif isinstance(action, AnswerCallback):
                await self.telegram.answer_callback_query(action.callback_id, action.text)

    async def clear_menus(self, chat_id: int) -> None:
        for message_id in self.store.take_menus(chat_id):
            await self._delete(chat_id, message_id)

    async def _send(self, action: SendMessage) -> None:
        # Only menus are tracked, so confirmations outlive the next menu.
        await self.clear_menus(action.chat_id)

        result = await self.telegram.send_message(
            action.chat_id,
            action.text,
            reply_markup=action.reply_markup,
            parse_mode=action.parse_mode,
            disable_web_page_preview=action.disable_preview,
        )
        message_id = sent_message_id(result)
        if message_id is None:
            logger.warning(
                "Failed to send message",
                extra={"context": {"chat_id": action.chat_id, "error": result.get("error") or result.get("description")}},
            )
            return
        if action.menu:
            self.store.track_menu(action.chat_id, message_id)

    async def _delete(self, chat_id: int, message_id: int) -> None:
        # Fails for messages older than 48h or already deleted.
        result = await self.telegram.delete_message(chat_id, message_id)
        if not result.get("ok"):
            logger.debug(
                "Could not delete message",
                extra={"context": {"chat_id": chat_id, "message_id": message_id, "error": result.get("description")}},
            )
