import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from teledesk.logging_config import get_logger
from teledesk.models.actions import CallbackEvent, CommandEvent, InboundEvent, TextEvent, parse_callback
from teledesk.schemas.telegram import TelegramUpdate
from teledesk.services.chat_outbox import ChatOutbox
from teledesk.services.forwarding import capture_forward
from teledesk.services.session_store import SessionStore
from teledesk.services.state_machine import ConversationMachine

logger = get_logger("bot_service")

NON_TEXT_PLACEHOLDER = "[Non-text message]"


def build_event(update: TelegramUpdate) -> Optional[InboundEvent]:
    """Turn a Telegram update into an inbound event, or None if there is nothing to handle."""
    if update.callback_query:
        query = update.callback_query
        user = query.from_user
        chat_id = query.message.chat.id if query.message else user.id
        return CallbackEvent(
            user_id=user.id,
            chat_id=chat_id,
            sender_name=user.display_name,
            callback_id=query.id,
            action=parse_callback(query.data),
            raw_data=query.data,
            message_id=query.message.message_id if query.message else None,
        )

    message = update.message
    if message is None or message.from_user is None:
        return None
    if message.chat.type != "private":
        return None

    user = message.from_user
    text = message.content

    if message.is_forwarded:
        forwarded = capture_forward(message, user.display_name)
        if not forwarded.text:
            forwarded = forwarded.model_copy(update={"text": NON_TEXT_PLACEHOLDER})
        return TextEvent(
            user_id=user.id,
            chat_id=message.chat.id,
            sender_name=user.display_name,
            message_id=message.message_id,
            text=forwarded.text,
            forwarded=forwarded,
        )

    if not text.strip():
        return None

    if text.startswith("/"):
        head, _, args = text[1:].partition(" ")
        command = head.split("@", 1)[0].lower()
        return CommandEvent(
            user_id=user.id,
            chat_id=message.chat.id,
            sender_name=user.display_name,
            command=command,
            args=args.strip(),
        )

    return TextEvent(
        user_id=user.id,
        chat_id=message.chat.id,
        sender_name=user.display_name,
        message_id=message.message_id,
        text=text,
    )


class BotService:
    """Runs inbound Telegram events through the state machine, one at a time per user."""

    def __init__(self, store: SessionStore, machine: ConversationMachine, outbox: ChatOutbox):
        self.store = store
        self.machine = machine
        self.outbox = outbox
        self._locks: dict[int, list] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: int):
        entry = self._locks.get(user_id)
        if entry is None:
            entry = self._locks[user_id] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(user_id, None)

    async def handle_update(self, update: TelegramUpdate) -> bool:
        """Process one update. Returns False if the update carried nothing actionable."""
        event = build_event(update)
        if event is None:
            return False

        async with self._user_lock(event.user_id):
            await self.handle_event(event)
        return True

    async def handle_event(self, event: InboundEvent) -> None:
        session = self.store.get(event.user_id)
        transition = await self.machine.handle(event, session)

        if transition.session is None:
            self.store.delete(event.user_id)
        elif transition.session is not session:
            self.store.put(event.user_id, transition.session)

        logger.debug(
            "Event handled",
            extra={
                "context": {
                    "user_id": event.user_id,
                    "event": type(event).__name__,
                    "state": transition.session.state.kind if transition.session else None,
                }
            },
        )
        await self.outbox.execute(transition.actions)
