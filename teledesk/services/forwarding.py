"""Capture forwarded Telegram messages and classify where they came from."""

from typing import Optional

from teledesk.models.session import OriginKind, PendingForward
from teledesk.schemas.telegram import TelegramChat, TelegramMessage, TelegramUser


def _chat_kind(chat: TelegramChat) -> OriginKind:
    return OriginKind.CHANNEL if chat.type == "channel" else OriginKind.GROUP


def _user_name(user: TelegramUser) -> str:
    return user.username or user.first_name or "Private User"


def _message_url(chat: TelegramChat, message_id: Optional[int]) -> Optional[str]:
    if chat.username and message_id:
        return f"https://t.me/{chat.username}/{message_id}"
    return None


def classify_origin(message: TelegramMessage) -> tuple[OriginKind, Optional[str], Optional[str]]:
    """Return (kind, title, url) for a forwarded message.

    An origin chat title wins over an origin sender, which wins over a bare
    sender name. Messages without any forward metadata are Unknown.
    """
    origin = message.forward_origin

    origin_chat = None
    origin_message_id = None
    if origin is not None:
        origin_chat = origin.chat or origin.sender_chat
        origin_message_id = origin.message_id
    if origin_chat is None and message.forward_from_chat is not None:
        origin_chat = message.forward_from_chat
        origin_message_id = message.forward_from_message_id
    if origin_chat is not None and origin_chat.title:
        return _chat_kind(origin_chat), origin_chat.title, _message_url(origin_chat, origin_message_id)

    sender = origin.sender_user if origin is not None else None
    sender = sender or message.forward_from
    if sender is not None:
        kind = OriginKind.BOT if sender.is_bot else OriginKind.USER
        return kind, _user_name(sender), None

    hidden_name = origin.sender_user_name if origin is not None else None
    hidden_name = hidden_name or message.forward_sender_name
    if hidden_name:
        return OriginKind.USER, hidden_name, None

    return OriginKind.UNKNOWN, None, None


def capture_forward(message: TelegramMessage, sender_name: str) -> PendingForward:
    kind, title, url = classify_origin(message)
    return PendingForward(
        text=message.content,
        sender_name=sender_name,
        source_chat_id=message.chat.id,
        source_message_id=message.message_id,
        origin_kind=kind,
        source_title=title,
        origin_url=url,
    )
