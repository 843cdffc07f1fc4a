from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.username:
            return self.username
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or str(self.id)


class TelegramChat(BaseModel):
    id: int
    type: str  # private, group, supergroup, channel
    title: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None


class TelegramMessageOrigin(BaseModel):
    """Bot API 7.0 forward origin (user, hidden_user, chat, channel)."""

    type: str
    date: Optional[int] = None
    sender_user: Optional[TelegramUser] = None
    sender_user_name: Optional[str] = None
    sender_chat: Optional[TelegramChat] = None
    chat: Optional[TelegramChat] = None
    message_id: Optional[int] = None
    author_signature: Optional[str] = None


class TelegramMessage(BaseModel):
    message_id: int
    date: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    text: Optional[str] = None
    caption: Optional[str] = None
    reply_to_message: Optional[Any] = None
    sender_chat: Optional[TelegramChat] = None

    forward_from: Optional[TelegramUser] = None
    forward_from_chat: Optional[TelegramChat] = None
    forward_from_message_id: Optional[int] = None
    forward_sender_name: Optional[str] = None
    forward_date: Optional[int] = None
    forward_origin: Optional[TelegramMessageOrigin] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def is_forwarded(self) -> bool:
        return bool(
            self.forward_origin
            or self.forward_from
            or self.forward_from_chat
            or self.forward_sender_name
            or self.forward_date
        )

    @property
    def content(self) -> str:
        return self.text or self.caption or ""


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[TelegramMessage] = None
    data: Optional[str] = None


class TelegramUpdate(BaseModel):
    update_id: int
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class TelegramWebhookResponse(BaseModel):
    success: bool
    message: Optional[str] = None
