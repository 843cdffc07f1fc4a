"""Inbound events, callback actions and outbound chat actions."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from teledesk.models.session import PendingForward


class MenuAction(str, Enum):
    MAIN_MENU = "main_menu"
    HELP = "help"
    NEW_TICKET = "new_ticket"
    VIEW_TICKET = "view_ticket"
    CHECK_STATUS = "check_status"
    ADD_INFO = "add_info"
    CLOSE_TICKET = "close_ticket"
    REOPEN_TICKET = "reopen_ticket"
    CANCEL_TICKET = "cancel_ticket"
    CANCEL_UPDATE = "cancel_update"
    ADD_TO_EXISTING = "add_to_existing"
    CREATE_NEW_TICKET = "create_new_ticket"
    FORWARD_INSTRUCTIONS = "forward_instructions"
    KNOWLEDGE_BASE = "knowledge_base"
    SEARCH = "search"


@dataclass(frozen=True)
class OpenCategory:
    category_id: int

    @property
    def callback_data(self) -> str:
        return f"kb_category_{self.category_id}"


CallbackAction = Union[MenuAction, OpenCategory]

_ALIASES = {
    "kb_categories": MenuAction.KNOWLEDGE_BASE,
    "kb_search": MenuAction.SEARCH,
}
_CATEGORY_RE = re.compile(r"^kb_category_(\d+)$")


def parse_callback(data: Optional[str]) -> Optional[CallbackAction]:
    """Parse raw button callback data. Returns None for unknown tokens."""
    if not data:
        return None
    token = data.strip()
    if token in _ALIASES:
        return _ALIASES[token]
    try:
        return MenuAction(token)
    except ValueError:
        pass
    match = _CATEGORY_RE.match(token)
    if match:
        return OpenCategory(category_id=int(match.group(1)))
    return None


@dataclass(frozen=True)
class CommandEvent:
    user_id: int
    chat_id: int
    sender_name: str
    command: str
    args: str = ""


@dataclass(frozen=True)
class TextEvent:
    user_id: int
    chat_id: int
    sender_name: str
    message_id: int
    text: str
    forwarded: Optional[PendingForward] = None


@dataclass(frozen=True)
class CallbackEvent:
    user_id: int
    chat_id: int
    sender_name: str
    callback_id: str
    action: Optional[CallbackAction]
    raw_data: Optional[str] = None
    message_id: Optional[int] = None


InboundEvent = Union[CommandEvent, TextEvent, CallbackEvent]


@dataclass(frozen=True)
class SendMessage:
    chat_id: int
    text: str
    reply_markup: Optional[dict] = None
    # False for confirmations and results, which stay in the chat
    menu: bool = True
    parse_mode: Optional[str] = "Markdown"
    disable_preview: bool = False


@dataclass(frozen=True)
class EditMessage:
    chat_id: int
    message_id: int
    text: str
    reply_markup: Optional[dict] = None


@dataclass(frozen=True)
class DeleteMessage:
    chat_id: int
    message_id: int


@dataclass(frozen=True)
class ClearMenus:
    chat_id: int


@dataclass(frozen=True)
class AnswerCallback:
    callback_id: str
    text: Optional[str] = None


ChatAction = Union[SendMessage, EditMessage, DeleteMessage, ClearMenus, AnswerCallback]
