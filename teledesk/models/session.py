from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import AwareDatetime, BaseModel, Field


class Role(str, Enum):
    REQUESTER = "requester"
    TEAM_MEMBER = "team_member"


class Severity(str, Enum):
    URGENT = "Urgent"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    NORMAL = "Normal"

    @property
    def tag(self) -> str:
        return f"priority_{self.value.lower()}"

    @property
    def ticket_priority(self) -> str:
        # Zendesk only knows urgent/high/normal/low
        if self is Severity.MEDIUM:
            return "normal"
        return self.value.lower()


class OriginKind(str, Enum):
    GROUP = "Group"
    CHANNEL = "Channel"
    BOT = "Bot"
    USER = "User"
    UNKNOWN = "Unknown"


class PendingForward(BaseModel):
    """Snapshot of a forwarded message waiting for its context line."""

    text: str
    sender_name: str
    source_chat_id: int
    source_message_id: int
    origin_kind: OriginKind = OriginKind.UNKNOWN
    source_title: Optional[str] = None
    origin_url: Optional[str] = None

    @property
    def source_known(self) -> bool:
        return self.origin_kind is not OriginKind.UNKNOWN and bool(self.source_title)

    @property
    def source_label(self) -> str:
        if not self.source_known:
            return "Unknown source"
        return f"{self.origin_kind.value}: {self.source_title}"


class PendingAcknowledgment(BaseModel):
    destination_message_id: str
    origin_chat_id: int
    origin_message_id: int
    sender_name: str
    created_at: AwareDatetime
    status_message_id: Optional[int] = None


class TicketRef(BaseModel):
    ticket_id: int
    subject: Optional[str] = None
    status: str = "open"


class MainState(BaseModel):
    kind: Literal["main"] = "main"


class SupportState(BaseModel):
    kind: Literal["support"] = "support"


class ForwardState(BaseModel):
    kind: Literal["forward"] = "forward"


class KnowledgeBaseState(BaseModel):
    kind: Literal["knowledge_base"] = "knowledge_base"


class SearchState(BaseModel):
    kind: Literal["search"] = "search"


class AwaitingTicketDescriptionState(BaseModel):
    kind: Literal["awaiting_ticket_description"] = "awaiting_ticket_description"


class AwaitingTicketUpdateState(BaseModel):
    kind: Literal["awaiting_ticket_update"] = "awaiting_ticket_update"


class AwaitingTicketChoiceState(BaseModel):
    kind: Literal["awaiting_ticket_choice"] = "awaiting_ticket_choice"
    message: str
    severity: Severity
    existing_ticket_id: int


class AwaitingForwardSourceState(BaseModel):
    kind: Literal["awaiting_forward_source"] = "awaiting_forward_source"
    pending: PendingForward


ConversationState = Annotated[
    Union[
        MainState,
        SupportState,
        ForwardState,
        KnowledgeBaseState,
        SearchState,
        AwaitingTicketDescriptionState,
        AwaitingTicketUpdateState,
        AwaitingTicketChoiceState,
        AwaitingForwardSourceState,
    ],
    Field(discriminator="kind"),
]


class Session(BaseModel):
    """A user's single active place in the conversation."""

    user_id: int
    chat_id: int
    state: ConversationState
    created_at: AwareDatetime
    last_activity: AwareDatetime

    def enter(self, state: BaseModel, now: datetime) -> "Session":
        """Return a copy in the new state; the previous state is replaced."""
        return self.model_copy(update={"state": state, "last_activity": now})

    @classmethod
    def start(cls, user_id: int, chat_id: int, state: BaseModel, now: datetime) -> "Session":
        return cls(user_id=user_id, chat_id=chat_id, state=state, created_at=now, last_activity=now)
