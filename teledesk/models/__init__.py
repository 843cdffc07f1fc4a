from teledesk.models.session import (
    AwaitingForwardSourceState,
    AwaitingTicketChoiceState,
    AwaitingTicketDescriptionState,
    AwaitingTicketUpdateState,
    ConversationState,
    ForwardState,
    KnowledgeBaseState,
    MainState,
    OriginKind,
    PendingAcknowledgment,
    PendingForward,
    Role,
    SearchState,
    Session,
    Severity,
    SupportState,
    TicketRef,
)

__all__ = [
    "AwaitingForwardSourceState",
    "AwaitingTicketChoiceState",
    "AwaitingTicketDescriptionState",
    "AwaitingTicketUpdateState",
    "ConversationState",
    "ForwardState",
    "KnowledgeBaseState",
    "MainState",
    "OriginKind",
    "PendingAcknowledgment",
    "PendingForward",
    "Role",
    "SearchState",
    "Session",
    "Severity",
    "SupportState",
    "TicketRef",
]
