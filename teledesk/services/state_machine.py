"""Conversation state machine.

Interprets one inbound event against the user's current session and returns
the next session (None means the role's default state) plus the chat actions
to perform. Role gating runs before any state dispatch.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx

from teledesk.logging_config import get_logger
from teledesk.models.actions import (
    AnswerCallback,
    CallbackEvent,
    ChatAction,
    ClearMenus,
    CommandEvent,
    InboundEvent,
    MenuAction,
    OpenCategory,
    TextEvent,
)
from teledesk.models.session import (
    AwaitingForwardSourceState,
    AwaitingTicketChoiceState,
    AwaitingTicketDescriptionState,
    AwaitingTicketUpdateState,
    ForwardState,
    KnowledgeBaseState,
    MainState,
    Role,
    SearchState,
    Session,
    SupportState,
)
from teledesk.services import menus
from teledesk.services.relay_service import RelayError, RelayService
from teledesk.services.session_store import utcnow
from teledesk.services.severity import infer_severity
from teledesk.services.ticket_service import CLOSED_STATUSES, TicketService
from teledesk.services.zendesk_service import TicketBackendError, ZendeskService

logger = get_logger("state_machine")

TICKET_ACTIONS = frozenset(
    {
        MenuAction.NEW_TICKET,
        MenuAction.VIEW_TICKET,
        MenuAction.CHECK_STATUS,
        MenuAction.ADD_INFO,
        MenuAction.CLOSE_TICKET,
        MenuAction.REOPEN_TICKET,
        MenuAction.CANCEL_TICKET,
        MenuAction.CANCEL_UPDATE,
        MenuAction.ADD_TO_EXISTING,
        MenuAction.CREATE_NEW_TICKET,
        MenuAction.KNOWLEDGE_BASE,
        MenuAction.SEARCH,
    }
)
FORWARD_ACTIONS = frozenset({MenuAction.FORWARD_INSTRUCTIONS})
TICKET_COMMANDS = frozenset({"ticket", "status"})
FORWARD_COMMANDS = frozenset({"forward"})
CHOICE_ACTIONS = frozenset({MenuAction.ADD_TO_EXISTING, MenuAction.CREATE_NEW_TICKET})

BACKEND_ERRORS = (TicketBackendError, RelayError, httpx.HTTPError)


@dataclass
class Transition:
    session: Optional[Session]
    actions: list[ChatAction] = field(default_factory=list)


class ConversationMachine:
    def __init__(
        self,
        tickets: TicketService,
        relay: RelayService,
        knowledge: ZendeskService,
        team_member_ids: set[int],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.tickets = tickets
        self.relay = relay
        self.knowledge = knowledge
        self.team_member_ids = team_member_ids
        self.clock = clock

    def role_for(self, user_id: int) -> Role:
        return Role.TEAM_MEMBER if user_id in self.team_member_ids else Role.REQUESTER

    async def handle(self, event: InboundEvent, session: Optional[Session]) -> Transition:
        role = self.role_for(event.user_id)

        rejection = self._gate(event, role, session)
        if rejection is not None:
            transition = Transition(session, rejection)
        else:
            try:
                transition = await self._dispatch(event, role, session)
            except BACKEND_ERRORS as e:
                logger.error(
                    "Backend failure while handling event",
                    extra={"context": {"user_id": event.user_id, "event": type(event).__name__, "error": str(e)}},
                    exc_info=True,
                )
                transition = Transition(session, [menus.failure(event.chat_id)])

        if isinstance(event, CallbackEvent) and not any(isinstance(a, AnswerCallback) for a in transition.actions):
            transition.actions.insert(0, AnswerCallback(event.callback_id))
        return transition

    # Gating

    def _gate(self, event: InboundEvent, role: Role, session: Optional[Session]) -> Optional[list[ChatAction]]:
        """Return the rejection actions when the role may not perform this event."""
        if isinstance(event, CommandEvent):
            if role is Role.TEAM_MEMBER and event.command in TICKET_COMMANDS:
                return [menus.team_redirect(event.chat_id)]
            if role is Role.REQUESTER and event.command in FORWARD_COMMANDS:
                return [menus.team_only(event.chat_id)]
            return None

        if isinstance(event, CallbackEvent):
            action = event.action
            if action is None:
                logger.info("Unknown callback data", extra={"context": {"data": event.raw_data}})
                return [AnswerCallback(event.callback_id, menus.STALE_CHOICE_TEXT)]
            if role is Role.TEAM_MEMBER and (isinstance(action, OpenCategory) or action in TICKET_ACTIONS):
                return [AnswerCallback(event.callback_id), menus.team_redirect(event.chat_id)]
            if role is Role.REQUESTER and action in FORWARD_ACTIONS:
                return [AnswerCallback(event.callback_id), menus.team_only(event.chat_id)]
            return None

        if role is Role.TEAM_MEMBER:
            awaiting_context = session is not None and isinstance(session.state, AwaitingForwardSourceState)
            if event.forwarded is None and not awaiting_context:
                return [menus.team_redirect(event.chat_id)]
        return None

    # Dispatch

    async def _dispatch(self, event: InboundEvent, role: Role, session: Optional[Session]) -> Transition:
        if isinstance(event, CommandEvent):
            return await self._on_command(event, role, session)
        if isinstance(event, CallbackEvent):
            if isinstance(event.action, OpenCategory):
                return await self._open_category(event, session, event.action)
            return await self._on_menu_action(event, role, session, event.action)
        if role is Role.TEAM_MEMBER:
            return await self._on_team_text(event, session)
        return await self._on_requester_text(event, session)

    async def _on_command(self, event: CommandEvent, role: Role, session: Optional[Session]) -> Transition:
        command = event.command
        if command in ("start", "menu"):
            return self._to_main(event, role, session)
        if command == "ticket":
            return Transition(
                self._enter(event, role, session, AwaitingTicketDescriptionState()), [menus.ticket_prompt(event.chat_id)]
            )
        if command == "status":
            return await self._show_status(event, role, session)
        if command == "forward":
            return Transition(self._enter(event, role, session, ForwardState()), [menus.forward_instructions(event.chat_id)])
        return Transition(session, [menus.help_message(event.chat_id, role)])

    async def _on_menu_action(
        self, event: CallbackEvent, role: Role, session: Optional[Session], action: MenuAction
    ) -> Transition:
        chat_id = event.chat_id

        if action in CHOICE_ACTIONS:
            if session is None or not isinstance(session.state, AwaitingTicketChoiceState):
                logger.info(
                    "Stale ticket choice rejected",
                    extra={"context": {"user_id": event.user_id, "action": action.value}},
                )
                return Transition(session, [AnswerCallback(event.callback_id, menus.STALE_CHOICE_TEXT)])
            return await self._resolve_choice(event, role, session, session.state, action)

        if action is MenuAction.MAIN_MENU:
            return self._to_main(event, role, session)
        if action is MenuAction.HELP:
            return Transition(session, [menus.help_message(chat_id, role)])
        if action is MenuAction.FORWARD_INSTRUCTIONS:
            return Transition(self._enter(event, role, session, ForwardState()), [menus.forward_instructions(chat_id)])
        if action is MenuAction.NEW_TICKET:
            return Transition(
                self._enter(event, role, session, AwaitingTicketDescriptionState()), [menus.ticket_prompt(chat_id)]
            )
        if action in (MenuAction.VIEW_TICKET, MenuAction.CANCEL_UPDATE):
            ref = await self.tickets.get_open(event.user_id)
            return Transition(self._enter(event, role, session, SupportState()), [menus.support_menu(chat_id, ref)])
        if action is MenuAction.CHECK_STATUS:
            return await self._show_status(event, role, session)
        if action is MenuAction.ADD_INFO:
            ref = await self.tickets.get_open(event.user_id)
            if ref is None:
                return Transition(self._enter(event, role, session, SupportState()), [menus.no_active_ticket(chat_id)])
            return Transition(
                self._enter(event, role, session, AwaitingTicketUpdateState()), [menus.update_prompt(chat_id, ref.ticket_id)]
            )
        if action is MenuAction.CLOSE_TICKET:
            result = await self.tickets.close_ticket(event.user_id)
            if not result.ok:
                return Transition(self._enter(event, role, session, SupportState()), [menus.no_active_ticket(chat_id)])
            return Transition(self._enter(event, role, session, MainState()), [menus.ticket_closed(chat_id, result.value)])
        if action is MenuAction.REOPEN_TICKET:
            result = await self.tickets.reopen_ticket(event.user_id)
            reply = menus.ticket_reopened(chat_id, result.value) if result.ok else menus.nothing_to_reopen(chat_id)
            return Transition(self._enter(event, role, session, SupportState()), [reply])
        if action is MenuAction.CANCEL_TICKET:
            return Transition(self._enter(event, role, session, MainState()), [menus.cancelled(chat_id, role)])
        if action is MenuAction.KNOWLEDGE_BASE:
            categories = await self.knowledge.list_categories()
            return Transition(
                self._enter(event, role, session, KnowledgeBaseState()), [menus.knowledge_base_menu(chat_id, categories)]
            )
        if action is MenuAction.SEARCH:
            return Transition(self._enter(event, role, session, SearchState()), [menus.search_prompt(chat_id)])

        return Transition(session, [menus.main_menu(chat_id, role)])

    async def _open_category(self, event: CallbackEvent, session: Optional[Session], action: OpenCategory) -> Transition:
        articles = await self.knowledge.list_category_articles(action.category_id)
        return Transition(
            self._enter(event, Role.REQUESTER, session, KnowledgeBaseState()),
            [menus.category_articles(event.chat_id, articles)],
        )

    async def _resolve_choice(
        self,
        event: CallbackEvent,
        role: Role,
        session: Session,
        choice: AwaitingTicketChoiceState,
        action: MenuAction,
    ) -> Transition:
        if action is MenuAction.ADD_TO_EXISTING:
            await self.tickets.add_comment(choice.existing_ticket_id, event.sender_name, choice.message)
            reply = menus.comment_added(event.chat_id, choice.existing_ticket_id)
        else:
            ref = await self.tickets.create_ticket(event.user_id, event.sender_name, choice.message, choice.severity)
            reply = menus.ticket_created(event.chat_id, ref.ticket_id, choice.severity)
        return Transition(self._enter(event, role, session, SupportState()), [reply])

    async def _show_status(self, event: InboundEvent, role: Role, session: Optional[Session]) -> Transition:
        ref = await self.tickets.get_open(event.user_id)
        if ref is None:
            return Transition(self._enter(event, role, session, SupportState()), [menus.no_active_ticket(event.chat_id)])

        ticket = await self.tickets.get_ticket(ref.ticket_id)
        if ticket.get("status") in CLOSED_STATUSES:
            self.tickets.cache.clear(event.user_id)
            return Transition(self._enter(event, role, session, SupportState()), [menus.no_active_ticket(event.chat_id)])
        return Transition(self._enter(event, role, session, SupportState()), [menus.ticket_status(event.chat_id, ticket)])

    async def _on_team_text(self, event: TextEvent, session: Optional[Session]) -> Transition:
        role = Role.TEAM_MEMBER
        if event.forwarded is not None:
            pending = event.forwarded
            logger.info(
                "Forward captured",
                extra={"context": {"user_id": event.user_id, "origin": pending.origin_kind.value}},
            )
            return Transition(
                self._enter(event, role, session, AwaitingForwardSourceState(pending=pending)),
                [menus.forward_source_prompt(event.chat_id, pending)],
            )

        state = session.state
        context_info = event.text.strip()
        if not context_info:
            return Transition(session, [menus.forward_source_prompt(event.chat_id, state.pending)])

        await self.relay.relay_forward(state.pending, context_info)
        return Transition(self._enter(event, role, session, ForwardState()), [ClearMenus(event.chat_id)])

    async def _on_requester_text(self, event: TextEvent, session: Optional[Session]) -> Transition:
        role = Role.REQUESTER
        state = session.state if session is not None else MainState()
        text = event.text.strip()

        if isinstance(state, SearchState):
            if len(text) < menus.MIN_SEARCH_LENGTH:
                return Transition(self._enter(event, role, session, SearchState()), [menus.search_too_short(event.chat_id)])
            results = await self.knowledge.search_articles(text)
            return Transition(self._enter(event, role, session, MainState()), [menus.search_results(event.chat_id, results)])

        if isinstance(state, AwaitingTicketUpdateState):
            ref = await self.tickets.get_open(event.user_id)
            if ref is not None:
                await self.tickets.add_comment(ref.ticket_id, event.sender_name, text)
                reply = menus.comment_added(event.chat_id, ref.ticket_id)
            else:
                severity = infer_severity(text)
                ref = await self.tickets.create_ticket(event.user_id, event.sender_name, text, severity)
                reply = menus.no_ticket_created_instead(event.chat_id, ref.ticket_id)
            return Transition(self._enter(event, role, session, SupportState()), [reply])

        return await self._describe_ticket(event, session, text)

    async def _describe_ticket(self, event: TextEvent, session: Optional[Session], text: str) -> Transition:
        """New ticket text. An open ticket always routes to the two-way choice."""
        role = Role.REQUESTER
        severity = infer_severity(text)
        existing = await self.tickets.get_open(event.user_id)
        if existing is not None:
            choice = AwaitingTicketChoiceState(message=text, severity=severity, existing_ticket_id=existing.ticket_id)
            return Transition(self._enter(event, role, session, choice), [menus.ticket_choice(event.chat_id, existing)])

        ref = await self.tickets.create_ticket(event.user_id, event.sender_name, text, severity)
        return Transition(
            self._enter(event, role, session, SupportState()),
            [menus.ticket_created(event.chat_id, ref.ticket_id, severity)],
        )

    # Helpers

    def _to_main(self, event: InboundEvent, role: Role, session: Optional[Session]) -> Transition:
        default = ForwardState() if role is Role.TEAM_MEMBER else MainState()
        return Transition(self._enter(event, role, session, default), [menus.main_menu(event.chat_id, role)])

    def _enter(self, event: InboundEvent, role: Role, session: Optional[Session], state) -> Optional[Session]:
        """Replace the session's state. Entering the role's default state drops the session."""
        default_kind = "forward" if role is Role.TEAM_MEMBER else "main"
        if state.kind == default_kind:
            return None
        now = self.clock()
        if session is None:
            return Session.start(event.user_id, event.chat_id, state, now)
        return session.enter(state, now)
