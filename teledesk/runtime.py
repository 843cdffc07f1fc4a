"""Wires settings, the session store and every service into one runtime."""

from dataclasses import dataclass
from datetime import timedelta

from fastapi import Request

from teledesk.config import Settings
from teledesk.services.bot_service import BotService
from teledesk.services.chat_outbox import ChatOutbox
from teledesk.services.reaction_poller import ReactionPoller
from teledesk.services.relay_service import RelayService
from teledesk.services.session_store import SessionStore
from teledesk.services.slack_service import SlackService
from teledesk.services.state_machine import ConversationMachine
from teledesk.services.telegram_service import TelegramService
from teledesk.services.ticket_service import TicketService, TicketSessionCache
from teledesk.services.zendesk_service import ZendeskService
from teledesk.storage import JsonDocumentStorage


@dataclass
class Runtime:
    settings: Settings
    store: SessionStore
    telegram: TelegramService
    slack: SlackService
    zendesk: ZendeskService
    tickets: TicketService
    relay: RelayService
    poller: ReactionPoller
    machine: ConversationMachine
    bot: BotService


def build_runtime(settings: Settings) -> Runtime:
    timeout = settings.request_timeout_seconds
    store = SessionStore(
        JsonDocumentStorage(settings.state_dir),
        inactivity=timedelta(hours=settings.session_inactivity_hours),
        retention=timedelta(days=settings.retention_days),
    )
    telegram = TelegramService(settings.telegram_bot_token, timeout=timeout)
    slack = SlackService(settings.slack_api_token, settings.slack_channel_id, timeout=timeout)
    zendesk = ZendeskService(settings.zendesk_api_url, settings.zendesk_email, settings.zendesk_api_token, timeout=timeout)

    tickets = TicketService(TicketSessionCache(store, zendesk, settings.requester_email_domain), zendesk, slack)
    relay = RelayService(store, slack, telegram)
    poller = ReactionPoller(store, slack, relay, settings.ack_reaction_names)
    machine = ConversationMachine(tickets, relay, zendesk, settings.team_member_ids)
    bot = BotService(store, machine, ChatOutbox(telegram, store))

    return Runtime(
        settings=settings,
        store=store,
        telegram=telegram,
        slack=slack,
        zendesk=zendesk,
        tickets=tickets,
        relay=relay,
        poller=poller,
        machine=machine,
        bot=bot,
    )


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime
