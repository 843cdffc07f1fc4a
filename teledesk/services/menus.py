"""Static menu graph: texts and inline keyboards per role.

Menus and prompts replace one another in the chat. Confirmations and search
results are sent with ``menu=False`` and are never cleaned up.
"""

from typing import Optional

from teledesk.models.actions import MenuAction, OpenCategory, SendMessage
from teledesk.models.session import PendingForward, Role, Severity, TicketRef
from teledesk.services.telegram_service import build_inline_keyboard

BACK_TO_MAIN = ("« Back to Main Menu", MenuAction.MAIN_MENU.value)
BACK_TO_KB = ("« Back to Knowledge Base", MenuAction.KNOWLEDGE_BASE.value)
CREATE_TICKET = ("📝 Create Support Ticket", MenuAction.NEW_TICKET.value)

STALE_CHOICE_TEXT = "This option is no longer valid."
TEAM_REDIRECT_TEXT = (
    "As a team member, this bot is primarily for forwarding messages to Slack.\n\n"
    "If you need to create a support ticket, please use the regular support channels."
)
TEAM_ONLY_TEXT = "This feature is only available to team members."
FAILURE_TEXT = "🔴 Something went wrong while processing your request. Please try again later."
SEARCH_RESULT_LIMIT = 5
MIN_SEARCH_LENGTH = 3


def md_escape(text: str) -> str:
    for char in ("\\", "_", "*", "`", "["):
        text = text.replace(char, f"\\{char}")
    return text


def main_menu(chat_id: int, role: Role) -> SendMessage:
    if role is Role.TEAM_MEMBER:
        text = (
            "🔷 *Team Menu*\n\n"
            "As a team member, you can forward messages from other users/groups to Slack."
        )
        rows = [
            [("🔄 How to Forward Messages", MenuAction.FORWARD_INSTRUCTIONS.value)],
            [("❓ Help / Commands", MenuAction.HELP.value)],
        ]
    else:
        text = "🔷 *Support Main Menu*\n\nHow can we help you today?"
        rows = [
            [("📚 Knowledge Base", MenuAction.KNOWLEDGE_BASE.value)],
            [CREATE_TICKET],
            [("🔍 View Active Ticket", MenuAction.VIEW_TICKET.value)],
            [("❓ Help / Commands", MenuAction.HELP.value)],
        ]
    return SendMessage(chat_id, text, build_inline_keyboard(rows))


def help_message(chat_id: int, role: Role) -> SendMessage:
    if role is Role.TEAM_MEMBER:
        text = (
            "📚 *Helpdesk Bot Commands (Team Member)*\n\n"
            "/start - Show the team menu\n"
            "/help - Show this help message\n"
            "/forward - How to forward messages\n\n"
            "As a team member, this bot helps you forward messages from other users/groups to Slack. "
            "Simply forward any message to this bot, and it will be relayed to the team Slack channel."
        )
    else:
        text = (
            "📚 *Helpdesk Bot Commands*\n\n"
            "/start - Show the main menu\n"
            "/help - Show this help message\n"
            "/ticket - Create a new support ticket\n"
            "/status - Check your active ticket\n\n"
            "You can also just type your question and we'll open a ticket for you."
        )
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_MAIN]]))


def support_menu(chat_id: int, ref: Optional[TicketRef]) -> SendMessage:
    if ref is not None:
        text = (
            "🎫 *Support Ticket Options*\n\n"
            f"You have an active support ticket (#{ref.ticket_id}). What would you like to do?"
        )
        rows = [
            [("📝 Add Information", MenuAction.ADD_INFO.value)],
            [("🔍 Check Status", MenuAction.CHECK_STATUS.value)],
            [("🟢 Close Ticket", MenuAction.CLOSE_TICKET.value)],
            [BACK_TO_MAIN],
        ]
    else:
        text = "🎫 *Support Ticket Options*\n\nYou don't have an active ticket. Would you like to create one?"
        rows = [
            [("📝 Create New Ticket", MenuAction.NEW_TICKET.value)],
            [("🔄 Reopen Last Ticket", MenuAction.REOPEN_TICKET.value)],
            [BACK_TO_MAIN],
        ]
    return SendMessage(chat_id, text, build_inline_keyboard(rows))


def ticket_prompt(chat_id: int) -> SendMessage:
    text = (
        "📝 *New Support Ticket*\n\n"
        "Please describe your issue in a single message. "
        "Mention *urgent* or *high priority* if it needs immediate attention."
    )
    return SendMessage(chat_id, text, build_inline_keyboard([[("✖️ Cancel", MenuAction.CANCEL_TICKET.value)]]))


def update_prompt(chat_id: int, ticket_id: int) -> SendMessage:
    text = f"📝 Please type the information you'd like to add to ticket #{ticket_id}."
    return SendMessage(
        chat_id, text, build_inline_keyboard([[("✖️ Cancel", MenuAction.CANCEL_UPDATE.value)]]), parse_mode=None
    )


def ticket_choice(chat_id: int, ref: TicketRef) -> SendMessage:
    subject = f': "{ref.subject}"' if ref.subject else ""
    text = f"You have an active ticket (#{ref.ticket_id}){subject}\n\nIs your new message related to this ticket?"
    rows = [
        [("🟢 Yes, add to existing ticket", MenuAction.ADD_TO_EXISTING.value)],
        [("📝 No, create a new ticket", MenuAction.CREATE_NEW_TICKET.value)],
    ]
    return SendMessage(chat_id, text, build_inline_keyboard(rows), parse_mode=None)


def ticket_created(chat_id: int, ticket_id: int, severity: Severity) -> SendMessage:
    text = (
        f"🟢 Your support ticket (#{ticket_id}) has been created with {severity.value} priority.\n\n"
        "A team member will respond shortly."
    )
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_MAIN]]), menu=False, parse_mode=None)


def comment_added(chat_id: int, ticket_id: int) -> SendMessage:
    text = f"🟢 Your message has been added to ticket #{ticket_id}.\n\nA team member will respond shortly."
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_MAIN]]), menu=False, parse_mode=None)


def no_ticket_created_instead(chat_id: int, ticket_id: int) -> SendMessage:
    text = (
        f"🟢 We couldn't find an existing ticket, so we've created a new support ticket (#{ticket_id}).\n\n"
        "A team member will respond shortly."
    )
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_MAIN]]), menu=False, parse_mode=None)


def ticket_status(chat_id: int, ticket: dict) -> SendMessage:
    text = (
        f"🎫 Ticket #{ticket.get('id')}\n"
        f"Subject: {ticket.get('subject') or '-'}\n"
        f"Status: {str(ticket.get('status') or 'unknown').capitalize()}\n"
        f"Priority: {str(ticket.get('priority') or 'normal').capitalize()}"
    )
    rows = [[("📝 Add Information", MenuAction.ADD_INFO.value)], [BACK_TO_MAIN]]
    return SendMessage(chat_id, text, build_inline_keyboard(rows), parse_mode=None)


def no_active_ticket(chat_id: int) -> SendMessage:
    return support_menu(chat_id, None)


def ticket_closed(chat_id: int, ticket_id: int) -> SendMessage:
    text = f"🟢 Ticket #{ticket_id} has been closed. Thank you for contacting support!"
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_MAIN]]), menu=False, parse_mode=None)


def ticket_reopened(chat_id: int, ticket_id: int) -> SendMessage:
    text = f"🔄 Ticket #{ticket_id} has been reopened. A team member will follow up."
    rows = [[("📝 Add Information", MenuAction.ADD_INFO.value)], [BACK_TO_MAIN]]
    return SendMessage(chat_id, text, build_inline_keyboard(rows), menu=False, parse_mode=None)


def nothing_to_reopen(chat_id: int) -> SendMessage:
    text = "No recently solved tickets found to reopen."
    return SendMessage(chat_id, text, build_inline_keyboard([[CREATE_TICKET], [BACK_TO_MAIN]]), parse_mode=None)


def knowledge_base_menu(chat_id: int, categories: list[dict]) -> SendMessage:
    text = "📚 *Knowledge Base*\n\nPlease select a topic to explore:"
    rows = [[(category.get("name") or "Category", OpenCategory(category["id"]).callback_data)] for category in categories]
    rows.append([("🔍 Search Articles", MenuAction.SEARCH.value)])
    rows.append([BACK_TO_MAIN])
    return SendMessage(chat_id, text, build_inline_keyboard(rows))


def category_articles(chat_id: int, articles: list[dict]) -> SendMessage:
    if not articles:
        text = "No articles in this category yet."
        return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_KB]]), parse_mode=None)
    text = "📄 *Articles*\n\nTap an article to open it:"
    rows = [[(article.get("title") or "Article", article["html_url"])] for article in articles[:10] if article.get("html_url")]
    rows.append([BACK_TO_KB])
    return SendMessage(chat_id, text, build_inline_keyboard(rows))


def search_prompt(chat_id: int) -> SendMessage:
    text = "🔍 *Search Knowledge Base*\n\nPlease enter your search query below."
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_KB]]))


def search_too_short(chat_id: int) -> SendMessage:
    text = f"Please provide a search term of at least {MIN_SEARCH_LENGTH} characters."
    return SendMessage(chat_id, text, build_inline_keyboard([[BACK_TO_KB]]), parse_mode=None)


def search_results(chat_id: int, results: list[dict]) -> SendMessage:
    rows = [[CREATE_TICKET], [BACK_TO_KB]]
    if not results:
        text = "No articles found matching your search. Please try different keywords or create a support ticket."
        return SendMessage(chat_id, text, build_inline_keyboard(rows), parse_mode=None)

    lines = ["🔍 *Search Results*", ""]
    for index, article in enumerate(results[:SEARCH_RESULT_LIMIT], start=1):
        lines.append(f"{index}. [{md_escape(article.get('title') or 'Article')}]({article.get('html_url')})")
    lines.append("")
    lines.append("If these articles don't solve your issue, you can create a support ticket.")
    return SendMessage(chat_id, "\n".join(lines), build_inline_keyboard(rows), menu=False, disable_preview=True)


def forward_instructions(chat_id: int) -> SendMessage:
    text = (
        "🔄 *Forwarding Messages to Slack*\n\n"
        "To forward a message:\n\n"
        "1. In any chat, long-press on the message you want to forward\n"
        "2. Tap 'Forward'\n"
        "3. Select this bot as the destination\n"
        "4. Add a short context line when asked\n\n"
        "If the source isn't detected automatically, you'll be asked to provide it."
    )
    return SendMessage(chat_id, text, build_inline_keyboard([[("« Back", MenuAction.MAIN_MENU.value)]]))


def forward_source_prompt(chat_id: int, pending: PendingForward) -> SendMessage:
    if pending.source_known:
        text = (
            f"Detected source: {pending.source_label}\n\n"
            "Please add a short context for the team (what is this about, what is needed)."
        )
    else:
        text = (
            "I couldn't detect where this message came from.\n\n"
            "Please enter the group or chat name this message is from."
        )
    return SendMessage(chat_id, text, build_inline_keyboard([[("✖️ Cancel", MenuAction.MAIN_MENU.value)]]), parse_mode=None)


def team_redirect(chat_id: int) -> SendMessage:
    return SendMessage(chat_id, TEAM_REDIRECT_TEXT, build_inline_keyboard([[BACK_TO_MAIN]]), parse_mode=None)


def team_only(chat_id: int) -> SendMessage:
    return SendMessage(chat_id, TEAM_ONLY_TEXT, build_inline_keyboard([[BACK_TO_MAIN]]), parse_mode=None)


def failure(chat_id: int) -> SendMessage:
    return SendMessage(chat_id, FAILURE_TEXT, build_inline_keyboard([[BACK_TO_MAIN]]), parse_mode=None)


def cancelled(chat_id: int, role: Role) -> SendMessage:
    menu = main_menu(chat_id, role)
    return SendMessage(chat_id, "Cancelled.\n\n" + menu.text, menu.reply_markup)
