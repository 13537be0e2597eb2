"""Telegram command handlers."""

import asyncio
import logging

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from .adapters.file_state import StateFileError
from .config import load_config
from .core.commands import ValidationError
from .core.dates import start_of_day
from .core.tasks import sort_tasks
from .core.tools import Recommendation
from .core.views import ViewDescriptor, ViewMode
from .telegram_format import render_view_markdown, send_markdown, task_markdown
from .workflows import accept, generate_digest, get_store, local_now, render, run_assistant

logger = logging.getLogger(__name__)

# Messages kept per chat so follow-ups ("make it 5pm instead") have context
HISTORY_LIMIT = 20

HELP_TEXT = (
    "/agenda - Events and tasks for the next few days\n"
    "/week - This week's calendar\n"
    "/tasks - Open tasks\n"
    "/digest - Today's family digest\n"
    "/reset - Forget the conversation so far\n"
    "/help - Show all commands\n\n"
    "Anything else you type goes to FamilyBot, e.g. "
    "\"Add piano for Mia every Tuesday at 4pm\"."
)


# ============== Simple Commands ==============


async def start_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /start command."""
    await update.message.reply_text("Hi! I'm FamilyBot, I keep the family calendar and chores.\n\n" + HELP_TEXT)


async def help_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /help command."""
    await update.message.reply_text(HELP_TEXT)


async def _send_view(update: Update, mode: ViewMode):
    config = load_config()
    view = ViewDescriptor(mode=mode, anchor_date=start_of_day(local_now(config)))
    try:
        state = get_store(config).load()
        rendered = render(config, view)
    except StateFileError as e:
        await update.message.reply_text(f"Couldn't read the family data: {e}")
        return
    await send_markdown(update.message, render_view_markdown(rendered, state))


async def agenda_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /agenda command - the next few days."""
    await _send_view(update, ViewMode.AGENDA)


async def week_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /week command."""
    await _send_view(update, ViewMode.WEEK)


async def tasks_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /tasks command - list open tasks."""
    config = load_config()
    try:
        state = get_store(config).load()
    except StateFileError as e:
        await update.message.reply_text(f"Couldn't read the family data: {e}")
        return

    open_tasks = sort_tasks([t for t in state.tasks if not t.is_completed])
    if not open_tasks:
        await update.message.reply_text("No open tasks. Nice!")
        return
    body = "\n".join(task_markdown(t, state) for t in open_tasks)
    await send_markdown(update.message, f"**Open Tasks**\n\n{body}")


async def digest_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /digest command."""
    try:
        digest = generate_digest(load_config())
    except StateFileError as e:
        await update.message.reply_text(f"Couldn't read the family data: {e}")
        return
    await send_markdown(update.message, digest)


async def reset_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle /reset command - drop the assistant conversation."""
    context.chat_data.pop("history", None)
    context.chat_data.pop("recommendations", None)
    await update.message.reply_text("Conversation cleared.")


# ============== Assistant ==============


def _recommendation_keyboard(recs: list[Recommendation]) -> InlineKeyboardMarkup:
    rows = [
        [
            InlineKeyboardButton(f"Add: {rec.title}"[:60], callback_data=f"rec:add:{rec.id}"),
            InlineKeyboardButton("Dismiss", callback_data=f"rec:dismiss:{rec.id}"),
        ]
        for rec in recs
    ]
    return InlineKeyboardMarkup(rows)


async def assistant_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle free text by running it through the assistant."""
    text = (update.message.text or "").strip()
    if not text:
        return

    config = load_config()
    history = context.chat_data.get("history", [])
    await update.message.chat.send_action("typing")

    try:
        result = await asyncio.to_thread(run_assistant, config, text, history)
    except (RuntimeError, ValueError, StateFileError) as e:
        logger.error(f"Assistant failed: {e}")
        await update.message.reply_text("I hit a snag. Please check the connection or try rephrasing.")
        return

    context.chat_data["history"] = result.messages[-HISTORY_LIMIT:]
    for log in result.tool_logs:
        logger.info(f"Tool {log.name} -> {log.result}")

    reply = result.reply or "Done."
    if not result.recommendations:
        await send_markdown(update.message, reply)
        return

    pending = context.chat_data.setdefault("recommendations", {})
    for rec in result.recommendations:
        pending[rec.id] = rec
    lines = [reply, ""] + [f"- **{r.title}**: {r.description}" for r in result.recommendations]
    await send_markdown(
        update.message,
        "\n".join(lines),
        reply_markup=_recommendation_keyboard(result.recommendations),
    )


async def recommendation_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle taps on recommendation cards."""
    query = update.callback_query
    config = load_config()
    user = update.effective_user
    if config.telegram_allowed_users and (user is None or user.id not in config.telegram_allowed_users):
        logger.warning(f"Ignoring recommendation tap from unauthorized user {user.id if user else None}")
        await query.answer("Not authorized.", show_alert=True)
        return
    await query.answer()

    _, action, rec_id = query.data.split(":", 2)
    pending: dict = context.chat_data.get("recommendations", {})
    rec = pending.pop(rec_id, None)
    if rec is None:
        await query.edit_message_reply_markup(reply_markup=None)
        await query.message.reply_text("That suggestion has expired.")
        return

    if action == "add":
        try:
            await asyncio.to_thread(accept, config, rec)
        except (ValidationError, StateFileError, ValueError) as e:
            await query.message.reply_text(f"Couldn't add {rec.title}: {e}")
            return
        await query.message.reply_text(f"Added {rec.title}.")
    else:
        await query.message.reply_text(f"Dismissed {rec.title}.")

    # Rebuild this card's keyboard from the suggestions still pending on it
    markup = query.message.reply_markup
    rows = markup.inline_keyboard if markup else ()
    remaining = [pending[i] for i in (row[0].callback_data.split(":", 2)[2] for row in rows) if i in pending]
    await query.edit_message_reply_markup(
        reply_markup=_recommendation_keyboard(remaining) if remaining else None
    )
