"""Telegram message formatting utilities."""

import telegramify_markdown

from .core.commands import FamilyState
from .core.dates import is_same_day
from .core.members import member_names
from .core.tasks import Task
from .core.views import RenderedView

MAX_MESSAGE = 4000


def render_view_markdown(rendered: RenderedView, state: FamilyState) -> str:
    """Markdown for a rendered view: events grouped by day, then tasks."""
    lines = [f"## {rendered.label}", ""]

    if not rendered.events:
        lines.append("No events.")
    previous = None
    for event in rendered.events:
        if previous is None or not is_same_day(event.start, previous.start):
            lines.append(f"**{event.start.strftime('%A, %b %d')}**")
        previous = event
        who = ", ".join(member_names(state.members, event.member_ids))
        loc = f" @ {event.location}" if event.location else ""
        lines.append(f"- `{event.format_time()}` {event.title}{loc} ({who})")

    lines += ["", "**Tasks**"]
    lines += [task_markdown(t, state) for t in rendered.tasks] or ["Nothing due."]
    return "\n".join(lines)


def task_markdown(task: Task, state: FamilyState) -> str:
    box = "✅" if task.is_completed else "⬜"
    due = f" _(due {task.due_date.strftime('%a %b %d')})_" if task.due_date else ""
    who = ", ".join(member_names(state.members, task.assignee_ids))
    return f"- {box} {task.title}{due} · {who}"


async def send_markdown(bot_or_msg, text: str, *, chat_id: int | None = None, reply_markup=None):
    """Send markdown text to Telegram, converting to MarkdownV2.

    bot_or_msg: a Bot instance (pass chat_id) or an Update.message (calls reply_text).
    A reply_markup is attached to the last chunk only.
    """
    converted = telegramify_markdown.markdownify(text)
    chunks = [converted[i : i + MAX_MESSAGE] for i in range(0, len(converted), MAX_MESSAGE)] or [""]
    for n, chunk in enumerate(chunks):
        markup = reply_markup if n == len(chunks) - 1 else None
        if chat_id is not None:
            await bot_or_msg.send_message(chat_id=chat_id, text=chunk, parse_mode="MarkdownV2", reply_markup=markup)
        else:
            await bot_or_msg.reply_text(chunk, parse_mode="MarkdownV2", reply_markup=markup)
