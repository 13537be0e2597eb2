"""FamilySync CLI - family calendar, chores and assistant."""

import json
import logging
import sys
from datetime import datetime
from typing import Callable

import click

from .adapters.file_state import StateFileError
from .config import load_config
from .core import commands
from .core.calendar import Event, expand_events
from .core.commands import FamilyState, ValidationError
from .core.dates import end_of_week, format_instant, parse_instant, start_of_day, start_of_week
from .core.members import PALETTE, filter_by_member, member_names
from .core.recurrence import RecurrenceRule, RecurrenceSpec
from .core.tasks import Task, TaskCategory, filter_by_category, series_history, sort_tasks
from .core.views import ViewDescriptor, ViewMode, navigate
from .workflows import (
    accept,
    apply,
    generate_digest,
    get_store,
    init_state,
    local_now,
    render,
    run_assistant,
)

RULES = [r.value for r in RecurrenceRule]
CATEGORIES = [c.value for c in TaskCategory]

ERRORS = (ValidationError, StateFileError, RuntimeError, ValueError)


def _fail(e: Exception):
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _when(value: str | None, option: str) -> datetime | None:
    """Parse a CLI date/time option in the configured zone."""
    if not value:
        return None
    try:
        return parse_instant(value, load_config().tz)
    except ValueError:
        raise click.BadParameter(f"not a valid date/time: {value!r}", param_hint=option)


def _recurrence(repeat: str | None, until: str | None) -> RecurrenceSpec | None:
    if not repeat:
        return None
    return RecurrenceSpec(rule=RecurrenceRule(repeat), until=_when(until, "--until"))


def _load() -> FamilyState:
    try:
        return get_store(load_config()).load()
    except StateFileError as e:
        _fail(e)


def _mutate(command: Callable[[FamilyState], FamilyState], done: str) -> None:
    """Run a state command, save, and report whether anything changed."""

    def run(state: FamilyState) -> tuple[FamilyState, bool]:
        new_state = command(state)
        return new_state, new_state is not state

    try:
        changed = apply(load_config(), run)
    except ERRORS as e:
        _fail(e)
    click.echo(done if changed else "Nothing changed (unknown id or a recurring occurrence).")


def _event_line(event: Event, state: FamilyState) -> str:
    who = ", ".join(member_names(state.members, event.member_ids)) or "-"
    loc = f" @ {event.location}" if event.location else ""
    repeat = f" [{event.recurrence.rule.value}]" if event.recurrence else ""
    return f"  {event.format_time():8} {event.title}{loc} ({who}){repeat}  {event.id}"


def _task_line(task: Task, state: FamilyState) -> str:
    box = "[x]" if task.is_completed else "[ ]"
    due = f" (due {task.due_date.date()})" if task.due_date else ""
    who = ", ".join(member_names(state.members, task.assignee_ids))
    repeat = f" [{task.recurrence.rule.value}]" if task.recurrence else ""
    return f"{box} {task.title}{due} - {who} <{task.category.value}>{repeat}  {task.id}"


def _show_events(events: list[Event], state: FamilyState, as_json: bool, empty_msg: str = "No events.") -> None:
    """Shared event display logic."""
    if as_json:
        click.echo(json.dumps([e.to_dict() for e in events], indent=2))
        return

    if not events:
        click.echo(empty_msg)
        return

    current_date = None
    for event in events:
        event_date = event.start.date()
        if event_date != current_date:
            if current_date is not None:
                click.echo()
            click.echo(f"### {event_date.strftime('%A, %B %d')}")
            current_date = event_date
        click.echo(_event_line(event, state))


def _show_tasks(tasks: list[Task], state: FamilyState, as_json: bool, empty_msg: str = "No tasks.") -> None:
    if as_json:
        click.echo(json.dumps([t.to_dict() for t in tasks], indent=2))
        return

    if not tasks:
        click.echo(empty_msg)
        return

    for task in tasks:
        click.echo(_task_line(task, state))


@click.group()
@click.version_option()
def main():
    """FamilySync - shared family calendar and to-do list."""
    pass


@main.command()
@click.option("--demo", is_flag=True, help="Seed sample members, events and tasks")
@click.option("--force", is_flag=True, help="Overwrite an existing state file")
def init(demo: bool, force: bool):
    """Create the family state file."""
    config = load_config()
    try:
        state = init_state(config, demo=demo, force=force)
    except RuntimeError as e:
        _fail(e)
    click.echo(
        f"Initialized {config.state_path} "
        f"({len(state.members)} members, {len(state.events)} events, {len(state.tasks)} tasks)"
    )


# ============== Members ==============


@main.group()
def members():
    """Manage family members."""
    pass


@members.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def members_list(as_json: bool):
    """List family members."""
    state = _load()
    if as_json:
        click.echo(json.dumps([m.to_dict() for m in state.members], indent=2))
        return
    if not state.members:
        click.echo("No family members yet.")
        return
    for m in state.members:
        click.echo(f"{m.name:12} {m.color:8} {m.id}")


@members.command("add")
@click.argument("name")
@click.option("--color", type=click.Choice(PALETTE), default=None, help="Preferred colour")
def members_add(name: str, color: str | None):
    """Add a family member."""
    try:
        member = apply(load_config(), lambda s: commands.add_member(s, name, color))
    except ERRORS as e:
        _fail(e)
    click.echo(f"Added {member.name} ({member.color}) {member.id}")


@members.command("update")
@click.argument("member_id")
@click.option("--name", default=None)
@click.option("--color", type=click.Choice(PALETTE), default=None)
def members_update(member_id: str, name: str | None, color: str | None):
    """Rename a member or change their colour."""
    changes = {k: v for k, v in (("name", name), ("color", color)) if v is not None}
    _mutate(lambda s: commands.update_member(s, member_id, changes), "Member updated.")


@members.command("delete")
@click.argument("member_id")
def members_delete(member_id: str):
    """Remove a member. Their events and tasks are kept."""
    _mutate(lambda s: commands.delete_member(s, member_id), "Member removed.")


# ============== Events ==============


@main.group()
def events():
    """Manage calendar events."""
    pass


@events.command("list")
@click.option("--start", default=None, help="Window start (default: start of this week)")
@click.option("--end", default=None, help="Window end (default: end of that week)")
@click.option("--member", "member_id", default=None, help="Only events for this member id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def events_list(start: str | None, end: str | None, member_id: str | None, as_json: bool):
    """List events, with recurring ones expanded into the window."""
    config = load_config()
    state = _load()
    window_start = _when(start, "--start") or start_of_week(local_now(config), config.week_start)
    window_end = _when(end, "--end") or end_of_week(window_start, config.week_start)
    found = filter_by_member(expand_events(list(state.events), window_start, window_end), member_id)
    _show_events(found, state, as_json, "No events in this window.")


@events.command("add")
@click.argument("title")
@click.option("--start", required=True, help="Start date/time (ISO)")
@click.option("--end", default=None, help="End date/time (default: one hour later)")
@click.option("--member", "member_ids", multiple=True, help="Member id (repeatable)")
@click.option("--location", default="")
@click.option("--repeat", type=click.Choice(RULES), default=None)
@click.option("--until", default=None, help="Last date of the recurrence")
def events_add(title, start, end, member_ids, location, repeat, until):
    """Create an event."""
    start_dt = _when(start, "--start")
    end_dt = _when(end, "--end")
    recurrence = _recurrence(repeat, until)
    try:
        event = apply(
            load_config(),
            lambda s: commands.add_event(
                s,
                start=start_dt,
                end=end_dt,
                title=title,
                member_ids=list(member_ids),
                location=location,
                recurrence=recurrence,
            ),
        )
    except ERRORS as e:
        _fail(e)
    click.echo(f"Added event {event.title} on {format_instant(event.start)} {event.id}")


@events.command("update")
@click.argument("event_id")
@click.option("--title", default=None)
@click.option("--start", default=None)
@click.option("--end", default=None)
@click.option("--member", "member_ids", multiple=True, help="Replace members (repeatable)")
@click.option("--location", default=None)
@click.option("--repeat", type=click.Choice(RULES), default=None)
@click.option("--until", default=None)
@click.option("--no-repeat", is_flag=True, help="Make the event one-off")
def events_update(event_id, title, start, end, member_ids, location, repeat, until, no_repeat):
    """Change some fields of an event."""
    changes = {}
    if title is not None:
        changes["title"] = title
    if location is not None:
        changes["location"] = location
    if start:
        changes["start"] = _when(start, "--start")
    if end:
        changes["end"] = _when(end, "--end")
    if member_ids:
        changes["member_ids"] = list(member_ids)
    if no_repeat:
        changes["recurrence"] = None
    elif repeat:
        changes["recurrence"] = _recurrence(repeat, until)
    _mutate(lambda s: commands.update_event(s, event_id, changes), "Event updated.")


@events.command("delete")
@click.argument("event_id")
def events_delete(event_id: str):
    """Delete an event (a recurring one goes with its whole series)."""
    _mutate(lambda s: commands.delete_event(s, event_id), "Event deleted.")


@events.command("move")
@click.argument("event_id")
@click.argument("new_start")
def events_move(event_id: str, new_start: str):
    """Move an event to a new start, keeping its length."""
    start_dt = _when(new_start, "NEW_START")
    _mutate(lambda s: commands.drop_event(s, event_id, start_dt), "Event moved.")


# ============== Tasks ==============


@main.group()
def tasks():
    """Manage to-do tasks."""
    pass


@tasks.command("list")
@click.option("--category", type=click.Choice(CATEGORIES), default=None)
@click.option("--member", "member_id", default=None, help="Only tasks for this member id")
@click.option("--open", "only_open", is_flag=True, help="Hide completed tasks")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tasks_list(category: str | None, member_id: str | None, only_open: bool, as_json: bool):
    """List all tasks."""
    state = _load()
    found = filter_by_member(list(state.tasks), member_id)
    found = filter_by_category(found, TaskCategory(category) if category else None)
    if only_open:
        found = [t for t in found if not t.is_completed]
    _show_tasks(sort_tasks(found), state, as_json)


@tasks.command("add")
@click.argument("title")
@click.option("--assignee", "assignee_ids", multiple=True, help="Member id (repeatable, at least one)")
@click.option("--category", type=click.Choice(CATEGORIES), default="general")
@click.option("--due", default=None, help="Due date (ISO)")
@click.option("--repeat", type=click.Choice(RULES), default=None)
@click.option("--until", default=None)
def tasks_add(title, assignee_ids, category, due, repeat, until):
    """Create a task."""
    due_dt = _when(due, "--due")
    recurrence = _recurrence(repeat, until)
    try:
        task = apply(
            load_config(),
            lambda s: commands.add_task(
                s,
                title=title,
                assignee_ids=list(assignee_ids),
                category=TaskCategory(category),
                due_date=due_dt,
                recurrence=recurrence,
            ),
        )
    except ERRORS as e:
        _fail(e)
    click.echo(f"Added task {task.title} {task.id}")


@tasks.command("update")
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("--category", type=click.Choice(CATEGORIES), default=None)
@click.option("--due", default=None)
@click.option("--assignee", "assignee_ids", multiple=True, help="Replace assignees (repeatable)")
@click.option("--done/--not-done", default=None)
@click.option("--repeat", type=click.Choice(RULES), default=None)
@click.option("--until", default=None)
@click.option("--no-repeat", is_flag=True, help="Stop the task recurring")
def tasks_update(task_id, title, category, due, assignee_ids, done, repeat, until, no_repeat):
    """Change some fields of a task."""
    changes = {}
    if title is not None:
        changes["title"] = title
    if category:
        changes["category"] = TaskCategory(category)
    if due:
        changes["due_date"] = _when(due, "--due")
    if assignee_ids:
        changes["assignee_ids"] = list(assignee_ids)
    if done is not None:
        changes["is_completed"] = done
    if no_repeat:
        changes["recurrence"] = None
    elif repeat:
        changes["recurrence"] = _recurrence(repeat, until)
    _mutate(lambda s: commands.update_task(s, task_id, changes), "Task updated.")


@tasks.command("delete")
@click.argument("task_id")
def tasks_delete(task_id: str):
    """Delete a task."""
    _mutate(lambda s: commands.delete_task(s, task_id), "Task deleted.")


@tasks.command("toggle")
@click.argument("task_id")
def tasks_toggle(task_id: str):
    """Mark a task done (or not done). Recurring tasks roll over."""
    _mutate(lambda s: commands.toggle_task(s, task_id), "Task toggled.")


@tasks.command("history")
@click.argument("series_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tasks_history(series_id: str, as_json: bool):
    """Show every instance of a recurring task, newest first."""
    state = _load()
    _show_tasks(series_history(list(state.tasks), series_id), state, as_json, "No tasks in that series.")


# ============== Views ==============


@main.command()
@click.option("--mode", type=click.Choice([m.value for m in ViewMode]), default="week")
@click.option("--date", "-d", "target_date", default=None, help="Anchor date (YYYY-MM-DD), defaults to today")
@click.option("--member", "member_id", default=None)
@click.option("--category", type=click.Choice(CATEGORIES), default=None)
@click.option("--offset", type=int, default=0, help="Step forward/back by months (month view) or weeks")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def view(mode, target_date, member_id, category, offset, as_json):
    """Show the month, week or agenda view."""
    config = load_config()
    anchor = _when(target_date, "--date") or start_of_day(local_now(config))
    descriptor = ViewDescriptor(
        mode=ViewMode(mode),
        anchor_date=anchor,
        member_id=member_id,
        category=TaskCategory(category) if category else None,
    )
    if offset:
        descriptor = navigate(descriptor, offset)

    try:
        rendered = render(config, descriptor)
    except StateFileError as e:
        _fail(e)

    if as_json:
        click.echo(
            json.dumps(
                {
                    "label": rendered.label,
                    "events": [e.to_dict() for e in rendered.events],
                    "tasks": [t.to_dict() for t in rendered.tasks],
                },
                indent=2,
            )
        )
        return

    state = _load()
    click.echo(f"== {rendered.label} ==\n")
    _show_events(rendered.events, state, False, "No events.")
    click.echo("\nTasks:")
    _show_tasks(rendered.tasks, state, False, "No tasks.")


@main.command()
@click.option("--member", "member_id", default=None)
@click.option("--date", "-d", "target_date", default=None, help="Day to summarise (YYYY-MM-DD)")
def digest(member_id: str | None, target_date: str | None):
    """Print today's family digest."""
    config = load_config()
    as_of = _when(target_date, "--date")
    try:
        click.echo(generate_digest(config, as_of=as_of, member_id=member_id))
    except StateFileError as e:
        _fail(e)


@main.command()
@click.argument("message", nargs=-1, required=True)
@click.option("--verbose", "-v", is_flag=True, help="Show the tool calls the assistant made")
def chat(message: tuple[str, ...], verbose: bool):
    """Ask the assistant to do something, e.g. "add soccer for Leo on Friday at 4"."""
    config = load_config()
    try:
        result = run_assistant(config, " ".join(message))
    except ERRORS as e:
        _fail(e)

    if verbose:
        for log in result.tool_logs:
            click.echo(f"> {log.name}({json.dumps(log.args)}) -> {json.dumps(log.result, default=str)}")
    click.echo(result.reply)

    for rec in result.recommendations:
        click.echo(f"\n* {rec.title} [{rec.category}]\n  {rec.description}")
        if click.confirm("  Add this?", default=False):
            try:
                accept(config, rec)
            except ERRORS as e:
                _fail(e)
            click.echo("  Added.")


@main.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def bot(debug: bool):
    """Run the Telegram bot."""
    if debug:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.DEBUG,
        )

    try:
        from .telegram_bot import run_bot
        click.echo("Starting FamilySync Telegram bot...")
        click.echo("Press Ctrl+C to stop")
        run_bot()
    except ImportError as e:
        click.echo("Error: Missing dependencies. Run 'pip install python-telegram-bot apscheduler'", err=True)
        click.echo(f"Details: {e}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nBot stopped.")
