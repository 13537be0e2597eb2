"""Pure daily digest assembly logic - no I/O dependencies."""

from dataclasses import dataclass
from datetime import date, datetime

from .calendar import Event, expand_events
from .commands import FamilyState
from .dates import end_of_day, is_same_day, start_of_day
from .members import Member, filter_by_member, member_names
from .tasks import Task, collapse_series, filter_overdue, sort_tasks, visible_tasks


@dataclass
class DigestData:
    """Assembled digest data ready for formatting."""

    date: date
    day_of_week: str
    members: tuple[Member, ...]
    events: list[Event]
    due_today: list[Task]
    overdue: list[Task]
    backlog: list[Task]


def assemble_digest(
    state: FamilyState,
    as_of: datetime | None = None,
    member_id: str | None = None,
) -> DigestData:
    """
    Assemble today's digest from the family snapshot.

    Pure function - no I/O. Handles expansion, visibility and sorting.
    """
    as_of = as_of or datetime.now()
    day_start, day_end = start_of_day(as_of), end_of_day(as_of)

    events = filter_by_member(expand_events(list(state.events), day_start, day_end), member_id)

    tasks = filter_by_member(visible_tasks(list(state.tasks), day_start, day_end), member_id)
    tasks = collapse_series(sort_tasks(tasks))
    open_tasks = [t for t in tasks if not t.is_completed]

    return DigestData(
        date=as_of.date(),
        day_of_week=as_of.strftime("%A"),
        members=state.members,
        events=events,
        due_today=[t for t in open_tasks if t.due_date and is_same_day(t.due_date, as_of)],
        overdue=filter_overdue(open_tasks, day_start),
        backlog=[t for t in open_tasks if t.due_date is None],
    )


def format_event_line(event: Event, members: tuple[Member, ...]) -> str:
    """
    Format a single event for display.

    Pure function - no I/O.
    """
    who = ", ".join(member_names(members, event.member_ids)) or "nobody"
    location = f" @ {event.location}" if event.location else ""
    repeat = " (repeats)" if event.is_virtual else ""
    return f"- {event.format_time()} - {event.end.strftime('%H:%M')} {event.title}{location} [{who}]{repeat}"


def format_task_line(task: Task, members: tuple[Member, ...], as_of: date | None = None) -> str:
    """
    Format a single task for display in the digest.

    Pure function - no I/O.
    """
    as_of = as_of or date.today()
    days = task.days_until_due(as_of)

    urgency = "no due date"
    if days is not None:
        if days < 0:
            urgency = f"OVERDUE by {-days}d"
        elif days == 0:
            urgency = "due TODAY"
        else:
            urgency = f"due in {days}d"

    who = ", ".join(member_names(members, task.assignee_ids))
    return f"- [{task.category.value.title()}] {task.title} ({urgency}, {who})"


def format_digest(data: DigestData) -> str:
    """
    Format digest data as markdown.

    Pure function - no I/O.
    """
    events_md = "\n".join(format_event_line(e, data.members) for e in data.events) or "No events today."
    today_md = "\n".join(format_task_line(t, data.members, data.date) for t in data.due_today) or "None"
    overdue_md = "\n".join(format_task_line(t, data.members, data.date) for t in data.overdue) or "None"
    backlog_md = "\n".join(format_task_line(t, data.members, data.date) for t in data.backlog) or "None"

    return f"""## {data.day_of_week}, {data.date.strftime("%B %d")}

### Calendar
{events_md}

### Due Today
{today_md}

### Overdue
{overdue_md}

### Backlog
{backlog_md}"""
