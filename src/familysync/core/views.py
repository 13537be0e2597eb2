"""View descriptors and render-ready view assembly - pure, no I/O."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from .calendar import Event, expand_events
from .commands import FamilyState
from .dates import (
    SUNDAY,
    add_days,
    add_months,
    end_of_month,
    end_of_week,
    start_of_day,
    start_of_month,
    start_of_week,
)
from .members import Member, filter_by_member
from .tasks import Task, TaskCategory, collapse_series, filter_by_category, sort_tasks, visible_tasks

AGENDA_TASK_DAYS = 3
AGENDA_EVENT_DAYS = 7


class ViewMode(str, Enum):
    MONTH = "month"
    WEEK = "week"
    AGENDA = "agenda"


@dataclass(frozen=True)
class ViewDescriptor:
    """What the caller is looking at: mode, anchor date and optional filters."""

    mode: ViewMode
    anchor_date: datetime
    member_id: str | None = None
    category: TaskCategory | None = None


@dataclass(frozen=True)
class ViewSettings:
    week_starts_on: int = SUNDAY
    agenda_task_days: int = AGENDA_TASK_DAYS
    agenda_event_days: int = AGENDA_EVENT_DAYS


@dataclass
class RenderedView:
    """Everything a presentation layer needs to draw one view."""

    label: str
    task_window: tuple[datetime, datetime]
    event_window: tuple[datetime, datetime]
    events: list[Event]
    tasks: list[Task]


def task_window(view: ViewDescriptor, settings: ViewSettings = ViewSettings()) -> tuple[datetime, datetime]:
    """Window used for task visibility."""
    anchor = view.anchor_date
    if view.mode is ViewMode.MONTH:
        return start_of_month(anchor), end_of_month(anchor)
    if view.mode is ViewMode.WEEK:
        return start_of_week(anchor, settings.week_starts_on), end_of_week(anchor, settings.week_starts_on)
    start = start_of_day(anchor)
    return start, add_days(start, settings.agenda_task_days)


def event_window(view: ViewDescriptor, settings: ViewSettings = ViewSettings()) -> tuple[datetime, datetime]:
    """
    Window used for event expansion.

    The month grid shows whole weeks, so it runs from the start of the week
    holding the 1st to the end of the week holding the last day.
    """
    anchor = view.anchor_date
    if view.mode is ViewMode.MONTH:
        return (
            start_of_week(start_of_month(anchor), settings.week_starts_on),
            end_of_week(end_of_month(anchor), settings.week_starts_on),
        )
    if view.mode is ViewMode.WEEK:
        return start_of_week(anchor, settings.week_starts_on), end_of_week(anchor, settings.week_starts_on)
    start = start_of_day(anchor)
    return start, add_days(start, settings.agenda_event_days)


def view_label(view: ViewDescriptor, settings: ViewSettings = ViewSettings()) -> str:
    if view.mode is ViewMode.MONTH:
        return view.anchor_date.strftime("%B %Y")
    if view.mode is ViewMode.WEEK:
        start = start_of_week(view.anchor_date, settings.week_starts_on)
        return f"Week of {start.strftime('%b')} {start.day}"
    return f"Next {settings.agenda_task_days} Days"


def navigate(view: ViewDescriptor, steps: int) -> ViewDescriptor:
    """Move the anchor: months in month view, weeks otherwise."""
    if view.mode is ViewMode.MONTH:
        return replace(view, anchor_date=add_months(view.anchor_date, steps))
    return replace(view, anchor_date=add_days(view.anchor_date, 7 * steps))


def reconcile_filter(view: ViewDescriptor, members: tuple[Member, ...] | list[Member]) -> ViewDescriptor:
    """Drop the member filter when that member no longer exists."""
    if view.member_id is not None and all(m.id != view.member_id for m in members):
        return replace(view, member_id=None)
    return view


def render_view(
    state: FamilyState,
    view: ViewDescriptor,
    settings: ViewSettings = ViewSettings(),
) -> RenderedView:
    """
    Compute the render-ready events and tasks for a view.

    Pure function - no I/O. Events are expanded over the event window and
    filtered by member. Tasks go through visibility, member and category
    filters, are sorted, and each series is collapsed to one card.
    """
    view = reconcile_filter(view, state.members)
    ev_start, ev_end = event_window(view, settings)
    t_start, t_end = task_window(view, settings)

    events = filter_by_member(expand_events(list(state.events), ev_start, ev_end), view.member_id)

    tasks = visible_tasks(list(state.tasks), t_start, t_end)
    tasks = filter_by_member(tasks, view.member_id)
    tasks = filter_by_category(tasks, view.category)
    tasks = collapse_series(sort_tasks(tasks))

    return RenderedView(
        label=view_label(view, settings),
        task_window=(t_start, t_end),
        event_window=(ev_start, ev_end),
        events=events,
        tasks=tasks,
    )
