"""Command layer - pure mutations over an immutable family snapshot.

Every operation takes a FamilyState and returns a new one. Validation
failures raise ValidationError and leave the input untouched. Targets that do
not exist, and virtual occurrence ids, are no-ops that return the same state.
"""

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from .calendar import Event, reschedule
from .members import PALETTE, Member, pick_color
from .recurrence import RecurrenceSpec, is_virtual_id
from .tasks import Task, TaskCategory, new_id, set_completion, toggle_completion

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TITLE = "New Event"
DEFAULT_TASK_TITLE = "New Task"
DEFAULT_EVENT_DURATION = timedelta(hours=1)

MEMBER_FIELDS = frozenset({"name", "color"})
EVENT_FIELDS = frozenset({"title", "start", "end", "member_ids", "location", "recurrence"})
TASK_FIELDS = frozenset(
    {"title", "category", "assignee_ids", "due_date", "is_completed", "recurrence"}
)


class ValidationError(Exception):
    """Raised when a command is declined. The message is the reason."""

    pass


@dataclass(frozen=True)
class FamilyState:
    """Snapshot of all members, events and tasks."""

    members: tuple[Member, ...] = field(default_factory=tuple)
    events: tuple[Event, ...] = field(default_factory=tuple)
    tasks: tuple[Task, ...] = field(default_factory=tuple)

    def member(self, member_id: str) -> Member | None:
        return _find(self.members, member_id)

    def event(self, event_id: str) -> Event | None:
        return _find(self.events, event_id)

    def task(self, task_id: str) -> Task | None:
        return _find(self.tasks, task_id)

    def to_dict(self) -> dict:
        return {
            "members": [m.to_dict() for m in self.members],
            "events": [e.to_dict() for e in self.events],
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FamilyState":
        return cls(
            members=tuple(Member.from_dict(m) for m in data.get("members", [])),
            events=tuple(Event.from_dict(e) for e in data.get("events", [])),
            tasks=tuple(Task.from_dict(t) for t in data.get("tasks", [])),
        )


def _find(items, entity_id: str):
    for item in items:
        if item.id == entity_id:
            return item
    return None


def _check_fields(changes: Mapping[str, Any], allowed: frozenset[str], kind: str) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Cannot update {kind} field(s): {', '.join(sorted(unknown))}")


def _check_event_times(start: datetime, end: datetime) -> None:
    if end < start:
        raise ValidationError("Event end must not be before its start.")


def _check_assignees(assignee_ids) -> tuple[str, ...]:
    ids = tuple(assignee_ids or ())
    if not ids:
        raise ValidationError("A task must be assigned to at least one family member.")
    return ids


# ============== Members ==============


def add_member(
    state: FamilyState,
    name: str,
    color: str | None = None,
    *,
    id_factory: Callable[[], str] = new_id,
    rng: random.Random | None = None,
) -> tuple[FamilyState, Member]:
    """Add a member. Without a known colour preference, pick_color decides."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("A member needs a name.")
    member = Member(id=id_factory(), name=name, color=pick_color(state.members, color, rng))
    return replace(state, members=state.members + (member,)), member


def update_member(state: FamilyState, member_id: str, changes: Mapping[str, Any]) -> FamilyState:
    _check_fields(changes, MEMBER_FIELDS, "member")
    member = state.member(member_id)
    if member is None:
        logger.debug(f"update_member: no member {member_id}")
        return state
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("A member needs a name.")
    if "color" in changes and changes["color"] not in PALETTE:
        raise ValidationError(f"Unknown colour: {changes['color']}")

    updated = replace(member, **changes)
    return replace(state, members=tuple(updated if m.id == member_id else m for m in state.members))


def delete_member(state: FamilyState, member_id: str) -> FamilyState:
    """Remove a member. Events and tasks keep their (now dangling) references."""
    if state.member(member_id) is None:
        logger.debug(f"delete_member: no member {member_id}")
        return state
    return replace(state, members=tuple(m for m in state.members if m.id != member_id))


# ============== Events ==============


def add_event(
    state: FamilyState,
    start: datetime,
    end: datetime | None = None,
    title: str | None = None,
    member_ids=None,
    location: str = "",
    recurrence: RecurrenceSpec | None = None,
    *,
    id_factory: Callable[[], str] = new_id,
) -> tuple[FamilyState, Event]:
    """
    Create an event.

    Missing end defaults to one hour after start; missing members default to
    the first family member.
    """
    end = end or start + DEFAULT_EVENT_DURATION
    _check_event_times(start, end)
    ids = tuple(member_ids or ())
    if not ids and state.members:
        ids = (state.members[0].id,)

    event = Event(
        id=id_factory(),
        title=title or DEFAULT_EVENT_TITLE,
        start=start,
        end=end,
        member_ids=ids,
        location=location or "",
        recurrence=recurrence,
    )
    return replace(state, events=state.events + (event,)), event


def update_event(state: FamilyState, event_id: str, changes: Mapping[str, Any]) -> FamilyState:
    """Apply a partial patch. Fields not in changes are kept as they are."""
    if is_virtual_id(event_id):
        logger.debug(f"update_event: {event_id} is a virtual occurrence, ignoring")
        return state
    _check_fields(changes, EVENT_FIELDS, "event")
    event = state.event(event_id)
    if event is None:
        logger.debug(f"update_event: no event {event_id}")
        return state

    changes = dict(changes)
    if "member_ids" in changes:
        changes["member_ids"] = tuple(changes["member_ids"] or ())
    updated = replace(event, **changes)
    _check_event_times(updated.start, updated.end)
    return replace(state, events=tuple(updated if e.id == event_id else e for e in state.events))


def delete_event(state: FamilyState, event_id: str) -> FamilyState:
    if is_virtual_id(event_id):
        logger.debug(f"delete_event: {event_id} is a virtual occurrence, ignoring")
        return state
    if state.event(event_id) is None:
        logger.debug(f"delete_event: no event {event_id}")
        return state
    return replace(state, events=tuple(e for e in state.events if e.id != event_id))


def drop_event(state: FamilyState, event_id: str, new_start: datetime) -> FamilyState:
    """Drag-to-reschedule: move an event's start, keeping its duration."""
    if is_virtual_id(event_id):
        logger.debug(f"drop_event: {event_id} is a virtual occurrence, ignoring")
        return state
    event = state.event(event_id)
    if event is None:
        logger.debug(f"drop_event: no event {event_id}")
        return state
    moved = reschedule(event, new_start)
    return replace(state, events=tuple(moved if e.id == event_id else e for e in state.events))


# ============== Tasks ==============


def add_task(
    state: FamilyState,
    title: str | None,
    assignee_ids,
    category: TaskCategory = TaskCategory.GENERAL,
    due_date: datetime | None = None,
    recurrence: RecurrenceSpec | None = None,
    series_id: str | None = None,
    *,
    id_factory: Callable[[], str] = new_id,
) -> tuple[FamilyState, Task]:
    """
    Create a task. Raises ValidationError without assignees.

    A recurring task starts (or continues) a series: its series_id is the one
    given, else its own id.
    """
    ids = _check_assignees(assignee_ids)
    task_id = id_factory()
    task = Task(
        id=task_id,
        title=title or DEFAULT_TASK_TITLE,
        assignee_ids=ids,
        category=category or TaskCategory.GENERAL,
        due_date=due_date,
        recurrence=recurrence,
        series_id=(series_id or task_id) if recurrence else None,
    )
    return replace(state, tasks=state.tasks + (task,)), task


def update_task(
    state: FamilyState,
    task_id: str,
    changes: Mapping[str, Any],
    *,
    id_factory: Callable[[], str] = new_id,
) -> FamilyState:
    """
    Apply a partial patch to a task.

    Clearing the assignees is rejected. A change of is_completed goes through
    the series lifecycle, so completing a recurring task here spawns its
    successor just like toggle_task.
    """
    if is_virtual_id(task_id):
        logger.debug(f"update_task: {task_id} is a virtual occurrence, ignoring")
        return state
    _check_fields(changes, TASK_FIELDS, "task")
    task = state.task(task_id)
    if task is None:
        logger.debug(f"update_task: no task {task_id}")
        return state

    changes = dict(changes)
    if "assignee_ids" in changes:
        changes["assignee_ids"] = _check_assignees(changes["assignee_ids"])
    completed = changes.pop("is_completed", task.is_completed)

    updated = replace(task, **changes)
    if updated.recurrence is not None and updated.series_id is None:
        updated = replace(updated, series_id=updated.id)

    tasks = tuple(updated if t.id == task_id else t for t in state.tasks)
    return _apply_completion(replace(state, tasks=tasks), updated, bool(completed), id_factory)


def delete_task(state: FamilyState, task_id: str) -> FamilyState:
    if is_virtual_id(task_id):
        logger.debug(f"delete_task: {task_id} is a virtual occurrence, ignoring")
        return state
    if state.task(task_id) is None:
        logger.debug(f"delete_task: no task {task_id}")
        return state
    return replace(state, tasks=tuple(t for t in state.tasks if t.id != task_id))


def toggle_task(
    state: FamilyState,
    task_id: str,
    *,
    id_factory: Callable[[], str] = new_id,
) -> FamilyState:
    """Flip completion; completing a recurring task adds its next instance."""
    if is_virtual_id(task_id):
        logger.debug(f"toggle_task: {task_id} is a virtual occurrence, ignoring")
        return state
    task = state.task(task_id)
    if task is None:
        logger.debug(f"toggle_task: no task {task_id}")
        return state
    result = toggle_completion(task, list(state.tasks), id_factory)
    return _merge(state, result.updated, result.spawned)


def _apply_completion(
    state: FamilyState, task: Task, completed: bool, id_factory: Callable[[], str]
) -> FamilyState:
    result = set_completion(task, completed, list(state.tasks), id_factory)
    return _merge(state, result.updated, result.spawned)


def _merge(state: FamilyState, updated: Task, spawned: Task | None) -> FamilyState:
    tasks = tuple(updated if t.id == updated.id else t for t in state.tasks)
    if spawned is not None:
        tasks += (spawned,)
    return replace(state, tasks=tasks)
