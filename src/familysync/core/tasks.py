"""Pure task domain logic - no I/O dependencies."""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum
from typing import Callable

from .dates import is_within_interval
from .recurrence import RecurrenceSpec, shift

logger = logging.getLogger(__name__)


class TaskCategory(str, Enum):
    """Task list tabs."""

    SHOPPING = "shopping"
    CHORES = "chores"
    GENERAL = "general"


@dataclass(frozen=True)
class Task:
    """A to-do item. Recurring tasks form a series linked by series_id."""

    id: str
    title: str
    assignee_ids: tuple[str, ...]
    category: TaskCategory = TaskCategory.GENERAL
    due_date: datetime | None = None
    is_completed: bool = False
    recurrence: RecurrenceSpec | None = None
    series_id: str | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def lineage(self) -> str:
        """Series key: the series id, or the task's own id before it has one."""
        return self.series_id or self.id

    def involves(self, member_id: str) -> bool:
        return member_id in self.assignee_ids

    def days_until_due(self, as_of: date | None = None) -> int | None:
        """Days until due date (negative if overdue)."""
        if not self.due_date:
            return None
        as_of = as_of or date.today()
        return (self.due_date.date() - as_of).days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seriesId": self.series_id,
            "title": self.title,
            "type": self.category.value,
            "assigneeIds": list(self.assignee_ids),
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "isCompleted": self.is_completed,
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        due = data.get("dueDate")
        return cls(
            id=data["id"],
            series_id=data.get("seriesId"),
            title=data.get("title", ""),
            category=TaskCategory(data.get("type") or "general"),
            assignee_ids=tuple(data.get("assigneeIds", [])),
            due_date=datetime.fromisoformat(due) if due else None,
            is_completed=bool(data.get("isCompleted", False)),
            recurrence=RecurrenceSpec.from_dict(data.get("recurrence")),
        )


@dataclass(frozen=True)
class ToggleResult:
    """Outcome of a completion change: the task itself plus any spawned successor."""

    updated: Task
    spawned: Task | None = None


def new_id() -> str:
    return str(uuid.uuid4())


def next_due_date(task: Task) -> datetime | None:
    """Due date of the following instance, or None when the task can't advance."""
    if task.recurrence is None or task.due_date is None:
        return None
    return shift(task.due_date, task.recurrence.rule)


def set_completion(
    task: Task,
    completed: bool,
    all_tasks: list[Task],
    id_factory: Callable[[], str] = new_id,
) -> ToggleResult:
    """
    Set a task's completion flag, spawning the next instance of a series.

    Only a false -> true transition spawns. The successor is skipped when it
    would fall after the recurrence's ``until`` (the series ends) or when a
    task of the same lineage already exists on that due date (the instance
    was completed, reopened and completed again).
    """
    if task.is_completed == completed:
        return ToggleResult(updated=task)

    updated = replace(task, is_completed=completed)
    if not completed:
        return ToggleResult(updated=updated)

    next_due = next_due_date(task)
    if next_due is None:
        return ToggleResult(updated=updated)

    series_id = task.lineage
    updated = replace(updated, series_id=series_id)

    if not task.recurrence.allows(next_due):
        logger.info(f"Series {series_id} ended: next due {next_due} is after {task.recurrence.until}")
        return ToggleResult(updated=updated)

    for other in all_tasks:
        if other.id != task.id and other.lineage == series_id and other.due_date == next_due:
            logger.debug(f"Series {series_id} already has an instance due {next_due}")
            return ToggleResult(updated=updated)

    spawned = replace(
        task,
        id=id_factory(),
        series_id=series_id,
        due_date=next_due,
        is_completed=False,
    )
    logger.info(f"Spawned next instance of series {series_id} due {next_due}")
    return ToggleResult(updated=updated, spawned=spawned)


def toggle_completion(
    task: Task,
    all_tasks: list[Task],
    id_factory: Callable[[], str] = new_id,
) -> ToggleResult:
    """Flip is_completed. Completing a recurring task spawns its successor."""
    return set_completion(task, not task.is_completed, all_tasks, id_factory)


def visible_tasks(
    tasks: list[Task], window_start: datetime, window_end: datetime
) -> list[Task]:
    """
    Tasks worth showing for a window.

    Backlog (no due date) is always shown, as is anything due inside the
    window. Earlier tasks carry forward only while they are incomplete.
    """
    visible = []
    for t in tasks:
        if t.due_date is None:
            visible.append(t)
        elif is_within_interval(t.due_date, window_start, window_end):
            visible.append(t)
        elif t.due_date < window_start and not t.is_completed:
            visible.append(t)
    return visible


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Incomplete first; within each group by due date, undated last."""

    def sort_key(t: Task) -> tuple[bool, bool, datetime]:
        return (t.is_completed, t.due_date is None, t.due_date or datetime.min)

    return sorted(tasks, key=sort_key)


def filter_by_category(tasks: list[Task], category: TaskCategory | None) -> list[Task]:
    """Filter tasks to one category. None keeps everything."""
    if category is None:
        return list(tasks)
    return [t for t in tasks if t.category is category]


def collapse_series(tasks: list[Task]) -> list[Task]:
    """
    Keep one representative per series, preserving input order.

    The representative is the first incomplete instance in the given order;
    when every instance is complete, the one with the latest due date.
    """
    representative: dict[str, Task] = {}
    for t in tasks:
        if t.series_id is None:
            continue
        current = representative.get(t.series_id)
        if current is None:
            representative[t.series_id] = t
        elif current.is_completed:
            if not t.is_completed or _due_key(t) > _due_key(current):
                representative[t.series_id] = t

    return [
        t for t in tasks if t.series_id is None or representative[t.series_id].id == t.id
    ]


def series_history(all_tasks: list[Task], series_id: str) -> list[Task]:
    """Every instance of a series, newest due date first."""
    history = [t for t in all_tasks if t.series_id == series_id]
    return sorted(history, key=_due_key, reverse=True)


def _due_key(t: Task) -> datetime:
    return t.due_date or datetime.min


def filter_overdue(tasks: list[Task], as_of: datetime) -> list[Task]:
    """Incomplete tasks due before as_of."""
    return [t for t in tasks if t.due_date and t.due_date < as_of and not t.is_completed]
