"""Functional core - pure business logic with no I/O."""

from .recurrence import RecurrenceRule, RecurrenceSpec, Occurrence, expand, is_virtual_id
from .members import Member, pick_color, filter_by_member
from .calendar import Event, expand_events, reschedule
from .tasks import (
    Task,
    TaskCategory,
    ToggleResult,
    toggle_completion,
    visible_tasks,
    sort_tasks,
    collapse_series,
    series_history,
)
from .commands import FamilyState, ValidationError
from .views import ViewDescriptor, ViewMode, ViewSettings, RenderedView, render_view
from .digest import DigestData, assemble_digest, format_digest

__all__ = [
    # Recurrence
    "RecurrenceRule",
    "RecurrenceSpec",
    "Occurrence",
    "expand",
    "is_virtual_id",
    # Members
    "Member",
    "pick_color",
    "filter_by_member",
    # Calendar
    "Event",
    "expand_events",
    "reschedule",
    # Tasks
    "Task",
    "TaskCategory",
    "ToggleResult",
    "toggle_completion",
    "visible_tasks",
    "sort_tasks",
    "collapse_series",
    "series_history",
    # Commands
    "FamilyState",
    "ValidationError",
    # Views
    "ViewDescriptor",
    "ViewMode",
    "ViewSettings",
    "RenderedView",
    "render_view",
    # Digest
    "DigestData",
    "assemble_digest",
    "format_digest",
]
