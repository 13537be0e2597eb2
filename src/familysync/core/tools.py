"""Agent tool catalog and dispatch - pure, no I/O.

Tools speak the wire format (camelCase keys, ISO-8601 date strings) and are
converted to the domain model here, at the boundary. Every tool returns a
JSON-serializable result; declined commands come back as {"error": reason}
so the model can correct itself on the next turn.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable
from zoneinfo import ZoneInfo

from . import commands
from .calendar import expand_events
from .commands import FamilyState, ValidationError
from .dates import SUNDAY, end_of_week, format_instant, parse_instant, start_of_week
from .members import filter_by_member, member_names
from .recurrence import RecurrenceRule, RecurrenceSpec, anchor_id_of
from .tasks import TaskCategory, new_id

logger = logging.getLogger(__name__)

_RULES = ["daily", "weekly", "monthly"]
_CATEGORIES = ["shopping", "chores", "general"]

TOOL_CATALOG: list[dict] = [
    {
        "name": "list_members",
        "description": "Get a list of all family members and their IDs.",
        "parameters": {"type": "object", "properties": {}},
    },
    {
        "name": "add_member",
        "description": "Add a new family member.",
        "parameters": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the new member"},
                "color": {
                    "type": "string",
                    "description": "Optional: Preferred color key (rose, blue, green, purple, etc.)",
                },
            },
            "required": ["name"],
        },
    },
    {
        "name": "update_member",
        "description": "Update a family member's details.",
        "parameters": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "The Member ID"},
                "name": {"type": "string", "description": "New name"},
                "color": {"type": "string", "description": "New color key"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "delete_member",
        "description": "Remove a family member.",
        "parameters": {
            "type": "object",
            "properties": {"id": {"type": "string", "description": "The Member ID"}},
            "required": ["id"],
        },
    },
    {
        "name": "list_events",
        "description": "List calendar events within a date range to find IDs or check availability.",
        "parameters": {
            "type": "object",
            "properties": {
                "start": {"type": "string", "description": "Start date (ISO)"},
                "end": {"type": "string", "description": "End date (ISO)"},
                "memberId": {"type": "string", "description": "Optional: Filter by member"},
            },
        },
    },
    {
        "name": "add_event",
        "description": "Create a new calendar event.",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "start": {"type": "string", "description": "ISO Date string"},
                "end": {"type": "string", "description": "ISO Date string"},
                "location": {"type": "string"},
                "memberIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of family member IDs",
                },
                "recurringRule": {"type": "string", "enum": _RULES, "description": "Optional recurrence"},
                "recurrenceEnd": {"type": "string", "description": "ISO Date string for when recurrence stops"},
            },
            "required": ["title", "start", "end", "memberIds"],
        },
    },
    {
        "name": "update_event",
        "description": "Update an existing event. Only provide fields that need changing.",
        "parameters": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "The Event ID to update"},
                "title": {"type": "string"},
                "start": {"type": "string"},
                "end": {"type": "string"},
                "location": {"type": "string"},
                "memberIds": {"type": "array", "items": {"type": "string"}},
                "recurringRule": {"type": "string", "enum": _RULES},
                "recurrenceEnd": {"type": "string"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "delete_event",
        "description": "Delete a calendar event.",
        "parameters": {
            "type": "object",
            "properties": {"id": {"type": "string"}},
            "required": ["id"],
        },
    },
    {
        "name": "list_tasks",
        "description": "List all to-do tasks to find IDs.",
        "parameters": {
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": _CATEGORIES + ["all"]},
                "memberId": {"type": "string", "description": "Optional: Filter by member"},
            },
        },
    },
    {
        "name": "add_task",
        "description": "Create a new to-do task. Must have at least one assignee.",
        "parameters": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "type": {"type": "string", "enum": _CATEGORIES},
                "dueDate": {"type": "string", "description": "ISO Date string"},
                "assigneeIds": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "List of Member IDs (Required)",
                },
                "recurringRule": {"type": "string", "enum": _RULES, "description": "Optional recurrence"},
                "recurrenceEnd": {"type": "string", "description": "ISO Date string for when recurrence stops"},
            },
            "required": ["title", "type", "assigneeIds"],
        },
    },
    {
        "name": "update_task",
        "description": "Update an existing task.",
        "parameters": {
            "type": "object",
            "properties": {
                "id": {"type": "string"},
                "title": {"type": "string"},
                "type": {"type": "string", "enum": _CATEGORIES},
                "isCompleted": {"type": "boolean"},
                "dueDate": {"type": "string"},
                "assigneeIds": {"type": "array", "items": {"type": "string"}},
                "recurringRule": {"type": "string", "enum": _RULES},
                "recurrenceEnd": {"type": "string"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "delete_task",
        "description": "Delete a task.",
        "parameters": {
            "type": "object",
            "properties": {"id": {"type": "string"}},
            "required": ["id"],
        },
    },
    {
        "name": "display_recommendations",
        "description": "Display a list of recommended events or tasks for the user to quickly add.",
        "parameters": {
            "type": "object",
            "properties": {
                "recommendations": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "title": {"type": "string"},
                            "description": {"type": "string"},
                            "category": {"type": "string", "enum": ["event", "task"]},
                            "suggestedAssigneeId": {
                                "type": "string",
                                "description": "Optional: Who might be best for this",
                            },
                            "data": {
                                "type": "object",
                                "description": "The object data for add_event or add_task (excluding IDs if unknown)",
                            },
                        },
                        "required": ["title", "description", "category", "data"],
                    },
                }
            },
            "required": ["recommendations"],
        },
    },
]

TOOL_NAMES = frozenset(tool["name"] for tool in TOOL_CATALOG)


@dataclass(frozen=True)
class Recommendation:
    """A proposed event or task the user has not accepted yet."""

    id: str
    title: str
    description: str
    category: str
    data: dict
    suggested_assignee_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "suggestedAssigneeId": self.suggested_assignee_id,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Recommendation":
        if not isinstance(data, dict):
            raise ValidationError(f"Recommendation must be an object, got {type(data).__name__}")
        category = data.get("category")
        if category not in ("event", "task"):
            raise ValidationError(f"Unknown recommendation category: {category}")
        payload = data.get("data") or {}
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError:
                raise ValidationError(f"Recommendation data is not valid JSON: {payload!r}")
        if not isinstance(payload, dict):
            raise ValidationError(f"Recommendation data must be an object, got {type(payload).__name__}")
        return cls(
            id=data.get("id") or uuid.uuid4().hex[:8],
            title=data.get("title", ""),
            description=data.get("description", ""),
            category=category,
            data=dict(payload),
            suggested_assignee_id=data.get("suggestedAssigneeId"),
        )


@dataclass
class ToolContext:
    """Everything a tool needs besides the state: clock, zone and id source."""

    now: datetime
    tz: ZoneInfo | None = None
    week_starts_on: int = SUNDAY
    id_factory: Callable[[], str] = new_id


@dataclass
class ToolOutcome:
    state: FamilyState
    result: Any
    recommendations: list[Recommendation] = field(default_factory=list)


# ============== Argument parsing ==============


def _require(args: dict, key: str) -> Any:
    value = args.get(key)
    if value is None or value == "":
        raise ValidationError(f"Missing required argument: {key}")
    return value


def _ids(args: dict, plural: str, singular: str) -> list[str]:
    """Accept a list, a bare string, or a singular key in place of the list."""
    ids = args.get(plural)
    if isinstance(ids, list):
        return [str(i) for i in ids if i]
    if isinstance(ids, str) and ids:
        return [ids]
    single = args.get(singular)
    if isinstance(single, str) and single:
        return [single]
    return []


def _instant(args: dict, key: str, ctx: ToolContext) -> datetime | None:
    value = args.get(key)
    if not value:
        return None
    try:
        return parse_instant(value, ctx.tz)
    except ValueError:
        raise ValidationError(f"Invalid date for {key}: {value!r}")


def _rule(value: str) -> RecurrenceRule:
    try:
        return RecurrenceRule(value)
    except ValueError:
        raise ValidationError(f"Unknown recurrence rule: {value!r}")


def _category(value: str) -> TaskCategory:
    try:
        return TaskCategory(value)
    except ValueError:
        raise ValidationError(f"Unknown task type: {value!r}")


def _new_recurrence(args: dict, ctx: ToolContext) -> RecurrenceSpec | None:
    if not args.get("recurringRule"):
        return None
    return RecurrenceSpec(rule=_rule(args["recurringRule"]), until=_instant(args, "recurrenceEnd", ctx))


def _patched_recurrence(
    current: RecurrenceSpec | None, args: dict, ctx: ToolContext
) -> RecurrenceSpec | None:
    """Recurrence after a patch; an end date alone only moves `until`."""
    until = _instant(args, "recurrenceEnd", ctx)
    if args.get("recurringRule"):
        return RecurrenceSpec(
            rule=_rule(args["recurringRule"]),
            until=until if "recurrenceEnd" in args else (current.until if current else None),
        )
    if current is not None and "recurrenceEnd" in args:
        return replace(current, until=until)
    return current


# ============== Result shapes ==============


def _event_result(event, state: FamilyState) -> dict:
    return {
        "id": event.id,
        "anchorId": anchor_id_of(event.id),
        "title": event.title,
        "start": format_instant(event.start),
        "end": format_instant(event.end),
        "location": event.location,
        "memberIds": list(event.member_ids),
        "memberNames": member_names(state.members, event.member_ids),
        "recurringRule": event.recurrence.rule.value if event.recurrence else None,
        "isVirtual": event.is_virtual,
    }


def _task_result(task, state: FamilyState) -> dict:
    return {
        "id": task.id,
        "seriesId": task.series_id,
        "title": task.title,
        "type": task.category.value,
        "isCompleted": task.is_completed,
        "dueDate": format_instant(task.due_date),
        "assigneeIds": list(task.assignee_ids),
        "assigneeNames": member_names(state.members, task.assignee_ids),
        "recurringRule": task.recurrence.rule.value if task.recurrence else None,
    }


# ============== Tools ==============


def _list_members(state, args, ctx):
    return state, [{"id": m.id, "name": m.name, "color": m.color} for m in state.members]


def _add_member(state, args, ctx):
    state, member = commands.add_member(
        state, _require(args, "name"), args.get("color"), id_factory=ctx.id_factory
    )
    return state, {"status": "success", "message": f"Added {member.name}", "id": member.id}


def _update_member(state, args, ctx):
    changes = {k: args[k] for k in ("name", "color") if k in args}
    state = commands.update_member(state, _require(args, "id"), changes)
    return state, {"status": "success"}


def _delete_member(state, args, ctx):
    return commands.delete_member(state, _require(args, "id")), {"status": "success"}


def _list_events(state, args, ctx):
    start = _instant(args, "start", ctx) or start_of_week(ctx.now, ctx.week_starts_on)
    end = _instant(args, "end", ctx) or end_of_week(start, ctx.week_starts_on)
    events = expand_events(list(state.events), start, end)
    events = filter_by_member(events, args.get("memberId") or None)
    return state, [_event_result(e, state) for e in events]


def _add_event(state, args, ctx):
    member_ids = _ids(args, "memberIds", "memberId")
    if not member_ids:
        raise ValidationError("No memberIds provided.")
    _require(args, "start")
    state, event = commands.add_event(
        state,
        start=_instant(args, "start", ctx),
        end=_instant(args, "end", ctx),
        title=args.get("title"),
        member_ids=member_ids,
        location=args.get("location") or "",
        recurrence=_new_recurrence(args, ctx),
        id_factory=ctx.id_factory,
    )
    return state, {"status": "success", "message": "Event added.", "id": event.id}


def _update_event(state, args, ctx):
    event_id = _require(args, "id")
    event = state.event(event_id)
    changes: dict[str, Any] = {}
    for key in ("title", "location"):
        if key in args:
            changes[key] = args[key]
    for key in ("start", "end"):
        if args.get(key):
            changes[key] = _instant(args, key, ctx)
    if "memberIds" in args or "memberId" in args:
        changes["member_ids"] = _ids(args, "memberIds", "memberId")
    if event is not None and ("recurringRule" in args or "recurrenceEnd" in args):
        changes["recurrence"] = _patched_recurrence(event.recurrence, args, ctx)
    state = commands.update_event(state, event_id, changes)
    return state, {"status": "success"}


def _delete_event(state, args, ctx):
    return commands.delete_event(state, _require(args, "id")), {"status": "success"}


def _list_tasks(state, args, ctx):
    tasks = list(state.tasks)
    kind = args.get("type")
    if kind and kind != "all":
        category = _category(kind)
        tasks = [t for t in tasks if t.category is category]
    tasks = filter_by_member(tasks, args.get("memberId") or None)
    return state, [_task_result(t, state) for t in tasks]


def _add_task(state, args, ctx):
    assignee_ids = _ids(args, "assigneeIds", "assignedTo")
    if not assignee_ids:
        raise ValidationError("No assignees provided.")
    state, task = commands.add_task(
        state,
        title=args.get("title"),
        assignee_ids=assignee_ids,
        category=_category(args.get("type") or "general"),
        due_date=_instant(args, "dueDate", ctx),
        recurrence=_new_recurrence(args, ctx),
        id_factory=ctx.id_factory,
    )
    return state, {"status": "success", "id": task.id}


def _update_task(state, args, ctx):
    task_id = _require(args, "id")
    task = state.task(task_id)
    changes: dict[str, Any] = {}
    if "title" in args:
        changes["title"] = args["title"]
    if args.get("type"):
        changes["category"] = _category(args["type"])
    if "isCompleted" in args:
        changes["is_completed"] = bool(args["isCompleted"])
    if args.get("dueDate"):
        changes["due_date"] = _instant(args, "dueDate", ctx)
    if "assigneeIds" in args or "assignedTo" in args:
        changes["assignee_ids"] = _ids(args, "assigneeIds", "assignedTo")
    if task is not None and ("recurringRule" in args or "recurrenceEnd" in args):
        changes["recurrence"] = _patched_recurrence(task.recurrence, args, ctx)
    state = commands.update_task(state, task_id, changes, id_factory=ctx.id_factory)
    return state, {"status": "success"}


def _delete_task(state, args, ctx):
    return commands.delete_task(state, _require(args, "id")), {"status": "success"}


_HANDLERS = {
    "list_members": _list_members,
    "add_member": _add_member,
    "update_member": _update_member,
    "delete_member": _delete_member,
    "list_events": _list_events,
    "add_event": _add_event,
    "update_event": _update_event,
    "delete_event": _delete_event,
    "list_tasks": _list_tasks,
    "add_task": _add_task,
    "update_task": _update_task,
    "delete_task": _delete_task,
}


def execute_tool(state: FamilyState, name: str, args: dict | None, ctx: ToolContext) -> ToolOutcome:
    """
    Run one tool call against a snapshot.

    Pure function - no I/O. Declined commands and malformed arguments leave
    the state as it was and return {"error": reason}.
    """
    args = args or {}

    if name == "display_recommendations":
        try:
            recs = [Recommendation.from_dict(r) for r in args.get("recommendations") or []]
        except ValidationError as e:
            return ToolOutcome(state=state, result={"error": str(e)})
        return ToolOutcome(
            state=state,
            result={
                "status": "displayed",
                "count": len(recs),
                "info": "Recommendations are now visible to the user as cards for confirmation.",
            },
            recommendations=recs,
        )

    handler = _HANDLERS.get(name)
    if handler is None:
        return ToolOutcome(state=state, result={"error": f"Unknown function: {name}"})

    try:
        new_state, result = handler(state, args, ctx)
    except ValidationError as e:
        logger.info(f"Tool {name} declined: {e}")
        return ToolOutcome(state=state, result={"error": str(e)})
    return ToolOutcome(state=new_state, result=result)


def accept_recommendation(
    state: FamilyState, rec: Recommendation, ctx: ToolContext
) -> FamilyState:
    """Commit a recommendation through the normal add path."""
    data = rec.data
    fallback = [rec.suggested_assignee_id] if rec.suggested_assignee_id else []
    if not fallback and state.members:
        fallback = [state.members[0].id]

    if rec.category == "event":
        start = _instant(data, "start", ctx) or ctx.now
        state, _ = commands.add_event(
            state,
            start=start,
            end=_instant(data, "end", ctx) or start + timedelta(hours=1),
            title=data.get("title") or rec.title,
            member_ids=_ids(data, "memberIds", "memberId") or fallback,
            location=data.get("location") or "",
            recurrence=_new_recurrence(data, ctx),
            id_factory=ctx.id_factory,
        )
        return state

    state, _ = commands.add_task(
        state,
        title=data.get("title") or rec.title,
        assignee_ids=_ids(data, "assigneeIds", "assignedTo") or fallback,
        category=_category(data.get("type") or "general"),
        due_date=_instant(data, "dueDate", ctx) or ctx.now,
        recurrence=_new_recurrence(data, ctx),
        id_factory=ctx.id_factory,
    )
    return state
