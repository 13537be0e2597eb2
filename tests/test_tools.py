"""Tests for the agent tool catalog and dispatch."""

from datetime import datetime, timedelta
from itertools import count
from zoneinfo import ZoneInfo

import pytest

from familysync.core.calendar import Event
from familysync.core.commands import FamilyState, ValidationError
from familysync.core.members import Member
from familysync.core.recurrence import RecurrenceRule, RecurrenceSpec
from familysync.core.tasks import Task, TaskCategory
from familysync.core.tools import (
    TOOL_CATALOG,
    TOOL_NAMES,
    Recommendation,
    ToolContext,
    accept_recommendation,
    execute_tool,
)


@pytest.fixture
def ctx():
    counter = count(1)
    return ToolContext(
        now=datetime(2025, 1, 15, 8, 0),
        tz=ZoneInfo("America/Toronto"),
        id_factory=lambda: f"id-{next(counter)}",
    )


@pytest.fixture
def state():
    return FamilyState(
        members=(Member("m1", "Mom", "rose"), Member("m3", "Leo", "green")),
        events=(
            Event(id="e1", title="Soccer", start=datetime(2025, 1, 13, 16), end=datetime(2025, 1, 13, 17),
                  member_ids=("m3",), location="Field", recurrence=RecurrenceSpec(RecurrenceRule.WEEKLY)),
        ),
        tasks=(
            Task(id="t1", title="Trash", assignee_ids=("m3",), category=TaskCategory.CHORES,
                 due_date=datetime(2025, 1, 15), recurrence=RecurrenceSpec(RecurrenceRule.WEEKLY),
                 series_id="s1"),
            Task(id="t2", title="Milk", assignee_ids=("m1",), category=TaskCategory.SHOPPING),
        ),
    )


class TestCatalog:
    def test_names(self):
        assert TOOL_NAMES == {
            "list_members", "add_member", "update_member", "delete_member",
            "list_events", "add_event", "update_event", "delete_event",
            "list_tasks", "add_task", "update_task", "delete_task",
            "display_recommendations",
        }

    def test_required_args_are_declared(self):
        for tool in TOOL_CATALOG:
            params = tool["parameters"]
            for name in params.get("required", []):
                assert name in params["properties"], f"{tool['name']}.{name}"


class TestListTools:
    def test_list_members(self, state, ctx):
        outcome = execute_tool(state, "list_members", {}, ctx)
        assert outcome.result == [
            {"id": "m1", "name": "Mom", "color": "rose"},
            {"id": "m3", "name": "Leo", "color": "green"},
        ]
        assert outcome.state is state

    def test_list_events_defaults_to_current_week(self, state, ctx):
        result = execute_tool(state, "list_events", {}, ctx).result
        assert len(result) == 1
        assert result[0]["id"] == "e1_inst_0"
        assert result[0]["anchorId"] == "e1"
        assert result[0]["memberNames"] == ["Leo"]
        assert result[0]["isVirtual"] is True

    def test_list_events_window_and_member(self, state, ctx):
        args = {"start": "2025-01-01", "end": "2025-01-31", "memberId": "m3"}
        result = execute_tool(state, "list_events", args, ctx).result
        assert [r["start"][:10] for r in result] == ["2025-01-13", "2025-01-20", "2025-01-27"]

        args["memberId"] = "m1"
        assert execute_tool(state, "list_events", args, ctx).result == []

    def test_list_tasks_by_type(self, state, ctx):
        result = execute_tool(state, "list_tasks", {"type": "shopping"}, ctx).result
        assert [r["id"] for r in result] == ["t2"]
        assert len(execute_tool(state, "list_tasks", {"type": "all"}, ctx).result) == 2


class TestMutatingTools:
    def test_add_event_converts_utc(self, state, ctx):
        args = {
            "title": "Dentist",
            "start": "2025-01-16T15:00:00Z",
            "end": "2025-01-16T16:00:00Z",
            "memberIds": ["m1"],
        }
        outcome = execute_tool(state, "add_event", args, ctx)
        assert outcome.result["status"] == "success"
        event = outcome.state.event(outcome.result["id"])
        assert event.start == datetime(2025, 1, 16, 10, 0)
        assert event.member_ids == ("m1",)

    def test_add_event_accepts_single_member_string(self, state, ctx):
        args = {"title": "Nap", "start": "2025-01-16T13:00:00", "end": "2025-01-16T14:00:00", "memberIds": "m3"}
        outcome = execute_tool(state, "add_event", args, ctx)
        assert outcome.state.event(outcome.result["id"]).member_ids == ("m3",)

    def test_add_event_recurring(self, state, ctx):
        args = {
            "title": "Piano",
            "start": "2025-01-14T16:00:00",
            "end": "2025-01-14T16:45:00",
            "memberIds": ["m1"],
            "recurringRule": "weekly",
            "recurrenceEnd": "2025-03-01",
        }
        outcome = execute_tool(state, "add_event", args, ctx)
        event = outcome.state.event(outcome.result["id"])
        assert event.recurrence == RecurrenceSpec(RecurrenceRule.WEEKLY, datetime(2025, 3, 1))

    def test_add_event_without_members_errors(self, state, ctx):
        args = {"title": "X", "start": "2025-01-16T13:00:00", "end": "2025-01-16T14:00:00", "memberIds": []}
        outcome = execute_tool(state, "add_event", args, ctx)
        assert "error" in outcome.result
        assert outcome.state is state

    def test_bad_date_is_an_error(self, state, ctx):
        args = {"title": "X", "start": "next tuesday", "memberIds": ["m1"]}
        outcome = execute_tool(state, "add_event", args, ctx)
        assert "Invalid date" in outcome.result["error"]

    @pytest.mark.parametrize("value", [1736900000000, ["2025-01-20"], {"date": "2025-01-20"}])
    def test_non_string_date_is_an_error(self, state, ctx, value):
        args = {"title": "X", "assigneeIds": ["m1"], "dueDate": value}
        outcome = execute_tool(state, "add_task", args, ctx)
        assert "Invalid date for dueDate" in outcome.result["error"]
        assert outcome.state is state

    def test_update_event_on_occurrence_is_noop(self, state, ctx):
        outcome = execute_tool(state, "update_event", {"id": "e1_inst_2", "title": "Cancelled"}, ctx)
        assert outcome.state is state

    def test_update_event_recurrence_end_only(self, state, ctx):
        outcome = execute_tool(state, "update_event", {"id": "e1", "recurrenceEnd": "2025-02-01"}, ctx)
        event = outcome.state.event("e1")
        assert event.recurrence == RecurrenceSpec(RecurrenceRule.WEEKLY, datetime(2025, 2, 1))
        assert event.location == "Field"

    def test_add_task_requires_assignees(self, state, ctx):
        outcome = execute_tool(state, "add_task", {"title": "Vacuum", "type": "chores", "assigneeIds": []}, ctx)
        assert "error" in outcome.result
        assert outcome.state is state

    def test_add_task_accepts_assigned_to(self, state, ctx):
        outcome = execute_tool(state, "add_task", {"title": "Vacuum", "type": "chores", "assignedTo": "m3"}, ctx)
        task = outcome.state.task(outcome.result["id"])
        assert task.assignee_ids == ("m3",)
        assert task.category is TaskCategory.CHORES

    def test_complete_task_spawns(self, state, ctx):
        outcome = execute_tool(state, "update_task", {"id": "t1", "isCompleted": True}, ctx)
        assert outcome.state.task("t1").is_completed
        assert outcome.state.task("id-1").due_date == datetime(2025, 1, 22)

    def test_unknown_type(self, state, ctx):
        outcome = execute_tool(state, "add_task", {"title": "X", "type": "errands", "assigneeIds": ["m1"]}, ctx)
        assert "Unknown task type" in outcome.result["error"]

    def test_add_member_and_delete(self, state, ctx):
        outcome = execute_tool(state, "add_member", {"name": "Mia", "color": "purple"}, ctx)
        member = outcome.state.member(outcome.result["id"])
        assert member.color == "purple"
        removed = execute_tool(outcome.state, "delete_member", {"id": member.id}, ctx)
        assert removed.state.member(member.id) is None

    def test_unknown_tool(self, state, ctx):
        assert execute_tool(state, "launch_rocket", {}, ctx).result == {"error": "Unknown function: launch_rocket"}


class TestRecommendations:
    @pytest.fixture
    def recs_args(self):
        return {
            "recommendations": [
                {
                    "title": "Movie night",
                    "description": "Friday film",
                    "category": "event",
                    "data": {"title": "Movie night", "start": "2025-01-17T19:00:00"},
                },
                {
                    "title": "Clean filters",
                    "description": "Monthly chore",
                    "category": "task",
                    "suggestedAssigneeId": "m3",
                    "data": '{"title": "Clean air filters", "type": "chores"}',
                },
            ]
        }

    def test_display_collects_cards(self, state, ctx, recs_args):
        outcome = execute_tool(state, "display_recommendations", recs_args, ctx)
        assert outcome.result["status"] == "displayed"
        assert outcome.result["count"] == 2
        assert outcome.state is state
        assert outcome.recommendations[1].data == {"title": "Clean air filters", "type": "chores"}

    def test_bad_category_errors(self, state, ctx):
        args = {"recommendations": [{"title": "X", "description": "", "category": "party", "data": {}}]}
        assert "error" in execute_tool(state, "display_recommendations", args, ctx).result

    def test_accept_event_defaults(self, state, ctx, recs_args):
        rec = Recommendation.from_dict(recs_args["recommendations"][0])
        new_state = accept_recommendation(state, rec, ctx)
        event = new_state.events[-1]
        assert event.title == "Movie night"
        assert event.end - event.start == timedelta(hours=1)
        assert event.member_ids == ("m1",)

    def test_accept_task_uses_suggested_assignee(self, state, ctx, recs_args):
        rec = Recommendation.from_dict(recs_args["recommendations"][1])
        new_state = accept_recommendation(state, rec, ctx)
        task = new_state.tasks[-1]
        assert task.assignee_ids == ("m3",)
        assert task.due_date == ctx.now
        assert task.category is TaskCategory.CHORES

    def test_invalid_json_data(self):
        with pytest.raises(ValidationError):
            Recommendation.from_dict({"title": "X", "category": "task", "data": "{not json"})

    @pytest.mark.parametrize("data", [["a", "b", "c"], '["a", "b"]', "42"])
    def test_data_must_be_an_object(self, state, ctx, data):
        args = {"recommendations": [{"title": "X", "description": "", "category": "task", "data": data}]}
        outcome = execute_tool(state, "display_recommendations", args, ctx)
        assert "must be an object" in outcome.result["error"]
        assert outcome.recommendations == []

    def test_card_must_be_an_object(self, state, ctx):
        outcome = execute_tool(state, "display_recommendations", {"recommendations": ["Movie night"]}, ctx)
        assert "error" in outcome.result
