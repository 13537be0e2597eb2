"""Tests for the command layer."""

import random
from datetime import datetime, timedelta
from itertools import count

import pytest

from familysync.core import commands
from familysync.core.calendar import Event
from familysync.core.commands import FamilyState, ValidationError
from familysync.core.members import PALETTE, Member
from familysync.core.recurrence import RecurrenceRule, RecurrenceSpec
from familysync.core.tasks import Task, TaskCategory


@pytest.fixture
def ids():
    counter = count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def state():
    start = datetime(2025, 1, 15, 16, 0)
    return FamilyState(
        members=(Member("m1", "Mom", "rose"), Member("m2", "Dad", "blue")),
        events=(
            Event(id="e1", title="Soccer", start=start, end=start + timedelta(hours=1),
                  member_ids=("m2",), location="Field"),
            Event(id="e2", title="Piano", start=start, end=start + timedelta(minutes=45),
                  member_ids=("m1",), recurrence=RecurrenceSpec(RecurrenceRule.WEEKLY)),
        ),
        tasks=(
            Task(id="t1", title="Trash", assignee_ids=("m2",), category=TaskCategory.CHORES,
                 due_date=datetime(2025, 1, 15), recurrence=RecurrenceSpec(RecurrenceRule.WEEKLY),
                 series_id="s1"),
            Task(id="t2", title="Milk", assignee_ids=("m1",), category=TaskCategory.SHOPPING),
        ),
    )


class TestMembers:
    def test_add_picks_first_unused_colour(self, state, ids):
        new_state, member = commands.add_member(state, "Leo", id_factory=ids)
        assert member.color == "green"
        assert new_state.members[-1] == member
        assert len(state.members) == 2

    def test_add_respects_known_preference(self, state, ids):
        _, member = commands.add_member(state, "Leo", "teal", id_factory=ids)
        assert member.color == "teal"

    def test_unknown_preference_treated_as_none(self, state, ids):
        _, member = commands.add_member(state, "Leo", "chartreuse", id_factory=ids)
        assert member.color == "green"

    def test_palette_exhausted_picks_random(self, ids):
        full = FamilyState(members=tuple(Member(f"m{i}", f"M{i}", c) for i, c in enumerate(PALETTE)))
        _, member = commands.add_member(full, "Extra", id_factory=ids, rng=random.Random(1))
        assert member.color in PALETTE

    def test_add_requires_name(self, state, ids):
        with pytest.raises(ValidationError):
            commands.add_member(state, "   ", id_factory=ids)

    def test_update_member(self, state):
        new_state = commands.update_member(state, "m1", {"name": "Mama"})
        assert new_state.member("m1").name == "Mama"
        assert new_state.member("m1").color == "rose"

    def test_update_member_unknown_colour(self, state):
        with pytest.raises(ValidationError):
            commands.update_member(state, "m1", {"color": "chartreuse"})

    def test_delete_member_keeps_references(self, state):
        new_state = commands.delete_member(state, "m2")
        assert new_state.member("m2") is None
        assert new_state.event("e1").member_ids == ("m2",)

    def test_unknown_member_is_noop(self, state):
        assert commands.update_member(state, "nope", {"name": "X"}) is state
        assert commands.delete_member(state, "nope") is state


class TestEvents:
    def test_add_defaults(self, state, ids):
        start = datetime(2025, 1, 20, 9)
        new_state, event = commands.add_event(state, start, id_factory=ids)
        assert event.title == "New Event"
        assert event.end == start + timedelta(hours=1)
        assert event.member_ids == ("m1",)
        assert new_state.event(event.id) == event

    def test_add_rejects_end_before_start(self, state, ids):
        start = datetime(2025, 1, 20, 9)
        with pytest.raises(ValidationError):
            commands.add_event(state, start, start - timedelta(hours=1), id_factory=ids)

    def test_partial_update_keeps_other_fields(self, state):
        new_state = commands.update_event(state, "e1", {"title": "Soccer Final"})
        event = new_state.event("e1")
        assert event.title == "Soccer Final"
        assert event.location == "Field"
        assert event.member_ids == ("m2",)
        assert event.start == state.event("e1").start

    def test_update_rejects_unknown_field(self, state):
        with pytest.raises(ValidationError):
            commands.update_event(state, "e1", {"colour": "red"})

    def test_virtual_ids_are_ignored(self, state):
        new_start = datetime(2025, 1, 22, 10)
        assert commands.drop_event(state, "e2_inst_1", new_start) is state
        assert commands.update_event(state, "e2_inst_1", {"title": "X"}) is state
        assert commands.delete_event(state, "e2_inst_0") is state

    def test_drop_keeps_duration(self, state):
        new_state = commands.drop_event(state, "e2", datetime(2025, 1, 16, 10))
        event = new_state.event("e2")
        assert event.start == datetime(2025, 1, 16, 10)
        assert event.end == datetime(2025, 1, 16, 10, 45)

    def test_delete_event(self, state):
        new_state = commands.delete_event(state, "e1")
        assert new_state.event("e1") is None
        assert state.event("e1") is not None


class TestTasks:
    def test_add_without_assignees_declined(self, state, ids):
        with pytest.raises(ValidationError):
            commands.add_task(state, "Vacuum", [], id_factory=ids)
        assert len(state.tasks) == 2

    def test_add_defaults(self, state, ids):
        new_state, task = commands.add_task(state, None, ["m1"], id_factory=ids)
        assert task.title == "New Task"
        assert task.category is TaskCategory.GENERAL
        assert task.series_id is None
        assert new_state.task(task.id) == task

    def test_recurring_task_starts_series(self, state, ids):
        _, task = commands.add_task(
            state, "Laundry", ["m1"], recurrence=RecurrenceSpec(RecurrenceRule.DAILY), id_factory=ids
        )
        assert task.series_id == task.id

    def test_update_cannot_clear_assignees(self, state, ids):
        with pytest.raises(ValidationError):
            commands.update_task(state, "t2", {"assignee_ids": []}, id_factory=ids)

    def test_update_completion_spawns(self, state, ids):
        new_state = commands.update_task(state, "t1", {"is_completed": True}, id_factory=ids)
        assert new_state.task("t1").is_completed
        spawned = new_state.task("id-1")
        assert spawned.due_date == datetime(2025, 1, 22)
        assert spawned.series_id == "s1"

    def test_toggle_round_trip_no_duplicates(self, state, ids):
        s = commands.toggle_task(state, "t1", id_factory=ids)
        s = commands.toggle_task(s, "t1", id_factory=ids)
        s = commands.toggle_task(s, "t1", id_factory=ids)
        assert len([t for t in s.tasks if t.series_id == "s1"]) == 2
        assert s.task("t1").is_completed

    def test_toggle_unknown_is_noop(self, state, ids):
        assert commands.toggle_task(state, "nope", id_factory=ids) is state

    def test_delete_task(self, state):
        assert commands.delete_task(state, "t2").task("t2") is None


class TestSnapshot:
    def test_dict_round_trip(self, state):
        assert FamilyState.from_dict(state.to_dict()) == state
