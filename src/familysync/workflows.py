"""Shared workflow layer between CLI and Telegram.

Each workflow loads the snapshot from the store, runs pure core logic over
it, and saves the result when something changed.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Callable, TypeVar

from .adapters.claude_cli import ClaudeCLIService
from .adapters.file_state import FileStateStore
from .adapters.gemini_api import GeminiAPIService
from .assistant import AgentResult, run_agent
from .config import FAMILYSYNC_HOME, Config
from .core.calendar import Event
from .core.commands import FamilyState
from .core.digest import assemble_digest, format_digest
from .core.members import Member
from .core.recurrence import RecurrenceRule, RecurrenceSpec
from .core.tasks import Task, TaskCategory
from .core.tools import Recommendation, ToolContext, accept_recommendation
from .core.views import RenderedView, ViewDescriptor, render_view
from .ports.llm_service import LLMService, Message

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_store(config: Config) -> FileStateStore:
    """Resolve the state file from config."""
    return FileStateStore(config.state_path)


def get_llm(config: Config) -> LLMService:
    """Build the configured LLM adapter."""
    match config.llm_provider:
        case "gemini":
            return GeminiAPIService(api_key=config.gemini_api_key, model=config.llm_model)
        case "claude" | "":
            return ClaudeCLIService(cwd=FAMILYSYNC_HOME if FAMILYSYNC_HOME.exists() else None)
        case other:
            raise ValueError(f"Unknown LLM_PROVIDER: {other} (expected claude or gemini)")


def local_now(config: Config) -> datetime:
    """Current wall-clock time in the configured zone, as a naive datetime."""
    tz = config.tz
    if tz is None:
        return datetime.now().replace(microsecond=0)
    return datetime.now(tz).replace(tzinfo=None, microsecond=0)


def tool_context(config: Config, now: datetime | None = None) -> ToolContext:
    return ToolContext(now=now or local_now(config), tz=config.tz, week_starts_on=config.week_start)


def apply(config: Config, command: Callable[[FamilyState], tuple[FamilyState, T]]) -> T:
    """
    Load the state, run a command over it, save if it changed.

    The command returns (new_state, value); the value is handed back.
    """
    store = get_store(config)
    state = store.load()
    new_state, value = command(state)
    if new_state is not state:
        store.save(new_state)
        logger.info(f"Saved state to {store.path}")
    return value


def init_state(config: Config, demo: bool = False, today: date | None = None, force: bool = False) -> FamilyState:
    """Create the state file, optionally seeded with sample data."""
    store = get_store(config)
    if store.exists() and not force:
        raise RuntimeError(f"State file already exists: {store.path} (use --force to overwrite)")
    state = seed_demo_state(today or local_now(config).date()) if demo else FamilyState()
    store.save(state)
    return state


def render(config: Config, view: ViewDescriptor) -> RenderedView:
    return render_view(get_store(config).load(), view, config.view_settings())


def generate_digest(config: Config, as_of: datetime | None = None, member_id: str | None = None) -> str:
    """Assemble today's digest and return it as markdown."""
    state = get_store(config).load()
    data = assemble_digest(state, as_of or local_now(config), member_id)
    return format_digest(data)


def run_assistant(
    config: Config,
    text: str,
    history: list[Message] | None = None,
    llm: LLMService | None = None,
) -> AgentResult:
    """Run the agent over the stored state and save whatever it changed."""
    store = get_store(config)
    state = store.load()
    result = run_agent(
        state,
        text,
        llm or get_llm(config),
        tool_context(config),
        history=history,
        max_turns=config.agent_max_turns,
    )
    if result.state is not state:
        store.save(result.state)
        logger.info(f"Assistant changes saved to {store.path}")
    return result


def accept(config: Config, rec: Recommendation) -> FamilyState:
    """Commit a recommendation card the user accepted."""
    ctx = tool_context(config)

    def command(state: FamilyState) -> tuple[FamilyState, FamilyState]:
        new_state = accept_recommendation(state, rec, ctx)
        return new_state, new_state

    return apply(config, command)


# ============== Demo Data ==============


def seed_demo_state(today: date) -> FamilyState:
    """Four members with a couple of days of events and chores around today."""

    def at(days: int, hour: int = 0) -> datetime:
        return datetime.combine(today + timedelta(days=days), time(hour))

    members = (
        Member(id="m1", name="Mom", color="rose"),
        Member(id="m2", name="Dad", color="blue"),
        Member(id="m3", name="Leo", color="green"),
        Member(id="m4", name="Mia", color="purple"),
    )
    events = (
        Event(id="e1", title="Yoga Class", start=at(0, 9), end=at(0, 10), member_ids=("m1",), location="Community Center"),
        Event(id="e2", title="Work Meeting", start=at(0, 14), end=at(0, 15), member_ids=("m2",), location="Office"),
        Event(id="e3", title="Soccer Practice", start=at(1, 16), end=at(1, 17), member_ids=("m3",), location="School Field"),
        Event(id="e4", title="Piano Lesson", start=at(2, 15), end=at(2, 16), member_ids=("m4",), location="Home"),
        Event(
            id="e5",
            title="Family Dinner",
            start=at(0, 19),
            end=at(0, 20),
            member_ids=("m1", "m2", "m3", "m4"),
            location="Home",
        ),
    )
    tasks = (
        Task(id="t1", title="Buy Milk", assignee_ids=("m1",), category=TaskCategory.SHOPPING, due_date=at(1)),
        Task(
            id="t2",
            title="Take out Trash",
            assignee_ids=("m3",),
            category=TaskCategory.CHORES,
            due_date=at(0),
            recurrence=RecurrenceSpec(RecurrenceRule.WEEKLY),
            series_id="series-trash-1",
        ),
        Task(id="t3", title="Water Plants", assignee_ids=("m4",), category=TaskCategory.CHORES, due_date=at(0), is_completed=True),
        Task(id="t4", title="Pay Electricity Bill", assignee_ids=("m2",), due_date=at(3)),
    )
    return FamilyState(members=members, events=events, tasks=tasks)
