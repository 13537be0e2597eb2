"""Agent loop: lets a tool-calling model drive the command layer.

The loop is bounded. Each turn the model either emits tool calls, which are
executed against the current snapshot and fed back, or a final answer.
"""

import json
import logging
from dataclasses import dataclass, field

from .core.commands import FamilyState
from .core.dates import format_instant
from .core.tools import TOOL_CATALOG, Recommendation, ToolContext, execute_tool
from .ports.llm_service import LLMService, Message, ToolCall, ToolResult

logger = logging.getLogger(__name__)

MAX_AGENT_TURNS = 8

FALLBACK_REPLY = "I ran out of steps before finishing. Please check the calendar and tasks, then try again."

SYSTEM_INSTRUCTION = """You are 'FamilyBot', a smart, autonomous family assistant for the 'FamilySync' app.
Your goal is to help the family manage their Calendar Events, To-Do Tasks, and Family Members.

## Core Behavior
1. Multi-step reasoning: if you need IDs you don't know, call list_members, list_events or
   list_tasks first, then act on the results in the next step. Don't ask the user for
   information you can find yourself via tools.
2. Clarify ambiguity: only ask the user when tools can't answer. If a request is vague
   (e.g. "Add a meeting" without a time), ask for the time.
3. Proactive recommendations: use display_recommendations to suggest events and tasks
   (movie night, meal prep, clean the air filters, call grandparents, weekend hike).
   Be creative based on the time of year and common family needs.
4. Use ISO 8601 dates.
5. Once the request is done (or you need input), give a friendly, concise answer.

## Rules
- Never guess an ID. List items to find the ID when names are mentioned.
- "Today" is the time given below.
- Every task MUST be assigned to at least one family member.
- IDs containing "_inst_" are single occurrences of a recurring event. Edit the
  series through its anchorId instead."""


@dataclass
class ToolLog:
    """A tool call the agent made, with what came back."""

    name: str
    args: dict
    result: object


@dataclass
class AgentResult:
    """Outcome of one user request."""

    state: FamilyState
    reply: str
    tool_logs: list[ToolLog] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    completed: bool = True


def build_system_prompt(state: FamilyState, ctx: ToolContext) -> str:
    """System instruction plus the current time and member roster."""
    roster = json.dumps([{"id": m.id, "name": m.name} for m in state.members])
    return f"{SYSTEM_INSTRUCTION}\n\nToday: {ctx.now.strftime('%A')} {format_instant(ctx.now)}\nMembers: {roster}"


def run_agent(
    state: FamilyState,
    user_text: str,
    llm: LLMService,
    ctx: ToolContext,
    history: list[Message] | None = None,
    max_turns: int = MAX_AGENT_TURNS,
) -> AgentResult:
    """
    Run the bounded agent loop for a single user request.

    Tool calls are applied in order, each against the state left by the
    previous one. Declined calls come back to the model as {"error": ...}.
    LLM failures propagate as RuntimeError.
    """
    max_turns = max(1, min(max_turns, MAX_AGENT_TURNS))
    messages = list(history or []) + [Message(role="user", text=user_text)]
    tool_logs: list[ToolLog] = []
    recommendations: list[Recommendation] = []

    for turn in range(1, max_turns + 1):
        reply = llm.respond(build_system_prompt(state, ctx), list(messages), TOOL_CATALOG)

        if not reply.calls:
            logger.info(f"Agent finished after {turn} turn(s), {len(tool_logs)} tool call(s)")
            messages.append(Message(role="model", text=reply.text))
            return AgentResult(
                state=state,
                reply=reply.text.strip(),
                tool_logs=tool_logs,
                recommendations=recommendations,
                messages=messages,
            )

        messages.append(Message(role="model", text=reply.text, calls=list(reply.calls)))
        results = []
        for call in reply.calls:
            state, result = _run_call(state, call, ctx, recommendations)
            tool_logs.append(ToolLog(name=call.name, args=call.args, result=result))
            results.append(ToolResult(name=call.name, result=result, id=call.id))
        messages.append(Message(role="tool", results=results))
    else:
        logger.warning(f"Agent hit the {max_turns} turn limit without a final answer")

    return AgentResult(
        state=state,
        reply=FALLBACK_REPLY,
        tool_logs=tool_logs,
        recommendations=recommendations,
        messages=messages,
        completed=False,
    )


def _run_call(
    state: FamilyState, call: ToolCall, ctx: ToolContext, recommendations: list[Recommendation]
) -> tuple[FamilyState, object]:
    logger.debug(f"Tool call {call.name}: {call.args}")
    outcome = execute_tool(state, call.name, call.args, ctx)
    recommendations.extend(outcome.recommendations)
    return outcome.state, outcome.result
