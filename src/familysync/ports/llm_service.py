"""LLM service interface for tool-calling conversations."""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class ToolCall:
    """A structured command emitted by the model."""

    name: str
    args: dict = field(default_factory=dict)
    id: str | None = None


@dataclass
class ToolResult:
    """The result of running a ToolCall, fed back on the next turn."""

    name: str
    result: Any
    id: str | None = None


@dataclass
class Message:
    """One entry of the conversation: user text, model output or tool results."""

    role: str  # "user" | "model" | "tool"
    text: str = ""
    calls: list[ToolCall] = field(default_factory=list)
    results: list[ToolResult] = field(default_factory=list)


@dataclass
class LLMReply:
    """A single model turn: free text (thoughts or answer) plus tool calls."""

    text: str
    calls: list[ToolCall] = field(default_factory=list)


class LLMService(Protocol):
    """Interface for a tool-calling LLM."""

    def respond(self, system: str, messages: list[Message], tools: list[dict]) -> LLMReply:
        """Run one model turn over the conversation so far."""
        ...
