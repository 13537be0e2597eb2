"""Ports - interfaces/protocols for external dependencies."""

from .state_store import StateStore
from .llm_service import LLMService, LLMReply, Message, ToolCall, ToolResult

__all__ = [
    "StateStore",
    "LLMService",
    "LLMReply",
    "Message",
    "ToolCall",
    "ToolResult",
]
