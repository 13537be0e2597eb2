"""Adapters - I/O implementations of ports."""

from .file_state import FileStateStore, StateFileError
from .claude_cli import ClaudeCLIService
from .gemini_api import GeminiAPIService

__all__ = [
    "FileStateStore",
    "StateFileError",
    "ClaudeCLIService",
    "GeminiAPIService",
]
