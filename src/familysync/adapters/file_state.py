"""File-based state storage adapter."""

import json
import logging
from pathlib import Path

from familysync.core.commands import FamilyState

logger = logging.getLogger(__name__)


class StateFileError(Exception):
    """Raised when the state file exists but cannot be read."""

    pass


class FileStateStore:
    """
    JSON snapshot storage.

    Implements StateStore protocol. The whole family state lives in one file
    that is replaced on every save.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> FamilyState:
        """Load the snapshot. Returns an empty state if the file is missing."""
        if not self.path.exists():
            return FamilyState()
        try:
            data = json.loads(self.path.read_text())
            return FamilyState.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Failed to read state file {self.path}: {e}")
            raise StateFileError(f"Corrupt state file {self.path}: {e}")

    def save(self, state: FamilyState) -> None:
        """Write the snapshot, replacing the previous file in one step."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(state.to_dict(), indent=2))
        tmp.replace(self.path)
