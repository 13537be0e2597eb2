"""State storage interface."""

from typing import Protocol

from familysync.core.commands import FamilyState


class StateStore(Protocol):
    """Interface for loading and saving the family snapshot."""

    def load(self) -> FamilyState:
        """Load the latest snapshot. Returns an empty state if none exists."""
        ...

    def save(self, state: FamilyState) -> None:
        """Persist a snapshot, replacing the previous one."""
        ...
