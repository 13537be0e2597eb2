"""Family members and colour assignment - pure, no I/O."""

import random
from dataclasses import dataclass
from typing import Iterable, Protocol, TypeVar

UNKNOWN_MEMBER = "unknown"

PALETTE = ("rose", "blue", "green", "purple", "orange", "teal", "indigo", "pink", "gray")

HEX_MAP = {
    "rose": "#fb7185",
    "blue": "#60a5fa",
    "green": "#4ade80",
    "purple": "#c084fc",
    "orange": "#fb923c",
    "teal": "#2dd4bf",
    "indigo": "#818cf8",
    "pink": "#f472b6",
    "gray": "#9ca3af",
}


@dataclass(frozen=True)
class Member:
    """A family member. Events and tasks reference members by id."""

    id: str
    name: str
    color: str

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict) -> "Member":
        return cls(id=data["id"], name=data["name"], color=data.get("color", "gray"))


def pick_color(
    members: Iterable[Member],
    preferred: str | None = None,
    rng: random.Random | None = None,
) -> str:
    """
    Choose a colour for a new member.

    A known preferred colour wins. Otherwise the first palette colour nobody
    uses yet; when every colour is taken, a random palette entry.
    """
    if preferred and preferred in HEX_MAP:
        return preferred
    used = {m.color for m in members}
    available = [c for c in PALETTE if c not in used]
    if available:
        return available[0]
    return (rng or random).choice(PALETTE)


def member_name(members: Iterable[Member], member_id: str) -> str:
    """Display name for an id, tolerating members that were deleted."""
    for m in members:
        if m.id == member_id:
            return m.name
    return UNKNOWN_MEMBER


def member_names(members: Iterable[Member], member_ids: Iterable[str]) -> list[str]:
    members = list(members)
    return [member_name(members, mid) for mid in member_ids]


class HasMembers(Protocol):
    def involves(self, member_id: str) -> bool: ...


T = TypeVar("T", bound=HasMembers)


def filter_by_member(items: Iterable[T], member_id: str | None) -> list[T]:
    """Keep entities that involve member_id. None means no restriction."""
    if member_id is None:
        return list(items)
    return [item for item in items if item.involves(member_id)]
