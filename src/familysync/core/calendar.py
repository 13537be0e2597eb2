"""Pure calendar domain logic - no I/O dependencies."""

from dataclasses import dataclass, replace
from datetime import datetime

from .recurrence import RecurrenceSpec, expand, is_virtual_id


@dataclass(frozen=True)
class Event:
    """A calendar event, possibly the anchor of a recurring series."""

    id: str
    title: str
    start: datetime
    end: datetime
    member_ids: tuple[str, ...] = ()
    location: str = ""
    recurrence: RecurrenceSpec | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def is_virtual(self) -> bool:
        return is_virtual_id(self.id)

    def involves(self, member_id: str) -> bool:
        return member_id in self.member_ids

    def format_time(self) -> str:
        """Format the event time for display."""
        return self.start.strftime("%H:%M")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "memberIds": list(self.member_ids),
            "location": self.location,
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            start=datetime.fromisoformat(data["start"]),
            end=datetime.fromisoformat(data["end"]),
            member_ids=tuple(data.get("memberIds", [])),
            location=data.get("location") or "",
            recurrence=RecurrenceSpec.from_dict(data.get("recurrence")),
        )


def expand_event(event: Event, window_start: datetime, window_end: datetime) -> list[Event]:
    """
    Materialize an event over a window.

    A non-recurring event comes back unchanged; a recurring one comes back as
    virtual copies carrying ``{id}_inst_{n}`` ids.
    """
    occurrences = expand(
        event.id, event.start, event.end, event.recurrence, window_start, window_end
    )
    if event.recurrence is None:
        return [event] if occurrences else []
    return [replace(event, id=o.id, start=o.start, end=o.end) for o in occurrences]


def expand_events(
    events: list[Event], window_start: datetime, window_end: datetime
) -> list[Event]:
    """Expand every event over the window, sorted by start."""
    expanded = []
    for event in events:
        expanded.extend(expand_event(event, window_start, window_end))
    return sort_events_by_start(expanded)


def sort_events_by_start(events: list[Event]) -> list[Event]:
    """Sort events by start time."""
    return sorted(events, key=lambda e: e.start)


def reschedule(event: Event, new_start: datetime) -> Event:
    """Move an event to new_start, keeping its duration."""
    return replace(event, start=new_start, end=new_start + (event.end - event.start))
