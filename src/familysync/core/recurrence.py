"""Recurrence rules and occurrence expansion - pure, no I/O."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .dates import add_days, add_months, add_weeks, is_within_interval

logger = logging.getLogger(__name__)

MAX_OCCURRENCES = 365
INSTANCE_MARKER = "_inst_"


class RecurrenceRule(str, Enum):
    """How often an anchor repeats."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class RecurrenceSpec:
    """A repeat rule attached to an anchor event or task."""

    rule: RecurrenceRule
    until: datetime | None = None

    def allows(self, dt: datetime) -> bool:
        """True unless dt falls strictly after the end of the recurrence."""
        return self.until is None or dt <= self.until

    def to_dict(self) -> dict:
        return {
            "rule": self.rule.value,
            "until": self.until.isoformat() if self.until else None,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "RecurrenceSpec | None":
        if not data or not data.get("rule"):
            return None
        until = data.get("until")
        return cls(
            rule=RecurrenceRule(data["rule"]),
            until=datetime.fromisoformat(until) if until else None,
        )


@dataclass(frozen=True)
class Occurrence:
    """One concrete instance produced by expanding an anchor over a window."""

    id: str
    anchor_id: str
    index: int
    start: datetime
    end: datetime

    @property
    def is_virtual(self) -> bool:
        return is_virtual_id(self.id)


def shift(dt: datetime, rule: RecurrenceRule, steps: int = 1) -> datetime:
    """Move dt forward by `steps` periods of `rule`."""
    if rule is RecurrenceRule.DAILY:
        return add_days(dt, steps)
    if rule is RecurrenceRule.WEEKLY:
        return add_weeks(dt, steps)
    return add_months(dt, steps)


def instance_id(anchor_id: str, index: int) -> str:
    return f"{anchor_id}{INSTANCE_MARKER}{index}"


def is_virtual_id(entity_id: str) -> bool:
    """Virtual occurrences are derived on the fly and cannot be mutated."""
    return INSTANCE_MARKER in entity_id


def anchor_id_of(entity_id: str) -> str:
    """Strip the instance suffix, returning the stored anchor's id."""
    return entity_id.split(INSTANCE_MARKER, 1)[0]


def expand(
    anchor_id: str,
    start: datetime,
    end: datetime,
    recurrence: RecurrenceSpec | None,
    window_start: datetime,
    window_end: datetime,
) -> list[Occurrence]:
    """
    Produce the occurrences of an anchor that fall in [window_start, window_end].

    Pure function - no I/O.

    Without a recurrence the anchor itself is returned (keeping its own id)
    when its start or end lies in the window. With a recurrence, step n starts
    at ``shift(start, rule, n)`` so monthly series do not drift after a short
    month; each occurrence keeps the anchor's duration and gets the id
    ``{anchor_id}_inst_{n}``. The walk stops past ``until``, past the window
    end, or after MAX_OCCURRENCES steps.
    """
    if recurrence is None:
        if is_within_interval(start, window_start, window_end) or is_within_interval(
            end, window_start, window_end
        ):
            return [Occurrence(id=anchor_id, anchor_id=anchor_id, index=0, start=start, end=end)]
        return []

    duration = end - start
    occurrences = []
    for index in range(MAX_OCCURRENCES):
        current = shift(start, recurrence.rule, index)
        if not recurrence.allows(current):
            break
        if current > window_end:
            break
        if current >= window_start:
            occurrences.append(
                Occurrence(
                    id=instance_id(anchor_id, index),
                    anchor_id=anchor_id,
                    index=index,
                    start=current,
                    end=current + duration,
                )
            )
    else:
        logger.debug(f"Expansion of {anchor_id} hit the {MAX_OCCURRENCES}-step cap")

    return occurrences
