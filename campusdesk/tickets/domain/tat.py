"""
TAT Calculator
==============

Pure functions for turn-around-time deadlines.

All durations are wall-clock hours. Deadlines are absolute UTC timestamps
and are never recomputed relative to "now" once stored.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from campusdesk.core import ValidationException
from campusdesk.shared.clock import as_utc

_DURATION_RE = re.compile(r"^(\d+)\s*(h|hours?|d|days?|w|weeks?)?$")

_UNIT_HOURS = {"h": 1, "d": 24, "w": 24 * 7}

MIN_EXTENSION_HOURS = 1
MAX_EXTENSION_HOURS = 168


@dataclass(frozen=True)
class TATSpec:
    """A parsed TAT input: the deadline plus the relative hours when given."""
    due_at: datetime
    hours: Optional[int] = None

    @property
    def is_relative(self) -> bool:
        return self.hours is not None


class TATCalculator:
    """
    Stateless deadline arithmetic.

    ``max_tat_hours`` bounds relative specifications; absolute timestamps are
    only required to lie in the future.
    """

    def __init__(self, max_tat_hours: int = 720):
        self.max_tat_hours = max_tat_hours

    def parse_tat_spec(self, spec: str, now: datetime) -> TATSpec:
        """
        Parse ``"48"``, ``"48h"``, ``"2 days"``, ``"1w"`` or an ISO-8601 timestamp.

        Raises:
            ValidationException: malformed, non-positive, too large or past
        """
        if spec is None or not str(spec).strip():
            raise ValidationException("TAT is required")

        text = str(spec).strip().lower()
        match = _DURATION_RE.match(text)
        if match:
            value = int(match.group(1))
            unit = (match.group(2) or "h")[0]
            hours = value * _UNIT_HOURS[unit]
            if hours <= 0:
                raise ValidationException("TAT must be a positive duration", {"tat": spec})
            if hours > self.max_tat_hours:
                raise ValidationException(
                    f"TAT cannot exceed {self.max_tat_hours} hours",
                    {"tat": spec, "hours": hours}
                )
            return TATSpec(due_at=as_utc(now) + timedelta(hours=hours), hours=hours)

        try:
            due_at = as_utc(datetime.fromisoformat(str(spec).strip().replace("Z", "+00:00")))
        except ValueError:
            raise ValidationException(
                'Invalid TAT format. Use "X hours", "X days", "X weeks" or an ISO-8601 timestamp',
                {"tat": spec}
            )

        if due_at <= as_utc(now):
            raise ValidationException("TAT date must be in the future", {"tat": spec})
        return TATSpec(due_at=due_at)

    @staticmethod
    def initial_deadlines(
        created_at: datetime,
        acknowledgement_hours: float,
        resolution_hours: float,
    ) -> Tuple[datetime, datetime]:
        """Ack and resolution deadlines for a new ticket; ack never exceeds resolution."""
        created_at = as_utc(created_at)
        resolution_due = created_at + timedelta(hours=resolution_hours)
        ack_due = min(created_at + timedelta(hours=acknowledgement_hours), resolution_due)
        return ack_due, resolution_due

    @staticmethod
    def extend(current_due: Optional[datetime], now: datetime, hours: int) -> datetime:
        """
        Push a deadline out by ``hours``.

        The base is the current deadline when it is still in the future,
        otherwise now. The result is therefore never earlier than either.
        """
        if isinstance(hours, bool) or not isinstance(hours, int):
            raise ValidationException("Extension hours must be an integer", {"hours": hours})
        if not MIN_EXTENSION_HOURS <= hours <= MAX_EXTENSION_HOURS:
            raise ValidationException(
                f"Extension hours must be between {MIN_EXTENSION_HOURS} and {MAX_EXTENSION_HOURS}",
                {"hours": hours}
            )
        now = as_utc(now)
        base = now if current_due is None else max(as_utc(current_due), now)
        return base + timedelta(hours=hours)
