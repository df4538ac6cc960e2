"""Ephemeral cycle models and domain constants.

Nothing here is persisted: predictions and annotations are regenerated from
the current settings and period history on every call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Luteal phase is assumed fixed: ovulation happens this many days before the
# next period regardless of the user's cycle length.
LUTEAL_PHASE_DAYS = 14

# Fertile window relative to the ovulation date (inclusive).
FERTILE_DAYS_BEFORE_OVULATION = 5
FERTILE_DAYS_AFTER_OVULATION = 1

# Ovulation window marked on the calendar around the ovulation date.
OVULATION_WINDOW_RADIUS = 1

# Days before a predicted period flagged as PMS.
PMS_DAYS = 5

# A period logged without an end date is taken to last this many extra days.
DEFAULT_PERIOD_EXTRA_DAYS = 4

# Phase thresholds on days since the last period started. Absolute day counts,
# not scaled to the average cycle length.
MENSTRUAL_MAX_DAY = 5
FOLLICULAR_MAX_DAY = 13
OVULATION_MAX_DAY = 16

PREDICTED_CYCLES = 3


class DayKind(str, Enum):
    NONE = "none"
    FOLLICULAR = "follicular"
    LUTEAL = "luteal"
    OVULATION = "ovulation"
    PERIOD = "period"

    @property
    def rank(self) -> int:
        """Precedence when ranges overlap: higher wins."""
        return _KIND_RANK[self]


_KIND_RANK = {
    DayKind.NONE: 0,
    DayKind.FOLLICULAR: 1,
    DayKind.LUTEAL: 2,
    DayKind.OVULATION: 3,
    DayKind.PERIOD: 4,
}


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Prediction:
    """One projected future cycle."""

    period_start: date
    period_end: date
    ovulation_date: date
    fertile_window_start: date
    fertile_window_end: date

    def to_dict(self) -> dict[str, str]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "ovulation_date": self.ovulation_date.isoformat(),
            "fertile_window_start": self.fertile_window_start.isoformat(),
            "fertile_window_end": self.fertile_window_end.isoformat(),
        }


@dataclass
class CalendarAnnotation:
    """The resolved marker for one calendar day."""

    date: date
    kind: DayKind = DayKind.NONE
    is_start: bool = False
    is_peak: bool = False
    is_pms: bool = False
    is_today: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "kind": self.kind.value,
            "is_start": self.is_start,
            "is_peak": self.is_peak,
            "is_pms": self.is_pms,
            "is_today": self.is_today,
        }
