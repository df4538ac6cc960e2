"""Cycle insights: regularity, frequent symptoms and the upcoming-period alert.

All helpers are pure functions over data the service already holds.
"""

from __future__ import annotations

import statistics
from collections import Counter
from dataclasses import dataclass
from typing import Any

from cyclebank.core.storage.models import DailyLog
from cyclebank.domains.cycle.domain_logic.cycle_statistics import round_half_up

DEFAULT_CYCLE_LENGTH = 28

# Each day of spread between the longest and shortest cycle costs this many
# regularity points.
REGULARITY_PENALTY_PER_DAY = 3

TOP_SYMPTOM_COUNT = 3

# The alert is shown when the next period is at most this many days away.
ALERT_HORIZON_DAYS = 5
URGENT_ALERT_DAYS = 2


def regularity_score(lengths: list[int]) -> int:
    """Score 0-100 from the spread of cycle lengths; 100 with fewer than two."""
    if len(lengths) < 2:
        return 100
    spread = max(lengths) - min(lengths)
    return max(0, round_half_up(100 - spread * REGULARITY_PENALTY_PER_DAY))


def average_length(lengths: list[int]) -> int:
    if not lengths:
        return DEFAULT_CYCLE_LENGTH
    return round_half_up(statistics.mean(lengths))


def top_symptoms(logs: list[DailyLog], limit: int = TOP_SYMPTOM_COUNT) -> list[str]:
    """Most frequent daily-log symptoms, ties in first-seen order."""
    counts: Counter[str] = Counter()
    for log in sorted(logs, key=lambda entry: entry.date):
        counts.update(sorted(log.symptoms))
    return [symptom for symptom, _ in counts.most_common(limit)]


@dataclass(frozen=True)
class PeriodAlert:
    days_until: int
    title: str
    subtitle: str

    def to_dict(self) -> dict[str, Any]:
        return {"days_until": self.days_until, "title": self.title, "subtitle": self.subtitle}


def period_alert(days_until: int | None) -> PeriodAlert | None:
    """Alert text for a period due within the horizon, else ``None``."""
    if days_until is None or days_until < 0 or days_until > ALERT_HORIZON_DAYS:
        return None
    if days_until == 0:
        title = "Period starts today"
    elif days_until == 1:
        title = "Period starts tomorrow"
    else:
        title = f"Period starts in {days_until} days"
    if days_until <= URGENT_ALERT_DAYS:
        subtitle = "Time to be extra caring and supportive"
    else:
        subtitle = "Get ready to be supportive"
    return PeriodAlert(days_until=days_until, title=title, subtitle=subtitle)
