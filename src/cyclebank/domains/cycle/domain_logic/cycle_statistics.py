"""Cycle statistics derived from period history.

Turns the list of logged periods into the derived fields of
:class:`CycleSettings`: average cycle length, next period date, days until
the next period, current phase and cycle day.

The engine only reads ``start_date``. Periods whose end precedes their start
are tolerated here; that invariant is enforced on the write path.
"""

from __future__ import annotations

import logging
import math
import statistics
from dataclasses import replace
from datetime import date

from cyclebank.core.calendar.days import add_days, days_between
from cyclebank.core.storage.models import CyclePhase, CycleSettings, Period
from cyclebank.domains.cycle.domain_logic.cycle_models import (
    FOLLICULAR_MAX_DAY,
    MENSTRUAL_MAX_DAY,
    OVULATION_MAX_DAY,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round()`` rounds to even)."""
    return math.floor(value + 0.5)


def phase_for_day(days_since_last_period: int) -> CyclePhase:
    """Classify a day offset into a cycle phase using fixed thresholds."""
    if days_since_last_period <= MENSTRUAL_MAX_DAY:
        return CyclePhase.MENSTRUAL
    if days_since_last_period <= FOLLICULAR_MAX_DAY:
        return CyclePhase.FOLLICULAR
    if days_since_last_period <= OVULATION_MAX_DAY:
        return CyclePhase.OVULATION
    return CyclePhase.LUTEAL


def cycle_lengths(periods: list[Period]) -> list[int]:
    """Gaps in days between consecutive period starts, newest gap first."""
    starts = sorted((p.start_date for p in periods), reverse=True)
    return [days_between(older, newer) for newer, older in zip(starts, starts[1:])]


class CycleStatisticsEngine:
    """Recompute derived cycle statistics from the full period list.

    Usage::

        engine = CycleStatisticsEngine()
        settings = engine.recompute(periods, settings, today=date.today())
        print(settings.current_phase, settings.cycle_day)
    """

    def recompute(
        self,
        periods: list[Period],
        settings: CycleSettings,
        today: date,
    ) -> CycleSettings:
        """Return a new settings object with every derived field refreshed.

        Args:
            periods:  All logged periods, in any order.
            settings: Current settings (user overrides are kept).
            today:    Reference calendar day.

        Returns:
            Updated settings, or ``settings`` itself when there are no periods.
        """
        if not periods:
            return settings

        last_period = max(periods, key=lambda p: p.start_date)
        days_since = days_between(last_period.start_date, today)

        average_cycle_length = settings.average_cycle_length
        gaps = cycle_lengths(periods)
        if gaps:
            # Duplicate start dates give zero-day gaps; keep the length positive.
            average_cycle_length = max(1, round_half_up(statistics.mean(gaps)))

        next_period = add_days(last_period.start_date, average_cycle_length)
        days_until = max(0, days_between(today, next_period))

        if days_since < 0:
            logger.warning(
                "Latest period starts in the future (%s); cycle day clamped to 1",
                last_period.start_date,
            )

        return replace(
            settings,
            average_cycle_length=average_cycle_length,
            last_period_date=last_period.start_date,
            next_period_date=next_period,
            days_until_next_period=days_until,
            current_phase=phase_for_day(days_since),
            cycle_day=max(1, days_since + 1),
        )
