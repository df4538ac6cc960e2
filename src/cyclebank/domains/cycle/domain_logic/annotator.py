"""Calendar annotation: one resolved marker per day.

Actual periods and predicted cycle phases produce overlapping date ranges.
The annotator resolves them into a single :class:`CalendarAnnotation` per
day using a fixed precedence for ``kind``::

    period > ovulation > luteal > follicular > none

Every range *claims* its days through that precedence rank instead of
relying on the order ranges are applied, so a lower-precedence range can
never overwrite a higher one. Flags are resolved after all claims:

* ``is_start``: first day of an actual period.
* ``is_peak``: the predicted ovulation date, kept only while the day is
  still an ovulation day.
* ``is_pms``: last ``PMS_DAYS`` days before a predicted period, kept only
  on days whose final kind is luteal.
* ``is_today``: additive, never changes ``kind``.

The function is pure and recomputes the whole month on every call.
"""

from __future__ import annotations

import logging
from datetime import date

from cyclebank.core.calendar.days import add_days, days_between, iter_days, month_bounds
from cyclebank.core.storage.models import Period
from cyclebank.domains.cycle.domain_logic.cycle_models import (
    DEFAULT_PERIOD_EXTRA_DAYS,
    OVULATION_WINDOW_RADIUS,
    PMS_DAYS,
    CalendarAnnotation,
    DayKind,
    Prediction,
)

logger = logging.getLogger(__name__)


def period_end(period: Period) -> date:
    """End of a period's range, defaulting a missing end to start + 4 days."""
    if period.end_date is None:
        return add_days(period.start_date, DEFAULT_PERIOD_EXTRA_DAYS)
    return period.end_date


class _MonthCanvas:
    """Mutable per-day marks for one month, clipped to its bounds."""

    def __init__(self, first: date, last: date) -> None:
        self.first = first
        self.last = last
        self.marks = {day: CalendarAnnotation(date=day) for day in iter_days(first, last)}
        self.peaks: set[date] = set()
        self.pms: set[date] = set()
        self.starts: set[date] = set()

    def days(self, start: date, end: date):
        return iter_days(max(start, self.first), min(end, self.last))

    def claim(self, start: date, end: date, kind: DayKind) -> None:
        for day in self.days(start, end):
            mark = self.marks[day]
            if kind.rank > mark.kind.rank:
                mark.kind = kind

    def resolve(self, today: date | None) -> dict[date, CalendarAnnotation]:
        for day, mark in self.marks.items():
            mark.is_start = day in self.starts
            mark.is_peak = day in self.peaks and mark.kind is DayKind.OVULATION
            mark.is_pms = day in self.pms and mark.kind is DayKind.LUTEAL
            mark.is_today = day == today
        return self.marks


class CalendarAnnotator:
    """Merge actual periods and predictions into one annotation per day.

    Usage::

        annotator = CalendarAnnotator()
        marks = annotator.generate_annotations(periods, predictions, "2026-03", today)
        marks[date(2026, 3, 14)].kind  # DayKind.OVULATION
    """

    def generate_annotations(
        self,
        periods: list[Period],
        predictions: list[Prediction],
        month: date | tuple[int, int] | str,
        today: date | None = None,
    ) -> dict[date, CalendarAnnotation]:
        """Annotate every day of ``month``.

        Args:
            periods:     Actual logged periods.
            predictions: Upcoming cycle predictions (may be empty).
            month:       Any day in the month, ``(year, month)`` or ``"YYYY-MM"``.
            today:       The current calendar day, flagged ``is_today``.

        Returns:
            Mapping of each day in the month to its resolved annotation,
            in calendar order.
        """
        first, last = month_bounds(month)
        canvas = _MonthCanvas(first, last)

        for pred in predictions:
            ovulation = pred.ovulation_date

            # Follicular: predicted period end up to the day before ovulation.
            # Empty while ovulation falls inside the predicted period.
            canvas.claim(pred.period_end, add_days(ovulation, -1), DayKind.FOLLICULAR)

            # Luteal, with PMS emphasis on its final days.
            luteal_start = add_days(ovulation, OVULATION_WINDOW_RADIUS + 1)
            luteal_end = add_days(pred.period_start, -1)
            canvas.claim(luteal_start, luteal_end, DayKind.LUTEAL)
            for day in canvas.days(luteal_start, luteal_end):
                if days_between(day, pred.period_start) <= PMS_DAYS:
                    canvas.pms.add(day)

            canvas.claim(
                add_days(ovulation, -OVULATION_WINDOW_RADIUS),
                add_days(ovulation, OVULATION_WINDOW_RADIUS),
                DayKind.OVULATION,
            )
            if first <= ovulation <= last:
                canvas.peaks.add(ovulation)

        for period in periods:
            end = period_end(period)
            if end < period.start_date:
                logger.warning(
                    "Period %s ends before it starts (%s > %s); only its start day is marked",
                    period.id, period.start_date, end,
                )
                end = period.start_date
            canvas.claim(period.start_date, end, DayKind.PERIOD)
            if first <= period.start_date <= last:
                canvas.starts.add(period.start_date)

        return canvas.resolve(today)
