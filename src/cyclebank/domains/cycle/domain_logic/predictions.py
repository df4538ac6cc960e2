"""Multi-cycle-ahead predictions from cycle settings."""

from __future__ import annotations

from cyclebank.core.calendar.days import add_days
from cyclebank.core.storage.models import CycleSettings
from cyclebank.domains.cycle.domain_logic.cycle_models import (
    FERTILE_DAYS_AFTER_OVULATION,
    FERTILE_DAYS_BEFORE_OVULATION,
    LUTEAL_PHASE_DAYS,
    PREDICTED_CYCLES,
    Prediction,
)


class PredictionEngine:
    """Project future period, ovulation and fertile-window dates.

    Ovulation is always placed ``LUTEAL_PHASE_DAYS`` before the predicted
    period start, whatever the average cycle length.
    """

    def __init__(self, cycles: int = PREDICTED_CYCLES) -> None:
        self._cycles = cycles

    def get_predictions(self, settings: CycleSettings) -> list[Prediction]:
        """Return one prediction per upcoming cycle, or none without a next period date."""
        if settings.next_period_date is None:
            return []

        predictions: list[Prediction] = []
        for i in range(self._cycles):
            period_start = add_days(settings.next_period_date, i * settings.average_cycle_length)
            ovulation = add_days(period_start, -LUTEAL_PHASE_DAYS)
            predictions.append(
                Prediction(
                    period_start=period_start,
                    period_end=add_days(period_start, settings.average_period_length - 1),
                    ovulation_date=ovulation,
                    fertile_window_start=add_days(ovulation, -FERTILE_DAYS_BEFORE_OVULATION),
                    fertile_window_end=add_days(ovulation, FERTILE_DAYS_AFTER_OVULATION),
                )
            )
        return predictions
