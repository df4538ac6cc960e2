"""Cycle service: the public operations of the cycle tracker.

The service owns one explicit :class:`CycleState` and wires the repository,
statistics engine, prediction engine and calendar annotator together. It
never recomputes statistics behind the caller's back: after mutating periods
the caller invokes :meth:`CycleService.recalculate_statistics`.

Every operation returns an :class:`OperationResult`; expected failures
(store write errors, invalid input) are reported, never raised.

Persistence is whole-collection read-modify-write with last-writer-wins
semantics. In-memory state is only replaced after the store accepts a write.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import fields, replace
from datetime import date
from typing import Any

from cyclebank.core.calendar.days import TodayProvider, parse_day
from cyclebank.core.calendar.days import today_provider as day_clock
from cyclebank.core.storage.models import (
    CyclePhase,
    CycleSettings,
    CycleState,
    DailyLog,
    FlowIntensity,
    Mood,
    OperationResult,
    Period,
    SchemaError,
    SymptomEntry,
    now_iso,
)
from cyclebank.core.storage.repository import CycleRepository
from cyclebank.domains.cycle.domain_logic.annotator import CalendarAnnotator
from cyclebank.domains.cycle.domain_logic.cycle_models import Prediction
from cyclebank.domains.cycle.domain_logic.cycle_statistics import (
    CycleStatisticsEngine,
    cycle_lengths,
)
from cyclebank.domains.cycle.domain_logic.insights import (
    average_length,
    period_alert,
    regularity_score,
    top_symptoms,
)
from cyclebank.domains.cycle.domain_logic.predictions import PredictionEngine

logger = logging.getLogger(__name__)

DELETE_ALL_CONFIRMATION = "DELETE_ALL"

PHASE_DESCRIPTIONS = {
    CyclePhase.MENSTRUAL: "Rest and be kind to yourself.",
    CyclePhase.FOLLICULAR: "Great time for new projects!",
    CyclePhase.OVULATION: "Peak fertility window.",
    CyclePhase.LUTEAL: "Focus on self-care.",
}

# Fields update_cycle_settings accepts. Only the lengths survive a recalculation.
_SETTINGS_FIELDS = {f.name for f in fields(CycleSettings)}

# Integer settings and their minimum values. Derived counters may be None.
_INT_MINIMUMS = {
    "average_cycle_length": 1,
    "average_period_length": 1,
    "days_until_next_period": 0,
    "cycle_day": 1,
}
_NULLABLE_INTS = ("days_until_next_period", "cycle_day")


def _new_id() -> str:
    return str(uuid.uuid4())


def _pick(data: dict[str, Any], *names: str, default: Any = None) -> Any:
    """First present key among snake_case / camelCase aliases."""
    for name in names:
        if name in data:
            return data[name]
    return default


def _as_enum(enum_cls, value: Any, default):
    if value is None or value == "":
        return default
    if isinstance(value, enum_cls):
        return value
    return enum_cls(str(value).strip().lower())


def _as_symptoms(value: Any) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, str):
        return {value}
    return {str(v) for v in value}


class CycleService:
    """Public cycle-tracking operations over an explicit state.

    Usage::

        service = CycleService(CycleRepository(store))
        await service.load()
        await service.add_period({"start_date": "2026-03-01"})
        service.recalculate_statistics()
        service.get_calendar_annotations("2026-03")
    """

    def __init__(
        self,
        repository: CycleRepository,
        *,
        today_provider: TodayProvider | None = None,
        statistics: CycleStatisticsEngine | None = None,
        predictions: PredictionEngine | None = None,
        annotator: CalendarAnnotator | None = None,
    ) -> None:
        self._repo = repository
        self._today = today_provider or day_clock("local")
        self._statistics = statistics or CycleStatisticsEngine()
        self._predictions = predictions or PredictionEngine()
        self._annotator = annotator or CalendarAnnotator()
        self._state = CycleState()
        self._loaded = False

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def loaded(self) -> bool:
        return self._loaded

    def today(self) -> date:
        return self._today()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> OperationResult:
        """Load state from the repository. Damaged collections are reported, not fatal."""
        loaded = await self._repo.load()
        self._state = loaded.state
        self._loaded = True
        return OperationResult.ok({
            "periods": len(self._state.periods),
            "daily_logs": len(self._state.daily_logs),
            "symptoms": len(self._state.symptoms),
            "collection_errors": dict(loaded.errors),
            "skipped_records": dict(loaded.skipped_records),
        })

    async def ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    async def add_period(self, data: dict[str, Any]) -> OperationResult:
        """Log a new period. ``start_date`` is required; ``end_date`` is optional."""
        try:
            start = parse_day(_pick(data, "start_date", "startDate"))
            raw_end = _pick(data, "end_date", "endDate")
            period = Period(
                id=_new_id(),
                start_date=start,
                end_date=parse_day(raw_end) if raw_end else None,
                flow_intensity=_as_enum(
                    FlowIntensity,
                    _pick(data, "flow_intensity", "flowIntensity"),
                    FlowIntensity.MEDIUM,
                ),
                symptoms=_as_symptoms(data.get("symptoms")),
                notes=str(data.get("notes") or ""),
                created_at=now_iso(),
            )
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid period: {exc}")

        if period.end_date is not None and period.end_date < period.start_date:
            return OperationResult.fail("Invalid period: end_date is before start_date")

        updated = [*self._state.periods, period]
        result = await self._repo.save_periods(updated)
        if not result.success:
            return result
        self._state.periods = updated
        logger.info("Period added: %s starting %s", period.id, period.start_date)
        return OperationResult.ok(period)

    async def update_period(self, period_id: str, updates: dict[str, Any]) -> OperationResult:
        """Merge ``updates`` into a period. An unknown id is a successful no-op."""
        target = next((p for p in self._state.periods if p.id == period_id), None)
        if target is None:
            # Kept as a no-op for compatibility; callers cannot tell a typo from success.
            logger.warning("update_period: no period with id %s; nothing changed", period_id)
            return OperationResult.ok()

        try:
            changes: dict[str, Any] = {}
            if any(k in updates for k in ("start_date", "startDate")):
                changes["start_date"] = parse_day(_pick(updates, "start_date", "startDate"))
            if any(k in updates for k in ("end_date", "endDate")):
                raw_end = _pick(updates, "end_date", "endDate")
                changes["end_date"] = parse_day(raw_end) if raw_end else None
            if any(k in updates for k in ("flow_intensity", "flowIntensity")):
                changes["flow_intensity"] = _as_enum(
                    FlowIntensity,
                    _pick(updates, "flow_intensity", "flowIntensity"),
                    FlowIntensity.MEDIUM,
                )
            if "symptoms" in updates:
                changes["symptoms"] = _as_symptoms(updates["symptoms"])
            if "notes" in updates:
                changes["notes"] = str(updates["notes"] or "")
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid period update: {exc}")

        merged = replace(target, **changes)
        if merged.end_date is not None and merged.end_date < merged.start_date:
            return OperationResult.fail("Invalid period: end_date is before start_date")

        updated = [merged if p.id == period_id else p for p in self._state.periods]
        result = await self._repo.save_periods(updated)
        if not result.success:
            return result
        self._state.periods = updated
        logger.info("Period updated: %s (%s)", period_id, ", ".join(sorted(changes)) or "no fields")
        return OperationResult.ok(merged)

    async def delete_period(self, period_id: str) -> OperationResult:
        """Remove a period. An unknown id is a successful no-op."""
        remaining = [p for p in self._state.periods if p.id != period_id]
        if len(remaining) == len(self._state.periods):
            logger.warning("delete_period: no period with id %s; nothing changed", period_id)
            return OperationResult.ok()

        result = await self._repo.save_periods(remaining)
        if not result.success:
            return result
        self._state.periods = remaining
        logger.info("Period deleted: %s", period_id)
        return OperationResult.ok()

    # ------------------------------------------------------------------
    # Daily logs
    # ------------------------------------------------------------------

    async def add_daily_log(self, data: dict[str, Any]) -> OperationResult:
        """Create or update the log for ``data['date']`` (default today).

        Fields present in ``data`` are merged over an existing log for the
        same day; absent fields keep their previous values.
        """
        try:
            raw_date = data.get("date")
            day = parse_day(raw_date) if raw_date else self.today()
            changes: dict[str, Any] = {}
            if "flow" in data:
                changes["flow"] = _as_enum(FlowIntensity, data["flow"], FlowIntensity.NONE)
            if "mood" in data:
                changes["mood"] = _as_enum(Mood, data["mood"], Mood.NEUTRAL)
            if "symptoms" in data:
                changes["symptoms"] = _as_symptoms(data["symptoms"])
            if "temperature" in data:
                temp = data["temperature"]
                changes["temperature"] = float(temp) if temp not in (None, "") else None
            if "notes" in data:
                changes["notes"] = str(data["notes"] or "")
            partner = _pick(data, "partner_viewable", "partnerViewable")
            if partner is not None:
                changes["partner_viewable"] = bool(partner)
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid daily log: {exc}")

        now = now_iso()
        existing = next((log for log in self._state.daily_logs if log.date == day), None)
        if existing is not None:
            log = replace(existing, **changes, updated_at=now)
            updated = [log if item.id == existing.id else item for item in self._state.daily_logs]
        else:
            log = DailyLog(id=_new_id(), date=day, created_at=now, updated_at=now, **changes)
            updated = [*self._state.daily_logs, log]

        result = await self._repo.save_daily_logs(updated)
        if not result.success:
            return result
        self._state.daily_logs = updated
        logger.info("Daily log %s for %s", "updated" if existing else "created", day)
        return OperationResult.ok(log)

    def get_daily_log(self, day: date | str) -> OperationResult:
        try:
            target = parse_day(day)
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid date: {exc}")
        log = next((item for item in self._state.daily_logs if item.date == target), None)
        return OperationResult.ok(log)

    # ------------------------------------------------------------------
    # Symptoms
    # ------------------------------------------------------------------

    async def add_symptom(self, data: dict[str, Any]) -> OperationResult:
        try:
            raw_date = data.get("date")
            symptom_type = str(data.get("type") or "").strip()
            if not symptom_type:
                raise SchemaError("symptom type is required")
            severity = data.get("severity", 1)
            if isinstance(severity, bool):
                raise ValueError("severity must be an integer")
            entry = SymptomEntry(
                id=_new_id(),
                date=parse_day(raw_date) if raw_date else self.today(),
                type=symptom_type,
                severity=int(severity),
                notes=str(data.get("notes") or ""),
                created_at=now_iso(),
            )
        except (SchemaError, TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid symptom: {exc}")

        updated = [*self._state.symptoms, entry]
        result = await self._repo.save_symptoms(updated)
        if not result.success:
            return result
        self._state.symptoms = updated
        logger.info("Symptom logged: %s on %s", entry.type, entry.date)
        return OperationResult.ok(entry)

    def get_symptoms_by_date(self, day: date | str) -> OperationResult:
        try:
            target = parse_day(day)
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid date: {exc}")
        return OperationResult.ok([s for s in self._state.symptoms if s.date == target])

    # ------------------------------------------------------------------
    # Settings & statistics
    # ------------------------------------------------------------------

    async def update_cycle_settings(self, partial: dict[str, Any]) -> OperationResult:
        """Merge known settings fields and persist them."""
        unknown = sorted(set(partial) - _SETTINGS_FIELDS)
        if unknown:
            return OperationResult.fail(f"Unknown settings: {', '.join(unknown)}")

        try:
            changes = dict(partial)
            for name, minimum in _INT_MINIMUMS.items():
                if name not in changes:
                    continue
                value = changes[name]
                if value is None and name in _NULLABLE_INTS:
                    continue
                if isinstance(value, bool) or int(value) != value or int(value) < minimum:
                    raise ValueError(f"{name} must be an integer >= {minimum}")
                changes[name] = int(value)
            for name in ("last_period_date", "next_period_date"):
                if changes.get(name):
                    changes[name] = parse_day(changes[name])
            if "current_phase" in changes:
                changes["current_phase"] = _as_enum(
                    CyclePhase, changes["current_phase"], CyclePhase.FOLLICULAR
                )
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid settings: {exc}")

        updated = replace(self._state.settings, **changes)
        result = await self._repo.save_settings(updated)
        if not result.success:
            return result
        self._state.settings = updated
        logger.info("Cycle settings updated: %s", ", ".join(sorted(changes)))
        return OperationResult.ok(updated)

    def recalculate_statistics(self) -> OperationResult:
        """Recompute derived settings from the in-memory periods. Idempotent."""
        self._state.settings = self._statistics.recompute(
            self._state.periods, self._state.settings, self.today()
        )
        return OperationResult.ok(self._state.settings)

    # ------------------------------------------------------------------
    # Predictions & calendar
    # ------------------------------------------------------------------

    def predictions(self) -> list[Prediction]:
        return self._predictions.get_predictions(self._state.settings)

    def get_predictions(self) -> OperationResult:
        return OperationResult.ok(self.predictions())

    def get_calendar_annotations(self, month: date | tuple[int, int] | str) -> OperationResult:
        try:
            marks = self._annotator.generate_annotations(
                self._state.periods, self.predictions(), month, self.today()
            )
        except (TypeError, ValueError) as exc:
            return OperationResult.fail(f"Invalid month: {exc}")
        return OperationResult.ok(marks)

    def get_phase_summary(self) -> OperationResult:
        """Current phase with a short description and a ``Day N of M`` line."""
        settings = self._state.settings
        phase = settings.current_phase
        cycle_day = settings.cycle_day or 1
        return OperationResult.ok({
            "phase": phase.value,
            "description": PHASE_DESCRIPTIONS[phase],
            "cycle_day": cycle_day,
            "day_count": f"Day {cycle_day} of {settings.average_cycle_length}",
            "days_until_next_period": settings.days_until_next_period,
            "next_period_date": (
                settings.next_period_date.isoformat() if settings.next_period_date else None
            ),
        })

    def get_insights(self) -> OperationResult:
        """Regularity score and most frequent symptoms from the logged history."""
        lengths = cycle_lengths(self._state.periods)
        return OperationResult.ok({
            "average_cycle_length": average_length(lengths),
            "cycles_tracked": len(lengths),
            "cycle_lengths": lengths,
            "regularity": regularity_score(lengths),
            "cycle_day": self._state.settings.cycle_day or 1,
            "top_symptoms": top_symptoms(self._state.daily_logs),
        })

    def get_period_alert(self) -> OperationResult:
        """Upcoming-period alert, or ``None`` when the period is not close."""
        return OperationResult.ok(period_alert(self._state.settings.days_until_next_period))

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete_all_data(self, confirm: str = "") -> OperationResult:
        """Delete every stored collection. Requires ``confirm='DELETE_ALL'``."""
        if confirm != DELETE_ALL_CONFIRMATION:
            return OperationResult.fail(
                f"Refusing to delete all data without confirm={DELETE_ALL_CONFIRMATION!r}"
            )
        result = await self._repo.clear()
        if not result.success:
            return result
        counts = {
            "periods": len(self._state.periods),
            "daily_logs": len(self._state.daily_logs),
            "symptoms": len(self._state.symptoms),
        }
        self._state = CycleState()
        return OperationResult.ok(counts)
