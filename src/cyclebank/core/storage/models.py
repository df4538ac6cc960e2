"""Data models for the cycle persistence layer.

Records are serialized with camelCase keys, the shape the mobile client
writes to its key-value store, so legacy blobs and versioned envelopes
share one set of converters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from cyclebank.core.calendar.days import parse_day


class SchemaError(Exception):
    """Raised when a stored record or collection does not match the schema."""


class FlowIntensity(str, Enum):
    NONE = "none"
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class Mood(str, Enum):
    HAPPY = "happy"
    NEUTRAL = "neutral"
    SAD = "sad"
    IRRITATED = "irritated"
    TIRED = "tired"


class CyclePhase(str, Enum):
    MENSTRUAL = "menstrual"
    FOLLICULAR = "follicular"
    OVULATION = "ovulation"
    LUTEAL = "luteal"


# Symptom ids offered by the logging screen. Free-form ids are accepted too.
KNOWN_SYMPTOMS = ("cramps", "headache", "mood", "backache", "fatigue", "nausea")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Field coercion helpers (shared by from_record converters)
# ---------------------------------------------------------------------------


def _day(value: Any, name: str) -> date:
    try:
        return parse_day(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{name}: not a calendar day: {value!r}") from exc


def _optional_day(value: Any, name: str) -> date | None:
    if value is None or value == "":
        return None
    return _day(value, name)


def _enum(enum_cls: type[Enum], value: Any, default: Enum, name: str) -> Any:
    if value is None or value == "":
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        raise SchemaError(f"{name}: unknown value {value!r}") from exc


def _str_set(value: Any, name: str) -> set[str]:
    if value is None:
        return set()
    if isinstance(value, str):
        return {value}
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise SchemaError(f"{name}: expected a list of strings")
    return {str(v) for v in value}


def _optional_float(value: Any, name: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{name}: not a number: {value!r}") from exc


def _int(value: Any, name: str, default: int | None = None) -> int | None:
    if value is None:
        return default
    if isinstance(value, bool):
        raise SchemaError(f"{name}: not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"{name}: not an integer: {value!r}") from exc


def _require_mapping(record: Any, kind: str) -> dict[str, Any]:
    if not isinstance(record, dict):
        raise SchemaError(f"{kind} record must be an object, got {type(record).__name__}")
    return record


def _iso(day: date | None) -> str | None:
    return day.isoformat() if day else None


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


@dataclass
class Period:
    """One logged menstruation.

    ``end_date`` is optional; consumers treat a missing end as
    ``start_date + 4`` days.
    """

    id: str
    start_date: date
    end_date: date | None = None
    flow_intensity: FlowIntensity = FlowIntensity.MEDIUM
    symptoms: set[str] = field(default_factory=set)
    notes: str = ""
    created_at: str = ""

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startDate": self.start_date.isoformat(),
            "endDate": _iso(self.end_date),
            "flowIntensity": self.flow_intensity.value,
            "symptoms": sorted(self.symptoms),
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Any) -> Period:
        data = _require_mapping(record, "Period")
        if not data.get("id"):
            raise SchemaError("Period: missing id")
        return cls(
            id=str(data["id"]),
            start_date=_day(data.get("startDate"), "Period.startDate"),
            end_date=_optional_day(data.get("endDate"), "Period.endDate"),
            flow_intensity=_enum(
                FlowIntensity, data.get("flowIntensity"), FlowIntensity.MEDIUM,
                "Period.flowIntensity",
            ),
            symptoms=_str_set(data.get("symptoms"), "Period.symptoms"),
            notes=str(data.get("notes") or ""),
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass
class DailyLog:
    """The single log entry for one calendar day."""

    id: str
    date: date
    flow: FlowIntensity = FlowIntensity.NONE
    mood: Mood = Mood.NEUTRAL
    symptoms: set[str] = field(default_factory=set)
    temperature: float | None = None
    notes: str = ""
    partner_viewable: bool = True
    created_at: str = ""
    updated_at: str = ""

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "flow": self.flow.value,
            "mood": self.mood.value,
            "symptoms": sorted(self.symptoms),
            "temperature": self.temperature,
            "notes": self.notes,
            "partnerViewable": self.partner_viewable,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: Any) -> DailyLog:
        data = _require_mapping(record, "DailyLog")
        if not data.get("id"):
            raise SchemaError("DailyLog: missing id")
        return cls(
            id=str(data["id"]),
            date=_day(data.get("date"), "DailyLog.date"),
            flow=_enum(FlowIntensity, data.get("flow"), FlowIntensity.NONE, "DailyLog.flow"),
            mood=_enum(Mood, data.get("mood"), Mood.NEUTRAL, "DailyLog.mood"),
            symptoms=_str_set(data.get("symptoms"), "DailyLog.symptoms"),
            temperature=_optional_float(data.get("temperature"), "DailyLog.temperature"),
            notes=str(data.get("notes") or ""),
            partner_viewable=bool(data.get("partnerViewable", True)),
            created_at=str(data.get("createdAt") or ""),
            updated_at=str(data.get("updatedAt") or ""),
        )


@dataclass
class SymptomEntry:
    """A standalone symptom observation (several per day allowed)."""

    id: str
    date: date
    type: str
    severity: int = 1
    notes: str = ""
    created_at: str = ""

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "type": self.type,
            "severity": self.severity,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Any) -> SymptomEntry:
        data = _require_mapping(record, "SymptomEntry")
        if not data.get("id"):
            raise SchemaError("SymptomEntry: missing id")
        if not data.get("type"):
            raise SchemaError("SymptomEntry: missing type")
        return cls(
            id=str(data["id"]),
            date=_day(data.get("date"), "SymptomEntry.date"),
            type=str(data["type"]),
            severity=_int(data.get("severity"), "SymptomEntry.severity", default=1),
            notes=str(data.get("notes") or ""),
            created_at=str(data.get("createdAt") or ""),
        )


@dataclass
class CycleSettings:
    """User cycle settings plus the statistics derived from period history.

    Only ``average_cycle_length`` and ``average_period_length`` are user
    overrides; every other field is recomputed from the periods.
    """

    average_cycle_length: int = 28
    average_period_length: int = 5
    last_period_date: date | None = None
    next_period_date: date | None = None
    current_phase: CyclePhase = CyclePhase.FOLLICULAR
    days_until_next_period: int | None = None
    cycle_day: int | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "averageCycleLength": self.average_cycle_length,
            "averagePeriodLength": self.average_period_length,
            "lastPeriodDate": _iso(self.last_period_date),
            "nextPeriodDate": _iso(self.next_period_date),
            "currentPhase": self.current_phase.value,
            "daysUntilNextPeriod": self.days_until_next_period,
            "cycleDay": self.cycle_day,
        }

    @classmethod
    def from_record(cls, record: Any) -> CycleSettings:
        data = _require_mapping(record, "CycleSettings")
        settings = cls(
            average_cycle_length=_int(
                data.get("averageCycleLength"), "CycleSettings.averageCycleLength", default=28
            ),
            average_period_length=_int(
                data.get("averagePeriodLength"), "CycleSettings.averagePeriodLength", default=5
            ),
            last_period_date=_optional_day(
                data.get("lastPeriodDate"), "CycleSettings.lastPeriodDate"
            ),
            next_period_date=_optional_day(
                data.get("nextPeriodDate"), "CycleSettings.nextPeriodDate"
            ),
            current_phase=_enum(
                CyclePhase, data.get("currentPhase"), CyclePhase.FOLLICULAR,
                "CycleSettings.currentPhase",
            ),
            days_until_next_period=_int(
                data.get("daysUntilNextPeriod"), "CycleSettings.daysUntilNextPeriod"
            ),
            cycle_day=_int(data.get("cycleDay"), "CycleSettings.cycleDay"),
        )
        if settings.average_cycle_length < 1 or settings.average_period_length < 1:
            raise SchemaError("CycleSettings: average lengths must be positive")
        return settings


@dataclass
class CycleState:
    """Everything the engine knows about one user, passed explicitly."""

    periods: list[Period] = field(default_factory=list)
    daily_logs: list[DailyLog] = field(default_factory=list)
    symptoms: list[SymptomEntry] = field(default_factory=list)
    settings: CycleSettings = field(default_factory=CycleSettings)


@dataclass
class OperationResult:
    """Result of a public operation. Expected failures never raise."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> OperationResult:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> OperationResult:
        return cls(success=False, error=error)
