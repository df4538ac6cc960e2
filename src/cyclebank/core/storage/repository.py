"""Cycle data repository: typed load/save over the keyed store.

The repository mediates between domain objects (Period, DailyLog, ...) and
a :class:`KeyValueStore`. Each collection lives under its own key inside a
versioned envelope::

    {"schema_version": 1, "records": [...]}     # periods, dailyLogs, symptoms
    {"schema_version": 1, "settings": {...}}    # cycleSettings

Collections load independently: a damaged collection falls back to its
default and the others still load.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from cyclebank.core.calendar.days import parse_day
from cyclebank.core.storage.models import (
    CycleSettings,
    CycleState,
    DailyLog,
    OperationResult,
    Period,
    SchemaError,
    SymptomEntry,
)
from cyclebank.core.storage.store import KeyValueStore, StoreReadError

logger = logging.getLogger(__name__)

# Current envelope version. Version 0 is the unversioned format written by
# the mobile client before envelopes existed (bare JSON list / object).
SCHEMA_VERSION = 1

PERIODS_KEY = "periods"
DAILY_LOGS_KEY = "dailyLogs"
SYMPTOMS_KEY = "symptoms"
SETTINGS_KEY = "cycleSettings"

ALL_KEYS = [PERIODS_KEY, DAILY_LOGS_KEY, SYMPTOMS_KEY, SETTINGS_KEY]

T = TypeVar("T")


@dataclass
class LoadResult:
    """Loaded state plus the collections that fell back to defaults."""

    state: CycleState
    errors: dict[str, str] = field(default_factory=dict)
    skipped_records: dict[str, int] = field(default_factory=dict)

    @property
    def clean(self) -> bool:
        return not self.errors and not any(self.skipped_records.values())


def _envelope_version(raw: Any, key: str) -> int:
    version = raw.get("schema_version")
    if isinstance(version, bool) or not isinstance(version, int):
        raise SchemaError(f"{key}: schema_version must be an integer, got {version!r}")
    if version > SCHEMA_VERSION:
        raise SchemaError(
            f"{key}: schema_version {version} is newer than supported version {SCHEMA_VERSION}"
        )
    if version < 1:
        raise SchemaError(f"{key}: invalid schema_version {version}")
    return version


def _unwrap_records(raw: Any, key: str) -> list[Any]:
    """Return the raw record list of a list collection, migrating version 0."""
    if isinstance(raw, list):
        logger.info("Migrating unversioned %s collection (%d records)", key, len(raw))
        return raw
    if isinstance(raw, dict):
        _envelope_version(raw, key)
        records = raw.get("records")
        if not isinstance(records, list):
            raise SchemaError(f"{key}: envelope has no records list")
        return records
    raise SchemaError(f"{key}: unexpected stored shape {type(raw).__name__}")


def _log_stamp(record: dict[str, Any]) -> str:
    return str(record.get("updatedAt") or record.get("createdAt") or record.get("date") or "")


def _merge_same_day_logs(records: list[Any]) -> list[Any]:
    """Collapse daily-log records that fall on the same calendar day.

    The mobile client stamped each save with a full timestamp, so one day can
    hold several entries. Later entries (by ``updatedAt``, then ``createdAt``)
    override the fields of earlier ones; the earliest id and ``createdAt``
    are kept. Records without a readable date pass through for validation.
    """
    groups: dict[Any, list[dict[str, Any]]] = {}
    for index, record in enumerate(records):
        try:
            day = parse_day(record.get("date")) if isinstance(record, dict) else None
        except (TypeError, ValueError):
            day = None
        groups.setdefault(day if day is not None else ("raw", index), []).append(record)

    merged: list[Any] = []
    for key, group in groups.items():
        if isinstance(key, tuple) or len(group) == 1:
            merged.extend(group)
            continue
        ordered = sorted(group, key=_log_stamp)
        combined: dict[str, Any] = {}
        for record in ordered:
            combined.update({k: v for k, v in record.items() if v is not None})
        combined["id"] = next((r["id"] for r in ordered if r.get("id")), combined.get("id"))
        created = sorted(str(r["createdAt"]) for r in ordered if r.get("createdAt"))
        if created:
            combined["createdAt"] = created[0]
        combined["date"] = key.isoformat()
        logger.info("Merged %d daily logs recorded for %s", len(group), key)
        merged.append(combined)
    return merged


def _unwrap_settings(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise SchemaError(
            f"{SETTINGS_KEY}: unexpected stored shape {type(raw).__name__}"
        )
    if "schema_version" not in raw:
        logger.info("Migrating unversioned %s", SETTINGS_KEY)
        return raw
    _envelope_version(raw, SETTINGS_KEY)
    settings = raw.get("settings")
    if not isinstance(settings, dict):
        raise SchemaError(f"{SETTINGS_KEY}: envelope has no settings object")
    return settings


class CycleRepository:
    """Typed persistence for periods, daily logs, symptoms and settings.

    Usage::

        repo = CycleRepository(store)
        loaded = await repo.load()
        result = await repo.save_periods(loaded.state.periods)
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load(self) -> LoadResult:
        """Load all collections, isolating failures per collection."""
        result = LoadResult(state=CycleState())

        result.state.periods = await self._load_records(
            PERIODS_KEY, Period.from_record, result
        )
        result.state.daily_logs = await self._load_records(
            DAILY_LOGS_KEY, DailyLog.from_record, result, merge=_merge_same_day_logs
        )
        result.state.symptoms = await self._load_records(
            SYMPTOMS_KEY, SymptomEntry.from_record, result
        )
        result.state.settings = await self._load_settings(result)

        logger.info(
            "Loaded cycle data: %d periods, %d daily logs, %d symptoms (%d collection errors)",
            len(result.state.periods),
            len(result.state.daily_logs),
            len(result.state.symptoms),
            len(result.errors),
        )
        return result

    async def _load_records(
        self,
        key: str,
        convert: Callable[[Any], T],
        result: LoadResult,
        merge: Callable[[list[Any]], list[Any]] | None = None,
    ) -> list[T]:
        try:
            raw = await self._store.get(key)
            if raw is None:
                return []
            records = _unwrap_records(raw, key)
            if merge is not None:
                records = merge(records)
        except (StoreReadError, SchemaError) as exc:
            logger.warning("Discarding unreadable %s collection: %s", key, exc)
            result.errors[key] = str(exc)
            return []

        items: list[T] = []
        skipped = 0
        for index, record in enumerate(records):
            try:
                items.append(convert(record))
            except SchemaError as exc:
                skipped += 1
                logger.warning("Skipping invalid %s record #%d: %s", key, index, exc)
        if skipped:
            result.skipped_records[key] = skipped
        return items

    async def _load_settings(self, result: LoadResult) -> CycleSettings:
        try:
            raw = await self._store.get(SETTINGS_KEY)
            if raw is None:
                return CycleSettings()
            return CycleSettings.from_record(_unwrap_settings(raw))
        except (StoreReadError, SchemaError) as exc:
            logger.warning("Discarding unreadable %s: %s", SETTINGS_KEY, exc)
            result.errors[SETTINGS_KEY] = str(exc)
            return CycleSettings()

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save_periods(self, periods: list[Period]) -> OperationResult:
        return await self._save_records(PERIODS_KEY, [p.to_record() for p in periods])

    async def save_daily_logs(self, logs: list[DailyLog]) -> OperationResult:
        return await self._save_records(DAILY_LOGS_KEY, [log.to_record() for log in logs])

    async def save_symptoms(self, symptoms: list[SymptomEntry]) -> OperationResult:
        return await self._save_records(SYMPTOMS_KEY, [s.to_record() for s in symptoms])

    async def save_settings(self, settings: CycleSettings) -> OperationResult:
        envelope = {"schema_version": SCHEMA_VERSION, "settings": settings.to_record()}
        return await self._write(SETTINGS_KEY, envelope)

    async def _save_records(self, key: str, records: list[dict[str, Any]]) -> OperationResult:
        envelope = {"schema_version": SCHEMA_VERSION, "records": records}
        return await self._write(key, envelope)

    async def _write(self, key: str, value: Any) -> OperationResult:
        outcome = await self._store.set(key, value)
        if not outcome.success:
            logger.error("Failed to save %s: %s", key, outcome.error)
            return OperationResult.fail(outcome.error or f"Failed to save {key}")
        return OperationResult.ok()

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def clear(self) -> OperationResult:
        """Remove every stored collection."""
        outcome = await self._store.remove_many(list(ALL_KEYS))
        if not outcome.success:
            return OperationResult.fail(outcome.error or "Failed to clear cycle data")
        logger.warning("Deleted ALL cycle data")
        return OperationResult.ok()
