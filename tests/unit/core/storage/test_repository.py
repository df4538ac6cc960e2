"""Tests for CycleRepository: envelopes, legacy migration, failure isolation."""

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from cyclebank.core.storage.database import CycleDatabase
from cyclebank.core.storage.models import (
    CyclePhase,
    CycleSettings,
    DailyLog,
    FlowIntensity,
    Mood,
    Period,
    SymptomEntry,
)
from cyclebank.core.storage.repository import (
    ALL_KEYS,
    DAILY_LOGS_KEY,
    PERIODS_KEY,
    SCHEMA_VERSION,
    SETTINGS_KEY,
    SYMPTOMS_KEY,
    CycleRepository,
)
from cyclebank.core.storage.store import (
    InMemoryKeyValueStore,
    SqliteKeyValueStore,
    StoreResult,
)


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class _FailingStore(InMemoryKeyValueStore):
    """In-memory store whose writes always fail."""

    async def set(self, key, value):
        return StoreResult(success=False, error="disk full")

    async def remove_many(self, keys):
        return StoreResult(success=False, error="disk full")


def _sample_period() -> Period:
    return Period(
        id="p1",
        start_date=date(2026, 3, 1),
        end_date=date(2026, 3, 5),
        flow_intensity=FlowIntensity.HEAVY,
        symptoms={"cramps", "fatigue"},
        notes="rough start",
        created_at="2026-03-01T08:00:00+00:00",
    )


class TestSaveAndLoad:
    def test_empty_store_loads_defaults(self, repository: CycleRepository):
        loaded = _run(repository.load())
        assert loaded.clean
        assert loaded.state.periods == []
        assert loaded.state.daily_logs == []
        assert loaded.state.symptoms == []
        assert loaded.state.settings == CycleSettings()

    def test_periods_round_trip(self, repository: CycleRepository):
        assert _run(repository.save_periods([_sample_period()])).success
        loaded = _run(repository.load())
        assert loaded.state.periods == [_sample_period()]

    def test_daily_logs_and_symptoms_round_trip(self, repository: CycleRepository):
        log = DailyLog(
            id="d1", date=date(2026, 3, 2), flow=FlowIntensity.LIGHT, mood=Mood.TIRED,
            symptoms={"headache"}, temperature=36.6, partner_viewable=False,
        )
        symptom = SymptomEntry(id="s1", date=date(2026, 3, 2), type="cramps", severity=3)
        _run(repository.save_daily_logs([log]))
        _run(repository.save_symptoms([symptom]))
        loaded = _run(repository.load())
        assert loaded.state.daily_logs == [log]
        assert loaded.state.symptoms == [symptom]

    def test_settings_round_trip(self, repository: CycleRepository):
        settings = CycleSettings(
            average_cycle_length=30,
            last_period_date=date(2026, 3, 1),
            next_period_date=date(2026, 3, 31),
            current_phase=CyclePhase.LUTEAL,
            days_until_next_period=4,
            cycle_day=27,
        )
        _run(repository.save_settings(settings))
        assert _run(repository.load()).state.settings == settings

    def test_records_are_written_in_versioned_envelope(
        self, repository: CycleRepository, memory_store: InMemoryKeyValueStore
    ):
        _run(repository.save_periods([_sample_period()]))
        _run(repository.save_settings(CycleSettings()))
        periods = _run(memory_store.get(PERIODS_KEY))
        settings = _run(memory_store.get(SETTINGS_KEY))
        assert periods["schema_version"] == SCHEMA_VERSION
        assert periods["records"][0]["startDate"] == "2026-03-01"
        assert settings["schema_version"] == SCHEMA_VERSION
        assert settings["settings"]["averageCycleLength"] == 28

    def test_round_trip_through_encrypted_sqlite(
        self, cycle_db: CycleDatabase, field_encryptor
    ):
        repo = CycleRepository(SqliteKeyValueStore(cycle_db, field_encryptor))
        _run(repo.save_periods([_sample_period()]))
        assert _run(repo.load()).state.periods == [_sample_period()]


class TestLegacyMigration:
    def test_unversioned_camel_case_blobs_load(self):
        store = InMemoryKeyValueStore({
            PERIODS_KEY: [{
                "id": "1709280000000",
                "startDate": "2026-03-01T00:00:00.000Z",
                "endDate": None,
                "flowIntensity": "medium",
                "symptoms": [],
                "notes": "",
                "createdAt": "2026-03-01T09:12:00.000Z",
            }],
            DAILY_LOGS_KEY: [{
                "id": "d1", "date": "2026-03-02", "flow": "light", "mood": "happy",
                "symptoms": ["cramps"], "partnerViewable": True,
            }],
            SETTINGS_KEY: {"averageCycleLength": 29, "averagePeriodLength": 4},
        })
        loaded = _run(CycleRepository(store).load())
        assert loaded.clean
        assert loaded.state.periods[0].start_date == date(2026, 3, 1)
        assert loaded.state.periods[0].end_date is None
        assert loaded.state.daily_logs[0].mood is Mood.HAPPY
        assert loaded.state.settings.average_cycle_length == 29
        assert loaded.state.settings.average_period_length == 4

    def test_same_day_timestamped_logs_merge_into_one(self):
        store = InMemoryKeyValueStore({
            DAILY_LOGS_KEY: [
                {"id": "evening", "date": "2026-03-10T21:00:00.000Z", "mood": "sad",
                 "notes": "tired", "createdAt": "2026-03-10T21:00:00.000Z"},
                {"id": "morning", "date": "2026-03-10T08:00:00.000Z", "mood": "happy",
                 "flow": "light", "createdAt": "2026-03-10T08:00:00.000Z"},
                {"id": "next", "date": "2026-03-11T08:00:00.000Z", "mood": "tired"},
            ],
        })
        loaded = _run(CycleRepository(store).load())
        logs = {log.date: log for log in loaded.state.daily_logs}
        assert len(loaded.state.daily_logs) == 2

        merged = logs[date(2026, 3, 10)]
        assert merged.id == "morning"
        assert merged.mood is Mood.SAD
        assert merged.flow is FlowIntensity.LIGHT
        assert merged.notes == "tired"
        assert merged.created_at == "2026-03-10T08:00:00.000Z"
        assert logs[date(2026, 3, 11)].mood is Mood.TIRED

    def test_undated_log_is_skipped_not_merged(self):
        store = InMemoryKeyValueStore({
            DAILY_LOGS_KEY: [
                {"id": "a", "date": "2026-03-10"},
                {"id": "b", "date": "not a day"},
            ],
        })
        loaded = _run(CycleRepository(store).load())
        assert [log.id for log in loaded.state.daily_logs] == ["a"]
        assert loaded.skipped_records[DAILY_LOGS_KEY] == 1


class TestFailureIsolation:
    def test_corrupt_ciphertext_leaves_other_collections_intact(
        self, cycle_db: CycleDatabase, field_encryptor
    ):
        store = SqliteKeyValueStore(cycle_db, field_encryptor)
        repo = CycleRepository(store)
        _run(repo.save_periods([_sample_period()]))
        _run(repo.save_symptoms([SymptomEntry(id="s1", date=date(2026, 3, 2), type="cramps")]))
        _run(repo.save_settings(CycleSettings(average_cycle_length=31)))
        cycle_db.connection.execute(
            "INSERT INTO kv_store (key, value_enc) VALUES (?, 'garbage')", (DAILY_LOGS_KEY,)
        )

        loaded = _run(repo.load())
        assert set(loaded.errors) == {DAILY_LOGS_KEY}
        assert loaded.state.daily_logs == []
        assert len(loaded.state.periods) == 1
        assert len(loaded.state.symptoms) == 1
        assert loaded.state.settings.average_cycle_length == 31

    def test_newer_schema_version_is_rejected(self, memory_store: InMemoryKeyValueStore):
        _run(memory_store.set(PERIODS_KEY, {"schema_version": SCHEMA_VERSION + 1, "records": []}))
        loaded = _run(CycleRepository(memory_store).load())
        assert PERIODS_KEY in loaded.errors
        assert "newer" in loaded.errors[PERIODS_KEY]
        assert loaded.state.periods == []

    @pytest.mark.parametrize("version", ["1", None, 0, True])
    def test_bad_schema_version_is_rejected(self, memory_store, version):
        _run(memory_store.set(SYMPTOMS_KEY, {"schema_version": version, "records": []}))
        loaded = _run(CycleRepository(memory_store).load())
        assert SYMPTOMS_KEY in loaded.errors

    def test_wrong_shape_is_rejected(self, memory_store: InMemoryKeyValueStore):
        _run(memory_store.set(PERIODS_KEY, "not a collection"))
        _run(memory_store.set(SETTINGS_KEY, [1, 2, 3]))
        loaded = _run(CycleRepository(memory_store).load())
        assert set(loaded.errors) == {PERIODS_KEY, SETTINGS_KEY}
        assert loaded.state.settings == CycleSettings()

    def test_invalid_settings_fall_back_to_defaults(self, memory_store):
        _run(memory_store.set(SETTINGS_KEY, {"averageCycleLength": 0}))
        loaded = _run(CycleRepository(memory_store).load())
        assert SETTINGS_KEY in loaded.errors
        assert loaded.state.settings.average_cycle_length == 28

    def test_invalid_records_are_skipped(self, memory_store: InMemoryKeyValueStore):
        _run(memory_store.set(PERIODS_KEY, {
            "schema_version": SCHEMA_VERSION,
            "records": [
                {"id": "ok", "startDate": "2026-03-01"},
                {"id": "bad-date", "startDate": "March first"},
                {"startDate": "2026-02-01"},
                "not a record",
            ],
        }))
        loaded = _run(CycleRepository(memory_store).load())
        assert [p.id for p in loaded.state.periods] == ["ok"]
        assert loaded.skipped_records == {PERIODS_KEY: 3}
        assert not loaded.errors
        assert not loaded.clean


class TestWritesAndClear:
    def test_failed_write_is_reported(self):
        repo = CycleRepository(_FailingStore())
        result = _run(repo.save_periods([_sample_period()]))
        assert not result.success
        assert result.error == "disk full"

    def test_clear_removes_every_collection(
        self, repository: CycleRepository, memory_store: InMemoryKeyValueStore
    ):
        _run(repository.save_periods([_sample_period()]))
        _run(repository.save_settings(CycleSettings()))
        assert _run(repository.clear()).success
        assert not any(key in memory_store.keys() for key in ALL_KEYS)

    def test_failed_clear_is_reported(self):
        result = _run(CycleRepository(_FailingStore()).clear())
        assert not result.success
