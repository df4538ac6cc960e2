"""Tests for record conversion of the persisted cycle models."""

from __future__ import annotations

from datetime import date

import pytest

from cyclebank.core.storage.models import (
    CycleSettings,
    DailyLog,
    FlowIntensity,
    Mood,
    OperationResult,
    Period,
    SchemaError,
    SymptomEntry,
)


class TestPeriodRecord:
    def test_to_record_uses_camel_case(self):
        period = Period(id="p1", start_date=date(2026, 3, 1), symptoms={"nausea", "cramps"})
        record = period.to_record()
        assert record["startDate"] == "2026-03-01"
        assert record["endDate"] is None
        assert record["flowIntensity"] == "medium"
        assert record["symptoms"] == ["cramps", "nausea"]

    def test_from_record_normalizes_enum_case(self):
        period = Period.from_record({"id": "p1", "startDate": "2026-03-01", "flowIntensity": "Heavy"})
        assert period.flow_intensity is FlowIntensity.HEAVY

    @pytest.mark.parametrize("record", [
        None,
        [],
        {"startDate": "2026-03-01"},
        {"id": "p1"},
        {"id": "p1", "startDate": "2026-03-01", "endDate": "later"},
        {"id": "p1", "startDate": "2026-03-01", "symptoms": 5},
    ])
    def test_invalid_records_raise_schema_error(self, record):
        with pytest.raises(SchemaError):
            Period.from_record(record)


class TestDailyLogRecord:
    def test_defaults_for_sparse_record(self):
        log = DailyLog.from_record({"id": "d1", "date": "2026-03-02"})
        assert log.flow is FlowIntensity.NONE
        assert log.mood is Mood.NEUTRAL
        assert log.partner_viewable is True
        assert log.temperature is None

    def test_bad_temperature_raises(self):
        with pytest.raises(SchemaError, match="temperature"):
            DailyLog.from_record({"id": "d1", "date": "2026-03-02", "temperature": "warm"})


class TestSymptomRecord:
    def test_missing_type_raises(self):
        with pytest.raises(SchemaError, match="type"):
            SymptomEntry.from_record({"id": "s1", "date": "2026-03-02"})

    def test_boolean_severity_raises(self):
        with pytest.raises(SchemaError):
            SymptomEntry.from_record({"id": "s1", "date": "2026-03-02", "type": "x", "severity": True})


class TestSettingsRecord:
    def test_empty_record_gives_defaults(self):
        assert CycleSettings.from_record({}) == CycleSettings()

    def test_non_positive_lengths_raise(self):
        with pytest.raises(SchemaError):
            CycleSettings.from_record({"averagePeriodLength": 0})


def test_operation_result_helpers():
    assert OperationResult.ok(5) == OperationResult(success=True, data=5)
    failed = OperationResult.fail("nope")
    assert not failed.success
    assert failed.error == "nope"
