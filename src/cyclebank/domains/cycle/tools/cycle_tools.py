"""MCP tools for cycle tracking.

Logging tools write to the cycle data bank through :class:`CycleService`.
Tools that change the period history recompute cycle statistics right
after a successful write, so predictions and the calendar stay current.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from cyclebank.domains.cycle.service import CycleService

from cyclebank.core.storage.models import OperationResult

logger = logging.getLogger(__name__)


def _error(result: OperationResult) -> str:
    return json.dumps({"status": "error", "message": result.error})


def _settings_payload(service: CycleService) -> dict[str, Any]:
    return service.state.settings.to_record()


def register_cycle_tools(
    mcp: FastMCP,
    service: CycleService,
) -> None:
    """Register cycle logging, prediction and calendar tools on the MCP server."""

    # ------------------------------------------------------------------
    # Periods
    # ------------------------------------------------------------------

    @mcp.tool
    async def log_period(
        ctx: Context,
        start_date: str,
        end_date: str = "",
        flow_intensity: str = "medium",
        symptoms: list[str] | None = None,
        notes: str = "",
    ) -> str:
        """Log a period in your cycle data bank.

        Args:
            start_date: First day of the period (ISO 8601, e.g., '2026-03-01').
            end_date: Last day of the period. Leave empty if still ongoing.
            flow_intensity: 'light', 'medium' or 'heavy'.
            symptoms: Symptom ids (e.g., 'cramps', 'headache').
            notes: Optional free-text notes.
        """
        await service.ensure_loaded()
        result = await service.add_period({
            "start_date": start_date,
            "end_date": end_date or None,
            "flow_intensity": flow_intensity,
            "symptoms": symptoms or [],
            "notes": notes,
        })
        if not result.success:
            return _error(result)

        service.recalculate_statistics()
        return json.dumps({
            "status": "saved",
            "period": result.data.to_record(),
            "cycle_settings": _settings_payload(service),
        })

    @mcp.tool
    async def update_period(
        ctx: Context,
        period_id: str,
        start_date: str = "",
        end_date: str = "",
        flow_intensity: str = "",
        notes: str | None = None,
    ) -> str:
        """Update fields of a logged period. Empty arguments are left unchanged.

        Args:
            period_id: The id returned by log_period.
            start_date: New first day (ISO 8601).
            end_date: New last day (ISO 8601).
            flow_intensity: New flow intensity.
            notes: Replacement notes.
        """
        await service.ensure_loaded()
        updates: dict[str, Any] = {}
        if start_date:
            updates["start_date"] = start_date
        if end_date:
            updates["end_date"] = end_date
        if flow_intensity:
            updates["flow_intensity"] = flow_intensity
        if notes is not None:
            updates["notes"] = notes

        result = await service.update_period(period_id, updates)
        if not result.success:
            return _error(result)
        if result.data is None:
            return json.dumps({
                "status": "unchanged",
                "period_id": period_id,
                "message": "No period found with that ID.",
            })

        service.recalculate_statistics()
        return json.dumps({
            "status": "updated",
            "period": result.data.to_record(),
            "cycle_settings": _settings_payload(service),
        })

    @mcp.tool
    async def delete_period(
        ctx: Context,
        period_id: str,
    ) -> str:
        """Delete a logged period.

        Args:
            period_id: The id returned by log_period.
        """
        await service.ensure_loaded()
        before = len(service.state.periods)
        result = await service.delete_period(period_id)
        if not result.success:
            return _error(result)
        if len(service.state.periods) == before:
            return json.dumps({
                "status": "not_found",
                "period_id": period_id,
                "message": "No period found with that ID.",
            })

        service.recalculate_statistics()
        return json.dumps({
            "status": "deleted",
            "period_id": period_id,
            "cycle_settings": _settings_payload(service),
        })

    # ------------------------------------------------------------------
    # Daily logs & symptoms
    # ------------------------------------------------------------------

    @mcp.tool
    async def log_daily_entry(
        ctx: Context,
        date: str = "",
        flow: str | None = None,
        mood: str | None = None,
        symptoms: list[str] | None = None,
        temperature: float | None = None,
        notes: str | None = None,
        partner_viewable: bool | None = None,
    ) -> str:
        """Create or update the daily log for one day.

        Only the fields you pass are changed on an existing entry.

        Args:
            date: Day of the entry (ISO 8601). Defaults to today.
            flow: 'none', 'light', 'medium' or 'heavy'.
            mood: 'happy', 'neutral', 'sad', 'irritated' or 'tired'.
            symptoms: Symptom ids for the day.
            temperature: Basal body temperature.
            notes: Free-text notes.
            partner_viewable: Whether a linked partner may see this entry.
        """
        await service.ensure_loaded()
        data: dict[str, Any] = {"date": date}
        for name, value in (
            ("flow", flow),
            ("mood", mood),
            ("symptoms", symptoms),
            ("temperature", temperature),
            ("notes", notes),
            ("partner_viewable", partner_viewable),
        ):
            if value is not None:
                data[name] = value

        result = await service.add_daily_log(data)
        if not result.success:
            return _error(result)
        return json.dumps({"status": "saved", "daily_log": result.data.to_record()})

    @mcp.tool
    async def get_daily_log(ctx: Context, date: str) -> str:
        """Return the daily log for a day, if one exists.

        Args:
            date: Day to look up (ISO 8601).
        """
        await service.ensure_loaded()
        result = service.get_daily_log(date)
        if not result.success:
            return _error(result)
        if result.data is None:
            return json.dumps({"status": "not_found", "date": date})
        return json.dumps({"status": "ok", "daily_log": result.data.to_record()})

    @mcp.tool
    async def log_symptom(
        ctx: Context,
        type: str,
        date: str = "",
        severity: int = 1,
        notes: str = "",
    ) -> str:
        """Record a symptom observation.

        Args:
            type: Symptom id (e.g., 'cramps', 'headache', 'fatigue').
            date: Day of the symptom (ISO 8601). Defaults to today.
            severity: Severity score.
            notes: Optional notes.
        """
        await service.ensure_loaded()
        result = await service.add_symptom({
            "type": type,
            "date": date,
            "severity": severity,
            "notes": notes,
        })
        if not result.success:
            return _error(result)
        return json.dumps({"status": "saved", "symptom": result.data.to_record()})

    @mcp.tool
    async def get_symptoms(ctx: Context, date: str) -> str:
        """List the symptoms recorded on a day.

        Args:
            date: Day to look up (ISO 8601).
        """
        await service.ensure_loaded()
        result = service.get_symptoms_by_date(date)
        if not result.success:
            return _error(result)
        return json.dumps({
            "status": "ok",
            "date": date,
            "symptoms": [entry.to_record() for entry in result.data],
        })

    # ------------------------------------------------------------------
    # Settings & statistics
    # ------------------------------------------------------------------

    @mcp.tool
    async def update_cycle_settings(
        ctx: Context,
        average_cycle_length: int | None = None,
        average_period_length: int | None = None,
    ) -> str:
        """Override your average cycle or period length.

        Args:
            average_cycle_length: Days from one period start to the next.
            average_period_length: Days a period usually lasts.
        """
        await service.ensure_loaded()
        partial: dict[str, Any] = {}
        if average_cycle_length is not None:
            partial["average_cycle_length"] = average_cycle_length
        if average_period_length is not None:
            partial["average_period_length"] = average_period_length
        if not partial:
            return json.dumps({"status": "error", "message": "No settings provided"})

        result = await service.update_cycle_settings(partial)
        if not result.success:
            return _error(result)
        return json.dumps({"status": "saved", "cycle_settings": result.data.to_record()})

    @mcp.tool
    async def recalculate_cycle_statistics(ctx: Context) -> str:
        """Recompute averages, phase and next-period date from your period history."""
        await service.ensure_loaded()
        result = service.recalculate_statistics()
        return json.dumps({"status": "ok", "cycle_settings": result.data.to_record()})

    # ------------------------------------------------------------------
    # Predictions & calendar
    # ------------------------------------------------------------------

    @mcp.tool
    async def get_cycle_predictions(ctx: Context) -> str:
        """Predict your next periods, ovulation dates and fertile windows."""
        await service.ensure_loaded()
        result = service.get_predictions()
        return json.dumps({
            "status": "ok",
            "predictions": [p.to_dict() for p in result.data],
        })

    @mcp.tool
    async def get_calendar_month(ctx: Context, month: str) -> str:
        """Return one annotation per day for a calendar month.

        Each day carries a kind ('period', 'ovulation', 'luteal',
        'follicular' or 'none') and start/peak/PMS/today flags.

        Args:
            month: Month to render, as 'YYYY-MM'.
        """
        await service.ensure_loaded()
        result = service.get_calendar_annotations(month)
        if not result.success:
            return _error(result)
        return json.dumps({
            "status": "ok",
            "month": month,
            "days": [mark.to_dict() for mark in result.data.values()],
        })

    @mcp.tool
    async def get_cycle_summary(ctx: Context) -> str:
        """Summarize where you are in your cycle today."""
        await service.ensure_loaded()
        summary = service.get_phase_summary().data
        predictions = service.get_predictions().data
        summary["next_prediction"] = predictions[0].to_dict() if predictions else None
        summary["periods_logged"] = len(service.state.periods)
        return json.dumps({"status": "ok", **summary})

    @mcp.tool
    async def get_cycle_insights(ctx: Context) -> str:
        """Summarize cycle regularity (0-100) and your most frequent symptoms."""
        await service.ensure_loaded()
        return json.dumps({"status": "ok", **service.get_insights().data})

    @mcp.tool
    async def get_period_alert(ctx: Context) -> str:
        """Alert when the next period is due within 5 days."""
        await service.ensure_loaded()
        alert = service.get_period_alert().data
        if alert is None:
            return json.dumps({
                "status": "none",
                "days_until_next_period": service.state.settings.days_until_next_period,
            })
        return json.dumps({"status": "alert", **alert.to_dict()})

    # ------------------------------------------------------------------
    # Data management
    # ------------------------------------------------------------------

    @mcp.tool
    async def delete_all_cycle_data(ctx: Context, confirm: str = "") -> str:
        """Permanently delete ALL cycle data. This cannot be undone.

        Args:
            confirm: Must be exactly 'DELETE_ALL' to proceed.
        """
        await service.ensure_loaded()
        result = await service.delete_all_data(confirm)
        if not result.success:
            return _error(result)
        logger.warning("All cycle data deleted via MCP tool")
        return json.dumps({"status": "deleted", "deleted": result.data})
