"""Advisory scan schedule for investment theses."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

from app.models.columns import ensure_utc
from app.models.thesis import InvestmentThesisRecord, ScanFrequency

_INTERVALS: dict[ScanFrequency, timedelta | relativedelta] = {
    ScanFrequency.DAILY: timedelta(days=1),
    ScanFrequency.WEEKLY: timedelta(days=7),
    ScanFrequency.MONTHLY: relativedelta(months=1),
}


def resolve_frequency(value: str | ScanFrequency | None) -> ScanFrequency:
    """Unknown or missing frequencies fall back to weekly."""
    if isinstance(value, ScanFrequency):
        return value
    try:
        return ScanFrequency((value or "").strip().lower())
    except ValueError:
        return ScanFrequency.WEEKLY


def compute_next_scan(last_scan_at: datetime, frequency: str | ScanFrequency | None) -> datetime:
    """Monthly advances by one calendar month (Jan 31 -> Feb 29/28)."""
    return last_scan_at + _INTERVALS[resolve_frequency(frequency)]


def scan_timestamps(
    frequency: str | ScanFrequency | None, *, now: datetime | None = None
) -> dict[str, datetime]:
    """Column values to persist once a scan has completed at ``now``."""
    completed_at = now or datetime.now(timezone.utc)
    return {
        "last_scan_at": completed_at,
        "next_scan_at": compute_next_scan(completed_at, frequency),
    }


def is_scan_due(thesis: InvestmentThesisRecord, *, now: datetime | None = None) -> bool:
    if not thesis.is_active:
        return False
    next_scan_at = ensure_utc(thesis.next_scan_at)
    if next_scan_at is None:
        return True
    return next_scan_at <= (now or datetime.now(timezone.utc))
