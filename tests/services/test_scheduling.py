from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from app.models.thesis import InvestmentThesisRecord, ScanFrequency
from app.services.screening.scheduling import (
    compute_next_scan,
    is_scan_due,
    resolve_frequency,
    scan_timestamps,
)


def _thesis(**overrides) -> InvestmentThesisRecord:
    values = {"title": "Vertical SaaS", "content": "B2B vertical software in DACH"}
    values.update(overrides)
    return InvestmentThesisRecord(**values)


@pytest.mark.parametrize(
    ("frequency", "last", "expected"),
    [
        ("daily", datetime(2024, 1, 1, 9, tzinfo=UTC), datetime(2024, 1, 2, 9, tzinfo=UTC)),
        ("weekly", datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 1, 8, tzinfo=UTC)),
        ("monthly", datetime(2024, 1, 31, tzinfo=UTC), datetime(2024, 2, 29, tzinfo=UTC)),
        ("monthly", datetime(2023, 1, 31, tzinfo=UTC), datetime(2023, 2, 28, tzinfo=UTC)),
        ("MONTHLY", datetime(2024, 3, 15, tzinfo=UTC), datetime(2024, 4, 15, tzinfo=UTC)),
    ],
)
def test_compute_next_scan(frequency, last, expected):
    assert compute_next_scan(last, frequency) == expected


def test_unknown_frequency_defaults_to_weekly():
    last = datetime(2024, 1, 1, tzinfo=UTC)

    assert resolve_frequency(None) is ScanFrequency.WEEKLY
    assert resolve_frequency("hourly") is ScanFrequency.WEEKLY
    assert compute_next_scan(last, None) == datetime(2024, 1, 8, tzinfo=UTC)


def test_scan_timestamps_pair():
    now = datetime(2024, 5, 1, 12, tzinfo=UTC)

    assert scan_timestamps("daily", now=now) == {
        "last_scan_at": now,
        "next_scan_at": now + timedelta(days=1),
    }


def test_never_scanned_active_thesis_is_due():
    assert is_scan_due(_thesis())


def test_inactive_thesis_is_never_due():
    past = datetime(2020, 1, 1, tzinfo=UTC)

    assert not is_scan_due(_thesis(is_active=False, next_scan_at=past))


def test_due_when_next_scan_has_passed():
    now = datetime(2024, 6, 1, tzinfo=UTC)

    assert is_scan_due(_thesis(next_scan_at=now - timedelta(minutes=1)), now=now)
    assert is_scan_due(_thesis(next_scan_at=now), now=now)
    assert not is_scan_due(_thesis(next_scan_at=now + timedelta(days=1)), now=now)


def test_naive_timestamps_are_read_as_utc():
    now = datetime(2024, 6, 1, tzinfo=UTC)

    assert is_scan_due(_thesis(next_scan_at=datetime(2024, 5, 31)), now=now)
