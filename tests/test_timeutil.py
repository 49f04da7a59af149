"""Tests for half-open overlap and span normalization helpers.

Covers:
- overlaps() is symmetric over a grid of interval pairs
- Shared boundary instants never overlap
- All-day boundaries normalize to midnight-to-midnight in the event timezone
- All-day end on or before the start date still spans one day
- Naive datetimes are interpreted in the supplied timezone
- Unknown timezones fall back to UTC / raise where validation is requested
"""

from __future__ import annotations

import itertools
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from calresolve.timeutil import (
    coerce_zoneinfo,
    effective_span,
    ensure_valid_timezone,
    is_date_only,
    overlaps,
)

pytestmark = pytest.mark.unit


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, 2, hour, minute, tzinfo=UTC)


_INTERVALS = [
    (_at(9), _at(10)),
    (_at(9, 30), _at(10, 30)),
    (_at(10), _at(11)),
    (_at(8), _at(12)),
    (_at(11), _at(11)),
    (_at(13), _at(14)),
]


class TestOverlaps:
    @pytest.mark.parametrize(("a", "b"), list(itertools.product(_INTERVALS, repeat=2)))
    def test_symmetric(self, a, b):
        assert overlaps(*a, *b) == overlaps(*b, *a)

    def test_partial_overlap(self):
        assert overlaps(_at(14), _at(15), _at(14, 30), _at(15, 30))

    def test_containment_overlaps(self):
        assert overlaps(_at(8), _at(12), _at(9), _at(10))

    def test_shared_boundary_is_not_overlap(self):
        assert not overlaps(_at(9), _at(10), _at(10), _at(11))
        assert not overlaps(_at(10), _at(11), _at(9), _at(10))

    def test_disjoint(self):
        assert not overlaps(_at(9), _at(10), _at(13), _at(14))

    def test_different_offsets_compare_as_instants(self):
        berlin = ZoneInfo("Europe/Berlin")
        # 10:00 Berlin in March is 09:00 UTC.
        assert overlaps(
            datetime(2026, 3, 2, 10, 0, tzinfo=berlin),
            datetime(2026, 3, 2, 10, 30, tzinfo=berlin),
            _at(9),
            _at(9, 15),
        )


class TestEffectiveSpan:
    def test_all_day_is_midnight_to_midnight(self):
        start, end = effective_span(date(2026, 3, 2), date(2026, 3, 3), "UTC")
        assert start == datetime(2026, 3, 2, tzinfo=UTC)
        assert end == datetime(2026, 3, 3, tzinfo=UTC)

    def test_all_day_uses_event_timezone(self):
        tz = ZoneInfo("America/New_York")
        start, end = effective_span(date(2026, 3, 2), date(2026, 3, 3), "America/New_York")
        assert start == datetime(2026, 3, 2, tzinfo=tz)
        assert end - start == timedelta(days=1)

    def test_all_day_same_start_and_end_spans_one_day(self):
        start, end = effective_span(date(2026, 3, 2), date(2026, 3, 2), "UTC")
        assert end - start == timedelta(days=1)

    def test_multi_day_all_day(self):
        start, end = effective_span(date(2026, 3, 2), date(2026, 3, 5), "UTC")
        assert end - start == timedelta(days=3)

    def test_naive_datetimes_use_timezone(self):
        tz = ZoneInfo("Europe/Berlin")
        start, end = effective_span(
            datetime(2026, 3, 2, 9, 0), datetime(2026, 3, 2, 10, 0), "Europe/Berlin"
        )
        assert start == datetime(2026, 3, 2, 9, 0, tzinfo=tz)
        assert end == datetime(2026, 3, 2, 10, 0, tzinfo=tz)

    def test_aware_datetimes_unchanged(self):
        start, end = effective_span(_at(9), _at(10), "Asia/Tokyo")
        assert (start, end) == (_at(9), _at(10))


class TestTimezoneHelpers:
    def test_coerce_unknown_falls_back_to_utc(self):
        assert coerce_zoneinfo("Not/AZone") is UTC

    def test_coerce_none_is_utc(self):
        assert coerce_zoneinfo(None) is UTC

    def test_coerce_valid(self):
        assert coerce_zoneinfo("Europe/London") == ZoneInfo("Europe/London")

    def test_ensure_valid_timezone_rejects_unknown(self):
        with pytest.raises(ValueError, match="IANA"):
            ensure_valid_timezone("Mars/Olympus")

    def test_is_date_only(self):
        assert is_date_only(date(2026, 3, 2))
        assert not is_date_only(_at(9))
