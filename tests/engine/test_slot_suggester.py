"""Unit tests for SlotSuggester.

Covers:
- Same-day slots first (up to 2), then the next-day slot, then the fallback
- Every non-fallback slot keeps the proposed duration and is conflict-free
- Slots must end inside the 08:00-22:00 working window
- Next-day slot at the original time of day, or none when that time is busy
- next_day_first_free offers the first free next-day slot instead
- Fallback carries the original times and keeps the list non-empty
- Local working window follows the proposed event's timezone
- max_suggestions / granularity configuration
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from calresolve.config import SlotConfig
from calresolve.engine.slots import SlotSuggester
from calresolve.models import CalendarEvent, ProposedEvent, SlotKind
from calresolve.timeutil import overlaps

pytestmark = pytest.mark.unit


def _at(day: int, hour: int, minute: int = 0, tz=UTC) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=tz)


def _proposed(start: datetime, end: datetime, timezone: str | None = None) -> ProposedEvent:
    return ProposedEvent(
        calendar_id="work",
        summary="Planning",
        start=start,
        end=end,
        timezone=timezone,
    )


def _event(event_id: str, start, end, calendar_id: str = "work") -> CalendarEvent:
    return CalendarEvent(event_id=event_id, calendar_id=calendar_id, start=start, end=end)


def _assert_conflict_free(slots, existing):
    for slot in slots:
        if slot.is_fallback:
            continue
        for event in existing:
            event_start, event_end = event.span()
            assert not overlaps(slot.start, slot.end, event_start, event_end), (slot, event)


class TestSlotOrdering:
    def test_same_day_first_then_next_day_then_fallback(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [_event("busy", _at(2, 14, 30), _at(2, 15, 30))]

        slots = SlotSuggester().suggest(proposed, existing)

        assert [slot.kind for slot in slots] == [
            SlotKind.same_day,
            SlotKind.same_day,
            SlotKind.next_day,
            SlotKind.proceed_despite_conflict,
        ]
        assert slots[0].start == _at(2, 8)
        assert slots[1].start == _at(2, 9)
        assert slots[2].start == _at(3, 14)

    def test_at_most_four(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        slots = SlotSuggester().suggest(proposed, [])
        assert len(slots) == 4

    def test_same_day_slots_are_chronological(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [_event("morning", _at(2, 8), _at(2, 12))]
        slots = SlotSuggester().suggest(proposed, existing)
        same_day = [slot.start for slot in slots if slot.kind == SlotKind.same_day]
        assert same_day == [_at(2, 12), _at(2, 13)]


class TestSlotConstraints:
    def test_duration_respected_and_conflict_free(self):
        proposed = _proposed(_at(2, 14), _at(2, 15, 30))
        existing = [
            _event("a", _at(2, 8), _at(2, 9, 30)),
            _event("b", _at(2, 10), _at(2, 11)),
            _event("c", _at(2, 14, 30), _at(2, 15, 30)),
        ]
        slots = SlotSuggester().suggest(proposed, existing)

        for slot in slots:
            if not slot.is_fallback:
                assert slot.duration == timedelta(minutes=90)
        _assert_conflict_free(slots, existing)

    def test_fallback_is_the_only_overlapping_slot(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        busy = _event("busy", _at(2, 14, 30), _at(2, 15, 30))
        busy_start, busy_end = busy.span()

        slots = SlotSuggester().suggest(proposed, [busy])

        overlapping = [
            slot for slot in slots if overlaps(slot.start, slot.end, busy_start, busy_end)
        ]
        assert overlapping == [slots[-1]]
        assert overlapping[0].is_fallback
        assert (overlapping[0].start, overlapping[0].end) == (_at(2, 14), _at(2, 15))

    def test_slots_end_by_end_of_working_day(self):
        proposed = _proposed(_at(2, 9), _at(2, 11))
        existing = [_event("day", _at(2, 8), _at(2, 19))]

        slots = SlotSuggester().suggest(proposed, existing)

        same_day = [slot for slot in slots if slot.kind == SlotKind.same_day]
        assert [slot.start for slot in same_day] == [_at(2, 19), _at(2, 20)]
        assert all(slot.end <= _at(2, 22) for slot in same_day)

    def test_all_day_existing_blocks_whole_day(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [_event("holiday", date(2026, 3, 2), date(2026, 3, 3))]

        slots = SlotSuggester().suggest(proposed, existing)

        assert SlotKind.same_day not in [slot.kind for slot in slots]
        assert slots[0].kind == SlotKind.next_day
        _assert_conflict_free(slots, existing)

    def test_original_start_is_not_offered_as_alternative(self):
        proposed = _proposed(_at(2, 8), _at(2, 9))
        slots = SlotSuggester().suggest(proposed, [])
        assert slots[0].start == _at(2, 9)


class TestNextDaySlot:
    def test_omitted_when_original_time_busy_next_day(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [
            _event("today", _at(2, 14, 30), _at(2, 15, 30)),
            _event("tomorrow", _at(3, 14), _at(3, 15)),
        ]
        slots = SlotSuggester().suggest(proposed, existing)
        assert SlotKind.next_day not in [slot.kind for slot in slots]
        assert slots[-1].is_fallback

    def test_first_free_next_day_when_configured(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [
            _event("today", _at(2, 14, 30), _at(2, 15, 30)),
            _event("tomorrow-morning", _at(3, 8), _at(3, 10)),
            _event("tomorrow", _at(3, 14), _at(3, 15)),
        ]
        suggester = SlotSuggester(SlotConfig(next_day_first_free=True))

        slots = suggester.suggest(proposed, existing)

        next_day = [slot for slot in slots if slot.kind == SlotKind.next_day]
        assert len(next_day) == 1
        assert next_day[0].start == _at(3, 10)
        _assert_conflict_free(slots, existing)


class TestFallback:
    def test_fallback_only_when_everything_busy(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [
            _event("d1", date(2026, 3, 2), date(2026, 3, 3)),
            _event("d2", date(2026, 3, 3), date(2026, 3, 4)),
        ]
        slots = SlotSuggester().suggest(proposed, existing)

        assert len(slots) == 1
        assert slots[0].kind == SlotKind.proceed_despite_conflict
        assert (slots[0].start, slots[0].end) == (_at(2, 14), _at(2, 15))

    def test_respects_max_suggestions(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        slots = SlotSuggester(SlotConfig(max_suggestions=2)).suggest(proposed, [])
        assert [slot.kind for slot in slots] == [
            SlotKind.same_day,
            SlotKind.proceed_despite_conflict,
        ]


class TestTimezonesAndGranularity:
    def test_working_window_uses_event_timezone(self):
        tz = ZoneInfo("America/New_York")
        proposed = _proposed(
            datetime(2026, 3, 2, 14, tzinfo=tz),
            datetime(2026, 3, 2, 15, tzinfo=tz),
            timezone="America/New_York",
        )
        slots = SlotSuggester().suggest(proposed, [])
        assert slots[0].start == datetime(2026, 3, 2, 8, tzinfo=tz)

    def test_default_timezone_for_naive_proposal(self):
        tz = ZoneInfo("Europe/Berlin")
        proposed = _proposed(datetime(2026, 3, 2, 14), datetime(2026, 3, 2, 15))
        slots = SlotSuggester(default_timezone="Europe/Berlin").suggest(proposed, [])
        assert slots[0].start == datetime(2026, 3, 2, 8, tzinfo=tz)
        assert slots[-1].start == datetime(2026, 3, 2, 14, tzinfo=tz)

    def test_half_hour_granularity(self):
        proposed = _proposed(_at(2, 14), _at(2, 15))
        existing = [_event("early", _at(2, 8), _at(2, 8, 30))]
        suggester = SlotSuggester(SlotConfig(granularity_minutes=30))
        slots = suggester.suggest(proposed, existing)
        assert [slot.start for slot in slots[:2]] == [_at(2, 8, 30), _at(2, 9)]
