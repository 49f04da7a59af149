"""Unit tests for ConflictDetector and find_conflicts().

Covers:
- 14:00-15:00 proposal vs existing 14:30-15:30 reports that single event
- Back-to-back events never conflict
- All-day existing events block timed and all-day proposals on that date
- One conflicting proposal marks the whole batch as conflicting
- Conflicting events are de-duplicated and keep existing-set order
- Same event id on two calendars counts as two events
- Suggestions are computed for the first proposed event
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from calresolve.engine.conflicts import ConflictDetector, find_conflicts
from calresolve.models import CalendarEvent, ProposedEvent
from calresolve.timeutil import overlaps

pytestmark = pytest.mark.unit


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=UTC)


def _proposed(start, end, summary: str = "Planning") -> ProposedEvent:
    return ProposedEvent(calendar_id="work", summary=summary, start=start, end=end)


def _event(event_id: str, start, end, calendar_id: str = "work") -> CalendarEvent:
    return CalendarEvent(event_id=event_id, calendar_id=calendar_id, start=start, end=end)


class TestFindConflicts:
    def test_partial_overlap(self):
        existing = [_event("e1", _at(2, 14, 30), _at(2, 15, 30))]
        assert find_conflicts(_proposed(_at(2, 14), _at(2, 15)), existing) == existing

    def test_shared_boundary(self):
        existing = [
            _event("before", _at(2, 13), _at(2, 14)),
            _event("after", _at(2, 15), _at(2, 16)),
        ]
        assert find_conflicts(_proposed(_at(2, 14), _at(2, 15)), existing) == []

    def test_collects_every_overlap(self):
        existing = [
            _event("a", _at(2, 13, 30), _at(2, 14, 15)),
            _event("b", _at(2, 14, 30), _at(2, 14, 45)),
            _event("c", _at(2, 16), _at(2, 17)),
        ]
        conflicts = find_conflicts(_proposed(_at(2, 14), _at(2, 15)), existing)
        assert [event.event_id for event in conflicts] == ["a", "b"]


class TestConflictDetector:
    def test_single_overlap_with_suggestions(self):
        existing = [_event("standup", _at(2, 14, 30), _at(2, 15, 30))]

        report = ConflictDetector().check([_proposed(_at(2, 14), _at(2, 15))], existing)

        assert report.has_conflict is True
        assert [event.event_id for event in report.conflicting_events] == ["standup"]
        assert report.suggested_slots
        for slot in report.suggested_slots:
            if slot.is_fallback:
                continue
            assert slot.duration == timedelta(hours=1)
            assert not overlaps(slot.start, slot.end, _at(2, 14, 30), _at(2, 15, 30))

    def test_no_conflict(self):
        existing = [_event("earlier", _at(2, 13), _at(2, 14))]
        report = ConflictDetector().check([_proposed(_at(2, 14), _at(2, 15))], existing)
        assert report.has_conflict is False
        assert report.conflicting_events == []
        assert report.suggested_slots == []

    def test_all_day_existing_blocks_timed_proposal(self):
        existing = [_event("offsite", date(2026, 3, 2), date(2026, 3, 3))]
        report = ConflictDetector().check([_proposed(_at(2, 10), _at(2, 11))], existing)
        assert report.has_conflict

    def test_all_day_proposal_identical_to_all_day_existing(self):
        existing = [_event("offsite", date(2026, 3, 2), date(2026, 3, 3))]
        proposed = _proposed(date(2026, 3, 2), date(2026, 3, 3))
        report = ConflictDetector().check([proposed], existing)
        assert report.has_conflict
        assert report.conflicting_events == existing

    def test_all_day_on_previous_day_does_not_block(self):
        existing = [_event("offsite", date(2026, 3, 1), date(2026, 3, 2))]
        report = ConflictDetector().check([_proposed(_at(2, 0), _at(2, 1))], existing)
        assert not report.has_conflict

    def test_one_conflicting_proposal_marks_batch(self):
        existing = [_event("busy", _at(2, 16), _at(2, 17))]
        batch = [
            _proposed(_at(2, 9), _at(2, 10), "Free"),
            _proposed(_at(2, 16, 30), _at(2, 17, 30), "Clashes"),
        ]
        report = ConflictDetector().check(batch, existing)
        assert report.has_conflict
        assert [event.event_id for event in report.conflicting_events] == ["busy"]

    def test_union_is_deduplicated_in_existing_order(self):
        existing = [
            _event("a", _at(2, 9), _at(2, 10)),
            _event("b", _at(2, 11), _at(2, 12)),
        ]
        batch = [
            _proposed(_at(2, 11, 30), _at(2, 12, 30)),
            _proposed(_at(2, 9, 30), _at(2, 11, 30)),
        ]
        report = ConflictDetector().check(batch, existing)
        assert [event.event_id for event in report.conflicting_events] == ["a", "b"]

    def test_same_id_on_two_calendars_listed_twice(self):
        existing = [
            _event("shared", _at(2, 14), _at(2, 15), calendar_id="home"),
            _event("shared", _at(2, 14), _at(2, 15), calendar_id="work"),
        ]
        report = ConflictDetector().check([_proposed(_at(2, 14), _at(2, 15))], existing)
        assert [event.calendar_id for event in report.conflicting_events] == ["home", "work"]

    def test_suggestions_use_first_proposed_event(self):
        existing = [_event("busy", _at(2, 16), _at(2, 17))]
        batch = [
            _proposed(_at(2, 9), _at(2, 9, 30), "Short"),
            _proposed(_at(2, 16), _at(2, 18), "Long"),
        ]
        report = ConflictDetector().check(batch, existing)
        fallback = report.suggested_slots[-1]
        assert fallback.is_fallback
        assert (fallback.start, fallback.end) == (_at(2, 9), _at(2, 9, 30))
        for slot in report.suggested_slots[:-1]:
            assert slot.duration == timedelta(minutes=30)
