"""Overlap detection between proposed events and existing calendar events."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from calresolve.engine.slots import SlotSuggester
from calresolve.models import CalendarEvent, ConflictReport, ProposedEvent
from calresolve.timeutil import overlaps

logger = logging.getLogger(__name__)


def find_conflicts(
    proposed: ProposedEvent,
    existing: Sequence[CalendarEvent],
    *,
    default_timezone: str = "UTC",
) -> list[CalendarEvent]:
    """Return every existing event whose span overlaps *proposed*.

    Spans are half-open, so events that only share a boundary instant do not
    conflict. All-day events cover midnight to midnight in their own timezone.
    """
    start, end = proposed.span(default_timezone)
    conflicts = []
    for event in existing:
        event_start, event_end = event.span(default_timezone)
        if overlaps(start, end, event_start, event_end):
            conflicts.append(event)
    return conflicts


class ConflictDetector:
    def __init__(
        self,
        suggester: SlotSuggester | None = None,
        *,
        default_timezone: str = "UTC",
    ) -> None:
        self._suggester = suggester or SlotSuggester(default_timezone=default_timezone)
        self._default_timezone = default_timezone

    def check(
        self,
        proposed: Sequence[ProposedEvent],
        existing: Sequence[CalendarEvent],
    ) -> ConflictReport:
        """Check a batch of proposed events against the full existing set.

        One conflicting proposal marks the whole batch as conflicting. The report
        lists the union of overlapping events, each once, in *existing* order,
        and carries slot suggestions for the first proposed event.
        """
        conflicting: dict[tuple[str, str], CalendarEvent] = {}
        for event in proposed:
            for match in find_conflicts(event, existing, default_timezone=self._default_timezone):
                conflicting.setdefault((match.calendar_id, match.event_id), match)

        if not conflicting:
            return ConflictReport(has_conflict=False)

        ordered = [
            event
            for event in existing
            if conflicting.pop((event.calendar_id, event.event_id), None) is not None
        ]
        logger.info(
            "Conflict: %d proposed event(s) overlap %d existing event(s)",
            len(proposed),
            len(ordered),
        )
        return ConflictReport(
            has_conflict=True,
            conflicting_events=ordered,
            suggested_slots=self._suggester.suggest(proposed[0], existing),
        )
