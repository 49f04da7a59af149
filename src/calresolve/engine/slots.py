"""Alternative time-slot suggestions for a conflicting proposed event.

Same-day free slots come first, then one next-day slot, then a
"proceed despite conflict" fallback so the list is never empty.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime, time, timedelta, tzinfo

from calresolve.config import SlotConfig
from calresolve.models import CalendarEvent, ProposedEvent, SlotKind, TimeSlot
from calresolve.timeutil import coerce_zoneinfo, overlaps

logger = logging.getLogger(__name__)

BusySpan = tuple[datetime, datetime]


def _is_free(start: datetime, end: datetime, busy: Sequence[BusySpan]) -> bool:
    return not any(overlaps(start, end, busy_start, busy_end) for busy_start, busy_end in busy)


class SlotSuggester:
    def __init__(self, config: SlotConfig | None = None, *, default_timezone: str = "UTC") -> None:
        self._config = config or SlotConfig()
        self._default_timezone = default_timezone

    @property
    def config(self) -> SlotConfig:
        return self._config

    def _day_candidates(
        self,
        day: date,
        duration: timedelta,
        tz: tzinfo,
    ) -> list[tuple[datetime, datetime]]:
        """Candidate slots on *day* that start and end inside the working window."""
        day_midnight = datetime.combine(day, time.min, tzinfo=tz)
        window_start = day_midnight + timedelta(hours=self._config.day_start_hour)
        window_end = day_midnight + timedelta(hours=self._config.day_end_hour)
        step = timedelta(minutes=self._config.granularity_minutes)

        candidates = []
        start = window_start
        while start + duration <= window_end:
            candidates.append((start, start + duration))
            start += step
        return candidates

    def _free_on_day(
        self,
        day: date,
        duration: timedelta,
        tz: tzinfo,
        busy: Sequence[BusySpan],
        *,
        limit: int,
        exclude_start: datetime | None = None,
    ) -> list[tuple[datetime, datetime]]:
        free = []
        for start, end in self._day_candidates(day, duration, tz):
            if len(free) >= limit:
                break
            if exclude_start is not None and start == exclude_start:
                continue
            if _is_free(start, end, busy):
                free.append((start, end))
        return free

    def suggest(
        self,
        proposed: ProposedEvent,
        existing: Sequence[CalendarEvent],
    ) -> list[TimeSlot]:
        """Return up to ``max_suggestions`` slots, the fallback always last.

        Every non-fallback slot has the proposed event's duration and overlaps
        none of *existing*.
        """
        timezone = proposed.timezone or self._default_timezone
        tz = coerce_zoneinfo(timezone)
        proposed_start, proposed_end = proposed.span(self._default_timezone)
        duration = proposed_end - proposed_start
        local_start = proposed_start.astimezone(tz)
        busy = [event.span(self._default_timezone) for event in existing]

        slots: list[TimeSlot] = []
        if duration > timedelta(0):
            same_day = self._free_on_day(
                local_start.date(),
                duration,
                tz,
                busy,
                limit=self._config.max_same_day,
                exclude_start=local_start,
            )
            slots.extend(
                TimeSlot(start=start, end=end, kind=SlotKind.same_day) for start, end in same_day
            )

            next_day = self._next_day_slot(local_start, duration, tz, busy)
            if next_day is not None:
                slots.append(next_day)

        fallback = TimeSlot(
            start=proposed_start,
            end=proposed_end,
            kind=SlotKind.proceed_despite_conflict,
        )
        slots = slots[: max(self._config.max_suggestions - 1, 0)]
        slots.append(fallback)
        logger.debug(
            "Suggested %d slot(s) for %r (%d before fallback)",
            len(slots),
            proposed.summary,
            len(slots) - 1,
        )
        return slots

    def _next_day_slot(
        self,
        local_start: datetime,
        duration: timedelta,
        tz: tzinfo,
        busy: Sequence[BusySpan],
    ) -> TimeSlot | None:
        # Same wall-clock time of day on the following calendar day.
        next_date = local_start.date() + timedelta(days=1)
        start = datetime.combine(next_date, local_start.time(), tzinfo=tz)
        end = start + duration
        if _is_free(start, end, busy):
            return TimeSlot(start=start, end=end, kind=SlotKind.next_day)

        if not self._config.next_day_first_free:
            return None

        first_free = self._free_on_day(start.date(), duration, tz, busy, limit=1)
        if not first_free:
            return None
        free_start, free_end = first_free[0]
        return TimeSlot(start=free_start, end=free_end, kind=SlotKind.next_day)
