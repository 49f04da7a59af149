"""Concurrent multi-calendar event fetch and merge."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from calresolve.core.telemetry import engine_span
from calresolve.errors import AggregateFetchError, sanitize_error_detail
from calresolve.gateway.base import EventStoreGateway
from calresolve.models import AggregationResult, CalendarEvent, CalendarFetchFailure, TimeWindow

logger = logging.getLogger(__name__)


class EventAggregator:
    """Fan out ``list_events`` over calendars and merge the results.

    A calendar that raises or does not answer within ``fetch_timeout_s`` is
    recorded as a failure without affecting the others. Only when every
    calendar fails is ``AggregateFetchError`` raised.
    """

    def __init__(
        self,
        gateway: EventStoreGateway,
        *,
        fetch_timeout_s: float = 10.0,
        default_timezone: str = "UTC",
    ) -> None:
        self._gateway = gateway
        self._fetch_timeout_s = fetch_timeout_s
        self._default_timezone = default_timezone

    async def _fetch_one(self, calendar_id: str, window: TimeWindow) -> list[CalendarEvent]:
        with engine_span("aggregate.fetch", calendar_id=calendar_id, provider=self._gateway.name):
            events = await self._gateway.list_events(
                calendar_id=calendar_id,
                time_min=window.time_min,
                time_max=window.time_max,
            )
        # Events are tagged with the calendar they were read from.
        return [
            event
            if event.calendar_id == calendar_id
            else event.model_copy(update={"calendar_id": calendar_id})
            for event in events
        ]

    def _sort_key(self, event: CalendarEvent):  # noqa: ANN202
        start, _ = event.span(self._default_timezone)
        return (start, event.calendar_id, event.event_id)

    async def fetch(
        self,
        calendar_ids: Iterable[str],
        window: TimeWindow,
    ) -> AggregationResult:
        ordered_ids = list(dict.fromkeys(calendar_ids))
        if not ordered_ids:
            return AggregationResult()

        tasks = {
            asyncio.create_task(self._fetch_one(calendar_id, window)): calendar_id
            for calendar_id in ordered_ids
        }
        done, pending = await asyncio.wait(tasks, timeout=self._fetch_timeout_s)

        failures: dict[str, CalendarFetchFailure] = {}
        for task in pending:
            task.cancel()
            calendar_id = tasks[task]
            failures[calendar_id] = CalendarFetchFailure(
                calendar_id=calendar_id,
                error_type="TimeoutError",
                detail=f"Timed out after {self._fetch_timeout_s:g}s",
                timed_out=True,
            )
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        events: list[CalendarEvent] = []
        for task in done:
            calendar_id = tasks[task]
            exc = task.exception()
            if exc is not None:
                logger.warning(
                    "Failed to fetch events for calendar %s: %s",
                    calendar_id,
                    sanitize_error_detail(exc),
                )
                failures[calendar_id] = CalendarFetchFailure(
                    calendar_id=calendar_id,
                    error_type=type(exc).__name__,
                    detail=sanitize_error_detail(exc),
                )
                continue
            events.extend(task.result())

        ordered_failures = [failures[cid] for cid in ordered_ids if cid in failures]
        if len(ordered_failures) == len(ordered_ids):
            raise AggregateFetchError(ordered_failures)

        if ordered_failures:
            logger.warning(
                "Partial fetch: %d of %d calendar(s) failed (%s)",
                len(ordered_failures),
                len(ordered_ids),
                ", ".join(failure.calendar_id for failure in ordered_failures),
            )

        events.sort(key=self._sort_key)
        return AggregationResult(events=events, failures=ordered_failures)
