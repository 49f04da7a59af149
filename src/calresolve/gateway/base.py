"""Event store gateway contract consumed by the engine."""

from __future__ import annotations

import abc
from datetime import datetime

from calresolve.models import CalendarEvent, EventChanges, ProposedEvent


class EventStoreGateway(abc.ABC):
    """Provider abstraction for listing and mutating events on a named calendar.

    Implementations raise ``GatewayError`` subclasses on failure. Returned events
    must carry the ``calendar_id`` they were read from.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g., ``google``)."""
        ...

    @abc.abstractmethod
    async def list_events(
        self,
        *,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        """Return events intersecting ``[time_min, time_max)``."""
        ...

    @abc.abstractmethod
    async def insert_event(self, *, calendar_id: str, event: ProposedEvent) -> CalendarEvent:
        """Create an event and return it with its provider-assigned id."""
        ...

    @abc.abstractmethod
    async def patch_event(
        self,
        *,
        calendar_id: str,
        event_id: str,
        changes: EventChanges,
    ) -> CalendarEvent:
        """Apply partial field changes to an event."""
        ...

    @abc.abstractmethod
    async def delete_event(self, *, calendar_id: str, event_id: str) -> bool:
        """Delete an event. Returns ``False`` when the provider declined the delete."""
        ...

    async def shutdown(self) -> None:
        """Release provider resources."""
        return None
