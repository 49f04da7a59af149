"""Request engine: one call per user request, one structured response.

Create requests are checked for conflicts across every targeted calendar and
withheld when they would double-book. Update and delete requests are
disambiguated first and withheld when the user has to choose. Everything else
is executed, with per-operation success or failure in the batch result.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import timedelta
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from calresolve.config import ConfigError, EngineConfig
from calresolve.core.logging import configure_logging
from calresolve.core.telemetry import engine_span, init_telemetry
from calresolve.engine.aggregator import EventAggregator
from calresolve.engine.candidates import CandidateResolver
from calresolve.engine.conflicts import ConflictDetector
from calresolve.engine.executor import ActionExecutor
from calresolve.engine.slots import SlotSuggester
from calresolve.errors import CalendarEngineError
from calresolve.gateway.base import EventStoreGateway
from calresolve.intent import ActionIntent, IntentContext, IntentResolver
from calresolve.models import (
    ActionBatchResult,
    CalendarEvent,
    CalendarFetchFailure,
    ClarificationNeeded,
    ConflictReport,
    EventChanges,
    NoMatches,
    Operation,
    OperationKind,
    ProposedEvent,
    TimeWindow,
)
from calresolve.timeutil import coerce_zoneinfo, midnight

logger = logging.getLogger(__name__)


class BatchExecuted(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["batch_executed"] = "batch_executed"
    batch: ActionBatchResult
    fetch_failures: list[CalendarFetchFailure] = Field(default_factory=list)


class CreationBlocked(BaseModel):
    """Creation withheld because it would overlap existing events."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["creation_blocked"] = "creation_blocked"
    report: ConflictReport
    fetch_failures: list[CalendarFetchFailure] = Field(default_factory=list)


class ClarificationRequested(BaseModel):
    """Update or delete withheld until the user picks among the choices."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["clarification_requested"] = "clarification_requested"
    outcome: ClarificationNeeded


class NothingMatched(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["nothing_matched"] = "nothing_matched"


EngineResponse = Annotated[
    BatchExecuted | CreationBlocked | ClarificationRequested | NothingMatched,
    Field(discriminator="kind"),
]


class CalendarRequestEngine:
    def __init__(
        self,
        gateway: EventStoreGateway,
        config: EngineConfig | None = None,
        *,
        intent_resolver: IntentResolver | None = None,
    ) -> None:
        self._config = config or EngineConfig()
        self._gateway = gateway
        self._intent_resolver = intent_resolver

        timezone = self._config.timezone
        self.aggregator = EventAggregator(
            gateway,
            fetch_timeout_s=self._config.fetch_timeout_s,
            default_timezone=timezone,
        )
        self.suggester = SlotSuggester(self._config.slots, default_timezone=timezone)
        self.detector = ConflictDetector(self.suggester, default_timezone=timezone)
        self.resolver = CandidateResolver(default_timezone=timezone)
        self.executor = ActionExecutor(
            gateway, authorized_calendars=self._config.authorized_calendars
        )

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        *,
        intent_resolver: IntentResolver | None = None,
        configure_observability: bool = True,
    ) -> CalendarRequestEngine:
        """Build an engine backed by the Google Calendar gateway.

        Unless *configure_observability* is false, process logging is set up from
        ``[engine.logging]`` and OpenTelemetry tracing is initialized first.
        """
        from calresolve.gateway.google import GoogleCalendarGateway

        if not config.google.access_token:
            raise ConfigError("engine.google.access_token is required for the Google gateway")
        if configure_observability:
            configure_logging(
                level=config.logging.level,
                fmt=config.logging.format,
                log_root=config.logging.log_root,
            )
            init_telemetry("calresolve")
        gateway = GoogleCalendarGateway.from_access_token(
            config.google.access_token,
            default_timezone=config.timezone,
            request_timeout_s=config.google.request_timeout_s,
        )
        return cls(gateway, config, intent_resolver=intent_resolver)

    @property
    def config(self) -> EngineConfig:
        return self._config

    def authorized_calendars(self, intent: ActionIntent) -> list[str]:
        """Configured calendars, or the request's own targets when none are configured."""
        if self._config.authorized_calendars:
            return list(self._config.authorized_calendars)
        return intent.target_calendar_ids

    def creation_window(self, proposed: Sequence[ProposedEvent]) -> TimeWindow:
        """Whole local days covered by *proposed*, plus the following day.

        The extra day lets next-day slot suggestions see existing events.
        """
        default_timezone = self._config.timezone
        spans = [event.span(default_timezone) for event in proposed]
        tz = coerce_zoneinfo(proposed[0].timezone or default_timezone)
        first_day = min(start for start, _ in spans).astimezone(tz).date()
        last_day = max(end for _, end in spans).astimezone(tz).date()
        return TimeWindow(
            time_min=midnight(first_day, tz),
            time_max=midnight(last_day + timedelta(days=2), tz),
        )

    async def handle(self, intent: ActionIntent) -> EngineResponse:
        with engine_span("engine.handle", kind=str(intent.kind)):
            if intent.kind == OperationKind.create:
                return await self._handle_create(intent)
            return await self._handle_existing(intent)

    async def handle_text(
        self,
        text: str,
        context: IntentContext | None = None,
    ) -> EngineResponse:
        """Resolve *text* through the intent resolver, then handle the intent."""
        if self._intent_resolver is None:
            raise CalendarEngineError("No intent resolver configured for text requests")
        context = context or IntentContext(timezone=self._config.timezone)
        intent = await self._intent_resolver.resolve(text, context)
        return await self.handle(intent)

    async def _handle_create(self, intent: ActionIntent) -> EngineResponse:
        window = self.creation_window(intent.proposed_events)
        aggregation = await self.aggregator.fetch(intent.target_calendar_ids, window)

        report = self.detector.check(intent.proposed_events, aggregation.events)
        if report.has_conflict and not intent.allow_conflicts:
            logger.info(
                "Withholding %d creation(s): %d conflicting event(s)",
                len(intent.proposed_events),
                len(report.conflicting_events),
            )
            return CreationBlocked(report=report, fetch_failures=aggregation.failures)

        operations = [Operation.create(event) for event in intent.proposed_events]
        batch = await self.executor.execute(
            operations, authorized_calendars=self.authorized_calendars(intent)
        )
        return BatchExecuted(batch=batch, fetch_failures=aggregation.failures)

    async def _handle_existing(self, intent: ActionIntent) -> EngineResponse:
        known_events: list[CalendarEvent] = []
        fetch_failures: list[CalendarFetchFailure] = []
        if intent.window is not None and intent.target_calendar_ids:
            aggregation = await self.aggregator.fetch(intent.target_calendar_ids, intent.window)
            known_events = aggregation.events
            fetch_failures = aggregation.failures

        outcome = self.resolver.resolve(intent.cardinality, intent.candidates, known_events)
        if isinstance(outcome, NoMatches):
            return NothingMatched()
        if isinstance(outcome, ClarificationNeeded):
            logger.info(
                "Withholding %s: %d candidates need clarification",
                intent.kind,
                len(outcome.candidates),
            )
            return ClarificationRequested(outcome=outcome)

        if intent.kind == OperationKind.delete:
            operations = [Operation.delete(candidate) for candidate in outcome.candidates]
        else:
            operations = [
                Operation.update(candidate, candidate.changes or intent.changes or EventChanges())
                for candidate in outcome.candidates
            ]
        batch = await self.executor.execute(
            operations, authorized_calendars=self.authorized_calendars(intent)
        )
        return BatchExecuted(batch=batch, fetch_failures=fetch_failures)

    async def shutdown(self) -> None:
        await self._gateway.shutdown()
