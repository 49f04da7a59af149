"""Canonical data types shared by the engine, the gateways and callers.

Events are immutable snapshots read from the event store. Proposed events and
candidates come from the intent resolver. Reports, outcomes and batch results
are computed fresh per request and never mutated afterwards.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from calresolve.timeutil import effective_span, ensure_valid_timezone, is_date_only

EventBoundary = datetime | date


def _normalize_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def _normalize_timezone(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    ensure_valid_timezone(normalized)
    return normalized


def _check_boundaries(start: EventBoundary, end: EventBoundary) -> None:
    if is_date_only(start) != is_date_only(end):
        raise ValueError(
            "start and end must be the same type: "
            "both date or both datetime (mixed date/datetime is not allowed)"
        )
    if isinstance(start, datetime) and isinstance(end, datetime):
        if (start.tzinfo is None) != (end.tzinfo is None):
            raise ValueError("start and end must both be timezone-aware or both naive")
    if end < start:
        raise ValueError("end must not be before start")


class CardinalityHint(StrEnum):
    """How many events the user expects a request to affect."""

    singular = "singular"
    plural = "plural"
    unspecified = "unspecified"


class SlotKind(StrEnum):
    same_day = "same_day"
    next_day = "next_day"
    proceed_despite_conflict = "proceed_despite_conflict"


class OperationKind(StrEnum):
    create = "create"
    update = "update"
    delete = "delete"


class OutcomeErrorCode(StrEnum):
    unauthorized_calendar = "unauthorized_calendar"
    provider_error = "provider_error"
    not_deleted = "not_deleted"
    invalid_operation = "invalid_operation"


class BatchStatus(StrEnum):
    all_succeeded = "all_succeeded"
    none_succeeded = "none_succeeded"
    mixed = "mixed"
    empty = "empty"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class CalendarEvent(BaseModel):
    """Snapshot of an existing event, tagged with its source calendar."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(min_length=1)
    calendar_id: str = Field(min_length=1)
    summary: str = "(untitled)"
    start: EventBoundary
    end: EventBoundary
    timezone: str | None = None
    description: str | None = None
    location: str | None = None

    @model_validator(mode="after")
    def _validate_boundaries(self) -> CalendarEvent:
        _check_boundaries(self.start, self.end)
        return self

    @property
    def is_all_day(self) -> bool:
        return is_date_only(self.start)

    def span(self, default_timezone: str = "UTC") -> tuple[datetime, datetime]:
        """Effective half-open span; all-day events cover midnight to midnight."""
        return effective_span(self.start, self.end, self.timezone or default_timezone)


class ProposedEvent(BaseModel):
    """An event to be created on ``calendar_id``; it has no id yet."""

    model_config = ConfigDict(extra="forbid")

    calendar_id: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    start: EventBoundary
    end: EventBoundary
    timezone: str | None = None
    description: str | None = None
    location: str | None = None
    attendees: list[str] = Field(default_factory=list)

    @field_validator("calendar_id", "summary")
    @classmethod
    def _normalize_non_empty(cls, value: str, info: ValidationInfo) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return normalized

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str | None) -> str | None:
        return _normalize_timezone(value)

    @model_validator(mode="after")
    def _validate_boundaries(self) -> ProposedEvent:
        _check_boundaries(self.start, self.end)
        return self

    @property
    def is_all_day(self) -> bool:
        return is_date_only(self.start)

    def span(self, default_timezone: str = "UTC") -> tuple[datetime, datetime]:
        return effective_span(self.start, self.end, self.timezone or default_timezone)

    def duration(self, default_timezone: str = "UTC") -> timedelta:
        start, end = self.span(default_timezone)
        return end - start


class EventChanges(BaseModel):
    """Field changes to apply to an existing event; unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    summary: str | None = None
    start: EventBoundary | None = None
    end: EventBoundary | None = None
    timezone: str | None = None
    description: str | None = None
    location: str | None = None
    attendees: list[str] | None = None

    @field_validator("summary")
    @classmethod
    def _normalize_summary(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str | None) -> str | None:
        return _normalize_timezone(value)

    @model_validator(mode="after")
    def _validate_boundaries(self) -> EventChanges:
        if self.start is not None and self.end is not None:
            _check_boundaries(self.start, self.end)
        return self

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)


class Candidate(BaseModel):
    """Reference to an existing event an update or delete request may target."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(min_length=1)
    calendar_id: str = Field(min_length=1)
    summary: str | None = None
    start: EventBoundary | None = None
    changes: EventChanges | None = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.calendar_id, self.event_id)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class TimeWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_min: datetime
    time_max: datetime

    @model_validator(mode="after")
    def _validate_order(self) -> TimeWindow:
        if self.time_min.tzinfo is None or self.time_max.tzinfo is None:
            raise ValueError("time_min and time_max must be timezone-aware")
        if self.time_max <= self.time_min:
            raise ValueError("time_max must be after time_min")
        return self


class CalendarFetchFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    calendar_id: str
    error_type: str
    detail: str
    timed_out: bool = False


class AggregationResult(BaseModel):
    """Merged, time-ordered events plus the calendars that could not be read."""

    model_config = ConfigDict(frozen=True)

    events: list[CalendarEvent] = Field(default_factory=list)
    failures: list[CalendarFetchFailure] = Field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    @property
    def failed_calendar_ids(self) -> list[str]:
        return [failure.calendar_id for failure in self.failures]


# ---------------------------------------------------------------------------
# Conflicts and slots
# ---------------------------------------------------------------------------


class TimeSlot(BaseModel):
    """A suggested interval for a withheld creation.

    Slots of every kind except ``proceed_despite_conflict`` are free of existing
    events. The ``proceed_despite_conflict`` slot repeats the originally requested
    times, so it still overlaps the conflicting events and must not be presented
    as a free interval; check ``is_fallback`` before doing so.
    """

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime
    kind: SlotKind = SlotKind.same_day

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_fallback(self) -> bool:
        return self.kind == SlotKind.proceed_despite_conflict


class ConflictReport(BaseModel):
    """Result of checking proposed events against existing ones.

    ``suggested_slots`` lists conflict-free alternatives first. When there is a
    conflict the list always ends with the ``proceed_despite_conflict`` fallback,
    which keeps the requested times and is the only slot that overlaps
    ``conflicting_events``.
    """

    model_config = ConfigDict(frozen=True)

    has_conflict: bool
    conflicting_events: list[CalendarEvent] = Field(default_factory=list)
    suggested_slots: list[TimeSlot] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Candidate resolution
# ---------------------------------------------------------------------------


class ClarificationChoice(BaseModel):
    """Display metadata for one disambiguation option."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    calendar_id: str
    summary: str | None = None
    start: EventBoundary | None = None


class Unambiguous(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["unambiguous"] = "unambiguous"
    candidates: list[Candidate]


class ClarificationNeeded(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["clarification_needed"] = "clarification_needed"
    candidates: list[Candidate]
    choices: list[ClarificationChoice]


class NoMatches(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["no_matches"] = "no_matches"


ResolutionOutcome = Annotated[
    Unambiguous | ClarificationNeeded | NoMatches,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class Operation(BaseModel):
    """One concrete create / update / delete against a target calendar."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: OperationKind
    calendar_id: str = Field(min_length=1)
    event_id: str | None = None
    proposed: ProposedEvent | None = None
    changes: EventChanges | None = None
    label: str | None = None

    @model_validator(mode="after")
    def _validate_payload(self) -> Operation:
        if self.kind == OperationKind.create:
            if self.proposed is None:
                raise ValueError("create operations require a proposed event")
        elif not self.event_id:
            raise ValueError(f"{self.kind} operations require an event_id")
        if self.kind == OperationKind.update and self.changes is None:
            raise ValueError("update operations require field changes")
        return self

    @property
    def target(self) -> str:
        if self.label:
            return self.label
        if self.proposed is not None:
            return self.proposed.summary
        return self.event_id or "(unknown)"

    @classmethod
    def create(cls, proposed: ProposedEvent) -> Operation:
        return cls(
            kind=OperationKind.create,
            calendar_id=proposed.calendar_id,
            proposed=proposed,
            label=proposed.summary,
        )

    @classmethod
    def update(cls, candidate: Candidate, changes: EventChanges | None = None) -> Operation:
        return cls(
            kind=OperationKind.update,
            calendar_id=candidate.calendar_id,
            event_id=candidate.event_id,
            changes=changes if changes is not None else candidate.changes,
            label=candidate.summary,
        )

    @classmethod
    def delete(cls, candidate: Candidate) -> Operation:
        return cls(
            kind=OperationKind.delete,
            calendar_id=candidate.calendar_id,
            event_id=candidate.event_id,
            label=candidate.summary,
        )


class ActionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    calendar_id: str
    target: str
    event_id: str | None = None
    succeeded: bool
    error_code: OutcomeErrorCode | None = None
    error_detail: str | None = None
    event: CalendarEvent | None = None


class ActionBatchResult(BaseModel):
    """One outcome per requested operation, in request order."""

    model_config = ConfigDict(frozen=True)

    outcomes: list[ActionOutcome] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[ActionOutcome]:
        return [outcome for outcome in self.outcomes if outcome.succeeded]

    @property
    def failed(self) -> list[ActionOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return bool(self.outcomes) and all(outcome.succeeded for outcome in self.outcomes)

    @property
    def any_succeeded(self) -> bool:
        return any(outcome.succeeded for outcome in self.outcomes)

    @property
    def status(self) -> BatchStatus:
        if not self.outcomes:
            return BatchStatus.empty
        if self.all_succeeded:
            return BatchStatus.all_succeeded
        if self.any_succeeded:
            return BatchStatus.mixed
        return BatchStatus.none_succeeded

    @property
    def succeeded_targets(self) -> list[str]:
        return [outcome.target for outcome in self.succeeded]

    @property
    def failed_targets(self) -> list[str]:
        return [outcome.target for outcome in self.failed]

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-safe dictionary."""
        return {
            "status": self.status.value,
            "all_succeeded": self.all_succeeded,
            "any_succeeded": self.any_succeeded,
            "outcomes": [outcome.model_dump(mode="json") for outcome in self.outcomes],
        }
