"""Intent resolver capability consumed by the request engine.

Turning free text into a structured action belongs to an external resolver
(typically an LLM-backed one). The engine only depends on this interface and
on the structured ``ActionIntent`` it returns.
"""

from __future__ import annotations

import abc
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from calresolve.models import (
    Candidate,
    CardinalityHint,
    EventChanges,
    OperationKind,
    ProposedEvent,
    TimeWindow,
)
from calresolve.timeutil import ensure_valid_timezone


class ActionIntent(BaseModel):
    """Structured action descriptor produced by an intent resolver."""

    model_config = ConfigDict(extra="forbid")

    kind: OperationKind
    proposed_events: list[ProposedEvent] = Field(default_factory=list)
    candidates: list[Candidate] = Field(default_factory=list)
    cardinality: CardinalityHint = CardinalityHint.unspecified
    calendar_ids: list[str] = Field(default_factory=list)
    window: TimeWindow | None = None
    # Applied to update candidates that carry no changes of their own.
    changes: EventChanges | None = None
    allow_conflicts: bool = False

    @model_validator(mode="after")
    def _validate_payload(self) -> ActionIntent:
        if self.kind == OperationKind.create:
            if not self.proposed_events:
                raise ValueError("create intents require at least one proposed event")
            if self.candidates:
                raise ValueError("create intents must not carry candidates")
        elif self.proposed_events:
            raise ValueError(f"{self.kind} intents must not carry proposed events")
        return self

    @property
    def target_calendar_ids(self) -> list[str]:
        """Calendars the request touches, in first-seen order.

        Falls back to the calendars named by the proposed events or candidates
        when the resolver did not list them explicitly.
        """
        seen: dict[str, None] = {}
        sources = self.calendar_ids or [
            *(event.calendar_id for event in self.proposed_events),
            *(candidate.calendar_id for candidate in self.candidates),
        ]
        for calendar_id in sources:
            seen.setdefault(calendar_id, None)
        return list(seen)


class IntentContext(BaseModel):
    """What the resolver needs to know about the user to interpret text."""

    model_config = ConfigDict(extra="forbid")

    timezone: str = "UTC"
    now: datetime | None = None
    calendars: list[str] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        ensure_valid_timezone(value)
        return value


class IntentResolver(abc.ABC):
    """Turns a user's free-text request into an ``ActionIntent``."""

    @abc.abstractmethod
    async def resolve(self, text: str, context: IntentContext) -> ActionIntent:
        """Return the structured action for *text*; never raw model output."""
        ...
