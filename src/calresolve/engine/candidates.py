"""Candidate disambiguation for update and delete requests.

The outcome is looked up in an explicit decision table keyed by cardinality
hint and candidate count bucket. The resolver never picks among ambiguous
candidates itself; it hands the choice back to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from enum import StrEnum

from calresolve.models import (
    CalendarEvent,
    Candidate,
    CardinalityHint,
    ClarificationChoice,
    ClarificationNeeded,
    NoMatches,
    ResolutionOutcome,
    Unambiguous,
)
from calresolve.timeutil import effective_span

logger = logging.getLogger(__name__)


class CountBucket(StrEnum):
    none = "none"
    one = "one"
    many = "many"


def _bucket(count: int) -> CountBucket:
    if count == 0:
        return CountBucket.none
    if count == 1:
        return CountBucket.one
    return CountBucket.many


def _no_matches(
    candidates: list[Candidate],  # noqa: ARG001
    choices: list[ClarificationChoice],  # noqa: ARG001
) -> NoMatches:
    return NoMatches()


def _act_on_all(
    candidates: list[Candidate],
    choices: list[ClarificationChoice],  # noqa: ARG001
) -> Unambiguous:
    return Unambiguous(candidates=candidates)


def _ask_user(
    candidates: list[Candidate], choices: list[ClarificationChoice]
) -> ClarificationNeeded:
    # Candidates are listed in the same order as their display choices.
    by_key = {candidate.key: candidate for candidate in candidates}
    ordered = [by_key[(choice.calendar_id, choice.event_id)] for choice in choices]
    return ClarificationNeeded(candidates=ordered, choices=choices)


Decision = Callable[[list[Candidate], list[ClarificationChoice]], ResolutionOutcome]

# Unspecified cardinality behaves like plural: ambiguity the user did not
# signal does not block the request.
DECISION_TABLE: dict[tuple[CardinalityHint, CountBucket], Decision] = {
    (CardinalityHint.singular, CountBucket.none): _no_matches,
    (CardinalityHint.singular, CountBucket.one): _act_on_all,
    (CardinalityHint.singular, CountBucket.many): _ask_user,
    (CardinalityHint.plural, CountBucket.none): _no_matches,
    (CardinalityHint.plural, CountBucket.one): _act_on_all,
    (CardinalityHint.plural, CountBucket.many): _act_on_all,
    (CardinalityHint.unspecified, CountBucket.none): _no_matches,
    (CardinalityHint.unspecified, CountBucket.one): _act_on_all,
    (CardinalityHint.unspecified, CountBucket.many): _act_on_all,
}


class CandidateResolver:
    def __init__(self, *, default_timezone: str = "UTC") -> None:
        self._default_timezone = default_timezone

    def _start_instant(self, candidate: Candidate) -> datetime | None:
        if candidate.start is None:
            return None
        start, _ = effective_span(candidate.start, candidate.start, self._default_timezone)
        return start

    def _choice_order(self, candidate: Candidate):  # noqa: ANN202
        start = self._start_instant(candidate)
        # Candidates without a start sort last.
        timestamp = start.timestamp() if start is not None else 0.0
        return (start is None, timestamp, candidate.calendar_id, candidate.event_id)

    def enrich(
        self,
        candidates: Sequence[Candidate],
        known_events: Sequence[CalendarEvent] = (),
    ) -> list[Candidate]:
        """De-duplicate candidates and fill missing display fields.

        Candidates referencing the same (calendar, event) pair collapse to the
        first one seen. Missing ``summary`` / ``start`` are copied from the
        matching known event, if any.
        """
        known = {(event.calendar_id, event.event_id): event for event in known_events}
        unique: dict[tuple[str, str], Candidate] = {}
        for candidate in candidates:
            if candidate.key in unique:
                continue
            event = known.get(candidate.key)
            if event is not None:
                update = {}
                if candidate.summary is None:
                    update["summary"] = event.summary
                if candidate.start is None:
                    update["start"] = event.start
                if update:
                    candidate = candidate.model_copy(update=update)
            unique[candidate.key] = candidate
        return list(unique.values())

    def resolve(
        self,
        cardinality: CardinalityHint,
        candidates: Sequence[Candidate],
        known_events: Sequence[CalendarEvent] = (),
    ) -> ResolutionOutcome:
        resolved = self.enrich(candidates, known_events)
        ordered = sorted(resolved, key=self._choice_order)
        choices = [
            ClarificationChoice(
                event_id=candidate.event_id,
                calendar_id=candidate.calendar_id,
                summary=candidate.summary,
                start=candidate.start,
            )
            for candidate in ordered
        ]

        decision = DECISION_TABLE[(CardinalityHint(cardinality), _bucket(len(resolved)))]
        outcome = decision(resolved, choices)
        logger.debug(
            "Resolved %d candidate(s) with %s cardinality to %s",
            len(resolved),
            cardinality,
            outcome.kind,
        )
        return outcome
