"""Resolution, conflict-detection and execution engine."""

from calresolve.engine.aggregator import EventAggregator
from calresolve.engine.candidates import CandidateResolver
from calresolve.engine.conflicts import ConflictDetector, find_conflicts
from calresolve.engine.executor import ActionExecutor
from calresolve.engine.service import (
    BatchExecuted,
    CalendarRequestEngine,
    ClarificationRequested,
    CreationBlocked,
    EngineResponse,
    NothingMatched,
)
from calresolve.engine.slots import SlotSuggester

__all__ = [
    "ActionExecutor",
    "BatchExecuted",
    "CalendarRequestEngine",
    "CandidateResolver",
    "ClarificationRequested",
    "ConflictDetector",
    "CreationBlocked",
    "EngineResponse",
    "EventAggregator",
    "NothingMatched",
    "SlotSuggester",
    "find_conflicts",
]
