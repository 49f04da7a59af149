"""Sequential execution of create / update / delete operations.

Provides an executor that:
1. Rejects operations on calendars outside the authorized set without
   contacting the gateway
2. Applies each remaining operation through the event store gateway
3. Captures every failure as a per-operation outcome and keeps going
4. Returns an ``ActionBatchResult`` with one outcome per operation, in order
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from calresolve.core.telemetry import engine_span
from calresolve.errors import sanitize_error_detail
from calresolve.gateway.base import EventStoreGateway
from calresolve.models import (
    ActionBatchResult,
    ActionOutcome,
    Operation,
    OperationKind,
    OutcomeErrorCode,
)

logger = logging.getLogger(__name__)


def _failure(operation: Operation, code: OutcomeErrorCode, detail: str) -> ActionOutcome:
    return ActionOutcome(
        kind=operation.kind,
        calendar_id=operation.calendar_id,
        target=operation.target,
        event_id=operation.event_id,
        succeeded=False,
        error_code=code,
        error_detail=detail,
    )


class ActionExecutor:
    def __init__(
        self,
        gateway: EventStoreGateway,
        *,
        authorized_calendars: Iterable[str] = (),
    ) -> None:
        self._gateway = gateway
        self._authorized_calendars = frozenset(authorized_calendars)

    async def execute(
        self,
        operations: Sequence[Operation],
        *,
        authorized_calendars: Iterable[str] | None = None,
    ) -> ActionBatchResult:
        """Apply *operations* one at a time and collect an outcome for each.

        Parameters
        ----------
        operations:
            Operations in the order they should be applied.
        authorized_calendars:
            Calendars this request may write to. Defaults to the set the
            executor was constructed with.
        """
        authorized = (
            frozenset(authorized_calendars)
            if authorized_calendars is not None
            else self._authorized_calendars
        )

        outcomes = []
        for operation in operations:
            outcome = await self._execute_one(operation, authorized)
            if outcome.succeeded:
                logger.info(
                    "%s succeeded on %s: %s",
                    operation.kind,
                    operation.calendar_id,
                    outcome.target,
                )
            else:
                logger.warning(
                    "%s failed on %s: %s (%s: %s)",
                    operation.kind,
                    operation.calendar_id,
                    outcome.target,
                    outcome.error_code,
                    outcome.error_detail,
                )
            outcomes.append(outcome)

        result = ActionBatchResult(outcomes=outcomes)
        logger.info(
            "Executed %d operation(s): %s (%d succeeded, %d failed)",
            len(outcomes),
            result.status,
            len(result.succeeded),
            len(result.failed),
        )
        return result

    async def _execute_one(self, operation: Operation, authorized: frozenset[str]) -> ActionOutcome:
        if operation.calendar_id not in authorized:
            return _failure(
                operation,
                OutcomeErrorCode.unauthorized_calendar,
                f"Calendar {operation.calendar_id} is not authorized for this request",
            )

        if operation.kind == OperationKind.update:
            assert operation.changes is not None
            if operation.changes.is_empty:
                return _failure(
                    operation,
                    OutcomeErrorCode.invalid_operation,
                    "Update has no field changes to apply",
                )

        try:
            with engine_span(
                f"execute.{operation.kind}",
                calendar_id=operation.calendar_id,
                provider=self._gateway.name,
            ):
                return await self._apply(operation)
        except Exception as exc:
            return _failure(operation, OutcomeErrorCode.provider_error, sanitize_error_detail(exc))

    async def _apply(self, operation: Operation) -> ActionOutcome:
        if operation.kind == OperationKind.create:
            assert operation.proposed is not None
            event = await self._gateway.insert_event(
                calendar_id=operation.calendar_id,
                event=operation.proposed,
            )
        elif operation.kind == OperationKind.update:
            assert operation.event_id is not None and operation.changes is not None
            event = await self._gateway.patch_event(
                calendar_id=operation.calendar_id,
                event_id=operation.event_id,
                changes=operation.changes,
            )
        else:
            assert operation.event_id is not None
            deleted = await self._gateway.delete_event(
                calendar_id=operation.calendar_id,
                event_id=operation.event_id,
            )
            if not deleted:
                return _failure(
                    operation,
                    OutcomeErrorCode.not_deleted,
                    f"Provider did not delete event {operation.event_id}",
                )
            event = None

        return ActionOutcome(
            kind=operation.kind,
            calendar_id=operation.calendar_id,
            target=operation.target,
            event_id=event.event_id if event is not None else operation.event_id,
            succeeded=True,
            event=event,
        )
