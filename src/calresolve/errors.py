"""Exception hierarchy and error-message sanitization.

Conflicts and ambiguity are not errors: they are returned as result variants.
Only provider failures, total fetch failures and bad configuration raise.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from calresolve.models import CalendarFetchFailure

MAX_ERROR_DETAIL_CHARS = 200


class CalendarEngineError(RuntimeError):
    """Base error raised by the calendar engine and its gateways."""


class GatewayError(CalendarEngineError):
    """Raised when the event store gateway cannot complete a request."""


class GatewayAuthError(GatewayError):
    """Raised when the gateway has no usable access token or the provider rejects it."""


class GatewayRequestError(GatewayError):
    """Raised when the calendar provider rejects a request."""

    def __init__(self, *, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Calendar provider request failed ({status_code}): {message}")


class AggregateFetchError(CalendarEngineError):
    """Raised when every calendar fetch in an aggregation failed."""

    def __init__(self, failures: list[CalendarFetchFailure]) -> None:
        self.failures = failures
        calendars = ", ".join(failure.calendar_id for failure in failures) or "(none)"
        super().__init__(f"Could not fetch events from any calendar: {calendars}")


def redact_credential_values(message: str) -> str:
    """Redact credential-looking values from an error message."""
    redacted = message
    # key=value style pairs
    redacted = re.sub(
        r"(?i)\b(client_secret|refresh_token|access_token|token)\s*=\s*([^\s,;]+)",
        r"\1=[REDACTED]",
        redacted,
    )
    # JSON/Python dict style quoted values
    redacted = re.sub(
        r"""(?i)(['"]?(?:client_secret|refresh_token|access_token|token)['"]?\s*:\s*)(['"]).*?\2""",
        r'\1"[REDACTED]"',
        redacted,
    )
    # key: value style pairs
    redacted = re.sub(
        r"(?i)\b(client_secret|refresh_token|access_token|token)\s*:\s*([^\s,;'\"]+)",
        r"\1: [REDACTED]",
        redacted,
    )
    return redacted


def sanitize_error_detail(exc: BaseException | str) -> str:
    """Return a single-line, redacted, length-bounded description of *exc*."""
    if isinstance(exc, BaseException):
        raw = str(exc) or type(exc).__name__
    else:
        raw = exc
    redacted = redact_credential_values(raw)
    return " ".join(redacted.split())[:MAX_ERROR_DETAIL_CHARS]
