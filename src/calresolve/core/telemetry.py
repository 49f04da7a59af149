"""OpenTelemetry initialization and span wrappers for engine operations."""

from __future__ import annotations

import functools
import logging
import os

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

_TRACER_NAME = "calresolve"

# True once the global TracerProvider has been installed by this module.
_tracer_provider_installed: bool = False


def init_telemetry(service_name: str = "calresolve") -> trace.Tracer:
    """Initialize OpenTelemetry tracing.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a TracerProvider with an
    OTLP gRPC exporter on the first call. Otherwise returns a no-op tracer.
    """
    global _tracer_provider_installed

    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op tracer")
        return trace.get_tracer(service_name)

    if _tracer_provider_installed:
        logger.debug("TracerProvider already initialized; reusing for service=%s", service_name)
        return trace.get_tracer(service_name)

    # Import exporter only when needed
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))

    trace.set_tracer_provider(provider)
    _tracer_provider_installed = True
    logger.info("Telemetry initialized: endpoint=%s", endpoint)
    return trace.get_tracer(service_name)


class engine_span:
    """Create an OpenTelemetry span for an engine step.

    Can be used as a **context manager** or as a **decorator** on async functions::

        with engine_span("aggregate.fetch", calendar_id="work"):
            ...

        @engine_span("engine.handle")
        async def handle(...): ...

    The span is named ``calresolve.<name>``. Exceptions are recorded on the span
    and the status set to ERROR before the exception is re-raised.
    """

    def __init__(self, name: str, **attributes: str | int | float | bool) -> None:
        self._name = name
        self._attributes = attributes
        self._span: trace.Span | None = None
        self._token: object | None = None

    def __enter__(self) -> trace.Span:
        tracer = trace.get_tracer(_TRACER_NAME)
        self._span = tracer.start_span(f"calresolve.{self._name}")
        for key, value in self._attributes.items():
            self._span.set_attribute(key, value)
        self._token = trace.context_api.attach(trace.set_span_in_context(self._span))
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._span is None:
            return
        if exc_val is not None:
            self._span.set_status(trace.StatusCode.ERROR, str(exc_val))
            self._span.record_exception(exc_val)
        self._span.end()
        if self._token is not None:
            trace.context_api.detach(self._token)

    def __call__(self, func):  # noqa: ANN001, ANN204
        # Each invocation gets its own span instance so concurrent calls
        # never share _span / _token state.
        name = self._name
        attributes = self._attributes

        @functools.wraps(func)
        async def _wrapper(*args, **kwargs):  # noqa: ANN002, ANN003, ANN202
            with engine_span(name, **attributes):
                return await func(*args, **kwargs)

        return _wrapper
