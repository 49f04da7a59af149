"""Tests for engine_span and init_telemetry."""

import pytest
from opentelemetry import trace

from calresolve.core.telemetry import engine_span, init_telemetry

pytestmark = pytest.mark.unit


class TestEngineSpanContextManager:
    def test_creates_span_with_prefixed_name(self, otel_exporter):
        with engine_span("aggregate.fetch", calendar_id="work"):
            pass
        spans = otel_exporter.get_finished_spans()
        assert len(spans) == 1
        assert spans[0].name == "calresolve.aggregate.fetch"
        assert spans[0].attributes["calendar_id"] == "work"

    def test_records_exception_on_error(self, otel_exporter):
        with pytest.raises(ValueError, match="boom"):
            with engine_span("execute.create"):
                raise ValueError("boom")
        span = otel_exporter.get_finished_spans()[0]
        assert span.status.status_code == trace.StatusCode.ERROR
        exception_events = [e for e in span.events if e.name == "exception"]
        assert len(exception_events) == 1
        assert "ValueError" in exception_events[0].attributes["exception.type"]

    def test_nested_spans_share_trace(self, otel_exporter):
        with engine_span("engine.handle"):
            with engine_span("aggregate.fetch"):
                pass
        child, parent = otel_exporter.get_finished_spans()
        assert child.parent is not None
        assert child.parent.span_id == parent.context.span_id
        assert child.context.trace_id == parent.context.trace_id


class TestEngineSpanDecorator:
    async def test_wraps_async_function(self, otel_exporter):
        @engine_span("engine.handle", kind="create")
        async def handle(value):
            return value * 2

        assert await handle(21) == 42
        spans = otel_exporter.get_finished_spans()
        assert [span.name for span in spans] == ["calresolve.engine.handle"]
        assert spans[0].attributes["kind"] == "create"

    async def test_decorator_records_exception(self, otel_exporter):
        @engine_span("engine.handle")
        async def explode():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            await explode()
        assert otel_exporter.get_finished_spans()[0].status.status_code == trace.StatusCode.ERROR


class TestInitTelemetry:
    def test_noop_without_endpoint(self, monkeypatch):
        monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
        tracer = init_telemetry("calresolve-test")
        assert tracer is not None
