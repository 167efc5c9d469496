"""Tests for logging, tracing and metrics helpers."""

import json
import logging

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from hister.observability import (
    OPERATION_LATENCY,
    JsonFormatter,
    configure_logging,
    create_span,
    get_metrics,
    init_metrics,
    init_tracing,
    set_trace_context,
    track_latency,
)
from hister.observability import metrics as metrics_module, tracing as tracing_module


def _record(msg="hello", **extra):
    record = logging.LogRecord("hister.indexer", logging.INFO, "x.py", 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    def test_includes_trace_context_and_component(self):
        set_trace_context("a" * 32, "b" * 16)
        payload = json.loads(JsonFormatter().format(_record()))

        assert payload["message"] == "hello"
        assert payload["trace_id"] == "a" * 32
        assert payload["span_id"] == "b" * 16
        assert payload["component"] == "indexer"

    def test_extra_fields_redacted(self):
        payload = json.loads(JsonFormatter().format(_record(token="s3cret", url="https://ex.com")))
        assert payload["token"] == "[REDACTED]"
        assert payload["url"] == "https://ex.com"

    def test_long_message_truncated(self):
        payload = json.loads(JsonFormatter().format(_record("x" * 5000)))
        assert len(payload["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3


def test_configure_logging_json(restore_root_logger):
    configure_logging("debug", json_output=True, logger_levels={"hister.search": "warning"})

    assert restore_root_logger.level == logging.DEBUG
    assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)
    assert logging.getLogger("hister.search").level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


@pytest.fixture
def spans(monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", provider.get_tracer("test"))
    return exporter


class TestCreateSpan:
    def test_attributes_recorded(self, spans):
        with create_span("index.search", attributes={"query.text_length": 4}):
            pass

        (span,) = spans.get_finished_spans()
        assert span.name == "index.search"
        assert span.attributes["query.text_length"] == 4

    def test_exception_marks_span_failed(self, spans):
        with pytest.raises(ValueError):
            with create_span("index.add"):
                raise ValueError("bad document")

        (span,) = spans.get_finished_spans()
        assert span.status.status_code is StatusCode.ERROR
        assert span.events[0].name == "exception"


def test_track_latency_observes_histogram():
    labels = {"operation": "unit-test"}
    before = REGISTRY.get_sample_value("hister_operation_latency_seconds_count", labels) or 0.0

    with track_latency(OPERATION_LATENCY, **labels):
        pass

    assert REGISTRY.get_sample_value("hister_operation_latency_seconds_count", labels) == before + 1
    assert b"hister_operation_latency_seconds" in get_metrics()


def test_init_metrics_is_idempotent(monkeypatch):
    monkeypatch.setitem(metrics_module._meter_holder, "provider", None)
    monkeypatch.setitem(metrics_module._meter_holder, "meter", None)

    first = init_metrics(service_name="hister-test")

    assert init_metrics() is first
    assert metrics_module._meter_holder["meter"] is not None


def test_init_tracing_installs_tracer(monkeypatch):
    monkeypatch.setitem(tracing_module._tracer_holder, "tracer", None)

    provider = init_tracing(service_name="hister-test", resource_attributes={"deployment.environment": "test"})

    assert provider.resource.attributes["service.name"] == "hister-test"
    assert tracing_module.get_tracer() is tracing_module._tracer_holder["tracer"]
