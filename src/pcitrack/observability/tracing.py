"""OpenTelemetry tracing for PCI Tracker.

What gets a span:
    - every HTTP request (FastAPI instrumentation, /health excluded)
    - every chat delivery (manual span in notifications.slack, plus httpx)
    - every store query when running on Postgres (SQLAlchemy instrumentation)
    - every job run (job_span, used by the scheduler)

Environment Variables:
    PCITRACK_OTEL_ENABLED: "1" turns tracing on (default: off)
    PCITRACK_REQUIRE_OTEL: "1" makes a failed setup fatal
    PCITRACK_OTEL_SERVICE_NAME: service.name resource attribute (default: "pcitrack")
    PCITRACK_OTEL_EXPORTER: "otlp" or "console" (default: "otlp")
    PCITRACK_OTEL_EXPORTER_OTLP_ENDPOINT: collector endpoint (optional)
    PCITRACK_OTEL_EXPORTER_OTLP_PROTOCOL: "grpc" or "http" (default: "grpc")
    PCITRACK_OTEL_TEST_CAPTURE: "1" keeps spans in memory for tests

Spans never carry tokens, SMTP credentials or message bodies.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
    from opentelemetry.sdk.trace.export import SpanExporter

logger = logging.getLogger(__name__)


class TracingConfigError(Exception):
    """Tracing setup failed while PCITRACK_REQUIRE_OTEL=1."""

    pass


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _value(name: str, default: str) -> str:
    return os.environ.get(name, "").strip() or default


@dataclass(frozen=True)
class TracingSettings:
    """Tracing options read from PCITRACK_OTEL_* variables."""

    enabled: bool
    required: bool
    service_name: str
    exporter: str
    otlp_endpoint: str
    otlp_protocol: str
    test_capture: bool

    @classmethod
    def from_env(cls) -> TracingSettings:
        return cls(
            enabled=_flag("PCITRACK_OTEL_ENABLED"),
            required=_flag("PCITRACK_REQUIRE_OTEL"),
            service_name=_value("PCITRACK_OTEL_SERVICE_NAME", "pcitrack"),
            exporter=_value("PCITRACK_OTEL_EXPORTER", "otlp"),
            otlp_endpoint=_value("PCITRACK_OTEL_EXPORTER_OTLP_ENDPOINT", ""),
            otlp_protocol=_value("PCITRACK_OTEL_EXPORTER_OTLP_PROTOCOL", "grpc"),
            test_capture=_flag("PCITRACK_OTEL_TEST_CAPTURE"),
        )


@dataclass
class _TracingState:
    provider: TracerProvider | None = None
    memory_exporter: Any = None


# The global TracerProvider can be installed once per process.
_state = _TracingState()


def tracing_enabled() -> bool:
    """True when PCITRACK_OTEL_ENABLED is set."""
    return _flag("PCITRACK_OTEL_ENABLED")


def _build_exporter(settings: TracingSettings) -> tuple[SpanExporter, bool]:
    """Exporter for the configured target, and whether it needs batching."""
    if settings.test_capture:
        from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
            InMemorySpanExporter,
        )

        _state.memory_exporter = InMemorySpanExporter()
        return _state.memory_exporter, False

    if settings.exporter == "console":
        from opentelemetry.sdk.trace.export import ConsoleSpanExporter

        return ConsoleSpanExporter(), False

    kwargs = {"endpoint": settings.otlp_endpoint} if settings.otlp_endpoint else {}
    if settings.otlp_protocol == "http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    else:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
    return OTLPSpanExporter(**kwargs), True


def configure_tracing() -> bool:
    """Install the tracer provider once.

    Returns:
        True if tracing is on and a provider is installed, False otherwise.

    Raises:
        TracingConfigError: If setup fails and PCITRACK_REQUIRE_OTEL=1.
    """
    settings = TracingSettings.from_env()
    if not settings.enabled:
        logger.debug("Tracing disabled (PCITRACK_OTEL_ENABLED not set)")
        return False
    if _state.provider is not None:
        return True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        exporter, batched = _build_exporter(settings)
        resource = Resource.create({"service.name": settings.service_name})
        provider = TracerProvider(resource=resource)
        processor = BatchSpanProcessor(exporter) if batched else SimpleSpanProcessor(exporter)
        provider.add_span_processor(processor)
        trace.set_tracer_provider(provider)
        _state.provider = provider
    except Exception as e:
        logger.error("Failed to configure tracing: %s", e)
        if settings.required:
            raise TracingConfigError(f"Tracing required but setup failed: {e}") from e
        return False

    logger.info(
        "Tracing configured: service=%s exporter=%s",
        settings.service_name,
        "in-memory" if settings.test_capture else settings.exporter,
    )
    return True


def _instrument(target: str, apply: Callable[[], None]) -> None:
    """Run one instrumentor when tracing is on; failures only warn."""
    if not tracing_enabled():
        return
    try:
        apply()
        logger.debug("%s instrumented", target)
    except Exception as e:
        logger.warning("Failed to instrument %s: %s", target, e)


def instrument_fastapi(app: Any) -> None:
    """Span per HTTP request, health checks excluded."""

    def apply() -> None:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")

    _instrument("FastAPI", apply)


def instrument_httpx() -> None:
    """Client spans for outbound chat API calls."""

    def apply() -> None:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()

    _instrument("httpx", apply)


def instrument_sqlalchemy(engine: Any) -> None:
    """Spans for document and user store queries."""

    def apply() -> None:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

        SQLAlchemyInstrumentor().instrument(engine=engine, enable_commenter=False)

    _instrument("SQLAlchemy", apply)


@contextmanager
def job_span(job_name: str, trigger: str) -> Iterator[Any]:
    """Span around one job run. A no-op span when tracing is not configured."""
    from opentelemetry import trace

    tracer = trace.get_tracer("pcitrack.scheduler")
    with tracer.start_as_current_span(
        "job.run",
        attributes={"pcitrack.job_name": job_name, "pcitrack.job_trigger": trigger},
    ) as span:
        yield span


def get_test_spans() -> list[ReadableSpan]:
    """Finished spans held by the in-memory exporter (empty outside test capture)."""
    if _state.memory_exporter is None:
        return []
    return list(_state.memory_exporter.get_finished_spans())


def reset_tracing() -> None:
    """Drop captured spans between tests. The provider itself stays installed."""
    if _state.memory_exporter is not None:
        _state.memory_exporter.clear()
