"""PCI Tracker observability: OpenTelemetry tracing."""

from pcitrack.observability.tracing import configure_tracing, job_span

__all__ = ["configure_tracing", "job_span"]
