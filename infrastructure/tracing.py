"""OpenTelemetry tracer provider setup and span dump processor."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import ReadableSpan, SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

TRACER_NAME = "ping-probe"


def _fmt_ns(timestamp_ns: int | None) -> str:
    if timestamp_ns is None:
        return "-"
    return datetime.fromtimestamp(timestamp_ns / 1e9, tz=timezone.utc).isoformat()


class LoggingSpanProcessor(SpanProcessor):
    """Dump every finished span to the log, one block per span."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def on_end(self, span: ReadableSpan) -> None:
        ctx = span.context
        duration_ms = None
        if span.start_time is not None and span.end_time is not None:
            duration_ms = (span.end_time - span.start_time) / 1e6
        scope = span.instrumentation_scope.name if span.instrumentation_scope else "-"

        lines = [
            f"Span.TraceId: {ctx.trace_id:032x}",
            f"Span.SpanId: {ctx.span_id:016x}",
            f"Span.TraceFlags: {int(ctx.trace_flags):02x}",
            f"Span.Source: {scope}",
            f"Span.Name: {span.name}",
            f"Span.Kind: {span.kind.name}",
            f"Span.StartTime: {_fmt_ns(span.start_time)}",
            f"Span.Duration: {duration_ms}ms",
            "Span.Attributes:",
        ]
        for key, value in (span.attributes or {}).items():
            lines.append(f"    {key}: {value}")
        logging.log(self.level, "\n".join(lines))


def build_tracer_provider(
    service_name: str,
    otlp_endpoint: str | None = None,
    console: bool = False,
) -> TracerProvider:
    """Create the process tracer provider.

    Args:
        service_name: Value of the ``service.name`` resource attribute
        otlp_endpoint: gRPC collector endpoint; no OTLP export when empty
        console: Attach the span dump processor

    Returns:
        Configured TracerProvider (not installed as the global provider)
    """
    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: service_name}))

    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))
        logging.info(f"OTLP span export enabled: {otlp_endpoint}")

    if console:
        provider.add_span_processor(LoggingSpanProcessor())

    return provider
