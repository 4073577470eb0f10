"""Infrastructure layer: metrics export (Prometheus and OTLP), tracing and subprocess management."""

from .metrics import MetricsServer, ProbeMetrics, start_metrics_server
from .otel_metrics import METER_NAME, OtelProbeMetrics, build_meter_provider
from .process_manager import CommandResult, ProcessManager
from .tracing import TRACER_NAME, LoggingSpanProcessor, build_tracer_provider

__all__ = [
    # Metrics
    "MetricsServer",
    "ProbeMetrics",
    "start_metrics_server",
    "METER_NAME",
    "OtelProbeMetrics",
    "build_meter_provider",
    # Processes
    "CommandResult",
    "ProcessManager",
    # Tracing
    "TRACER_NAME",
    "LoggingSpanProcessor",
    "build_tracer_provider",
]
