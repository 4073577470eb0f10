"""OpenTelemetry metric instruments pushed to an OTLP collector."""

from __future__ import annotations

import logging
from typing import Sequence

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import MetricReader, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

METER_NAME = "ping-probe"


class OtelProbeMetrics:
    """The same families as ``ProbeMetrics``, as OpenTelemetry instruments.

    Per-host series carry a ``host`` attribute instead of a label child.
    """

    def __init__(self, meter_provider: MeterProvider) -> None:
        meter = meter_provider.get_meter(METER_NAME)

        self.success_total = meter.create_counter(
            "ping_success_count", description="Successful pings across all hosts"
        )
        self.failure_total = meter.create_counter(
            "ping_failure_count", description="Failed pings across all hosts"
        )
        self.host_success = meter.create_counter(
            "ping_host_success_count", description="Successful pings per host"
        )
        self.host_failure = meter.create_counter(
            "ping_host_failure_count", description="Failed pings per host"
        )
        self.host_latency = meter.create_histogram(
            "ping_roundtrip_time_ms", unit="ms", description="Ping round-trip time in milliseconds"
        )


def build_meter_provider(
    service_name: str,
    otlp_endpoint: str | None = None,
    readers: Sequence[MetricReader] = (),
    export_interval_millis: float | None = None,
) -> MeterProvider | None:
    """Create a meter provider exporting to OTLP gRPC.

    Args:
        service_name: Value of the ``service.name`` resource attribute
        otlp_endpoint: gRPC collector endpoint
        readers: Extra metric readers
        export_interval_millis: Push period of the OTLP reader

    Returns:
        MeterProvider, or None when there is nowhere to send metrics
    """
    metric_readers = list(readers)

    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter

        metric_readers.append(
            PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=otlp_endpoint),
                export_interval_millis=export_interval_millis,
            )
        )
        logging.info(f"OTLP metric export enabled: {otlp_endpoint}")

    if not metric_readers:
        return None

    return MeterProvider(
        resource=Resource.create({SERVICE_NAME: service_name}),
        metric_readers=metric_readers,
    )
