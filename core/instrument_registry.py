"""
Instrument registry - per-host metric handles.

Single Responsibility: Resolve (creating on first sight) the instruments for
a host and record probe outcomes through them.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from .probe_result import ProbeResult, ProbeStatus

if TYPE_CHECKING:
    from infrastructure.metrics import ProbeMetrics
    from infrastructure.otel_metrics import OtelProbeMetrics


@dataclass(frozen=True)
class HostInstrumentSet:
    """Recording handles bound to one host label."""
    host: str
    success: Any
    failure: Any
    latency: Any


class InstrumentRegistry:
    """
    Lazily creates and memoizes one HostInstrumentSet per host.

    The host map is the only mutable state shared between probes, so the
    lookup-or-insert runs under a lock. Instrument sets are never evicted.
    """

    def __init__(self, metrics: ProbeMetrics, otel: OtelProbeMetrics | None = None) -> None:
        self.metrics = metrics
        self.otel = otel
        self._lock = threading.Lock()
        self._instruments: dict[str, HostInstrumentSet] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._instruments)

    def __contains__(self, host: object) -> bool:
        with self._lock:
            return host in self._instruments

    @property
    def hosts(self) -> tuple[str, ...]:
        """Hosts with instruments, in first-seen order."""
        with self._lock:
            return tuple(self._instruments)

    def instruments_for(self, host: str) -> HostInstrumentSet:
        """Return the instrument set for ``host``, creating it on first sight.

        Raises:
            ValueError: If ``host`` is empty.
        """
        if not host:
            raise ValueError("host must be a non-empty string")

        with self._lock:
            instruments = self._instruments.get(host)
            if instruments is None:
                instruments = HostInstrumentSet(
                    host=host,
                    success=self.metrics.host_success.labels(host=host),
                    failure=self.metrics.host_failure.labels(host=host),
                    latency=self.metrics.host_latency.labels(host=host),
                )
                self._instruments[host] = instruments
                logging.debug(f"Created instruments for host {host}")
            return instruments

    def record(self, result: ProbeResult) -> None:
        """
        Record one probe outcome.

        SUCCESS counts a success and observes the latency. FAILURE and ERROR
        count a failure only; the error detail is left to the log. Each sink
        call is attempted on its own, so one broken sink does not skip the rest.

        Raises:
            ValueError: If ``result.host`` is empty.
        """
        host = result.host
        instruments = self.instruments_for(host)
        otel = self.otel
        attributes = {"host": host}

        if result.status is ProbeStatus.SUCCESS:
            self._emit(host, instruments.success.inc)
            self._emit(host, self.metrics.success_total.inc)
            if result.latency_ms is not None:
                self._emit(host, instruments.latency.observe, result.latency_ms)
            if otel is not None:
                self._emit(host, otel.host_success.add, 1, attributes)
                self._emit(host, otel.success_total.add, 1)
                if result.latency_ms is not None:
                    self._emit(host, otel.host_latency.record, result.latency_ms, attributes)
        else:
            self._emit(host, instruments.failure.inc)
            self._emit(host, self.metrics.failure_total.inc)
            if otel is not None:
                self._emit(host, otel.host_failure.add, 1, attributes)
                self._emit(host, otel.failure_total.add, 1)

    @staticmethod
    def _emit(host: str, sink: Callable[..., Any], *args: Any) -> None:
        try:
            sink(*args)
        except Exception as exc:
            # Sink trouble must not reach the sweep
            logging.warning(f"Failed to record metrics for {host}: {exc}")
