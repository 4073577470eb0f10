"""
Probe runner - the sweep loop.

Every tick probes each configured host once, in configured order, and
records each outcome through the InstrumentRegistry inside a ``Ping`` span.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable, Protocol

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .background_task import BackgroundTask
from .instrument_registry import InstrumentRegistry
from .probe_result import ProbeResult, ProbeStatus

DEFAULT_INTERVAL = 60.0


class Prober(Protocol):
    async def probe(self, host: str, timeout: float) -> ProbeResult: ...

    async def aclose(self) -> None: ...


class ProbeRunner(BackgroundTask):
    """Fixed-interval sweep over the configured hosts."""

    def __init__(
        self,
        *,
        hosts: Iterable[str] | None,
        prober: Prober,
        registry: InstrumentRegistry,
        tracer: trace.Tracer | None = None,
        interval: float = DEFAULT_INTERVAL,
        timeout: float | None = None,
        concurrency: int = 1,
        stop_event: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(name="ProbeRunner", interval=interval, stop_event=stop_event, clock=clock)
        self._configured_hosts = hosts
        self.hosts: tuple[str, ...] = ()
        self.prober = prober
        self.registry = registry
        self.tracer = tracer if tracer is not None else trace.NoOpTracer()
        self.concurrency = max(1, concurrency)

        if timeout is None or timeout > interval:
            if timeout is not None:
                logging.warning(f"Probe timeout {timeout}s exceeds interval; using {interval}s")
            timeout = interval
        self.timeout = timeout

    @property
    def sweeps_completed(self) -> int:
        return self.iterations

    async def setup(self) -> bool:
        hosts = tuple(host for host in (self._configured_hosts or ()) if host)
        if not hosts:
            logging.warning("No hosts configured; probe runner will not start")
            return False

        self.hosts = hosts
        logging.info(
            f"Hosts: {', '.join(hosts)} (interval {self.interval:g}s, timeout {self.timeout:g}s)",
            extra={"hosts": list(hosts)},
        )
        return True

    async def execute(self) -> None:
        await self.sweep()

    async def teardown(self) -> None:
        await self.prober.aclose()

    async def sweep(self) -> None:
        """Probe every host once; remaining hosts are skipped after a stop request."""
        if self.concurrency == 1:
            for index, host in enumerate(self.hosts):
                if self.stop_requested:
                    logging.info(f"Stop requested, skipping {len(self.hosts) - index} remaining host(s)")
                    return
                await self.probe_host(host)
            return

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(host: str) -> None:
            async with semaphore:
                if self.stop_requested:
                    return
                await self.probe_host(host)

        await asyncio.gather(*(_bounded(host) for host in self.hosts))

    async def probe_host(self, host: str) -> ProbeResult:
        """Probe one host and record the outcome."""
        with self.tracer.start_as_current_span("Ping") as span:
            span.set_attribute("host", host)
            try:
                result = await self.prober.probe(host, self.timeout)
            except Exception as exc:
                result = ProbeResult.error(host, f"{type(exc).__name__}: {exc}")

            span.set_attribute("status", result.status.value)
            if result.status is ProbeStatus.SUCCESS and result.latency_ms is not None:
                span.set_attribute("roundtrip_time_ms", result.latency_ms)
            elif result.status is ProbeStatus.ERROR:
                span.set_status(Status(StatusCode.ERROR, result.error_detail))

            self.registry.record(result)
            self._log_outcome(result)
        return result

    def _log_outcome(self, result: ProbeResult) -> None:
        extra = {"host": result.host, "status": result.status.value}
        if result.status is ProbeStatus.SUCCESS:
            extra["latency_ms"] = result.latency_ms
            logging.info(
                f"Ping to {result.host} successful. Roundtrip time: {result.latency_ms}ms",
                extra=extra,
            )
        elif result.status is ProbeStatus.FAILURE:
            logging.info(f"Ping to {result.host} failed", extra=extra)
        else:
            extra["error"] = result.error_detail
            logging.error(
                f"Ping to {result.host} failed with exception: {result.error_detail}",
                extra=extra,
            )
