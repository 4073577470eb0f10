from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any

from rich.console import Console

from config import Settings
from core import InstrumentRegistry, ProbeRunner
from infrastructure import (
    TRACER_NAME,
    MetricsServer,
    OtelProbeMetrics,
    ProbeMetrics,
    ProcessManager,
    build_meter_provider,
    build_tracer_provider,
    start_metrics_server,
)
from services import PingService


class ProbeApp:
    """Wires the probe daemon together and owns its lifecycle."""

    def __init__(self, settings: Settings, console: Console | None = None) -> None:
        self.settings = settings
        self.console = console or Console(stderr=True)
        self._shutdown_called = False

        # Telemetry objects are built once here and passed down explicitly
        self.metrics = ProbeMetrics()
        self.meter_provider = build_meter_provider(
            settings.SERVICE_NAME, otlp_endpoint=settings.OTLP_ENDPOINT
        )
        otel = OtelProbeMetrics(self.meter_provider) if self.meter_provider is not None else None
        self.registry = InstrumentRegistry(self.metrics, otel=otel)
        self.tracer_provider = build_tracer_provider(
            settings.SERVICE_NAME,
            otlp_endpoint=settings.OTLP_ENDPOINT,
            console=settings.ENABLE_CONSOLE_TRACING,
        )
        self.metrics_server: MetricsServer | None = None

        self.prober = PingService(
            backend=settings.PROBE_BACKEND,
            process_manager=ProcessManager(max_concurrent=settings.MAX_CONCURRENT_PROCESSES),
        )
        self.runner = ProbeRunner(
            hosts=settings.HOSTS,
            prober=self.prober,
            registry=self.registry,
            tracer=self.tracer_provider.get_tracer(TRACER_NAME),
            interval=settings.INTERVAL,
            timeout=settings.PROBE_TIMEOUT,
            concurrency=settings.PROBE_CONCURRENCY,
        )

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        signals = [signal.SIGINT, signal.SIGTERM]
        if hasattr(signal, "SIGHUP"):
            signals.append(signal.SIGHUP)  # type: ignore[attr-defined]

        for sig in signals:
            try:
                loop.add_signal_handler(sig, self._request_stop, sig)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                def handler(signum: int, frame: Any) -> None:
                    loop.call_soon_threadsafe(self._request_stop, signum)

                signal.signal(sig, handler)

    def _request_stop(self, signum: int) -> None:
        logging.info(f"Received signal {signal.Signals(signum).name}, stopping after current probe...")
        self.console.print("\n[bold red]Stopping...[/bold red]")
        self.runner.stop()

    async def run(self) -> int:
        """Run until stopped; returns the process exit code."""
        self._install_signal_handlers()

        hosts = self.settings.HOSTS
        self.console.print(
            f"\n[bold green]>>> {self.settings.SERVICE_NAME} {self.settings.VERSION}: "
            f"{len(hosts)} host(s) every {self.settings.INTERVAL:g}s <<<[/bold green]"
        )

        if self.settings.ENABLE_METRICS and hosts:
            self.metrics_server = start_metrics_server(
                self.metrics, addr=self.settings.METRICS_ADDR, port=self.settings.METRICS_PORT
            )

        try:
            await self.runner.run()
        finally:
            self.shutdown()
        self.console.print("[dim]Probe daemon stopped[/dim]")
        return 0

    def shutdown(self) -> None:
        """Stop exporters and flush pending spans and metrics (idempotent)."""
        if self._shutdown_called:
            return
        self._shutdown_called = True

        if self.metrics_server is not None:
            self.metrics_server.stop()
        timeout_millis = self.settings.SHUTDOWN_TIMEOUT_SECONDS * 1000
        if self.meter_provider is not None:
            self.meter_provider.shutdown(timeout_millis=timeout_millis)
        self.tracer_provider.force_flush(timeout_millis=timeout_millis)
        self.tracer_provider.shutdown()


async def run_async_main(settings: Settings) -> int:
    app = ProbeApp(settings)
    return await app.run()


__all__ = ["ProbeApp", "run_async_main"]
