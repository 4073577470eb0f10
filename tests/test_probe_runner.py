from __future__ import annotations

import asyncio
import socket
import unittest

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from core import InstrumentRegistry, ProbeResult, ProbeRunner, TaskState
from infrastructure.metrics import ProbeMetrics

from fakes import FakeClock, FakeProber

HOSTS = ["a.example", "b.example", "c.example"]


class ProbeRunnerTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.metrics = ProbeMetrics()
        self.registry = InstrumentRegistry(self.metrics)
        self.exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(self.exporter))
        self.tracer = provider.get_tracer("test")

    def make_runner(self, prober: FakeProber, hosts=HOSTS, **kwargs) -> ProbeRunner:
        kwargs.setdefault("interval", 60.0)
        kwargs.setdefault("timeout", 1.0)
        return ProbeRunner(
            hosts=hosts,
            prober=prober,
            registry=self.registry,
            tracer=self.tracer,
            **kwargs,
        )

    def failures(self, host: str) -> float:
        return self.metrics.registry.get_sample_value(
            "ping_host_failure_count_total", {"host": host}
        ) or 0.0


class TestSweep(ProbeRunnerTestCase):
    async def test_hosts_probed_in_configured_order(self):
        prober = FakeProber()
        runner = self.make_runner(prober)
        prober.on_probe = lambda host: runner.stop() if host == "c.example" else None

        await runner.run()

        self.assertEqual(prober.calls, HOSTS)
        self.assertEqual(self.registry.hosts, tuple(HOSTS))
        self.assertEqual(runner.sweeps_completed, 1)

    async def test_timeout_passed_to_prober(self):
        prober = FakeProber()
        runner = self.make_runner(prober, hosts=["a.example"], timeout=2.5)
        prober.on_probe = lambda host: runner.stop()

        await runner.run()

        self.assertEqual(prober.timeouts, [2.5])

    async def test_timeout_clamped_to_interval(self):
        runner = self.make_runner(FakeProber(), interval=10.0, timeout=30.0)
        self.assertEqual(runner.timeout, 10.0)
        self.assertEqual(self.make_runner(FakeProber(), timeout=None).timeout, 60.0)

    async def test_spans_carry_host_and_status(self):
        prober = FakeProber(
            outcomes={
                "b.example": ProbeResult.failure,
                "c.example": lambda host: ProbeResult.error(host, "permission denied"),
            }
        )
        runner = self.make_runner(prober)
        prober.on_probe = lambda host: runner.stop() if host == "c.example" else None

        await runner.run()

        spans = self.exporter.get_finished_spans()
        self.assertEqual([s.name for s in spans], ["Ping"] * 3)
        self.assertEqual([s.attributes["host"] for s in spans], HOSTS)
        self.assertEqual(
            [s.attributes["status"] for s in spans], ["success", "failure", "error"]
        )
        self.assertEqual(spans[0].attributes["roundtrip_time_ms"], 10)
        self.assertNotIn("roundtrip_time_ms", spans[1].attributes)
        self.assertEqual(spans[2].status.status_code, StatusCode.ERROR)

    async def test_one_log_event_per_outcome(self):
        prober = FakeProber(outcomes={"b.example": ProbeResult.failure})
        runner = self.make_runner(prober, hosts=["a.example", "b.example"])
        prober.on_probe = lambda host: runner.stop() if host == "b.example" else None

        with self.assertLogs(level="INFO") as logs:
            await runner.run()

        outcome_records = [r for r in logs.records if r.getMessage().startswith("Ping to")]
        self.assertEqual(len(outcome_records), 2)
        self.assertEqual(outcome_records[0].host, "a.example")
        self.assertEqual(outcome_records[0].latency_ms, 10)
        self.assertEqual(outcome_records[1].status, "failure")

    async def test_bounded_parallel_sweep_probes_each_host_once(self):
        prober = FakeProber(delay=0.01)
        runner = self.make_runner(prober, concurrency=3)
        self.assertTrue(await runner.setup())

        await runner.sweep()

        self.assertEqual(sorted(prober.calls), HOSTS)
        self.assertGreater(prober.max_in_flight, 1)
        self.assertEqual(len(self.registry), 3)


class TestStartup(ProbeRunnerTestCase):
    async def test_empty_hosts_stop_without_probing(self):
        for hosts in ([], None):
            prober = FakeProber()
            runner = self.make_runner(prober, hosts=hosts)

            with self.assertLogs(level="WARNING") as logs:
                await runner.run()

            warnings = [r for r in logs.records if "No hosts configured" in r.getMessage()]
            self.assertEqual(len(warnings), 1)
            self.assertEqual(prober.calls, [])
            self.assertEqual(runner.state, TaskState.STOPPED)
            self.assertEqual(runner.sweeps_completed, 0)

    async def test_run_twice_is_rejected(self):
        runner = self.make_runner(FakeProber(), hosts=[])
        await runner.run()
        with self.assertRaises(RuntimeError):
            await runner.run()

    async def test_teardown_closes_prober(self):
        prober = FakeProber()
        runner = self.make_runner(prober, hosts=["a.example"])
        prober.on_probe = lambda host: runner.stop()

        await runner.run()

        self.assertTrue(prober.closed)


class TestCancellation(ProbeRunnerTestCase):
    async def test_stop_after_first_host_skips_rest_of_sweep(self):
        prober = FakeProber()
        runner = self.make_runner(prober)
        states = []

        def _stop_after_first(host: str) -> None:
            if host == "a.example":
                states.append(runner.state)
                runner.stop()
                states.append(runner.state)

        prober.on_probe = _stop_after_first

        await runner.run()

        self.assertEqual(prober.calls, ["a.example"])
        self.assertEqual(states, [TaskState.RUNNING, TaskState.STOPPING])
        self.assertEqual(runner.state, TaskState.STOPPED)
        # The in-flight probe is still recorded in full
        self.assertIn("a.example", self.registry)
        self.assertNotIn("b.example", self.registry)
        self.assertNotIn("c.example", self.registry)

    async def test_stop_wakes_pending_tick_wait(self):
        prober = FakeProber()
        runner = self.make_runner(prober, hosts=["a.example"], interval=3600.0)
        task = runner.start()

        while runner.sweeps_completed < 1:
            await asyncio.sleep(0.001)
        runner.stop()

        await asyncio.wait_for(task, timeout=1.0)
        self.assertEqual(runner.state, TaskState.STOPPED)
        self.assertEqual(prober.calls, ["a.example"])


class TestErrorsAndTicks(ProbeRunnerTestCase):
    async def test_raising_probe_recorded_as_error_and_retried(self):
        hosts = ["good.example", "bad.host"]
        prober = FakeProber(
            outcomes={"bad.host": socket.gaierror(-2, "Name or service not known")}
        )
        runner = self.make_runner(prober, hosts=hosts, interval=0.01, timeout=0.01)
        prober.on_probe = lambda host: runner.stop() if len(prober.calls) == 4 else None

        with self.assertLogs(level="ERROR") as logs:
            await runner.run()

        self.assertEqual(prober.calls, hosts * 2)
        self.assertEqual(self.failures("bad.host"), 2.0)
        self.assertEqual(self.failures("good.example"), 0.0)
        self.assertTrue(any("bad.host" in r.getMessage() for r in logs.records))
        error_spans = [
            s for s in self.exporter.get_finished_spans() if s.attributes["status"] == "error"
        ]
        self.assertEqual(len(error_spans), 2)

    async def test_interval_measured_start_to_start(self):
        clock = FakeClock()
        prober = FakeProber(on_probe=lambda host: clock.advance(5.0))
        runner = self.make_runner(prober, hosts=["a.example", "b.example"], clock=clock)
        delays = []

        async def _record_wait(delay: float) -> bool:
            delays.append(delay)
            return len(delays) >= 2

        runner._wait_for_tick = _record_wait
        await runner.run()

        self.assertEqual(delays, [50.0, 50.0])

    async def test_overrunning_sweep_starts_next_immediately(self):
        clock = FakeClock()
        prober = FakeProber()
        runner = self.make_runner(prober, hosts=["a.example", "b.example"], clock=clock)

        def _slow(host: str) -> None:
            clock.advance(35.0)
            if len(prober.calls) == 4:
                runner.stop()

        prober.on_probe = _slow
        delays = []
        real_wait = runner._wait_for_tick

        async def _record_wait(delay: float) -> bool:
            delays.append(delay)
            return await real_wait(delay)

        runner._wait_for_tick = _record_wait

        with self.assertLogs(level="WARNING"):
            await asyncio.wait_for(runner.run(), timeout=1.0)

        # 70s sweep against a 60s interval: no sleep, no skipped sweep
        self.assertEqual(delays[0], -10.0)
        self.assertEqual(prober.calls, ["a.example", "b.example"] * 2)
        self.assertEqual(prober.max_in_flight, 1)
        self.assertEqual(runner.sweeps_completed, 2)


if __name__ == "__main__":
    unittest.main()
