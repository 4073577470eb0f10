from __future__ import annotations

import asyncio
import functools
import ipaddress
import logging
import math
import re
import shutil
import subprocess
import sys
import time
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from pythonping import ping as pythonping_ping

from core.probe_result import ProbeResult
from infrastructure.process_manager import CommandResult, ProcessManager

BACKENDS = ("system", "pythonping")

# Output fragments meaning "no reply" even when ping exits 0 (Windows does this)
_FAILURE_PATTERNS = (
    "request timed out",
    "unreachable",
    "100% packet loss",
    "100% loss",
    "заданный узел недоступен",
    "превышен интервал",
)

_LATENCY_RE = re.compile(r"(?:time|время)\s*[=<>]*\s*([0-9]+[.,]?[0-9]*)", re.IGNORECASE)
_SUB_MS_RE = re.compile(r"time\s*<\s*1\s*(?:ms|мс)?", re.IGNORECASE)
_AVERAGE_RE = re.compile(
    r"(?:Average|Среднее)\s*[=:]?\s*([0-9]+)[.,]?[0-9]*\s*(?:ms|мс)?", re.IGNORECASE
)


class PingService:
    """Single-shot ICMP echo probe.

    ``probe()`` never raises: OS-level outcomes become SUCCESS or FAILURE,
    exceptions become ERROR results.
    """

    def __init__(
        self,
        backend: str = "system",
        process_manager: ProcessManager | None = None,
        executor: Executor | None = None,
    ) -> None:
        if backend not in BACKENDS:
            raise ValueError(f"unknown probe backend: {backend!r}")
        self.backend = backend
        self.process_manager = process_manager or ProcessManager()
        self.executor = executor
        self._ping_cmd: str | None = None

    def is_available(self) -> bool:
        """Check if ping functionality is available."""
        if self.backend == "pythonping":
            return True
        return shutil.which("ping") is not None

    async def probe(self, host: str, timeout: float) -> ProbeResult:
        """Ping ``host`` once, waiting at most ``timeout`` seconds."""
        started = datetime.now(timezone.utc)
        try:
            if not host or host.strip().startswith("-"):
                # Prevent argument injection into the ping command line
                return ProbeResult.error(host, f"invalid host {host!r}", timestamp=started)
            if self.backend == "pythonping":
                return await self._probe_pythonping(host, timeout, started)
            return await self._probe_system(host, timeout, started)
        except Exception as exc:
            return ProbeResult.error(host, f"{type(exc).__name__}: {exc}", timestamp=started)

    async def aclose(self) -> None:
        """Release any subprocess still owned by this service."""
        await self.process_manager.cleanup()

    # ── system ping ──────────────────────────────────────────────────────

    def _build_ping_command(
        self, host: str, timeout: float
    ) -> Tuple[list[str], str, dict[str, Any]] | None:
        """Build the ping command, encoding and subprocess kwargs."""
        if self._ping_cmd is None:
            self._ping_cmd = shutil.which("ping")
        if not self._ping_cmd:
            return None

        seconds = str(max(1, math.ceil(timeout)))
        kwargs: dict[str, Any] = {}
        if sys.platform == "win32":
            cmd = [self._ping_cmd, "-n", "1", "-w", str(max(1, int(timeout * 1000))), host]
            encoding = "oem"
            # Prevent console windows for child processes
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW  # type: ignore[attr-defined]
        elif sys.platform == "darwin":
            cmd = [self._ping_cmd, "-c", "1", "-t", seconds, host]
            encoding = "utf-8"
        else:
            cmd = [self._ping_cmd, "-c", "1", "-W", seconds]
            if _is_ipv6_literal(host):
                cmd.append("-6")
            cmd.append(host)
            encoding = "utf-8"
        return cmd, encoding, kwargs

    async def _probe_system(self, host: str, timeout: float, started: datetime) -> ProbeResult:
        built = self._build_ping_command(host, timeout)
        if built is None:
            return ProbeResult.error(host, "ping command not available", timestamp=started)
        cmd, encoding, kwargs = built

        t0 = time.perf_counter()
        try:
            result = await self.process_manager.run_command(
                cmd, timeout=timeout, encoding=encoding, **kwargs
            )
        except asyncio.TimeoutError:
            return ProbeResult.failure(host, timestamp=started)
        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        return self._classify(host, result, elapsed_ms, started)

    def _classify(
        self, host: str, result: CommandResult, elapsed_ms: float, started: datetime
    ) -> ProbeResult:
        """Map ping's exit status and output to a probe outcome."""
        if result.returncode == 1:
            return ProbeResult.failure(host, timestamp=started)
        if result.returncode != 0:
            lines = (result.stderr.strip() or result.stdout.strip()).splitlines()
            detail = lines[-1] if lines else f"ping exited with status {result.returncode}"
            return ProbeResult.error(host, detail, timestamp=started)

        latency = _parse_latency(result.stdout)
        if latency is None:
            return ProbeResult.failure(host, timestamp=started)
        if latency < 0:
            # Reply without a parsable time field
            latency = elapsed_ms
        return ProbeResult.success(host, latency, timestamp=started)

    # ── pythonping ───────────────────────────────────────────────────────

    async def _probe_pythonping(self, host: str, timeout: float, started: datetime) -> ProbeResult:
        """In-process ICMP probe (needs raw socket privileges)."""
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            self.executor,
            functools.partial(pythonping_ping, host, count=1, timeout=timeout),
        )
        if response.success():
            return ProbeResult.success(host, float(response.rtt_avg_ms), timestamp=started)
        logging.debug(f"pythonping: no reply from {host}")
        return ProbeResult.failure(host, timestamp=started)


def _is_ipv6_literal(host: str) -> bool:
    try:
        return ipaddress.ip_address(host).version == 6
    except ValueError:
        return False


def _parse_latency(stdout: str) -> Optional[float]:
    """Parse ping output for latency.

    Returns:
        Latency in ms, ``None`` if the output reports no reply, or ``-1.0``
        if a reply was seen but carried no time field.
    """
    stdout_lower = stdout.lower()
    for pattern in _FAILURE_PATTERNS:
        if pattern in stdout_lower:
            return None

    match_time = _LATENCY_RE.search(stdout)
    if match_time:
        return float(match_time.group(1).replace(",", "."))

    if _SUB_MS_RE.search(stdout):
        return 0.5

    match_avg = _AVERAGE_RE.search(stdout)
    if match_avg:
        return float(match_avg.group(1))

    if stdout.strip():
        return -1.0
    return None
