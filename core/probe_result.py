"""
Probe result - outcome of a single reachability check.

Single Responsibility: Carry the classified outcome of one ping attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ProbeStatus(str, Enum):
    """Three-way classification of a probe outcome."""

    SUCCESS = "success"   # reply received within the timeout
    FAILURE = "failure"   # unreachable or timed out, no exception
    ERROR = "error"       # the probe call itself raised


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProbeResult:
    """Result of a ping attempt."""
    host: str
    status: ProbeStatus
    latency_ms: int | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    error_detail: str | None = None

    @classmethod
    def success(
        cls, host: str, latency_ms: float, timestamp: datetime | None = None
    ) -> ProbeResult:
        return cls(
            host=host,
            status=ProbeStatus.SUCCESS,
            latency_ms=max(0, int(round(latency_ms))),
            timestamp=timestamp or _utcnow(),
        )

    @classmethod
    def failure(cls, host: str, timestamp: datetime | None = None) -> ProbeResult:
        return cls(host=host, status=ProbeStatus.FAILURE, timestamp=timestamp or _utcnow())

    @classmethod
    def error(
        cls, host: str, detail: str, timestamp: datetime | None = None
    ) -> ProbeResult:
        return cls(
            host=host,
            status=ProbeStatus.ERROR,
            timestamp=timestamp or _utcnow(),
            error_detail=detail or "unknown error",
        )

    @property
    def is_success(self) -> bool:
        return self.status is ProbeStatus.SUCCESS

    @property
    def is_timeout(self) -> bool:
        """Check if ping failed without a reply (no latency)."""
        return self.status is ProbeStatus.FAILURE and self.latency_ms is None
