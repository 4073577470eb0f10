"""
Core probe loop.

- ProbeResult / ProbeStatus: classified outcome of a single ping
- InstrumentRegistry: per-host metric handles, created once per host
- BackgroundTask: fixed-interval loop with cooperative shutdown
- ProbeRunner: sweeps all configured hosts every tick
"""

from .probe_result import ProbeResult, ProbeStatus
from .instrument_registry import HostInstrumentSet, InstrumentRegistry
from .background_task import BackgroundTask, TaskState
from .probe_runner import DEFAULT_INTERVAL, Prober, ProbeRunner

__all__ = [
    "ProbeResult",
    "ProbeStatus",
    "HostInstrumentSet",
    "InstrumentRegistry",
    "BackgroundTask",
    "TaskState",
    "DEFAULT_INTERVAL",
    "Prober",
    "ProbeRunner",
]
