"""
Abstract base class for fixed-interval background tasks.

Provides the shared setup/execute/wait loop, the lifecycle state machine
and cooperative shutdown through an ``asyncio.Event``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable


class TaskState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class BackgroundTask(ABC):
    """Base class for periodic tasks.

    Subclasses implement ``execute()`` with their single-iteration logic.
    The shared ``run()`` method drives ``IDLE -> RUNNING -> STOPPING ->
    STOPPED``. Iterations start ``interval`` seconds apart (start to start);
    an iteration that overruns the interval is followed immediately by the
    next one, never by two at once.
    """

    def __init__(
        self,
        *,
        name: str,
        interval: float,
        stop_event: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.stop_event = stop_event if stop_event is not None else asyncio.Event()
        self.clock = clock
        self.state = TaskState.IDLE
        self.iterations = 0

    @property
    def stop_requested(self) -> bool:
        return self.stop_event.is_set()

    # ── lifecycle ────────────────────────────────────────────────────────

    async def setup(self) -> bool:
        """One-time setup before the loop starts.

        Return False to skip the loop entirely and go straight to STOPPED.
        """
        return True

    @abstractmethod
    async def execute(self) -> None:
        """Single iteration of the task, implemented by subclasses."""

    async def teardown(self) -> None:
        """Release resources; runs on every path to STOPPED."""

    def start(self) -> asyncio.Task:
        """Schedule ``run()`` on the running loop."""
        return asyncio.create_task(self.run(), name=self.name)

    def stop(self) -> None:
        """Request a cooperative stop; the current unit of work is allowed to finish."""
        if self.state is TaskState.RUNNING:
            self.state = TaskState.STOPPING
        self.stop_event.set()

    async def run(self) -> None:
        """Main loop: setup → (execute → wait for tick) until stopped."""
        if self.state is not TaskState.IDLE:
            raise RuntimeError(f"{self.name} has already been started")

        try:
            if not await self.setup() or self.stop_requested:
                return
            self.state = TaskState.RUNNING

            while not self.stop_requested:
                tick_start = self.clock()
                try:
                    await self.execute()
                except Exception as exc:
                    logging.error(f"{self.name} failed: {exc}")
                self.iterations += 1

                elapsed = self.clock() - tick_start
                if elapsed >= self.interval:
                    logging.warning(
                        f"{self.name} iteration took {elapsed:.1f}s "
                        f"(interval {self.interval:.1f}s); starting next one immediately"
                    )
                if await self._wait_for_tick(self.interval - elapsed):
                    break
        finally:
            if self.state is TaskState.RUNNING:
                self.state = TaskState.STOPPING
            try:
                await self.teardown()
            finally:
                self.state = TaskState.STOPPED
                logging.info(f"{self.name} stopped")

    async def _wait_for_tick(self, delay: float) -> bool:
        """Sleep until the next tick or a stop request.

        Returns:
            True if a stop was requested.
        """
        if delay <= 0:
            return self.stop_requested
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True
