"""
Scheduler for periodic monitor cycles.

The scheduler owns its lifecycle state (idle or running). While running it
repeats: one monitor cycle, then a wait of ``interval`` seconds. Stopping
never interrupts the domain being checked; the in-flight cycle simply starts
no further domains.
"""

import asyncio
from typing import Optional

from .audit_logger import AuditLogger
from .enums import SchedulerState
from .models import CycleResult
from .monitor import DomainMonitor


COMPONENT = "scheduler"


class MonitorScheduler:
    """
    Runs DomainMonitor cycles on a fixed interval.

    ``start``/``stop`` drive a background task (used by the HTTP API);
    ``run`` is the autonomous shape used by the ``run`` command.
    """

    def __init__(
        self,
        monitor: DomainMonitor,
        interval_seconds: Optional[float] = None,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            monitor: Monitor whose cycles are scheduled
            interval_seconds: Wait between cycles (defaults to the monitor config)
            logger: Optional audit logger
        """
        self._monitor = monitor
        self._interval = (
            interval_seconds if interval_seconds is not None
            else monitor.config.interval_seconds
        )
        self._logger = logger
        self._state = SchedulerState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._retired: set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._state == SchedulerState.RUNNING

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def monitor(self) -> DomainMonitor:
        return self._monitor

    def start(self) -> bool:
        """
        Begin periodic cycles in a background task.

        Must be called from within a running event loop.

        Returns:
            False if the scheduler was already running
        """
        if self.is_running():
            return False
        self._state = SchedulerState.RUNNING
        # Each task gets its own event so a stopped task never sees a restart
        self._wake = asyncio.Event()
        if self._task is not None and not self._task.done():
            self._retired.add(self._task)
            self._task.add_done_callback(self._retired.discard)
        self._task = asyncio.create_task(self._loop(self._wake))
        self._log("success", "Monitoring started", {"interval_seconds": self._interval})
        return True

    def stop(self) -> bool:
        """
        Stop scheduling cycles.

        Returns:
            False if the scheduler was not running
        """
        if not self.is_running():
            return False
        self._state = SchedulerState.IDLE
        if self._wake is not None:
            self._wake.set()
        self._log("warning", "Monitoring stopped")
        return True

    async def wait_stopped(self) -> None:
        """Wait for the background task to wind down after ``stop``."""
        pending = [t for t in (*self._retired, self._task) if t is not None]
        if pending:
            await asyncio.gather(*pending)
        if self._task is not None and self._task.done():
            self._task = None

    async def trigger_once(self) -> CycleResult:
        """Run one cycle now; reported as skipped when one is already in flight."""
        self._log("info", "Manual check triggered")
        return await self._monitor.run_cycle()

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Run cycles until ``stop_event`` is set.

        Args:
            stop_event: Event signalling the loop to stop
        """
        self._state = SchedulerState.RUNNING
        self._log("success", "Autonomous monitoring started", {"interval_seconds": self._interval})
        try:
            while not stop_event.is_set():
                await self._cycle(lambda: not stop_event.is_set())
                if await self._wait(stop_event):
                    break
        finally:
            self._state = SchedulerState.IDLE
            self._log("info", "Autonomous monitoring finished")

    async def _loop(self, wake: asyncio.Event) -> None:
        while not wake.is_set():
            await self._cycle(lambda: not wake.is_set())
            if await self._wait(wake):
                break

    async def _cycle(self, should_continue) -> None:
        try:
            await self._monitor.run_cycle(should_continue)
        except Exception as e:
            # Next interval retries; nothing outside the loop can handle this
            if self._logger:
                self._logger.log_error(COMPONENT, "Monitor cycle failed", error=e)

    async def _wait(self, event: asyncio.Event) -> bool:
        """Sleep for one interval; True when ``event`` fired first."""
        try:
            await asyncio.wait_for(event.wait(), timeout=self._interval)
            return True
        except asyncio.TimeoutError:
            return False

    def _log(self, level: str, message: str, data: Optional[dict] = None) -> None:
        if self._logger:
            getattr(self._logger, level)(COMPONENT, message, data)
