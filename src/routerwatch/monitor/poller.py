"""Fixed-interval scan scheduling with timeout, back-off and self-stop."""

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from routerwatch.router.base import RouterError, RouterSnapshotSource

logger = logging.getLogger(__name__)


class MonitorState(enum.StrEnum):
    stopped = "stopped"
    running = "running"


class MonitoringStopped(RouterError):
    """A monitor gave up after too many consecutive failed scans."""

    def __init__(self, name: str, failures: int, last_error: str | None) -> None:
        self.name = name
        self.failures = failures
        self.last_error = last_error
        super().__init__(
            f"{name} monitoring stopped after {failures} consecutive failures"
            f" (last error: {last_error})"
        )


class PollLoop:
    """Runs `scan` every `interval` seconds on a single background task.

    Scans never overlap. A failed or timed-out scan is counted and the
    schedule continues; after `max_consecutive_failures` in a row the loop
    stops itself and notifies `on_stopped` callbacks.
    """

    def __init__(
        self,
        name: str,
        scan: Callable[[], Awaitable[Any]],
        interval: float,
        scan_timeout: float = 30.0,
        max_consecutive_failures: int = 10,
        source: RouterSnapshotSource | None = None,
    ) -> None:
        self.name = name
        self.scan = scan
        self.interval = interval
        self.scan_timeout = scan_timeout
        self.max_consecutive_failures = max_consecutive_failures
        self.source = source
        self.state = MonitorState.stopped
        self.consecutive_failures = 0
        self.total_scans = 0
        self.failed_scans = 0
        self.last_scan_at: datetime | None = None
        self.last_error: str | None = None
        self.terminal_error: MonitoringStopped | None = None
        self._lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stop_callbacks: list[Callable[[MonitoringStopped], None]] = []

    @property
    def running(self) -> bool:
        return self.state is MonitorState.running

    def on_stopped(self, callback: Callable[[MonitoringStopped], None]) -> None:
        """Register a callback for the terminal stop after sustained failure."""
        self._stop_callbacks.append(callback)

    async def start(self) -> None:
        if self.running:
            logger.info("%s monitoring is already running", self.name)
            return

        logger.info("Starting %s monitoring (interval=%ss)", self.name, self.interval)
        self.state = MonitorState.running
        self.consecutive_failures = 0
        self.terminal_error = None
        self._wake.clear()

        await self._run_scan()
        if self.running:
            self._task = asyncio.create_task(self._loop(), name=f"poll-{self.name}")

    async def stop(self) -> None:
        """Cancel the schedule. An in-flight scan is allowed to finish."""
        was_running = self.running
        self.state = MonitorState.stopped
        self._wake.set()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await task
        if was_running:
            logger.info("%s monitoring stopped", self.name)

    async def join(self) -> None:
        """Wait for the schedule to end; raise MonitoringStopped if it gave up."""
        if self._task is not None:
            await self._task
        if self.terminal_error is not None:
            raise self.terminal_error

    async def scan_now(self) -> bool:
        """Run one scan outside the schedule. Skipped if a scan is in flight."""
        if self._lock.locked():
            logger.info("%s scan already in progress, skipping manual scan", self.name)
            return False
        return await self._run_scan()

    async def _loop(self) -> None:
        while self.running:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except TimeoutError:
                pass
            if not self.running:
                break
            await self._run_scan()

    async def _run_scan(self) -> bool:
        async with self._lock:
            if self.source is not None and not self.source.healthy:
                try:
                    await self.source.reconnect()
                except Exception:
                    logger.exception("%s reconnect attempt failed", self.name)

            self.total_scans += 1
            try:
                await asyncio.wait_for(self.scan(), timeout=self.scan_timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._record_failure(e)
                return False

            self.consecutive_failures = 0
            self.last_scan_at = datetime.now(UTC)
            return True

    def _record_failure(self, error: Exception) -> None:
        self.consecutive_failures += 1
        self.failed_scans += 1
        if isinstance(error, TimeoutError):
            self.last_error = f"scan timed out after {self.scan_timeout}s"
            logger.error("%s scan timed out, router may be unresponsive", self.name)
        else:
            self.last_error = str(error) or type(error).__name__
            logger.error("%s scan failed: %s", self.name, self.last_error)

        if not self.running:
            return
        if self.consecutive_failures >= self.max_consecutive_failures:
            self._halt()
        else:
            logger.info(
                "%s monitoring continues despite error (%d/%d)",
                self.name,
                self.consecutive_failures,
                self.max_consecutive_failures,
            )

    def _halt(self) -> None:
        self.state = MonitorState.stopped
        self._wake.set()
        self.terminal_error = MonitoringStopped(
            self.name, self.consecutive_failures, self.last_error
        )
        logger.error("%s", self.terminal_error)
        for callback in list(self._stop_callbacks):
            try:
                callback(self.terminal_error)
            except Exception:
                logger.exception("%s stop callback failed", self.name)

    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state,
            "is_active": self.running,
            "interval_seconds": self.interval,
            "consecutive_failures": self.consecutive_failures,
            "max_consecutive_failures": self.max_consecutive_failures,
            "total_scans": self.total_scans,
            "failed_scans": self.failed_scans,
            "last_scan_at": self.last_scan_at,
            "last_error": self.last_error,
            "terminal_error": str(self.terminal_error) if self.terminal_error else None,
        }
