"""Live throughput sampling for individually watched interfaces."""

import logging
from collections import deque
from typing import Any

from routerwatch.monitor.poller import PollLoop
from routerwatch.router.base import RouterSnapshotSource, TrafficSample

logger = logging.getLogger(__name__)


class TrafficMonitor:
    """Samples each watched interface on a shared schedule.

    The loop runs only while at least one interface is watched. Each
    interface keeps its last `history_size` samples.
    """

    def __init__(
        self,
        source: RouterSnapshotSource,
        interval: float = 2,
        history_size: int = 60,
        scan_timeout: float = 30.0,
        max_consecutive_failures: int = 10,
    ) -> None:
        self.source = source
        self.history_size = history_size
        self._history: dict[str, deque[TrafficSample]] = {}
        self.loop = PollLoop(
            "traffic",
            self.scan,
            interval,
            scan_timeout=scan_timeout,
            max_consecutive_failures=max_consecutive_failures,
            source=source,
        )

    @property
    def watched(self) -> list[str]:
        return sorted(self._history)

    def is_watched(self, interface: str) -> bool:
        return interface in self._history

    async def watch(self, interface: str) -> None:
        if interface not in self._history:
            logger.info("Watching traffic on %s", interface)
            self._history[interface] = deque(maxlen=self.history_size)
        if not self.loop.running:
            await self.loop.start()

    async def unwatch(self, interface: str) -> None:
        if self._history.pop(interface, None) is not None:
            logger.info("Stopped watching traffic on %s", interface)
        if not self._history:
            await self.loop.stop()

    async def stop(self) -> None:
        await self.loop.stop()

    async def scan(self) -> None:
        for interface in list(self._history):
            sample = await self.source.fetch_traffic(interface)
            # Unwatched while the fetch was in flight
            if interface in self._history:
                self._history[interface].append(sample)

    def history(self, interface: str) -> list[TrafficSample]:
        return list(self._history.get(interface, ()))

    def latest(self, interface: str) -> TrafficSample | None:
        samples = self._history.get(interface)
        return samples[-1] if samples else None

    def status(self) -> dict[str, Any]:
        return self.loop.status() | {"watched_interfaces": self.watched}
