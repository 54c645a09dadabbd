"""Router event monitoring: wireless registrations, system log and interfaces."""

import logging
from collections import deque
from collections.abc import Iterable
from typing import Any

from routerwatch.alerts.manager import NotificationSink
from routerwatch.alerts.models import AlertCategory
from routerwatch.monitor.poller import MonitoringStopped, PollLoop
from routerwatch.router.base import (
    InterfaceRecord,
    LogRecord,
    RouterSnapshotSource,
    WirelessRegistration,
)
from routerwatch.tracking.diff import diff_presence

logger = logging.getLogger(__name__)


class RouterEventMonitor:
    """Raises alerts for wireless client churn, log warnings and link changes."""

    def __init__(
        self,
        source: RouterSnapshotSource,
        sink: NotificationSink,
        interval: float = 15,
        scan_timeout: float = 30.0,
        max_consecutive_failures: int = 10,
        log_limit: int = 20,
        log_memory: int = 100,
        ignored_interfaces: Iterable[str] = ("ether1",),
    ) -> None:
        self.source = source
        self.sink = sink
        self.log_limit = log_limit
        self.ignored_interfaces = set(ignored_interfaces)
        self._registrations: dict[str, WirelessRegistration] = {}
        self._seen_logs: deque[str] = deque(maxlen=log_memory)
        self._interface_state: dict[str, bool] | None = None
        self.loop = PollLoop(
            "router-events",
            self.scan,
            interval,
            scan_timeout=scan_timeout,
            max_consecutive_failures=max_consecutive_failures,
            source=source,
        )
        self.loop.on_stopped(self._on_stopped)

    async def start(self) -> None:
        await self.loop.start()

    async def stop(self) -> None:
        await self.loop.stop()

    async def scan(self) -> None:
        registrations = await self.source.fetch_wireless_registrations()
        logs = await self.source.fetch_recent_logs(self.log_limit)
        interfaces = await self.source.fetch_interfaces()
        self.check_wireless(registrations)
        self.check_logs(logs)
        self.check_interfaces(interfaces)

    def check_wireless(self, registrations: list[WirelessRegistration]) -> None:
        current = {reg.mac_address: reg for reg in registrations}
        appeared, vanished = diff_presence(self._registrations, current)

        for mac in appeared:
            reg = current[mac]
            self.sink.create_alert(
                AlertCategory.wireless_client_connected,
                "Wireless Client Connected",
                f"New wireless client {mac} connected",
                {
                    "mac_address": mac,
                    "interface": reg.interface or "N/A",
                    "signal_strength": reg.signal_strength,
                    "tx_rate": reg.tx_rate or "N/A",
                    "rx_rate": reg.rx_rate or "N/A",
                    "uptime": reg.uptime or "N/A",
                },
            )
        for mac in vanished:
            reg = self._registrations[mac]
            self.sink.create_alert(
                AlertCategory.wireless_client_disconnected,
                "Wireless Client Disconnected",
                f"Wireless client {mac} disconnected",
                {
                    "mac_address": mac,
                    "interface": reg.interface or "N/A",
                    "uptime": reg.uptime or "N/A",
                },
            )
        self._registrations = current

    def check_logs(self, logs: list[LogRecord]) -> None:
        for log in logs:
            if log.log_id in self._seen_logs:
                continue
            self._seen_logs.append(log.log_id)

            message = log.message.lower()
            topics = log.topics.lower()
            details: dict[str, Any] = {
                "time": log.time or "N/A",
                "topics": log.topics,
                "message": log.message,
            }
            if "warning" in topics or "warning" in message:
                self.sink.create_alert(
                    AlertCategory.system_warning, "System Warning", log.message, details
                )
            if any(word in topics or word in message for word in ("error", "critical")):
                self.sink.create_alert(
                    AlertCategory.system_error, "System Error", log.message, details
                )

    def check_interfaces(self, interfaces: list[InterfaceRecord]) -> None:
        """Alert on running-state changes. The first call records a baseline."""
        watched = {
            iface.name: iface
            for iface in interfaces
            if not iface.disabled and iface.name not in self.ignored_interfaces
        }
        previous = self._interface_state
        self._interface_state = {name: iface.running for name, iface in watched.items()}
        if previous is None:
            return

        for name, iface in watched.items():
            was_running = previous.get(name)
            if was_running is None or was_running == iface.running:
                continue
            details = {
                "interface_name": name,
                "type": iface.type or "N/A",
                "mtu": iface.mtu or "N/A",
                "mac_address": iface.mac_address or "N/A",
            }
            if iface.running:
                self.sink.create_alert(
                    AlertCategory.interface_up, "Interface Up", f"Interface {name} is up", details
                )
            else:
                details["last_link_up"] = iface.last_link_up or "N/A"
                self.sink.create_alert(
                    AlertCategory.interface_down,
                    "Interface Down",
                    f"Interface {name} is down",
                    details,
                )

    def _on_stopped(self, error: MonitoringStopped) -> None:
        self.sink.create_alert(
            AlertCategory.system_error,
            "Monitoring Stopped",
            str(error),
            {"monitor": error.name, "failures": error.failures, "last_error": error.last_error},
        )

    def status(self) -> dict[str, Any]:
        return self.loop.status() | {
            "wireless_clients": len(self._registrations),
            "watched_interfaces": len(self._interface_state or {}),
        }
