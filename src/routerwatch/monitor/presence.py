"""Client presence monitoring: snapshot -> diff -> tracker -> alerts."""

import logging
from typing import Any

from routerwatch.alerts.manager import NotificationSink
from routerwatch.alerts.models import AlertCategory
from routerwatch.monitor.poller import MonitoringStopped, PollLoop
from routerwatch.router.base import ClientRecord, RouterSnapshotSource
from routerwatch.tracking.diff import diff
from routerwatch.tracking.formatting import format_bytes, format_duration
from routerwatch.tracking.kick import KickClassifier
from routerwatch.tracking.models import (
    AppliedTransition,
    Connected,
    Disconnected,
    Kicked,
    Reconnected,
)
from routerwatch.tracking.tracker import SessionTracker

logger = logging.getLogger(__name__)


def remaining_quota(record: ClientRecord) -> str:
    """Bytes left before the client's hotspot limit, or "Unlimited"."""
    limit = record.limit_bytes_total or (
        (record.limit_bytes_in or 0) + (record.limit_bytes_out or 0)
    )
    if not limit:
        return "Unlimited"
    return format_bytes(max(0, limit - record.total_bytes))


def _client_details(record: ClientRecord) -> dict[str, Any]:
    return {
        "host_name": record.host_name or "Unknown",
        "mac_address": record.mac_address,
        "ip_address": record.ip_address or "N/A",
        "connection_type": record.medium,
        "signal_strength": (
            f"{record.signal_strength} dBm" if record.signal_strength is not None else "N/A"
        ),
        "session_id": record.session_id or "N/A",
    }


class PresenceMonitor:
    """Tracks attached clients and raises one alert per transition."""

    def __init__(
        self,
        source: RouterSnapshotSource,
        tracker: SessionTracker,
        sink: NotificationSink,
        classifier: KickClassifier | None = None,
        interval: float = 10,
        cleanup_interval: float = 300,
        scan_timeout: float = 30.0,
        max_consecutive_failures: int = 10,
    ) -> None:
        self.source = source
        self.tracker = tracker
        self.sink = sink
        self.classifier = classifier or KickClassifier()
        self.loop = PollLoop(
            "presence",
            self.scan,
            interval,
            scan_timeout=scan_timeout,
            max_consecutive_failures=max_consecutive_failures,
            source=source,
        )
        self.cleanup = PollLoop(
            "session-cleanup",
            self.sweep,
            cleanup_interval,
            scan_timeout=scan_timeout,
            max_consecutive_failures=max_consecutive_failures,
        )
        self.loop.on_stopped(self._on_stopped)

    async def start(self) -> None:
        await self.loop.start()
        await self.cleanup.start()

    async def stop(self) -> None:
        await self.loop.stop()
        await self.cleanup.stop()

    async def restart(self) -> None:
        """Start again if monitoring stopped unexpectedly."""
        if not self.loop.running:
            logger.info("Restarting presence monitoring")
            await self.start()

    async def scan(self) -> list[AppliedTransition]:
        clients = await self.source.fetch_attached_clients()
        return self.process_snapshot(clients)

    async def sweep(self) -> int:
        return self.tracker.sweep_expired()

    def process_snapshot(self, clients: list[ClientRecord]) -> list[AppliedTransition]:
        """Diff a snapshot against tracked state, apply it and raise alerts."""
        current: dict[str, ClientRecord] = {}
        for record in clients:
            current.setdefault(record.mac_address, record)

        transitions = diff(
            self.tracker.previous_snapshot(),
            current,
            self.tracker.recently_disconnected,
            now=self.tracker.clock(),
            grace_window=self.tracker.grace_window,
            classifier=self.classifier,
            sessions=self.tracker.active,
        )
        applied = self.tracker.apply(transitions, current)
        if applied:
            logger.info("Presence scan: %d client(s), %d change(s)", len(current), len(applied))
        for item in applied:
            self._notify(item, active_users=len(current))
        return applied

    def _notify(self, item: AppliedTransition, active_users: int) -> None:
        transition = item.transition

        if isinstance(transition, Reconnected):
            record = transition.record
            session = item.session
            details = _client_details(record) | {
                "previous_disconnect": transition.prior.disconnected_at.isoformat(),
                "reconnection_time": session.started_at.isoformat() if session else "N/A",
                "time_offline": (
                    format_duration(session.time_offline)
                    if session and session.time_offline is not None
                    else "N/A"
                ),
                "remaining_quota": remaining_quota(record),
                "active_users": active_users,
            }
            self.sink.create_alert(
                AlertCategory.user_reconnected,
                "User Reconnected",
                f"{record.display_name} ({record.mac_address}) has reconnected",
                details,
            )
        elif isinstance(transition, Connected):
            record = transition.record
            details = _client_details(record) | {
                "login_by": record.login_by or "N/A",
                "idle_timeout": record.idle_timeout or "N/A",
                "session_start": item.session.started_at.isoformat() if item.session else "N/A",
                "uptime": record.uptime or "N/A",
                "active_users": active_users,
            }
            self.sink.create_alert(
                AlertCategory.user_connected,
                "New User Connected",
                f"{record.display_name} ({record.mac_address}) has connected",
                details,
            )
        elif isinstance(transition, Disconnected | Kicked):
            ended = item.ended
            record = transition.final_record
            details = _client_details(record) | {
                "session_start": ended.session.started_at.isoformat() if ended else "N/A",
                "session_end": ended.disconnected_at.isoformat() if ended else "N/A",
                "total_uptime": format_duration(ended.session_duration) if ended else "N/A",
                "router_uptime": record.uptime or "N/A",
                "data_downloaded": format_bytes(record.bytes_in),
                "data_uploaded": format_bytes(record.bytes_out),
                "total_data_used": format_bytes(record.total_bytes),
                "users_remaining": active_users,
            }
            if isinstance(transition, Kicked):
                details["kick_reason"] = transition.reason
                self.sink.create_alert(
                    AlertCategory.user_time_expired,
                    "User Time Expired",
                    f"{record.display_name} ({record.mac_address}) was disconnected:"
                    f" {transition.reason}",
                    details,
                )
            else:
                self.sink.create_alert(
                    AlertCategory.user_disconnected,
                    "User Disconnected",
                    f"{record.display_name} ({record.mac_address}) has disconnected",
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
            "active_users": len(self.tracker.active),
            "recently_disconnected": len(self.tracker.recently_disconnected),
            "cleanup": self.cleanup.status(),
        }
