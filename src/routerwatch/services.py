"""Wiring of the router source, session tracker, alert sink and monitors."""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from routerwatch.alerts.gateways import (
    EmailGateway,
    NotificationGateway,
    SmtpEmailSender,
    WebhookGateway,
)
from routerwatch.alerts.manager import NotificationSink
from routerwatch.config import Settings
from routerwatch.monitor.events import RouterEventMonitor
from routerwatch.monitor.presence import PresenceMonitor
from routerwatch.monitor.traffic import TrafficMonitor
from routerwatch.router.base import RouterSnapshotSource
from routerwatch.tracking.kick import KickClassifier
from routerwatch.tracking.tracker import SessionTracker

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Per-router state shared by the monitors and the HTTP layer."""

    source: RouterSnapshotSource | None
    tracker: SessionTracker
    sink: NotificationSink
    presence: PresenceMonitor | None = None
    events: RouterEventMonitor | None = None
    traffic: TrafficMonitor | None = None
    bandwidth_interfaces: list[str] = field(default_factory=list)

    async def start_monitoring(self) -> None:
        if self.presence is not None:
            await self.presence.start()
        if self.events is not None:
            await self.events.start()

    async def stop_monitoring(self) -> None:
        if self.presence is not None:
            await self.presence.stop()
        if self.events is not None:
            await self.events.stop()
        if self.traffic is not None:
            await self.traffic.stop()

    async def close(self) -> None:
        await self.stop_monitoring()
        await self.sink.drain()
        if self.source is not None:
            await self.source.close()

    def monitoring_status(self) -> dict[str, Any]:
        return {
            "router_configured": self.source is not None,
            "presence": self.presence.status() if self.presence else None,
            "events": self.events.status() if self.events else None,
            "traffic": self.traffic.status() if self.traffic else None,
            "alerts": self.sink.status(),
        }


def build_gateways(cfg: Settings) -> list[NotificationGateway]:
    gateways: list[NotificationGateway] = []
    if cfg.smtp_host and cfg.admin_emails:
        sender = SmtpEmailSender(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_username,
            password=cfg.smtp_password,
            sender=cfg.email_from,
            use_tls=cfg.smtp_use_tls,
        )
        gateways.append(EmailGateway(sender, cfg.admin_emails))
        logger.info("Email alerts enabled for %d recipient(s)", len(cfg.admin_emails))
    elif cfg.smtp_host:
        logger.warning("SMTP configured but no admin_emails set, email alerts disabled")
    if cfg.webhook_url:
        gateways.append(WebhookGateway(cfg.webhook_url))
        logger.info("Webhook alerts enabled")
    return gateways


def build_services(cfg: Settings, source: RouterSnapshotSource | None) -> Services:
    tracker = SessionTracker(
        grace_window=timedelta(seconds=cfg.reconnect_grace_window),
        stats_retention=timedelta(seconds=cfg.stats_retention),
    )
    sink = NotificationSink(
        max_history=cfg.alert_history_size,
        gateways=build_gateways(cfg),
        source_id=cfg.router_name,
    )
    services = Services(
        source=source,
        tracker=tracker,
        sink=sink,
        bandwidth_interfaces=list(cfg.bandwidth_interfaces),
    )
    if source is None:
        return services

    services.presence = PresenceMonitor(
        source,
        tracker,
        sink,
        classifier=KickClassifier(timedelta(seconds=cfg.kick_uptime_threshold)),
        interval=cfg.presence_poll_interval,
        cleanup_interval=cfg.cleanup_interval,
        scan_timeout=cfg.scan_timeout,
        max_consecutive_failures=cfg.max_consecutive_failures,
    )
    services.events = RouterEventMonitor(
        source,
        sink,
        interval=cfg.event_poll_interval,
        scan_timeout=cfg.scan_timeout,
        max_consecutive_failures=cfg.max_consecutive_failures,
        log_limit=cfg.system_log_limit,
        ignored_interfaces=cfg.ignored_interfaces,
    )
    services.traffic = TrafficMonitor(
        source,
        interval=cfg.traffic_poll_interval,
        history_size=cfg.traffic_history_size,
        scan_timeout=cfg.scan_timeout,
        max_consecutive_failures=cfg.max_consecutive_failures,
    )
    return services
