"""Alert creation, bounded history, subscriber push and background delivery."""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from routerwatch.alerts.gateways import NotificationGateway
from routerwatch.alerts.models import CATEGORY_CONFIG, Alert, AlertCategory

logger = logging.getLogger(__name__)

AlertListener = Callable[[Alert], None]


class NotificationSink:
    """Owns the alert feed for one router.

    History is a ring: once `max_history` is reached the oldest alert is
    evicted first, regardless of read state.
    """

    def __init__(
        self,
        max_history: int = 100,
        gateways: list[NotificationGateway] | None = None,
        source_id: str | None = None,
    ) -> None:
        self.max_history = max_history
        self.gateways = list(gateways or [])
        self.source_id = source_id
        self._history: deque[Alert] = deque(maxlen=max_history)
        self._listeners: list[AlertListener] = []
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        """Register a callback for new alerts. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def create_alert(
        self,
        category: AlertCategory | str,
        title: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> Alert:
        """Record an alert, push it to subscribers and schedule delivery.

        Never raises because of a listener or gateway failure.
        """
        category = AlertCategory(category)
        config = CATEGORY_CONFIG[category]
        alert = Alert(
            category=category,
            title=title,
            message=message,
            details=details or {},
            priority=config.priority,
            icon=config.icon,
            source_id=self.source_id,
        )
        self._history.append(alert)
        logger.info("Alert created: %s - %s", alert.title, alert.message)

        for listener in list(self._listeners):
            try:
                listener(alert)
            except Exception:
                logger.exception("Alert listener failed for %s", alert.id)

        self._schedule_delivery(alert)
        return alert

    def _schedule_delivery(self, alert: Alert) -> None:
        if not self.gateways:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, alert %s not delivered", alert.id)
            return
        task = loop.create_task(self._deliver(alert))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, alert: Alert) -> None:
        for gateway in self.gateways:
            name = type(gateway).__name__
            try:
                if await gateway.deliver(alert):
                    logger.debug("%s delivered alert %s", name, alert.id)
                else:
                    logger.warning("%s failed to deliver alert %s", name, alert.id)
            except Exception as e:
                logger.error("%s delivery error for alert %s: %s", name, alert.id, e)

    async def drain(self) -> None:
        """Wait for in-flight deliveries to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def get_alerts(self) -> list[Alert]:
        """All retained alerts, oldest first."""
        return list(self._history)

    def get_unread_alerts(self) -> list[Alert]:
        return [a for a in self._history if not a.read]

    def get_alert(self, alert_id: str) -> Alert | None:
        return next((a for a in self._history if a.id == alert_id), None)

    def mark_as_read(self, alert_id: str) -> bool:
        """Mark one alert read. Return False if not found."""
        alert = self.get_alert(alert_id)
        if alert is None:
            return False
        alert.read = True
        return True

    def mark_all_as_read(self) -> int:
        count = 0
        for alert in self._history:
            if not alert.read:
                alert.read = True
                count += 1
        return count

    def clear_older_than(self, age: timedelta) -> int:
        """Remove alerts older than `age`. Return the number removed."""
        cutoff = datetime.now(UTC) - age
        kept = [a for a in self._history if a.timestamp > cutoff]
        removed = len(self._history) - len(kept)
        self._history = deque(kept, maxlen=self.max_history)
        if removed:
            logger.info("Cleared %d alert(s) older than %s", removed, age)
        return removed

    def status(self) -> dict[str, Any]:
        return {
            "total_alerts": len(self._history),
            "unread_alerts": len(self.get_unread_alerts()),
            "last_alert": self._history[-1] if self._history else None,
            "subscribers": len(self._listeners),
        }
