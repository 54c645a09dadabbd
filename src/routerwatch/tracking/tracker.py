"""Authoritative in-memory session state across poll cycles."""

import logging
from collections import deque
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from routerwatch.router.base import ClientRecord
from routerwatch.tracking.models import (
    AppliedTransition,
    Connected,
    Disconnected,
    DisconnectedSession,
    Kicked,
    Reconnected,
    Session,
    Transition,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionTracker:
    """Owns the MAC -> Session map and the recently-disconnected window.

    A MAC is in at most one of `active` and `recently_disconnected`.
    All mutations are synchronous; the tracker performs no I/O.
    """

    def __init__(
        self,
        grace_window: timedelta = timedelta(minutes=30),
        stats_retention: timedelta = timedelta(hours=24),
        history_size: int = 1000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.grace_window = grace_window
        self.stats_retention = stats_retention
        self.clock = clock
        self.active: dict[str, Session] = {}
        self.recently_disconnected: dict[str, DisconnectedSession] = {}
        self.history: deque[DisconnectedSession] = deque(maxlen=history_size)
        self.last_update: datetime | None = None

    def previous_snapshot(self) -> dict[str, ClientRecord]:
        return {mac: s.record for mac, s in self.active.items()}

    def on_connected(self, record: ClientRecord) -> Session:
        now = self.clock()
        mac = record.mac_address
        if mac in self.active:
            logger.warning("Overwriting stale session for %s", mac)
        self.recently_disconnected.pop(mac, None)
        session = Session(
            mac_address=mac,
            record=record,
            started_at=now,
            last_seen=now,
            bytes_in=record.bytes_in,
            bytes_out=record.bytes_out,
        )
        self.active[mac] = session
        return session

    def on_reconnected(self, record: ClientRecord, prior: DisconnectedSession) -> Session:
        session = self.on_connected(record)
        session.previous_disconnect = prior.disconnected_at
        session.time_offline = session.started_at - prior.disconnected_at
        return session

    def on_disconnected(
        self,
        session: Session | None,
        final_record: ClientRecord,
        kicked: bool = False,
        reason: str | None = None,
    ) -> DisconnectedSession:
        now = self.clock()
        mac = final_record.mac_address
        session = self.active.pop(mac, None) or session
        if session is None:
            logger.warning("Disconnect for untracked client %s", mac)
            session = Session(mac_address=mac, record=final_record, started_at=now, last_seen=now)

        session.bytes_in = final_record.bytes_in
        session.bytes_out = final_record.bytes_out
        ended = DisconnectedSession(
            session=session,
            final_record=final_record,
            disconnected_at=now,
            session_duration=now - session.started_at,
            kicked=kicked,
            reason=reason,
        )
        self.recently_disconnected[mac] = ended
        self.history.append(ended)
        return ended

    def refresh(self, current: Mapping[str, ClientRecord]) -> None:
        """Liveness update for clients that stayed attached."""
        now = self.clock()
        for mac, record in current.items():
            session = self.active.get(mac)
            if session is None:
                continue
            session.record = record
            session.last_seen = now
            session.bytes_in = record.bytes_in
            session.bytes_out = record.bytes_out

    def apply(
        self, transitions: list[Transition], current: Mapping[str, ClientRecord]
    ) -> list[AppliedTransition]:
        """Apply one poll cycle. Runs without suspension points."""
        applied: list[AppliedTransition] = []
        for transition in transitions:
            if isinstance(transition, Reconnected):
                session = self.on_reconnected(transition.record, transition.prior)
                applied.append(AppliedTransition(transition, session=session))
            elif isinstance(transition, Connected):
                session = self.on_connected(transition.record)
                applied.append(AppliedTransition(transition, session=session))
            elif isinstance(transition, Kicked):
                ended = self.on_disconnected(
                    transition.session, transition.final_record, True, transition.reason
                )
                applied.append(AppliedTransition(transition, ended=ended))
            elif isinstance(transition, Disconnected):
                ended = self.on_disconnected(transition.session, transition.final_record)
                applied.append(AppliedTransition(transition, ended=ended))
        self.refresh(current)
        self.last_update = self.clock()
        return applied

    def sweep_expired(self, grace_window: timedelta | None = None) -> int:
        """Drop reconnection candidates past the grace window and stale history.

        Returns the number of recently-disconnected entries removed.
        """
        now = self.clock()
        window = self.grace_window if grace_window is None else grace_window
        expired = [
            mac
            for mac, ended in self.recently_disconnected.items()
            if now - ended.disconnected_at > window
        ]
        for mac in expired:
            del self.recently_disconnected[mac]

        cutoff = now - self.stats_retention
        while self.history and self.history[0].disconnected_at < cutoff:
            self.history.popleft()

        if expired:
            logger.info("Swept %d expired disconnected client(s)", len(expired))
        return len(expired)

    def statistics(self) -> dict[str, Any]:
        now = self.clock()
        details: list[dict[str, Any]] = []
        for mac, session in self.active.items():
            details.append(
                {
                    "mac_address": mac,
                    "host_name": session.record.host_name,
                    "ip_address": session.record.ip_address,
                    "medium": session.record.medium,
                    "session_start": session.started_at,
                    "last_seen": session.last_seen,
                    "duration_seconds": int(session.duration(now).total_seconds()),
                    "bytes_in": session.bytes_in,
                    "bytes_out": session.bytes_out,
                    "status": "active",
                }
            )
        for mac, ended in self.recently_disconnected.items():
            details.append(
                {
                    "mac_address": mac,
                    "host_name": ended.final_record.host_name,
                    "ip_address": ended.final_record.ip_address,
                    "medium": ended.final_record.medium,
                    "disconnect_time": ended.disconnected_at,
                    "duration_seconds": int(ended.session_duration.total_seconds()),
                    "kicked": ended.kicked,
                    "reason": ended.reason,
                    "status": "disconnected",
                }
            )
        return {
            "active_users": len(self.active),
            "recently_disconnected": len(self.recently_disconnected),
            "disconnects_retained": len(self.history),
            "last_update": self.last_update,
            "user_details": details,
        }
