"""Session records and transition events."""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from routerwatch.router.base import ClientRecord


class TransitionKind(enum.StrEnum):
    connected = "connected"
    reconnected = "reconnected"
    disconnected = "disconnected"
    kicked = "kicked"


@dataclass
class Session:
    """An active attachment of one MAC address, owned by SessionTracker."""

    mac_address: str
    record: ClientRecord
    started_at: datetime
    last_seen: datetime
    bytes_in: int = 0
    bytes_out: int = 0
    previous_disconnect: datetime | None = None
    time_offline: timedelta | None = None

    def duration(self, now: datetime) -> timedelta:
        return now - self.started_at


@dataclass
class DisconnectedSession:
    """A session that ended, kept for reconnection detection and statistics."""

    session: Session
    final_record: ClientRecord
    disconnected_at: datetime
    session_duration: timedelta
    kicked: bool = False
    reason: str | None = None

    @property
    def mac_address(self) -> str:
        return self.session.mac_address


@dataclass(frozen=True)
class Connected:
    record: ClientRecord
    kind: TransitionKind = field(default=TransitionKind.connected, init=False)

    @property
    def mac_address(self) -> str:
        return self.record.mac_address


@dataclass(frozen=True)
class Reconnected:
    record: ClientRecord
    prior: DisconnectedSession
    kind: TransitionKind = field(default=TransitionKind.reconnected, init=False)

    @property
    def mac_address(self) -> str:
        return self.record.mac_address


@dataclass(frozen=True)
class Disconnected:
    session: Session | None
    final_record: ClientRecord
    kind: TransitionKind = field(default=TransitionKind.disconnected, init=False)

    @property
    def mac_address(self) -> str:
        return self.final_record.mac_address


@dataclass(frozen=True)
class Kicked:
    session: Session | None
    final_record: ClientRecord
    reason: str
    kind: TransitionKind = field(default=TransitionKind.kicked, init=False)

    @property
    def mac_address(self) -> str:
        return self.final_record.mac_address


Transition = Connected | Reconnected | Disconnected | Kicked


@dataclass
class AppliedTransition:
    """A transition after SessionTracker applied it, with notification context."""

    transition: Transition
    session: Session | None = None  # the new session for (re)connects
    ended: DisconnectedSession | None = None  # the ended session for disconnects
