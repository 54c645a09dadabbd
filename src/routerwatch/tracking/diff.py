"""Presence diffing between consecutive router snapshots.

Diffing is presence-based: a MAC that stays attached while its record
fields change (IP renewal, counters) produces no transition.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import TypeVar

from routerwatch.router.base import ClientRecord
from routerwatch.tracking.kick import KickClassifier
from routerwatch.tracking.models import (
    Connected,
    Disconnected,
    DisconnectedSession,
    Kicked,
    Reconnected,
    Session,
    Transition,
)

K = TypeVar("K")


def diff_presence(previous: Iterable[K], current: Iterable[K]) -> tuple[list[K], list[K]]:
    """Return (appeared, vanished), each in the insertion order of its source."""
    previous_keys = list(dict.fromkeys(previous))
    current_keys = list(dict.fromkeys(current))
    previous_set = set(previous_keys)
    current_set = set(current_keys)
    appeared = [k for k in current_keys if k not in previous_set]
    vanished = [k for k in previous_keys if k not in current_set]
    return appeared, vanished


def within_grace(prior: DisconnectedSession, now: datetime, grace_window: timedelta) -> bool:
    return now - prior.disconnected_at <= grace_window


def diff(
    previous: Mapping[str, ClientRecord],
    current: Mapping[str, ClientRecord],
    recently_disconnected: Mapping[str, DisconnectedSession],
    *,
    now: datetime,
    grace_window: timedelta,
    classifier: KickClassifier,
    sessions: Mapping[str, Session] | None = None,
) -> list[Transition]:
    """Classify the presence changes between two snapshots.

    Appearances come first in `current` order, then disappearances in
    `previous` order. Each MAC yields at most one transition.
    """
    sessions = sessions or {}
    appeared, vanished = diff_presence(previous, current)
    transitions: list[Transition] = []

    for mac in appeared:
        record = current[mac]
        prior = recently_disconnected.get(mac)
        if prior is not None and within_grace(prior, now, grace_window):
            transitions.append(Reconnected(record=record, prior=prior))
        else:
            transitions.append(Connected(record=record))

    for mac in vanished:
        final_record = previous[mac]
        session = sessions.get(mac)
        verdict = classifier.classify(session, final_record)
        if verdict.kicked:
            transitions.append(
                Kicked(
                    session=session,
                    final_record=final_record,
                    reason=verdict.reason or "session timeout",
                )
            )
        else:
            transitions.append(Disconnected(session=session, final_record=final_record))

    return transitions
