"""Heuristic classification of disconnects as ordinary or forced ("kicked").

The verdict is advisory. Legitimately short sessions are a known source of
false positives.
"""

import logging
import re
from dataclasses import dataclass
from datetime import timedelta

from routerwatch.router.base import ClientRecord
from routerwatch.tracking.models import Session

logger = logging.getLogger(__name__)

_UPTIME_PART_RE = re.compile(r"(\d+)\s*([wdhms])")
_UPTIME_UNITS = {"w": 604800, "d": 86400, "h": 3600, "m": 60, "s": 1}

# Indicator keyword -> reason, checked in priority order
_REASONS: list[tuple[tuple[str, ...], str]] = [
    (("idle", "timeout"), "idle timeout"),
    (("expired",), "session expired"),
    (("kicked", "removed"), "manual removal"),
    (("forced",), "forced disconnect"),
]

# Raw router fields that are configuration, not disconnect metadata
_CONFIG_FIELDS = {"idle-timeout", "keepalive-timeout", "session-timeout"}


def parse_uptime(text: str | None) -> timedelta:
    """Parse a RouterOS uptime like "1w2d3h4m5s" or "5m 30s". Unknown -> zero."""
    if not text:
        return timedelta(0)
    seconds = sum(
        int(amount) * _UPTIME_UNITS[unit] for amount, unit in _UPTIME_PART_RE.findall(text)
    )
    return timedelta(seconds=seconds)


@dataclass(frozen=True)
class KickVerdict:
    kicked: bool
    reason: str | None = None


class KickClassifier:
    """Decides whether a vanished client left on its own or was removed."""

    def __init__(self, short_session_threshold: timedelta = timedelta(minutes=30)) -> None:
        self.short_session_threshold = short_session_threshold

    @staticmethod
    def _metadata_values(record: ClientRecord) -> list[str]:
        """Values that may describe why the router dropped the client.

        Named reason fields come first, then the raw record's string values.
        Keys are never inspected.
        """
        values = [v for v in (record.disconnect_reason, record.comment) if v]
        values.extend(
            v for k, v in record.raw.items() if isinstance(v, str) and k not in _CONFIG_FIELDS
        )
        return [v.lower() for v in values]

    @staticmethod
    def _quota_exhausted(record: ClientRecord) -> bool:
        if record.limit_bytes_total:
            return record.total_bytes >= record.limit_bytes_total
        if record.limit_bytes_in and record.bytes_in >= record.limit_bytes_in:
            return True
        if record.limit_bytes_out and record.bytes_out >= record.limit_bytes_out:
            return True
        return False

    def classify(self, session: Session | None, final_record: ClientRecord) -> KickVerdict:
        values = self._metadata_values(final_record)
        for keywords, reason in _REASONS:
            if any(keyword in value for value in values for keyword in keywords):
                return KickVerdict(kicked=True, reason=reason)

        if self._quota_exhausted(final_record):
            return KickVerdict(kicked=True, reason="quota exceeded")

        uptime = parse_uptime(final_record.uptime)
        if not uptime and session is not None:
            uptime = session.last_seen - session.started_at
        if timedelta(0) < uptime < self.short_session_threshold:
            return KickVerdict(kicked=True, reason="session timeout")

        return KickVerdict(kicked=False)
