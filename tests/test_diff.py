"""Tests for presence diffing between snapshots."""

from datetime import UTC, datetime, timedelta

from routerwatch.router.base import ClientRecord
from routerwatch.tracking.diff import diff, diff_presence, within_grace
from routerwatch.tracking.kick import KickClassifier
from routerwatch.tracking.models import (
    Connected,
    Disconnected,
    DisconnectedSession,
    Kicked,
    Reconnected,
    Session,
    TransitionKind,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
GRACE = timedelta(minutes=30)


def _record(mac: str, **kwargs) -> ClientRecord:
    return ClientRecord(mac_address=mac, **kwargs)


def _snapshot(*records: ClientRecord) -> dict[str, ClientRecord]:
    return {r.mac_address: r for r in records}


def _ended(mac: str, disconnected_at: datetime) -> DisconnectedSession:
    record = _record(mac)
    session = Session(
        mac_address=mac,
        record=record,
        started_at=disconnected_at - timedelta(hours=1),
        last_seen=disconnected_at,
    )
    return DisconnectedSession(
        session=session,
        final_record=record,
        disconnected_at=disconnected_at,
        session_duration=timedelta(hours=1),
    )


def _diff(previous, current, recently_disconnected=None, sessions=None):
    return diff(
        previous,
        current,
        recently_disconnected or {},
        now=NOW,
        grace_window=GRACE,
        classifier=KickClassifier(),
        sessions=sessions,
    )


class TestDiffPresence:
    def test_appeared_and_vanished(self):
        appeared, vanished = diff_presence(["a", "b", "c"], ["c", "d", "a", "e"])
        assert appeared == ["d", "e"]
        assert vanished == ["b"]

    def test_identical_keys(self):
        assert diff_presence(["a", "b"], ["b", "a"]) == ([], [])

    def test_dict_inputs_use_keys(self):
        appeared, vanished = diff_presence({"x": 1}, {"y": 2})
        assert appeared == ["y"]
        assert vanished == ["x"]


class TestDiff:
    def test_identical_snapshots_produce_nothing(self):
        snap = _snapshot(_record("AA:BB:CC:DD:EE:01"), _record("AA:BB:CC:DD:EE:02"))
        assert _diff(snap, dict(snap)) == []

    def test_field_changes_are_not_events(self):
        previous = _snapshot(_record("AA:BB:CC:DD:EE:01", ip_address="10.0.0.5", bytes_in=10))
        current = _snapshot(_record("AA:BB:CC:DD:EE:01", ip_address="10.0.0.9", bytes_in=900))
        assert _diff(previous, current) == []

    def test_first_snapshot_connects_everyone_in_order(self):
        current = _snapshot(
            _record("AA:BB:CC:DD:EE:03"),
            _record("AA:BB:CC:DD:EE:01"),
            _record("AA:BB:CC:DD:EE:02"),
        )
        transitions = _diff({}, current)
        assert [t.mac_address for t in transitions] == list(current)
        assert all(isinstance(t, Connected) for t in transitions)

    def test_new_client_connected(self):
        rec = _record("AA:BB:CC:DD:EE:01")
        transitions = _diff({}, _snapshot(rec))
        assert len(transitions) == 1
        assert isinstance(transitions[0], Connected)
        assert transitions[0].record is rec
        assert transitions[0].kind == TransitionKind.connected

    def test_vanished_long_session_disconnected(self):
        rec = _record("AA:BB:CC:DD:EE:01", uptime="2h")
        transitions = _diff(_snapshot(rec), {})
        assert len(transitions) == 1
        assert isinstance(transitions[0], Disconnected)
        assert transitions[0].final_record is rec

    def test_vanished_with_idle_metadata_kicked(self):
        rec = _record("AA:BB:CC:DD:EE:01", uptime="3h", disconnect_reason="idle")
        transitions = _diff(_snapshot(rec), {})
        assert len(transitions) == 1
        assert isinstance(transitions[0], Kicked)
        assert transitions[0].reason == "idle timeout"

    def test_exactly_one_transition_per_vanished_mac(self):
        previous = _snapshot(
            _record("AA:BB:CC:DD:EE:01", uptime="2h"),
            _record("AA:BB:CC:DD:EE:02", uptime="5m"),
            _record("AA:BB:CC:DD:EE:03", comment="removed by admin"),
        )
        transitions = _diff(previous, {})
        macs = [t.mac_address for t in transitions]
        assert macs == list(previous)
        assert len(set(macs)) == 3

    def test_reappearance_within_grace_is_reconnect(self):
        mac = "AA:BB:CC:DD:EE:01"
        prior = _ended(mac, NOW - timedelta(seconds=10))
        transitions = _diff({}, _snapshot(_record(mac)), {mac: prior})
        assert len(transitions) == 1
        assert isinstance(transitions[0], Reconnected)
        assert transitions[0].prior is prior

    def test_reappearance_after_grace_is_connect(self):
        mac = "AA:BB:CC:DD:EE:01"
        prior = _ended(mac, NOW - timedelta(minutes=31))
        transitions = _diff({}, _snapshot(_record(mac)), {mac: prior})
        assert len(transitions) == 1
        assert isinstance(transitions[0], Connected)

    def test_appearances_before_disappearances(self):
        previous = _snapshot(_record("AA:BB:CC:DD:EE:01", uptime="2h"))
        current = _snapshot(_record("AA:BB:CC:DD:EE:02"))
        kinds = [t.kind for t in _diff(previous, current)]
        assert kinds == [TransitionKind.connected, TransitionKind.disconnected]

    def test_tracked_session_passed_through(self):
        rec = _record("AA:BB:CC:DD:EE:01", uptime="2h")
        session = Session(
            mac_address=rec.mac_address,
            record=rec,
            started_at=NOW - timedelta(hours=2),
            last_seen=NOW,
        )
        transitions = _diff(_snapshot(rec), {}, sessions={rec.mac_address: session})
        assert transitions[0].session is session


def test_within_grace_boundary():
    prior = _ended("AA:BB:CC:DD:EE:01", NOW - GRACE)
    assert within_grace(prior, NOW, GRACE)
    assert not within_grace(prior, NOW + timedelta(seconds=1), GRACE)
