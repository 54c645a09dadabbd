"""Allowlist for console commands forwarded to the router."""

from routerwatch.router.base import RouterError

READ_ONLY_COMMANDS = frozenset(
    {
        "/system/resource/print",
        "/system/identity/print",
        "/interface/print",
        "/interface/wireless/print",
        "/interface/wireless/registration-table/print",
        "/ip/dhcp-server/lease/print",
        "/ip/firewall/connection/print",
        "/ip/hotspot/active/print",
        "/ip/address/print",
        "/ip/firewall/filter/print",
        "/log/print",
        "/interface/monitor-traffic",
    }
)

# Commands that stream until cancelled unless asked for a single reading
ONE_SHOT_COMMANDS = frozenset({"/interface/monitor-traffic"})


class CommandRejected(RouterError):
    """A command is not on the read-only allowlist."""


def normalize_command(command: str) -> str:
    """Trim whitespace and slashes into the canonical "/path/verb" form."""
    path = command.strip().strip("/")
    return f"/{path}" if path else ""


def check_command(command: str) -> str:
    """Return the normalized command, or raise if it may not be sent.

    Raises:
        ValueError: the command is empty.
        CommandRejected: the command is not read-only.
    """
    normalized = normalize_command(command)
    if not normalized:
        raise ValueError("Command is required")
    if normalized not in READ_ONLY_COMMANDS:
        raise CommandRejected(f"Only read-only commands are allowed: {normalized}")
    return normalized
