"""Filesystem helpers, kernel counter parsing and byte formatting."""

from __future__ import annotations

import os
import socket
import time
from pathlib import Path

from trafficlog.models import InterfaceStats

_MACHINE_ID_PATHS = (Path("/etc/machine-id"), Path("/var/lib/dbus/machine-id"))
_SYS_NET = Path("/sys/class/net")

_KIB = 1024
_MIB = _KIB * 1024
_GIB = _MIB * 1024
_TIB = _GIB * 1024


def expand_tilde(path: str | os.PathLike[str]) -> Path:
    """Replace a leading ``~`` component with ``$HOME`` when it is set."""
    p = Path(path)
    if not p.parts or p.parts[0] != "~":
        return p
    home = os.environ.get("HOME")
    if home is None:
        return p
    if p == Path("~"):
        return Path(home)
    return Path(home).joinpath(*p.parts[1:])


def get_machine_id() -> str:
    """Return the system machine id, trimmed of surrounding whitespace."""
    for candidate in _MACHINE_ID_PATHS:
        try:
            return Path(candidate).read_text().strip()
        except (OSError, UnicodeDecodeError):
            continue
    raise OSError("Failed to read machine-id")


def _parse_counter(text: str) -> int:
    return int(text) if text.isascii() and text.isdigit() else 0


def _read_mac(name: str) -> str | None:
    try:
        mac = (_SYS_NET / name / "address").read_text().strip()
    except (OSError, UnicodeDecodeError):
        return None
    return mac or None


def parse_net_dev(path: str | os.PathLike[str] = "/proc/net/dev") -> list[InterfaceStats]:
    """Read interface counters from a ``/proc/net/dev`` style file, skipping ``lo``."""
    content = Path(path).read_text()
    hostname = socket.gethostname()
    now = int(time.time())
    stats: list[InterfaceStats] = []

    for raw in content.splitlines():
        line = raw.strip()
        if not line or ":" not in line:
            continue
        name, data = line.split(":", 1)
        name = name.strip()
        if name == "lo":
            continue
        fields = data.split()
        if len(fields) < 10:
            continue
        stats.append(
            InterfaceStats(
                name=name,
                alias=None,
                mac_address=_read_mac(name),
                rx_bytes=_parse_counter(fields[0]),
                tx_bytes=_parse_counter(fields[8]),
                rx_packets=_parse_counter(fields[1]),
                tx_packets=_parse_counter(fields[9]),
                hostname=hostname,
                created=now,
                updated=now,
            )
        )
    return stats


def format_bytes(value: int) -> str:
    """Format a byte count with binary units and two decimals."""
    if value >= _TIB:
        return f"{value / _TIB:.2f} TiB"
    if value >= _GIB:
        return f"{value / _GIB:.2f} GiB"
    if value >= _MIB:
        return f"{value / _MIB:.2f} MiB"
    if value >= _KIB:
        return f"{value / _KIB:.2f} KiB"
    return f"{value} B"