"""Percentile report, hourly bar graph and host listing for the terminal."""

from __future__ import annotations

import calendar
import time
from datetime import datetime
from typing import Iterable, Sequence

from trafficlog.display import format_rate, format_relative_time
from trafficlog.models import HistoryEntry, HostRecord, NinetyFifthData

_SAMPLE_SECONDS = 300.0
_RULE_95TH = "       ----------------------------+----------------+---------------"
_DEFAULT_SCALE = 1024 * 1024
_GRAPH_HEIGHT = 10
_HOURS = 24


def percentile_stats(values: Sequence[int]) -> tuple[float, float, float, float]:
    """Return (minimum, average, maximum, 95th percentile) in bits per second.

    Each value is the byte count of one five-minute sample.
    """
    if not values:
        return 0.0, 0.0, 0.0, 0.0
    ordered = sorted(values)
    low = float(ordered[0])
    high = float(ordered[-1])
    avg = sum(values) / len(values)
    p95 = float(ordered[int(0.95 * (len(ordered) - 1.0))])

    def to_rate(v: float) -> float:
        return v * 8.0 / _SAMPLE_SECONDS

    return to_rate(low), to_rate(avg), to_rate(high), to_rate(p95)


def format_mib(value: int) -> str:
    """Format a byte count as MiB with one decimal and thousands separators."""
    return f"{value / (1024.0 * 1024.0):>10,.1f}"


def _local_tz_name() -> str:
    return datetime.now().astimezone().strftime("%Z")


def print_95th_table(data: NinetyFifthData, five_minute_hours: int) -> None:
    """Print min/avg/max and 95th percentile rates for one interface."""
    now = datetime.now()
    required_hours = calendar.monthrange(now.year, now.month)[1] * 24

    if five_minute_hours < required_hours:
        print(
            f'\nWarning: Configuration "5MinuteHours" needs to be at least '
            f"{required_hours} for 100% coverage."
        )
        print(f'         "5MinuteHours" is currently set at {five_minute_hours}.\n')

    print(f" {data.interface}  /  95th percentile ({_local_tz_name()})\n")

    begin = datetime.fromtimestamp(data.begin).strftime("%Y-%m-%d %H:%M")
    end = datetime.fromtimestamp(data.end).strftime("%Y-%m-%d %H:%M")
    print(f" {begin} - {end} ({data.count} entries, {data.coverage:.1f}% coverage)\n")

    print("                          rx       |       tx       |     total")
    print(_RULE_95TH)

    rx_stats = percentile_stats(data.rx)
    tx_stats = percentile_stats(data.tx)
    totals = [r + t for r, t in zip(data.rx, data.tx)]
    total_stats = percentile_stats(totals)

    for index, label in enumerate(("minimum", "average", "maximum")):
        print(
            f"       {label:<12} {format_rate(rx_stats[index]):>14} | "
            f"{format_rate(tx_stats[index]):>14} | {format_rate(total_stats[index]):>14}"
        )
    print(_RULE_95TH)
    print(
        f"        95th %      {format_rate(rx_stats[3]):>14} | "
        f"{format_rate(tx_stats[3]):>14} | {format_rate(total_stats[3]):>14}"
    )


def _hour_slots(now_ts: int) -> list[tuple[int, int]]:
    """Return (hour label, hour start timestamp) for the last 24 local hours."""
    slots = []
    for back in range(_HOURS - 1, -1, -1):
        moment = datetime.fromtimestamp(now_ts - back * 3600)
        start = moment.replace(minute=0, second=0, microsecond=0)
        slots.append((moment.hour, int(start.timestamp())))
    return slots


def _bar_cell(rx: int, tx: int, threshold: int, prev_threshold: int) -> str:
    total = rx + tx
    if total >= threshold:
        if rx >= threshold and tx >= threshold:
            return " s "
        if tx >= threshold:
            return " t "
        return " r "
    if total > prev_threshold:
        return " r "
    return "   "


def print_hours_graph(history: Sequence[HistoryEntry]) -> None:
    """Print a bar graph and table of traffic for the last 24 hours."""
    if not history:
        print("No hourly data available.")
        return

    interface = history[0].interface
    now = datetime.now()
    now_ts = int(time.time())

    slots = _hour_slots(now_ts)
    labels = [label for label, _ in slots]
    hours_data: list[tuple[int, int]] = []
    for _, hour_ts in slots:
        match = next((e for e in history if e.date == hour_ts), None)
        hours_data.append((match.rx, match.tx) if match else (0, 0))

    title = f" {interface} ({_local_tz_name()})"
    print(f"\n {title:<70} {now.strftime('%H:%M'):>5}\n")

    max_total = max((rx + tx for rx, tx in hours_data), default=0)
    scale_max = max_total if max_total else _DEFAULT_SCALE

    print("  ^")
    for line in range(_GRAPH_HEIGHT, 0, -1):
        threshold = int(scale_max * (line / 10.0))
        prev_threshold = int(scale_max * ((line - 1) / 10.0))
        cells = "".join(_bar_cell(rx, tx, threshold, prev_threshold) for rx, tx in hours_data)
        print(f"  | {cells}")

    print(" -+" + "---" * _HOURS + ">")
    print("  | " + "".join(f" {h:02}" for h in labels) + "\n")

    print(" h  rx (MiB)   tx (MiB)  ][  h  rx (MiB)   tx (MiB)  ][  h  rx (MiB)   tx (MiB)")
    for row in range(8):
        columns = []
        for idx in (row, row + 8, row + 16):
            rx, tx = hours_data[idx]
            columns.append(f"{labels[idx]:02} {format_mib(rx)} {format_mib(tx)}")
        print(" ][ ".join(columns))
    print()


def print_hosts_table(hosts: Iterable[HostRecord]) -> None:
    """Print known hosts with version, start time and last activity."""
    hosts = list(hosts)
    if not hosts:
        print("No hosts found.")
        return

    header_name, header_ver = "Hostname", "Version"
    name_width = max([10, len(header_name), *(len(h.hostname) for h in hosts)])
    ver_width = max([10, len(header_ver), *(len(h.version or "unknown") for h in hosts)])

    def row(name: str, ver: str, started: str, last: str) -> str:
        return f"{name:<{name_width}}   {ver:<{ver_width}}   {started:<19}   {last:<15}"

    print(row(header_name, header_ver, "Started", "Last Seen"))
    print("-" * (name_width + ver_width + 19 + 15 + 9))

    for host in hosts:
        started = (
            datetime.fromtimestamp(host.started).strftime("%Y-%m-%d %H:%M:%S")
            if host.started is not None
            else "unknown"
        )
        last_seen = (
            format_relative_time(host.last_seen) if host.last_seen is not None else "never"
        )
        print(row(host.hostname, host.version or "unknown", started, last_seen))