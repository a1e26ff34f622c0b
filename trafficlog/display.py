"""Terminal tables for traffic summaries and history listings."""

from __future__ import annotations

import calendar
import socket
import time
from collections import defaultdict
from datetime import date, datetime
from typing import Iterable

from trafficlog.models import HistoryEntry, SummaryData
from trafficlog.utils import format_bytes

_SEPARATOR = "------------------------+-------------+-------------+---------------"
_SEPARATOR_INDENT = 5

_TITLES = {
    "fiveminute": "five minute",
    "hour": "hourly",
    "day": "daily",
    "month": "monthly",
    "year": "yearly",
}

_LABEL_HEADERS = {
    "hour": "         hour        rx      ",
    "fiveminute": "         time        rx      ",
    "day": "          day         rx      ",
    "month": "        month        rx      ",
    "year": "          year        rx      ",
}
_DEFAULT_LABEL_HEADER = "          date        rx      "

_INTRADAY = ("hour", "fiveminute")


def format_bytes_short(value: int) -> str:
    """Format a byte count for table cells."""
    return format_bytes(value)


def format_rate(bits_per_sec: float) -> str:
    """Format a bit rate with decimal units and two decimals."""
    for threshold, unit in (
        (1_000_000_000_000.0, "Tbit/s"),
        (1_000_000_000.0, "Gbit/s"),
        (1_000_000.0, "Mbit/s"),
        (1_000.0, "kbit/s"),
    ):
        if bits_per_sec >= threshold:
            return f"{bits_per_sec / threshold:.2f} {unit}"
    return f"{bits_per_sec:.2f} bit/s"


def format_relative_time(ts: int) -> str:
    """Describe how long ago a Unix timestamp was, coarsely."""
    if ts <= 0:
        return "never"
    diff = int(time.time()) - ts
    if diff < 0:
        return "in the future"
    if diff < 60:
        return "< 1m ago"
    mins = diff // 60
    if mins < 60:
        return f"{mins}m ago"
    hours = mins // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 30:
        return f"{days}d ago"
    months = days // 30
    if months < 12:
        return f"{months}mo ago"
    return f"{days // 365}y ago"


def _tz_name() -> str:
    return datetime.now().astimezone().strftime("%Z")


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _days_in_year(year: int) -> int:
    return (date(year + 1, 1, 1) - date(year, 1, 1)).days


def _midnight_ts(day: date) -> int:
    return int(datetime(day.year, day.month, day.day).timestamp())


def _host_header(text: str) -> str:
    return f"{text:-<73}"


def print_summary_table(summaries: Iterable[SummaryData], machine_id: str) -> None:
    """Print the per-host month/day overview with estimates."""
    by_host: dict[str, list[SummaryData]] = defaultdict(list)
    for summary in summaries:
        by_host[summary.hostname].append(summary)
    if not by_host:
        print("No data available for the selected host(s).")
        return

    now = datetime.now()
    now_ts = int(now.timestamp())
    today_ts = _midnight_ts(now.date())
    this_month_label = now.strftime("%Y-%m")
    if now.month == 1:
        last_month_label = f"{now.year - 1:04}-12"
    else:
        last_month_label = f"{now.year:04}-{now.month - 1:02}"
    days_in_month = _days_in_month(now.year, now.month)
    current_machine = socket.gethostname() or "local"

    def print_line(label: str, rx: int, tx: int, estimate: str | None = None) -> None:
        line = (
            f"{label:>14}{format_bytes_short(rx):>11}  /  "
            f"{format_bytes_short(tx):>11}  /  {format_bytes_short(rx + tx):>11}"
        )
        if estimate is not None:
            line += f"  /  {estimate:>11}"
        print(line)

    for hostname in sorted(by_host):
        print()
        if len(by_host) > 1 or hostname != current_machine:
            print(_host_header(f" Host: {hostname} ({_tz_name()}) "))
        print("                      rx      /      tx      /     total    /   estimated")

        for summary in sorted(by_host[hostname], key=lambda s: s.name):
            if summary.name == "lo":
                continue
            print(f" {summary.name}:")

            print_line(last_month_label, *summary.last_month)

            tm_rx, tm_tx = summary.this_month
            tm_total = tm_rx + tm_tx
            if now.day > 0 and tm_total > 0:
                tm_est = format_bytes_short(int(tm_total * (days_in_month / now.day)))
            else:
                tm_est = "--"
            print_line(this_month_label, tm_rx, tm_tx, tm_est)

            print_line("yesterday", *summary.yesterday)

            t_rx, t_tx = summary.today
            t_total = t_rx + t_tx
            secs_passed = float(max(now_ts - today_ts, 1))
            t_est = (
                format_bytes_short(int(t_total * (86400.0 / secs_passed)))
                if t_total > 0
                else "--"
            )
            print_line("today", t_rx, t_tx, t_est)
            print()


def _table_title(table: str, limit: int, tz: str) -> str:
    if table == "top":
        return f"top {limit} ({tz})"
    return f"{_TITLES.get(table, table)} ({tz})"


def _row_label(table: str, dt: datetime) -> str:
    if table in _INTRADAY:
        return dt.strftime("%H:%M")
    if table == "month":
        return dt.strftime("%Y-%m")
    if table == "year":
        return dt.strftime("%Y")
    return dt.strftime("%Y-%m-%d")


def _label_part(table: str, label: str, rx_str: str) -> str:
    if table in _INTRADAY:
        return f"         {label:<6}{rx_str:>13} "
    if table == "month":
        return f"       {label:<7}    {rx_str:>10} "
    if table == "day":
        return f"      {label:<10}  {rx_str:>10} "
    if table == "year":
        return f"        {label:<4}       {rx_str:>10} "
    return f"     {label:<16} {rx_str:>10} "


def _period_seconds(table: str, dt: datetime) -> int:
    if table == "fiveminute":
        return 300
    if table == "hour":
        return 3600
    if table == "month":
        return _days_in_month(dt.year, dt.month) * 86400
    if table == "year":
        return _days_in_year(dt.year) * 86400
    return 86400


def _current_period(table: str, now: datetime) -> tuple[float, float] | None:
    """Return (seconds elapsed, seconds total) of the running period, if any."""
    now_ts = int(now.timestamp())
    if table == "day":
        start = _midnight_ts(now.date())
        total = 86400
    elif table == "month":
        start = _midnight_ts(now.date().replace(day=1))
        total = _days_in_month(now.year, now.month) * 86400
    elif table == "year":
        start = _midnight_ts(date(now.year, 1, 1))
        total = _days_in_year(now.year) * 86400
    else:
        return None
    return float(max(now_ts - start, 1)), float(total)


def _is_current(table: str, dt: datetime, now: datetime) -> bool:
    if table == "day":
        return dt.date() == now.date()
    if table == "month":
        return (dt.year, dt.month) == (now.year, now.month)
    if table == "year":
        return dt.year == now.year
    return False


def _print_interface_history(
    table: str, iface: str, entries: list[HistoryEntry], limit: int, now: datetime
) -> None:
    print(f"\n {iface}  /  {_table_title(table, limit, _tz_name())}\n")
    separator = " " * _SEPARATOR_INDENT + _SEPARATOR
    print(f"{_LABEL_HEADERS.get(table, _DEFAULT_LABEL_HEADER)}|     tx      |    total    |   avg. rate")
    print(separator)

    last_date = ""
    for entry in entries:
        if entry.date == 0:
            continue
        dt = datetime.fromtimestamp(entry.date)
        date_str = dt.strftime("%Y-%m-%d")
        if table in _INTRADAY and date_str != last_date:
            print(f"     {date_str}")
            last_date = date_str

        total = entry.rx + entry.tx
        rate_str = format_rate(total * 8 / _period_seconds(table, dt))
        label_part = _label_part(table, _row_label(table, dt), format_bytes_short(entry.rx))
        tx_str = format_bytes_short(entry.tx)
        total_str = format_bytes_short(total)
        if table in _INTRADAY:
            print(f"{label_part}|  {tx_str:>10} |  {total_str:>10} |  {rate_str:>13}")
        else:
            print(f"{label_part}|  {tx_str:>10} |  {total_str:>10} |    {rate_str:>11}")

    print(separator)

    if not entries:
        return
    latest = entries[-1]
    if not _is_current(table, datetime.fromtimestamp(latest.date), now):
        return
    period = _current_period(table, now)
    if period is None:
        return
    secs_passed, total_secs = period
    if total_secs <= 1.0:
        return
    factor = total_secs / secs_passed
    est_rx = int(latest.rx * factor)
    est_tx = int(latest.tx * factor)
    label_part = _label_part(table, "estimated", format_bytes_short(est_rx))
    print(
        f"{label_part}|  {format_bytes_short(est_tx):>10} |  "
        f"{format_bytes_short(est_rx + est_tx):>10} |"
    )


def print_history_table(table: str, history: Iterable[HistoryEntry], limit: int) -> None:
    """Print history rows grouped by host and interface, oldest first."""
    ordered = sorted(history, key=lambda h: h.date)
    if not ordered:
        print("No data available.")
        return

    grouped: dict[str, dict[str, list[HistoryEntry]]] = defaultdict(lambda: defaultdict(list))
    for entry in ordered:
        grouped[entry.hostname][entry.interface].append(entry)

    now = datetime.now()
    for hostname in sorted(grouped):
        print()
        print(_host_header(f" Host: {hostname} "))
        interfaces = grouped[hostname]
        for iface in sorted(interfaces):
            if iface == "lo":
                continue
            _print_interface_history(table, iface, interfaces[iface], limit, now)