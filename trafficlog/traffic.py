"""Traffic accounting: counter deltas, history buckets, retention pruning."""

from __future__ import annotations

import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from trafficlog.models import InterfaceStats
from trafficlog.store import TRAFFIC_TABLES, Store

_U32_MAX = (1 << 32) - 1
_U64_MAX = (1 << 64) - 1

_HOST_INTERFACES = "(SELECT id FROM interface WHERE host_id = ?)"
_REMOTE_HOST_INTERFACES = (
    "(SELECT id FROM interface WHERE host_id = (SELECT id FROM host WHERE machine_id = ?))"
)
_REMOTE_INTERFACE = (
    "(SELECT id FROM interface WHERE name = ? AND host_id = "
    "(SELECT id FROM host WHERE machine_id = ?))"
)


def _sat_add(a: int, b: int) -> int:
    return min(a + b, _U64_MAX)


def _sat_sub(a: int, b: int) -> int:
    return max(a - b, 0)


def calculate_delta(current: int, last: int, time_diff: int, max_bytes_per_sec: int) -> int:
    """Bytes transferred between two counter readings, allowing for rollover.

    A decrease is taken as a 32-bit or 64-bit wrap when the implied rate stays
    within ``max_bytes_per_sec``; otherwise the counter is assumed to have been
    reset and ``current`` is returned. A zero limit disables the check.
    """
    if current >= last:
        return current - last
    if max_bytes_per_sec == 0:
        return current
    time_diff = max(time_diff, 1)
    roll_32 = _sat_add(_sat_add(_sat_sub(_U32_MAX, last), current), 1)
    roll_64 = _sat_add(_sat_add(_sat_sub(_U64_MAX, last), current), 1)
    if last <= _U32_MAX and roll_32 // time_diff <= max_bytes_per_sec:
        return roll_32
    if roll_64 // time_diff <= max_bytes_per_sec:
        return roll_64
    return current


@dataclass(frozen=True)
class Retention:
    """How long each traffic table keeps its rows."""

    five_minute_hours: int = 48
    hourly_days: int = 4
    daily_days: int = 62
    monthly_months: int = 25
    yearly_years: int = -1
    top_day_entries: int = 20


def _check_table(table: str) -> str:
    if table not in TRAFFIC_TABLES:
        raise ValueError(f"unknown traffic table: {table}")
    return table


def _utc_midnight(dt: datetime) -> int:
    return int(datetime(dt.year, dt.month, dt.day, tzinfo=timezone.utc).timestamp())


class TrafficStore(Store):
    """Store that records interface traffic and keeps it within retention limits."""

    def add_traffic(
        self,
        interface_id: int,
        interface_name: str,
        table: str,
        date: int,
        rx: int,
        tx: int,
    ) -> None:
        """Add rx/tx bytes to the bucket at ``date`` of ``table``."""
        table = _check_table(table)
        now = int(time.time())
        self.local_conn.execute(
            f"INSERT INTO {table} (interface, date, rx, tx) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(interface, date) DO UPDATE SET rx = rx + excluded.rx, "
            "tx = tx + excluded.tx",
            (interface_id, date, rx, tx),
        )
        try:
            self.local_conn.execute(
                "UPDATE host SET last_seen = ? WHERE machine_id = ?", (now, self.machine_id)
            )
        except sqlite3.Error:
            pass

        if self.remote_conn is not None:
            self._remote_execute(
                f"INSERT INTO {table} (interface, date, rx, tx) "
                "SELECT id, ?, ?, ? FROM interface WHERE name = ? AND host_id = "
                "(SELECT id FROM host WHERE machine_id = ?) "
                "ON CONFLICT(interface, date) DO UPDATE SET rx = rx + excluded.rx, "
                "tx = tx + excluded.tx",
                (date, rx, tx, interface_name, self.machine_id),
                f"Failed to add traffic to remote (table {table})",
            )
            self._remote_execute(
                "UPDATE host SET last_seen = ? WHERE machine_id = ?",
                (now, self.machine_id),
                None,
            )

    def add_history_entry(self, interface_id: int, name: str, rx_delta: int, tx_delta: int) -> None:
        """Record a delta in every history table at the current UTC buckets."""
        now = int(time.time())
        dt = datetime.fromtimestamp(now, timezone.utc)
        day = _utc_midnight(dt)
        month = _utc_midnight(dt.replace(day=1))
        year = _utc_midnight(dt.replace(month=1, day=1))
        buckets = (
            ("fiveminute", now // 300 * 300),
            ("hour", now // 3600 * 3600),
            ("day", day),
            ("month", month),
            ("year", year),
            ("top", day),
        )
        for table, date in buckets:
            self.add_traffic(interface_id, name, table, date, rx_delta, tx_delta)

    def _prune_table(self, table: str, cutoff: int, label: str) -> None:
        self.local_conn.execute(
            f"DELETE FROM {table} WHERE date < ? AND interface IN {_HOST_INTERFACES}",
            (cutoff, self.host_id),
        )
        self._remote_execute(
            f"DELETE FROM {table} WHERE date < ? AND interface IN {_REMOTE_HOST_INTERFACES}",
            (cutoff, self.machine_id),
            f"Failed to prune {label} data on remote",
        )

    def prune_stats(self, retention: Retention) -> None:
        """Delete this host's rows older than the retention limits."""
        now = int(time.time())
        self._prune_table("fiveminute", now - retention.five_minute_hours * 3600, "5-minute")
        self._prune_table("hour", now - retention.hourly_days * 86400, "hourly")
        self._prune_table("day", now - retention.daily_days * 86400, "daily")
        self._prune_table("month", now - retention.monthly_months * 30 * 86400, "monthly")
        if retention.yearly_years >= 0:
            self._prune_table("year", now - retention.yearly_years * 365 * 86400, "yearly")

        interface_ids = [
            row[0]
            for row in self.local_conn.execute(
                "SELECT id FROM interface WHERE host_id = ?", (self.host_id,)
            )
        ]
        for iface_id in interface_ids:
            self.local_conn.execute(
                "DELETE FROM top WHERE interface = ? AND date NOT IN ("
                "SELECT date FROM top WHERE interface = ? ORDER BY (rx + tx) DESC LIMIT ?)",
                (iface_id, iface_id, retention.top_day_entries),
            )
            if self.remote_conn is None:
                continue
            row = self.local_conn.execute(
                "SELECT name FROM interface WHERE id = ?", (iface_id,)
            ).fetchone()
            if row is None:
                continue
            iface_name = row[0]
            self._remote_execute(
                f"DELETE FROM top WHERE interface = {_REMOTE_INTERFACE} AND date NOT IN ("
                f"SELECT date FROM top WHERE interface = {_REMOTE_INTERFACE} "
                "ORDER BY (rx + tx) DESC LIMIT ?)",
                (
                    iface_name,
                    self.machine_id,
                    iface_name,
                    self.machine_id,
                    retention.top_day_entries,
                ),
                f"Failed to prune top data on remote for interface {iface_id}",
            )

    def update_stats(
        self,
        stats: Iterable[InterfaceStats],
        filter_iface: str | None = None,
        max_bandwidth: int = 1000,
    ) -> None:
        """Fold fresh kernel counters into the database.

        ``max_bandwidth`` is in Mbit/s and bounds what counts as a counter wrap.
        """
        seen_ids: set[int] = set()
        max_bytes_per_sec = max_bandwidth * 1_000_000 // 8

        for stat in stats:
            if filter_iface is not None and stat.name != filter_iface:
                continue
            print(f"Processing interface: {stat.name}")

            record = self.get_interface(stat.name)
            if record is None:
                new_id = self.create_interface(
                    stat.name, stat.rx_bytes, stat.tx_bytes, stat.mac_address
                )
                seen_ids.add(new_id)
                self.add_history_entry(new_id, stat.name, 0, 0)
                print(
                    f"New interface found and registered: {stat.name} (host: {self.hostname})"
                )
                continue

            seen_ids.add(record.id)
            try:
                self.set_interface_active(record.id, stat.name, True)
            except sqlite3.Error:
                pass

            if not record.mac_address and stat.mac_address is not None:
                try:
                    self.update_interface_mac(record.id, stat.name, stat.mac_address)
                except sqlite3.Error:
                    pass

            now = int(time.time())
            time_diff = max(now - record.updated, 1)
            rx_delta = calculate_delta(stat.rx_bytes, record.rx_counter, time_diff, max_bytes_per_sec)
            tx_delta = calculate_delta(stat.tx_bytes, record.tx_counter, time_diff, max_bytes_per_sec)
            changed = rx_delta > 0 or tx_delta > 0

            if changed or now - record.updated >= 300:
                if changed:
                    print(f"Updating interface {stat.name} (+{rx_delta} RX, +{tx_delta} TX)...")
                self.update_interface_counters(
                    record.id,
                    stat.name,
                    stat.rx_bytes,
                    stat.tx_bytes,
                    rx_delta,
                    tx_delta,
                    record.rx_total,
                    record.tx_total,
                    record.created,
                    record.mac_address,
                )
                if changed:
                    self.add_history_entry(record.id, stat.name, rx_delta, tx_delta)

        if filter_iface is None:
            for known in self.get_all_interface_stats(None, self.machine_id):
                record = self.get_interface(known.name)
                if record is not None and record.id not in seen_ids:
                    try:
                        self.set_interface_active(record.id, known.name, False)
                    except sqlite3.Error:
                        pass

    def _read_conn(self, filter_host: str | None) -> sqlite3.Connection:
        if filter_host is None or filter_host != self.machine_id:
            return self.remote_conn or self.local_conn
        return self.local_conn

    def get_all_interface_stats(
        self, filter_iface: str | None = None, filter_host: str | None = None
    ) -> list[InterfaceStats]:
        """Return stored totals per interface, optionally for one interface or host."""
        conn = self._read_conn(filter_host)
        sql = (
            "SELECT i.name, i.alias, i.mac_address, i.rxtotal, i.txtotal, h.hostname, "
            "i.created, i.updated FROM interface i JOIN host h ON i.host_id = h.id "
            "WHERE i.name != 'lo'"
        )
        params: list[str] = []
        if filter_iface is not None:
            sql += " AND i.name = ?"
            params.append(filter_iface)
        if filter_host is not None:
            sql += " AND (h.hostname = ? OR h.machine_id = ?)"
            params.extend((filter_host, filter_host))

        return [
            InterfaceStats(
                name=name,
                alias=alias,
                mac_address=mac,
                rx_bytes=rxtotal,
                tx_bytes=txtotal,
                rx_packets=0,
                tx_packets=0,
                hostname=hostname,
                created=created,
                updated=updated,
            )
            for name, alias, mac, rxtotal, txtotal, hostname, created, updated in conn.execute(
                sql, params
            )
        ]