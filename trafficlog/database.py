"""Read-side queries: history listings, period summaries and percentile samples."""

from __future__ import annotations

import sqlite3
import time
from collections import defaultdict
from datetime import date, datetime, timedelta

from trafficlog.models import HistoryEntry, NinetyFifthData, SummaryData
from trafficlog.store import TRAFFIC_TABLES
from trafficlog.traffic import TrafficStore

_IFACE_QUERY = (
    "SELECT i.id, i.name, h.hostname, h.machine_id FROM interface i "
    "JOIN host h ON i.host_id = h.id WHERE i.name != 'lo'"
)

# Tables read from a finer source table and regrouped by local time.
_AGGREGATE_SOURCES = {"hour": "fiveminute", "day": "hour", "month": "day", "year": "day"}
_FETCH_FACTORS = {"hour": 12, "day": 24, "month": 31, "year": 366}


def _local_ts(dt: datetime) -> int:
    return int(dt.timestamp())


def _local_midnight(day: date) -> int:
    return _local_ts(datetime(day.year, day.month, day.day))


def _local_bucket(table: str, ts: int) -> int:
    """Start of the local-time period of ``table`` that contains ``ts``."""
    dt = datetime.fromtimestamp(ts)
    if table == "hour":
        return _local_ts(dt.replace(minute=0, second=0, microsecond=0))
    if table == "day":
        return _local_midnight(dt.date())
    if table == "month":
        return _local_midnight(dt.date().replace(day=1))
    if table == "year":
        return _local_midnight(date(dt.year, 1, 1))
    return ts


class Database(TrafficStore):
    """Traffic store with the queries used for reporting."""

    def _interfaces(
        self,
        conn: sqlite3.Connection,
        filter_iface: str | None,
        filter_host: str | None,
        order: str = "",
    ) -> list[tuple[int, str, str, str]]:
        sql = _IFACE_QUERY
        params: list[str] = []
        if filter_iface is not None:
            sql += " AND i.name = ?"
            params.append(filter_iface)
        if filter_host is not None:
            sql += " AND (h.hostname = ? OR h.machine_id = ?)"
            params.extend((filter_host, filter_host))
        sql += order
        return [tuple(row) for row in conn.execute(sql, params)]

    def get_history(
        self,
        table: str,
        filter_iface: str | None = None,
        filter_host: str | None = None,
        limit: int = 10,
        begin: int | None = None,
        end: int | None = None,
    ) -> list[HistoryEntry]:
        """Return history rows per interface, newest first (``top``: largest first).

        Hour, day, month and year rows are rebuilt from the next finer table so
        that they follow local-time boundaries. An interface with no rows gets
        one zero entry dated 0 so that it still shows up.
        """
        if table not in TRAFFIC_TABLES:
            raise ValueError(f"unknown traffic table: {table}")
        if limit < 0:
            raise ValueError("limit must not be negative")
        conn = self._read_conn(filter_host)
        source = _AGGREGATE_SOURCES.get(table, table)
        aggregate = table in _AGGREGATE_SOURCES

        history: list[HistoryEntry] = []
        for iface_id, name, hostname, _machine_id in self._interfaces(
            conn, filter_iface, filter_host
        ):
            sql = f"SELECT rx, tx, date FROM {source} WHERE interface = ?"
            params: list[int] = [iface_id]
            if begin is not None:
                sql += " AND date >= ?"
                params.append(begin)
            if end is not None:
                sql += " AND date <= ?"
                params.append(end)
            if aggregate:
                sql += " ORDER BY date DESC LIMIT ?"
                params.append(limit * _FETCH_FACTORS[table])
            elif table == "top":
                sql += " ORDER BY (rx + tx) DESC LIMIT ?"
                params.append(limit)
            else:
                sql += " ORDER BY date DESC LIMIT ?"
                params.append(limit)

            rows = conn.execute(sql, params).fetchall()
            if aggregate:
                buckets: dict[int, list[int]] = defaultdict(lambda: [0, 0])
                for rx, tx, when in rows:
                    bucket = buckets[_local_bucket(table, when)]
                    bucket[0] += rx
                    bucket[1] += tx
                for when in sorted(buckets, reverse=True)[:limit]:
                    rx, tx = buckets[when]
                    history.append(HistoryEntry(hostname, name, when, rx, tx))
            else:
                history.extend(
                    HistoryEntry(hostname, name, when, rx, tx) for rx, tx, when in rows
                )

            if not rows:
                history.append(HistoryEntry(hostname, name, 0, 0, 0))

        if table == "top":
            history.sort(key=lambda h: h.rx + h.tx, reverse=True)
        else:
            history.sort(key=lambda h: h.date, reverse=True)
        return history

    def get_summary(
        self, filter_iface: str | None = None, filter_host: str | None = None
    ) -> list[SummaryData]:
        """Return today, yesterday, this month and last month totals per interface."""
        conn = self._read_conn(filter_host)
        interfaces = self._interfaces(
            conn, filter_iface, filter_host, " ORDER BY h.hostname, i.name"
        )

        today = datetime.now().date()
        today_ts = _local_midnight(today)
        yesterday_ts = _local_midnight(today - timedelta(days=1))
        this_month = today.replace(day=1)
        this_month_ts = _local_midnight(this_month)
        if this_month.month == 1:
            last_month = date(this_month.year - 1, 12, 1)
        else:
            last_month = this_month.replace(month=this_month.month - 1)
        last_month_ts = _local_midnight(last_month)

        summaries: list[SummaryData] = []
        for iface_id, name, hostname, _machine_id in interfaces:
            days = {today_ts: [0, 0], yesterday_ts: [0, 0]}
            for when, rx, tx in conn.execute(
                "SELECT date, rx, tx FROM hour WHERE interface = ? AND date >= ?",
                (iface_id, yesterday_ts - 3600),
            ):
                slot = days.get(_local_bucket("day", when))
                if slot is not None:
                    slot[0] += rx
                    slot[1] += tx

            months = {this_month_ts: [0, 0], last_month_ts: [0, 0]}
            for when, rx, tx in conn.execute(
                "SELECT date, rx, tx FROM day WHERE interface = ? AND date >= ?",
                (iface_id, last_month_ts - 86400),
            ):
                slot = months.get(_local_bucket("month", when))
                if slot is not None:
                    slot[0] += rx
                    slot[1] += tx

            summaries.append(
                SummaryData(
                    name=name,
                    hostname=hostname,
                    today=tuple(days[today_ts]),
                    yesterday=tuple(days[yesterday_ts]),
                    this_month=tuple(months[this_month_ts]),
                    last_month=tuple(months[last_month_ts]),
                )
            )
        return summaries

    def get_95th_data(
        self, filter_iface: str | None = None, filter_host: str | None = None
    ) -> NinetyFifthData:
        """Collect this month's five-minute samples for the busiest matching interface."""
        conn = self._read_conn(filter_host)
        found = self._interfaces(
            conn,
            filter_iface,
            filter_host,
            " ORDER BY i.active DESC, (i.rxtotal + i.txtotal) DESC LIMIT 1",
        )
        if not found:
            raise LookupError("Interface not found")
        iface_id, name, hostname, _machine_id = found[0]

        now = int(time.time())
        begin = _local_midnight(datetime.fromtimestamp(now).date().replace(day=1))
        end = now

        rx: list[int] = []
        tx: list[int] = []
        for r, t in conn.execute(
            "SELECT rx, tx FROM fiveminute WHERE interface = ? AND date >= ? AND date <= ? "
            "ORDER BY date ASC",
            (iface_id, begin, end),
        ):
            rx.append(r)
            tx.append(t)

        expected = (end - begin) // 300
        coverage = len(rx) / expected * 100.0 if expected > 0 else 100.0
        return NinetyFifthData(
            interface=name,
            hostname=hostname,
            begin=begin,
            end=end,
            count=len(rx),
            coverage=coverage,
            rx=rx,
            tx=tx,
        )