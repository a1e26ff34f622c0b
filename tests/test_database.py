from datetime import date, datetime, timedelta

import pytest

from trafficlog.database import Database
from trafficlog.store import TRAFFIC_TABLES, Schema

_TRAFFIC_SQL = "".join(
    f"CREATE TABLE IF NOT EXISTS {t} (id INTEGER PRIMARY KEY AUTOINCREMENT, "
    "interface INTEGER NOT NULL, date INTEGER NOT NULL, rx INTEGER NOT NULL DEFAULT 0, "
    "tx INTEGER NOT NULL DEFAULT 0, UNIQUE(interface, date));\n"
    for t in TRAFFIC_TABLES
)

SCHEMA = Schema(
    version=1,
    sql=(
        "CREATE TABLE IF NOT EXISTS info (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "name TEXT UNIQUE NOT NULL, value TEXT NOT NULL);\n"
        "CREATE TABLE IF NOT EXISTS host (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "machine_id TEXT UNIQUE NOT NULL, hostname TEXT NOT NULL, version TEXT, "
        "started INTEGER, last_seen INTEGER);\n"
        "CREATE TABLE IF NOT EXISTS interface (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "host_id INTEGER NOT NULL, name TEXT NOT NULL, alias TEXT, mac_address TEXT, "
        "active INTEGER NOT NULL DEFAULT 1, created INTEGER NOT NULL, updated INTEGER NOT NULL, "
        "rxcounter INTEGER NOT NULL DEFAULT 0, txcounter INTEGER NOT NULL DEFAULT 0, "
        "rxtotal INTEGER NOT NULL DEFAULT 0, txtotal INTEGER NOT NULL DEFAULT 0, "
        "UNIQUE(host_id, name));\n" + _TRAFFIC_SQL
    ),
)


@pytest.fixture
def db(tmp_path):
    database = Database.open(
        tmp_path / "traffic.db", SCHEMA, hostname_override="host-a", machine_id="machine-a"
    )
    with database:
        yield database


def _local(dt):
    return int(dt.timestamp())


def _other_host_interface(db):
    db.local_conn.execute(
        "INSERT INTO host (machine_id, hostname) VALUES (?, ?)", ("machine-b", "host-b")
    )
    host_b = db.local_conn.execute(
        "SELECT id FROM host WHERE machine_id = 'machine-b'"
    ).fetchone()[0]
    db.local_conn.execute(
        "INSERT INTO interface (host_id, name, created, updated) VALUES (?, ?, 0, 0)",
        (host_b, "eth0"),
    )
    return db.local_conn.execute("SELECT last_insert_rowid()").fetchone()[0]


def test_fiveminute_history_is_newest_first_and_limited(db):
    iface = db.create_interface("eth0", 0, 0, None)
    for i, when in enumerate((1000, 1300, 1600)):
        db.add_traffic(iface, "eth0", "fiveminute", when, 10 + i, 20 + i)
    history = db.get_history("fiveminute", None, "machine-a", 2, None, None)
    assert [h.date for h in history] == [1600, 1300]
    assert (history[0].rx, history[0].tx) == (12, 22)
    assert all(h.hostname == "host-a" and h.interface == "eth0" for h in history)


def test_interface_without_data_gets_filler_entry(db):
    db.create_interface("eth1", 0, 0, None)
    history = db.get_history("day", "eth1", "machine-a", 5, None, None)
    assert len(history) == 1
    assert (history[0].date, history[0].rx, history[0].tx) == (0, 0, 0)


def test_hour_history_groups_fiveminute_rows_by_local_hour(db):
    iface = db.create_interface("eth0", 0, 0, None)
    base = _local(datetime(2024, 6, 15, 10, 0))
    db.add_traffic(iface, "eth0", "fiveminute", base, 100, 1)
    db.add_traffic(iface, "eth0", "fiveminute", base + 300, 200, 2)
    db.add_traffic(iface, "eth0", "fiveminute", base + 3600, 50, 5)

    history = db.get_history("hour", "eth0", "machine-a", 24, None, None)
    assert [h.date for h in history] == [base + 3600, base]
    assert (history[1].rx, history[1].tx) == (100 + 200, 1 + 2)

    latest_only = db.get_history("hour", "eth0", "machine-a", 1, None, None)
    assert [h.date for h in latest_only] == [base + 3600]


def test_begin_and_end_bound_the_rows(db):
    iface = db.create_interface("eth0", 0, 0, None)
    for when in (1000, 2000, 3000):
        db.add_traffic(iface, "eth0", "fiveminute", when, 1, 1)
    history = db.get_history("fiveminute", "eth0", "machine-a", 10, 1500, 2500)
    assert [h.date for h in history] == [2000]


def test_top_orders_by_total_traffic(db):
    iface = db.create_interface("eth0", 0, 0, None)
    db.add_traffic(iface, "eth0", "top", 86400, 5, 5)
    db.add_traffic(iface, "eth0", "top", 2 * 86400, 50, 50)
    db.add_traffic(iface, "eth0", "top", 3 * 86400, 20, 0)
    history = db.get_history("top", "eth0", "machine-a", 2, None, None)
    assert [h.date for h in history] == [2 * 86400, 3 * 86400]
    totals = [h.rx + h.tx for h in history]
    assert totals == sorted(totals, reverse=True)


def test_unknown_table_is_rejected(db):
    with pytest.raises(ValueError):
        db.get_history("week", None, "machine-a", 10, None, None)


def test_host_filter_excludes_other_hosts(db):
    iface_a = db.create_interface("eth0", 0, 0, None)
    iface_b = _other_host_interface(db)
    db.add_traffic(iface_a, "eth0", "fiveminute", 600, 1, 1)
    db.add_traffic(iface_b, "eth0", "fiveminute", 900, 7, 7)

    mine = db.get_history("fiveminute", None, "machine-a", 10, None, None)
    assert {h.hostname for h in mine} == {"host-a"}
    everyone = db.get_history("fiveminute", None, None, 10, None, None)
    assert {h.hostname for h in everyone} == {"host-a", "host-b"}
    by_name = db.get_history("fiveminute", None, "host-b", 10, None, None)
    assert [h.date for h in by_name] == [900]


def test_summary_sums_local_periods(db):
    iface = db.create_interface("eth0", 0, 0, None)
    today = datetime.now().date()
    this_month = today.replace(day=1)
    last_month = (this_month - timedelta(days=1)).replace(day=1)

    def midnight(d: date) -> int:
        return _local(datetime(d.year, d.month, d.day))

    db.add_traffic(iface, "eth0", "hour", midnight(today), 11, 12)
    db.add_traffic(iface, "eth0", "hour", midnight(today - timedelta(days=1)), 21, 22)
    db.add_traffic(iface, "eth0", "day", midnight(this_month), 31, 32)
    db.add_traffic(iface, "eth0", "day", midnight(last_month), 41, 42)

    summaries = db.get_summary("eth0", "machine-a")
    assert len(summaries) == 1
    summary = summaries[0]
    assert (summary.name, summary.hostname) == ("eth0", "host-a")
    assert summary.today == (11, 12)
    assert summary.yesterday == (21, 22)
    assert summary.this_month == (31, 32)
    assert summary.last_month == (41, 42)


def test_summary_is_ordered_by_host_then_interface(db):
    db.create_interface("wlan0", 0, 0, None)
    db.create_interface("eth0", 0, 0, None)
    summaries = db.get_summary(None, "machine-a")
    assert [s.name for s in summaries] == ["eth0", "wlan0"]
    assert all(s.today == (0, 0) for s in summaries)


def test_95th_collects_this_month_samples(db):
    iface = db.create_interface("eth0", 0, 0, None)
    month_start = _local(datetime.combine(datetime.now().date().replace(day=1), datetime.min.time()))
    db.add_traffic(iface, "eth0", "fiveminute", month_start - 300, 999, 999)
    db.add_traffic(iface, "eth0", "fiveminute", month_start, 300, 600)

    data = db.get_95th_data("eth0", "machine-a")
    assert data.interface == "eth0"
    assert data.hostname == "host-a"
    assert data.begin == month_start
    assert data.end >= data.begin
    assert data.count == 1
    assert data.rx == [300]
    assert data.tx == [600]
    assert 0.0 < data.coverage <= 100.0


def test_95th_prefers_busiest_active_interface(db):
    quiet = db.create_interface("eth0", 0, 0, None)
    busy = db.create_interface("eth1", 0, 0, None)
    db.update_interface_counters(busy, "eth1", 0, 0, 5000, 5000, 0, 0, 0, None)
    db.update_interface_counters(quiet, "eth0", 0, 0, 10, 10, 0, 0, 0, None)
    assert db.get_95th_data(None, "machine-a").interface == "eth1"

    db.set_interface_active(busy, "eth1", False)
    assert db.get_95th_data(None, "machine-a").interface == "eth0"


def test_95th_without_interface_raises(db):
    with pytest.raises(LookupError):
        db.get_95th_data("eth9", "machine-a")