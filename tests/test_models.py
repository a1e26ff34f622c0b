import json
import time

import pytest

from trafficlog.models import (
    HistoryEntry,
    InterfaceStats,
    JsonDate,
    JsonHistoryEntry,
    JsonTime,
    JsonTimestamp,
    VnStatJson,
)


@pytest.fixture
def utc(monkeypatch):
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


def make_stats():
    return [
        InterfaceStats(
            name="eth0",
            alias="lan",
            mac_address="02:00:00:00:00:01",
            rx_bytes=1000,
            tx_bytes=2000,
            rx_packets=10,
            tx_packets=20,
            hostname="test-host",
            created=1700000000,
            updated=1700003600,
        )
    ]


def test_vnstat_xml_format():
    xml = VnStatJson.from_stats(make_stats()).to_xml()
    assert "<vnstat version=" in xml
    assert 'xmlversion="2"' in xml
    assert '<interface name="eth0">' in xml
    assert "<name>eth0</name>" in xml
    assert "<alias>lan</alias>" in xml
    assert "<mac_address>02:00:00:00:00:01</mac_address>" in xml
    assert "<traffic>" in xml
    assert "<total><rx>1000</rx><tx>2000</tx></total>" in xml


def test_xml_envelope():
    xml = VnStatJson.from_stats(make_stats()).to_xml()
    lines = xml.split("\n")
    assert lines[0].endswith('xmlversion="2">')
    assert lines[1].startswith(" <interface") and lines[1].endswith(" </interface>")
    assert lines[-1] == "</vnstat>"


def test_date_and_time_xml_padding():
    assert JsonDate(2024, 3, 7).to_xml() == (
        "<date><year>2024</year><month>03</month><day>07</day></date>"
    )
    assert JsonTime(5, 9).to_xml() == "<time><hour>05</hour><minute>09</minute></time>"


def test_from_timestamp_utc(utc):
    ts = JsonTimestamp.from_timestamp(1700000000, True)
    assert ts.date == JsonDate(2023, 11, 14)
    assert ts.time == JsonTime(22, 13)
    assert ts.timestamp == 1700000000


def test_from_timestamp_without_time(utc):
    ts = JsonTimestamp.from_timestamp(0, False)
    assert ts.time is None
    assert ts.to_xml("created") == (
        "<created><date><year>1970</year><month>01</month><day>01</day></date>"
        "<timestamp>0</timestamp></created>"
    )


def test_history_entry_xml_default_id():
    entry = JsonHistoryEntry(date=JsonDate(2024, 1, 2), timestamp=5, rx=1, tx=2)
    assert entry.to_xml("day") == (
        '<day id="0"><date><year>2024</year><month>01</month><day>02</day></date>'
        "<timestamp>5</timestamp><rx>1</rx><tx>2</tx></day>"
    )


def test_history_to_json_time_flag():
    entry = HistoryEntry("h", "eth0", 1700000000, 3, 4)
    assert entry.to_json(False).time is None
    with_time = entry.to_json(True)
    assert with_time.time is not None
    assert (with_time.timestamp, with_time.rx, with_time.tx) == (1700000000, 3, 4)


def test_interface_to_json_alias_default():
    stats = make_stats()
    stats[0].alias = None
    iface = stats[0].to_json()
    assert iface.alias == ""
    assert iface.created.time is None
    assert iface.updated.time is not None


def test_json_skips_empty_tables_and_none():
    data = json.loads(VnStatJson.from_stats(make_stats()).to_json())
    assert data["jsonversion"] == "2"
    iface = data["interfaces"][0]
    assert iface["traffic"] == {"total": {"rx": 1000, "tx": 2000}}
    assert "time" not in iface["created"]
    assert set(iface["updated"]["time"]) == {"hour", "minute"}


def test_insert_history_into_existing_interface():
    doc = VnStatJson.from_stats(make_stats())
    doc.insert_history([HistoryEntry("test-host", "eth0", 1700000000, 5, 6)], "day")
    assert len(doc.interfaces) == 1
    days = doc.interfaces[0].traffic.day
    assert [(d.rx, d.tx) for d in days] == [(5, 6)]
    assert days[0].time is None
    assert "<days><day id=\"0\">" in doc.to_xml()


def test_from_history_creates_interfaces():
    history = [
        HistoryEntry("h", "eth1", 1700000000, 1, 2),
        HistoryEntry("h", "eth1", 1700000300, 3, 4),
        HistoryEntry("h", "wlan0", 1700000000, 5, 6),
    ]
    doc = VnStatJson.from_history(history, "fiveminute")
    assert [i.name for i in doc.interfaces] == ["eth1", "wlan0"]
    assert len(doc.interfaces[0].traffic.fiveminute) == 2
    assert doc.interfaces[0].traffic.fiveminute[0].time is not None
    data = doc.to_dict()
    assert data["interfaces"][0]["mac_address"] is None
    assert len(data["interfaces"][0]["traffic"]["fiveminute"]) == 2


def test_unknown_table_adds_no_entries():
    doc = VnStatJson.from_history([HistoryEntry("h", "eth2", 1, 1, 1)], "weekly")
    assert [i.name for i in doc.interfaces] == ["eth2"]
    assert doc.to_dict()["interfaces"][0]["traffic"] == {"total": {"rx": 0, "tx": 0}}


def test_json_history_entry_key_order():
    doc = VnStatJson.from_history([HistoryEntry("h", "eth0", 1700000000, 7, 8)], "top")
    entry = doc.to_dict()["interfaces"][0]["traffic"]["top"][0]
    assert list(entry) == ["date", "timestamp", "rx", "tx"]