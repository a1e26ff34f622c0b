import time
from datetime import datetime

import pytest

from trafficlog.display import (
    format_bytes_short,
    format_rate,
    format_relative_time,
    print_history_table,
    print_summary_table,
)
from trafficlog.models import HistoryEntry, SummaryData


def _local_ts(*args):
    return int(datetime(*args).timestamp())


@pytest.mark.parametrize(
    "bits, expected",
    [
        (1_500_000_000_000.0, "1.50 Tbit/s"),
        (1_000_000_000.0, "1.00 Gbit/s"),
        (500_000_000.0, "500.00 Mbit/s"),
        (389_393_090.0, "389.39 Mbit/s"),
        (9_931_520.0, "9.93 Mbit/s"),
        (500_000.0, "500.00 kbit/s"),
        (500.0, "500.00 bit/s"),
    ],
)
def test_format_rate(bits, expected):
    assert format_rate(bits) == expected


def test_format_bytes_short():
    assert format_bytes_short(512) == "512 B"
    assert format_bytes_short(1536) == "1.50 KiB"
    assert format_bytes_short(1024 * 1024) == "1.00 MiB"


def test_relative_time_never_and_future():
    assert format_relative_time(0) == "never"
    assert format_relative_time(-5) == "never"
    assert format_relative_time(int(time.time()) + 3600) == "in the future"


@pytest.mark.parametrize(
    "age, expected",
    [
        (10, "< 1m ago"),
        (150, "2m ago"),
        (3 * 3600 + 100, "3h ago"),
        (2 * 86400 + 100, "2d ago"),
        (65 * 86400, "2mo ago"),
        (400 * 86400, "1y ago"),
    ],
)
def test_relative_time_ages(age, expected):
    assert format_relative_time(int(time.time()) - age) == expected


def test_summary_empty(capsys):
    print_summary_table([], "id")
    assert capsys.readouterr().out.strip() == "No data available for the selected host(s)."


def test_summary_lines(capsys):
    summary = SummaryData(
        name="eth0",
        hostname="zz-other-host",
        today=(0, 0),
        yesterday=(1024, 2048),
        this_month=(0, 0),
        last_month=(0, 0),
    )
    print_summary_table([summary], "id")
    out = capsys.readouterr().out
    lines = out.splitlines()
    assert any(line.startswith(" Host: zz-other-host (") and len(line) == 73 for line in lines)
    assert " eth0:" in lines
    expected = f"{'yesterday':>14}{'1.00 KiB':>11}  /  {'2.00 KiB':>11}  /  {'3.00 KiB':>11}"
    assert expected in lines
    today_line = next(line for line in lines if line.strip().startswith("today"))
    assert today_line.endswith(f"  /  {'--':>11}")
    assert datetime.now().strftime("%Y-%m") in out


def test_summary_skips_loopback(capsys):
    print_summary_table([SummaryData(name="lo", hostname="zz-other-host")], "id")
    out = capsys.readouterr().out
    assert " lo:" not in out
    assert "estimated" in out


def test_history_empty(capsys):
    print_history_table("day", [], 10)
    assert capsys.readouterr().out.strip() == "No data available."


def test_history_day_row_and_rate(capsys):
    entry = HistoryEntry("alpha", "eth0", _local_ts(2020, 5, 17), 10_800_000, 0)
    print_history_table("day", [entry], 30)
    out = capsys.readouterr().out
    assert " eth0  /  daily (" in out
    assert "2020-05-17" in out
    assert "1.00 kbit/s" in out
    assert "10.30 MiB" in out
    assert "estimated" not in out


def test_history_month_uses_leap_february(capsys):
    entry = HistoryEntry("alpha", "eth0", _local_ts(2020, 2, 1), 313_200_000, 0)
    print_history_table("month", [entry], 12)
    out = capsys.readouterr().out
    assert "2020-02" in out
    assert "1.00 kbit/s" in out


def test_history_hour_groups_by_date(capsys):
    entries = [
        HistoryEntry("alpha", "eth0", _local_ts(2020, 5, 17, 13), 100, 100),
        HistoryEntry("alpha", "eth0", _local_ts(2020, 5, 17, 12), 100, 100),
    ]
    print_history_table("hour", entries, 24)
    lines = capsys.readouterr().out.splitlines()
    assert lines.count("     2020-05-17") == 1
    row12 = next(i for i, line in enumerate(lines) if "12:00" in line)
    row13 = next(i for i, line in enumerate(lines) if "13:00" in line)
    assert row12 < row13


def test_history_skips_filler_entry(capsys):
    print_history_table("day", [HistoryEntry("alpha", "eth0", 0, 0, 0)], 30)
    lines = capsys.readouterr().out.splitlines()
    separators = [line for line in lines if line.startswith("     ----")]
    assert len(separators) == 2
    first = lines.index(separators[0])
    assert lines[first + 1] == separators[1]


def test_history_hosts_sorted_and_loopback_hidden(capsys):
    entries = [
        HistoryEntry("beta", "eth0", _local_ts(2020, 5, 17), 10, 10),
        HistoryEntry("alpha", "eth1", _local_ts(2020, 5, 16), 10, 10),
        HistoryEntry("alpha", "lo", _local_ts(2020, 5, 16), 10, 10),
    ]
    print_history_table("day", entries, 30)
    out = capsys.readouterr().out
    assert out.index(" Host: alpha ") < out.index(" Host: beta ")
    header = next(line for line in out.splitlines() if line.startswith(" Host: alpha "))
    assert len(header) == 73
    assert " lo  /" not in out


def test_history_top_title(capsys):
    print_history_table("top", [HistoryEntry("alpha", "eth0", _local_ts(2020, 5, 17), 1, 1)], 7)
    assert " eth0  /  top 7 (" in capsys.readouterr().out


def test_history_estimate_for_current_day(capsys):
    midnight = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    entry = HistoryEntry("alpha", "eth0", int(midnight.timestamp()), 5000, 5000)
    print_history_table("day", [entry], 30)
    assert "estimated" in capsys.readouterr().out


def test_history_no_estimate_for_hours(capsys):
    now_hour = datetime.now().replace(minute=0, second=0, microsecond=0)
    entry = HistoryEntry("alpha", "eth0", int(now_hour.timestamp()), 5000, 5000)
    print_history_table("hour", [entry], 24)
    assert "estimated" not in capsys.readouterr().out