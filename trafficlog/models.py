"""Traffic records and their JSON and XML export forms."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from typing import Any

_VERSION = "0.1.76"
_SKIP_NONE = {"skip_none": True}
_SKIP_EMPTY = {"skip_empty": True}
_TABLES = ("fiveminute", "hour", "day", "month", "year", "top")


def _serialize(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in fields(value):
            item = getattr(value, f.name)
            if f.metadata.get("skip_none") and item is None:
                continue
            if f.metadata.get("skip_empty") and not item:
                continue
            out[f.name] = _serialize(item)
        return out
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


@dataclass
class InterfaceStats:
    name: str
    alias: str | None
    mac_address: str | None
    rx_bytes: int
    tx_bytes: int
    rx_packets: int
    tx_packets: int
    hostname: str
    created: int
    updated: int

    def to_json(self) -> JsonInterface:
        """Convert to the export form with totals only."""
        return JsonInterface(
            name=self.name,
            alias=self.alias or "",
            mac_address=self.mac_address,
            created=JsonTimestamp.from_timestamp(self.created, False),
            updated=JsonTimestamp.from_timestamp(self.updated, True),
            traffic=JsonTraffic(total=JsonTotal(rx=self.rx_bytes, tx=self.tx_bytes)),
        )


@dataclass
class HostRecord:
    hostname: str
    machine_id: str
    version: str | None = None
    started: int | None = None
    last_seen: int | None = None


@dataclass(frozen=True)
class JsonDate:
    year: int
    month: int
    day: int

    def to_xml(self) -> str:
        return (
            f"<date><year>{self.year}</year><month>{self.month:02}</month>"
            f"<day>{self.day:02}</day></date>"
        )


@dataclass(frozen=True)
class JsonTime:
    hour: int
    minute: int

    def to_xml(self) -> str:
        return f"<time><hour>{self.hour:02}</hour><minute>{self.minute:02}</minute></time>"


@dataclass
class JsonTimestamp:
    date: JsonDate
    time: JsonTime | None = field(default=None, metadata=_SKIP_NONE)
    timestamp: int = 0

    @classmethod
    def from_timestamp(cls, ts: int, include_time: bool) -> JsonTimestamp:
        """Break a Unix timestamp into local date and optional time."""
        try:
            dt = datetime.fromtimestamp(ts)
        except (OverflowError, OSError, ValueError):
            dt = datetime.fromtimestamp(0)
        return cls(
            date=JsonDate(dt.year, dt.month, dt.day),
            time=JsonTime(dt.hour, dt.minute) if include_time else None,
            timestamp=ts,
        )

    def to_xml(self, tag: str) -> str:
        out = f"<{tag}>{self.date.to_xml()}"
        if self.time is not None:
            out += self.time.to_xml()
        return out + f"<timestamp>{self.timestamp}</timestamp></{tag}>"


@dataclass
class JsonTotal:
    rx: int = 0
    tx: int = 0


@dataclass
class JsonHistoryEntry:
    date: JsonDate
    timestamp: int
    rx: int
    tx: int
    id: int | None = field(default=None, metadata=_SKIP_NONE)
    time: JsonTime | None = field(default=None, metadata=_SKIP_NONE)

    def to_xml(self, tag: str) -> str:
        out = f'<{tag} id="{self.id or 0}">{self.date.to_xml()}'
        if self.time is not None:
            out += self.time.to_xml()
        return out + (
            f"<timestamp>{self.timestamp}</timestamp><rx>{self.rx}</rx>"
            f"<tx>{self.tx}</tx></{tag}>"
        )


def _history_entry_dict(entry: JsonHistoryEntry) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if entry.id is not None:
        out["id"] = entry.id
    out["date"] = _serialize(entry.date)
    if entry.time is not None:
        out["time"] = _serialize(entry.time)
    out.update(timestamp=entry.timestamp, rx=entry.rx, tx=entry.tx)
    return out


@dataclass
class JsonTraffic:
    total: JsonTotal = field(default_factory=JsonTotal)
    fiveminute: list[JsonHistoryEntry] = field(default_factory=list, metadata=_SKIP_EMPTY)
    hour: list[JsonHistoryEntry] = field(default_factory=list, metadata=_SKIP_EMPTY)
    day: list[JsonHistoryEntry] = field(default_factory=list, metadata=_SKIP_EMPTY)
    month: list[JsonHistoryEntry] = field(default_factory=list, metadata=_SKIP_EMPTY)
    year: list[JsonHistoryEntry] = field(default_factory=list, metadata=_SKIP_EMPTY)
    top: list[JsonHistoryEntry] = field(default_factory=list, metadata=_SKIP_EMPTY)

    def _add(self, table: str, entry: JsonHistoryEntry) -> None:
        if table in _TABLES:
            getattr(self, table).append(entry)

    def _as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"total": _serialize(self.total)}
        for table in _TABLES:
            entries = getattr(self, table)
            if entries:
                out[table] = [_history_entry_dict(e) for e in entries]
        return out

    def to_xml(self) -> str:
        parts = [
            "<traffic>",
            f"<total><rx>{self.total.rx}</rx><tx>{self.total.tx}</tx></total>",
        ]
        for table in _TABLES:
            entries = getattr(self, table)
            if entries:
                plural = f"{table}s"
                parts.append(f"<{plural}>")
                parts.extend(entry.to_xml(table) for entry in entries)
                parts.append(f"</{plural}>")
        parts.append("</traffic>")
        return "".join(parts)


@dataclass
class JsonInterface:
    name: str
    alias: str
    mac_address: str | None
    created: JsonTimestamp
    updated: JsonTimestamp
    traffic: JsonTraffic = field(default_factory=JsonTraffic)

    def _as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "alias": self.alias,
            "mac_address": self.mac_address,
            "created": _serialize(self.created),
            "updated": _serialize(self.updated),
            "traffic": self.traffic._as_dict(),
        }

    def to_xml(self) -> str:
        out = f' <interface name="{self.name}"><name>{self.name}</name><alias>{self.alias}</alias>'
        if self.mac_address is not None:
            out += f"<mac_address>{self.mac_address}</mac_address>"
        out += self.created.to_xml("created")
        out += self.updated.to_xml("updated")
        out += self.traffic.to_xml()
        return out + " </interface>"


@dataclass
class VnStatJson:
    vnstatversion: str = _VERSION
    jsonversion: str = "2"
    interfaces: list[JsonInterface] = field(default_factory=list)

    @classmethod
    def from_stats(cls, stats: list[InterfaceStats]) -> VnStatJson:
        return cls(interfaces=[s.to_json() for s in stats])

    @classmethod
    def from_history(cls, history: list[HistoryEntry], table: str) -> VnStatJson:
        doc = cls()
        doc.insert_history(history, table)
        return doc

    def insert_history(self, history: list[HistoryEntry], table: str) -> None:
        """Attach history entries to their interfaces, creating missing ones."""
        include_time = table in ("fiveminute", "hour")
        for entry in history:
            json_entry = entry.to_json(include_time)
            iface = next((i for i in self.interfaces if i.name == entry.interface), None)
            if iface is None:
                iface = JsonInterface(
                    name=entry.interface,
                    alias="",
                    mac_address=None,
                    created=JsonTimestamp.from_timestamp(0, False),
                    updated=JsonTimestamp.from_timestamp(0, False),
                )
                self.interfaces.append(iface)
            iface.traffic._add(table, json_entry)

    def to_dict(self) -> dict[str, Any]:
        return {
            "vnstatversion": self.vnstatversion,
            "jsonversion": self.jsonversion,
            "interfaces": [i._as_dict() for i in self.interfaces],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    def to_xml(self) -> str:
        out = f'<vnstat version="{self.vnstatversion}" xmlversion="2">\n'
        for iface in self.interfaces:
            out += iface.to_xml() + "\n"
        return out + "</vnstat>"


@dataclass
class SummaryData:
    name: str
    hostname: str
    today: tuple[int, int] = (0, 0)
    yesterday: tuple[int, int] = (0, 0)
    this_month: tuple[int, int] = (0, 0)
    last_month: tuple[int, int] = (0, 0)


@dataclass
class NinetyFifthData:
    interface: str
    hostname: str
    begin: int
    end: int
    count: int
    coverage: float
    rx: list[int] = field(default_factory=list)
    tx: list[int] = field(default_factory=list)


@dataclass
class HistoryEntry:
    hostname: str
    interface: str
    date: int
    rx: int
    tx: int

    def to_json(self, include_time: bool) -> JsonHistoryEntry:
        ts = JsonTimestamp.from_timestamp(self.date, include_time)
        return JsonHistoryEntry(
            date=ts.date, time=ts.time, timestamp=self.date, rx=self.rx, tx=self.tx
        )