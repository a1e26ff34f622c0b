"""JSON messages exchanged between the query client and the daemon."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Union

from trafficlog.models import (
    HistoryEntry,
    HostRecord,
    InterfaceStats,
    NinetyFifthData,
    SummaryData,
)


@dataclass(frozen=True)
class GetStats:
    interface: str | None = None
    host: str | None = None


@dataclass(frozen=True)
class GetHistory:
    table: str
    limit: int
    interface: str | None = None
    host: str | None = None
    begin: int | None = None
    end: int | None = None


@dataclass(frozen=True)
class GetSummary:
    interface: str | None = None
    host: str | None = None


@dataclass(frozen=True)
class GetInfo:
    pass


@dataclass(frozen=True)
class GetConfig:
    name: str


@dataclass(frozen=True)
class SetConfig:
    name: str
    value: str


@dataclass(frozen=True)
class ListHosts:
    host: str | None = None


@dataclass(frozen=True)
class Get95th:
    interface: str | None = None
    host: str | None = None


Request = Union[GetStats, GetHistory, GetSummary, GetInfo, GetConfig, SetConfig, ListHosts, Get95th]

_REQUEST_TYPES: dict[str, type] = {
    cls.__name__: cls
    for cls in (GetStats, GetHistory, GetSummary, GetInfo, GetConfig, SetConfig, ListHosts, Get95th)
}


@dataclass
class StatsResponse:
    stats: list[InterfaceStats] = field(default_factory=list)


@dataclass
class HistoryResponse:
    history: list[HistoryEntry] = field(default_factory=list)


@dataclass
class SummaryResponse:
    summaries: list[SummaryData] = field(default_factory=list)


@dataclass
class NinetyFifthResponse:
    data: NinetyFifthData


@dataclass
class InfoResponse:
    hostname: str
    machine_id: str
    version: str
    local_schema: int
    mac_address: str | None = None
    remote_schema: int | None = None


@dataclass
class HostsResponse:
    hosts: list[HostRecord] = field(default_factory=list)


@dataclass
class ConfigResponse:
    value: str | None = None


@dataclass
class OkResponse:
    pass


@dataclass
class ErrorResponse:
    message: str


Response = Union[
    StatsResponse,
    HistoryResponse,
    SummaryResponse,
    NinetyFifthResponse,
    InfoResponse,
    HostsResponse,
    ConfigResponse,
    OkResponse,
    ErrorResponse,
]


def _build(cls: type, payload: Any) -> Any:
    if not isinstance(payload, dict):
        raise ValueError(f"expected an object for {cls.__name__}")
    known = {f.name for f in fields(cls)}
    try:
        return cls(**{k: v for k, v in payload.items() if k in known})
    except TypeError as exc:
        raise ValueError(f"invalid {cls.__name__}: {exc}") from None


def _split_tagged(data: bytes | str) -> tuple[str, Any]:
    message = json.loads(data)
    if isinstance(message, str):
        return message, None
    if isinstance(message, dict) and len(message) == 1:
        ((tag, payload),) = message.items()
        return tag, payload
    raise ValueError("message must be a tag string or a single-key object")


def _dump(message: Any) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode()


def encode_request(request: Request) -> bytes:
    """Serialize a request to its wire form."""
    tag = type(request).__name__
    if tag not in _REQUEST_TYPES:
        raise TypeError(f"not a request: {request!r}")
    if isinstance(request, GetInfo):
        return _dump(tag)
    return _dump({tag: asdict(request)})


def decode_request(data: bytes | str) -> Request:
    """Parse a request from its wire form."""
    tag, payload = _split_tagged(data)
    cls = _REQUEST_TYPES.get(tag)
    if cls is None:
        raise ValueError(f"unknown request variant: {tag}")
    if cls is GetInfo:
        return GetInfo()
    if payload is None:
        raise ValueError(f"request {tag} needs a body")
    request = _build(cls, payload)
    if isinstance(request, GetHistory) and (
        not isinstance(request.limit, int) or isinstance(request.limit, bool) or request.limit < 0
    ):
        raise ValueError("limit must be a non-negative integer")
    return request


def _summary_from(payload: Any) -> SummaryData:
    summary = _build(SummaryData, payload)
    for name in ("today", "yesterday", "this_month", "last_month"):
        value = getattr(summary, name)
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValueError(f"{name} must be a pair")
        setattr(summary, name, (value[0], value[1]))
    return summary


def _host_from(item: Any) -> HostRecord:
    if not isinstance(item, list) or len(item) != 5:
        raise ValueError("host entry must have five elements")
    return HostRecord(*item)


def _as_list(payload: Any) -> list:
    if not isinstance(payload, list):
        raise ValueError("expected a list")
    return payload


def encode_response(response: Response) -> bytes:
    """Serialize a response to its wire form."""
    match response:
        case StatsResponse(stats):
            return _dump({"Stats": [asdict(s) for s in stats]})
        case HistoryResponse(history):
            return _dump({"History": [asdict(h) for h in history]})
        case SummaryResponse(summaries):
            return _dump({"Summary": [asdict(s) for s in summaries]})
        case NinetyFifthResponse(data):
            return _dump({"NintyFifth": asdict(data)})
        case InfoResponse():
            return _dump(
                {
                    "Info": {
                        "hostname": response.hostname,
                        "machine_id": response.machine_id,
                        "mac_address": response.mac_address,
                        "version": response.version,
                        "local_schema": response.local_schema,
                        "remote_schema": response.remote_schema,
                    }
                }
            )
        case HostsResponse(hosts):
            return _dump(
                {
                    "Hosts": [
                        [h.hostname, h.machine_id, h.version, h.started, h.last_seen]
                        for h in hosts
                    ]
                }
            )
        case ConfigResponse(value):
            return _dump({"Config": value})
        case OkResponse():
            return _dump("Ok")
        case ErrorResponse(message):
            return _dump({"Error": message})
    raise TypeError(f"not a response: {response!r}")


def decode_response(data: bytes | str) -> Response:
    """Parse a response from its wire form."""
    tag, payload = _split_tagged(data)
    if tag == "Ok":
        return OkResponse()
    if tag == "Stats":
        return StatsResponse([_build(InterfaceStats, s) for s in _as_list(payload)])
    if tag == "History":
        return HistoryResponse([_build(HistoryEntry, h) for h in _as_list(payload)])
    if tag == "Summary":
        return SummaryResponse([_summary_from(s) for s in _as_list(payload)])
    if tag == "NintyFifth":
        return NinetyFifthResponse(_build(NinetyFifthData, payload))
    if tag == "Info":
        return _build(InfoResponse, payload)
    if tag == "Hosts":
        return HostsResponse([_host_from(h) for h in _as_list(payload)])
    if tag == "Config":
        if payload is not None and not isinstance(payload, str):
            raise ValueError("config value must be a string or null")
        return ConfigResponse(payload)
    if tag == "Error":
        if not isinstance(payload, str):
            raise ValueError("error message must be a string")
        return ErrorResponse(payload)
    raise ValueError(f"unknown response variant: {tag}")