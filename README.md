# trafficlog

trafficlog keeps a log of network traffic per interface and per host. It reads
the kernel's interface counters, turns counter changes into traffic deltas
(allowing for 32-bit and 64-bit counter rollovers and for resets), and stores
them in an SQLite database in `fiveminute`, `hour`, `day`, `month`, `year` and
`top` tables. Several hosts can share one database; each is identified by its
machine id.

On top of the stored data it offers:

- history listings that regroup finer tables into local-time hours, days,
  months and years;
- a summary of today, yesterday, this month and last month, with estimates for
  the running day and month;
- 95th percentile figures over the current month's five-minute samples;
- an hourly bar graph of the last 24 hours and a table of known hosts;
- JSON (`jsonversion` 2) and XML (`xmlversion` 2) export;
- a JSON message format for requests to, and responses from, a collecting
  daemon.

## Modules

| Module                 | What it holds                                                        |
|------------------------|----------------------------------------------------------------------|
| `trafficlog.utils`     | `parse_net_dev`, `get_machine_id`, `expand_tilde`, `format_bytes`    |
| `trafficlog.models`    | data classes and the JSON/XML export (`VnStatJson`)                  |
| `trafficlog.display`   | `format_rate`, `format_relative_time`, summary and history tables    |
| `trafficlog.graphs`    | `percentile_stats`, 95th percentile table, hours graph, hosts table  |
| `trafficlog.ipc`       | request/response classes, `encode_*` / `decode_*`                    |
| `trafficlog.store`     | `Store`, `parse_schema`: schema migrations, hosts and interfaces     |
| `trafficlog.traffic`   | `TrafficStore`, `Retention`, `calculate_delta`                       |
| `trafficlog.database`  | `Database`: history, summary and 95th percentile queries             |

## Reading interface counters

```python
from trafficlog.utils import parse_net_dev, format_bytes

for stat in parse_net_dev("/proc/net/dev"):
    print(stat.name, format_bytes(stat.rx_bytes), format_bytes(stat.tx_bytes))
```

The loopback interface is skipped. MAC addresses are read from
`/sys/class/net/<name>/address` when available.

## Storing traffic

`Database` (a `TrafficStore`, itself a `Store`) is opened with a schema parsed
by `trafficlog.store.parse_schema` from TOML text holding `version`, `sql` and
an optional list of `[[migrations]]` with `version` and `sql`:

```python
from trafficlog.database import Database
from trafficlog.store import parse_schema
from trafficlog.traffic import Retention
from trafficlog.utils import parse_net_dev

schema = parse_schema(open("schema.toml").read())
with Database.open("traffic.db", schema) as db:
    db.update_stats(parse_net_dev())
    db.prune_stats(Retention())
    for entry in db.get_history("day", limit=7):
        print(entry.interface, entry.date, entry.rx, entry.tx)
```

The schema SQL must create the tables the queries use:

- `host` with `id`, `machine_id` (unique), `hostname`, `version`, `started`,
  `last_seen`;
- `interface` with `id`, `host_id`, `name`, `alias`, `mac_address`, `active`,
  `created`, `updated`, `rxcounter`, `txcounter`, `rxtotal`, `txtotal`, unique
  on `(host_id, name)`;
- one table per traffic table name with `interface`, `date`, `rx`, `tx`, unique
  on `(interface, date)`.

The `info` table that records the schema version is created automatically.
`Store.open` takes `hostname_override` and `machine_id` (read from
`/etc/machine-id` otherwise) and an optional `remote` `sqlite3.Connection`;
writes are mirrored to the remote, and failures there are only reported as
warnings on standard error.

`Retention` defaults: 48 hours of five-minute data, 4 days of hourly, 62 days
of daily, 25 months of monthly, yearly kept forever (`-1`), and the top 20 days.

## Exporting

```python
from trafficlog.models import VnStatJson
from trafficlog.utils import parse_net_dev

export = VnStatJson.from_stats(parse_net_dev("/proc/net/dev"))
print(export.to_json())
print(export.to_xml())
```

`VnStatJson.from_history(history, table)` builds the same document from history
entries, where `table` is one of `fiveminute`, `hour`, `day`, `month`, `year`
or `top`.

## Formatting

```python
from trafficlog.display import format_rate
from trafficlog.utils import format_bytes

format_rate(389_393_090.0)   # '389.39 Mbit/s'
format_bytes(1536)           # '1.50 KiB'
```

`trafficlog.display.print_summary_table` and `print_history_table`, and
`trafficlog.graphs.print_95th_table`, `print_hours_graph` and
`print_hosts_table` print the corresponding terminal reports.

## Counter deltas

`trafficlog.traffic.calculate_delta(current, last, time_diff, max_bytes_per_sec)`
returns the traffic between two counter readings. When the counter went down it
tries a 32-bit and then a 64-bit rollover, and accepts one only if the implied
rate stays within `max_bytes_per_sec`; otherwise the drop is treated as a
counter reset. A limit of zero turns the check off.

## Daemon messages

```python
from trafficlog.ipc import GetInfo, encode_request, decode_request

payload = encode_request(GetInfo())
assert isinstance(decode_request(payload), GetInfo)
```

Responses are encoded and decoded with `encode_response` and `decode_response`;
an `ErrorResponse` carries the message of a failed request.

## What it does not do

trafficlog is a library. It installs no commands: there is no query command
line, no background daemon that polls counters on a timer, and no socket
server or client; the `trafficlog.ipc` module only defines and encodes the
messages. It does not ship a database schema either; the table definitions are
supplied by the caller through `parse_schema`.