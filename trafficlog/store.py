"""Local traffic database with optional mirrored writes to a remote one."""

from __future__ import annotations

import re
import socket
import sqlite3
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
import os
import time
from typing import Any, Sequence

from trafficlog.models import HostRecord
from trafficlog.utils import get_machine_id

VERSION = "0.1.76 (unknown)"
TRAFFIC_TABLES = ("fiveminute", "hour", "day", "month", "year", "top")

_INFO_UPSERT = (
    "INSERT INTO info (name, value) VALUES (?, ?) "
    "ON CONFLICT(name) DO UPDATE SET value = excluded.value"
)
_INFO_TABLE = (
    "CREATE TABLE IF NOT EXISTS info (id INTEGER PRIMARY KEY AUTOINCREMENT, "
    "name TEXT UNIQUE NOT NULL, value TEXT NOT NULL)"
)
_HOST_BY_MACHINE = "(SELECT id FROM host WHERE machine_id = ?)"
_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class Migration:
    version: int
    sql: str


@dataclass(frozen=True)
class Schema:
    version: int
    sql: str
    migrations: tuple[Migration, ...] = ()


@dataclass(frozen=True)
class InterfaceRecord:
    id: int
    rx_counter: int
    tx_counter: int
    mac_address: str | None
    updated: int
    created: int
    rx_total: int
    tx_total: int


def _require_int(value: Any, what: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{what} must be an integer")
    return value


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string")
    return value


def parse_schema(text: str) -> Schema:
    """Parse a TOML schema description with optional migrations."""
    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"invalid schema: {exc}") from exc
    version = _require_int(raw.get("version"), "version")
    sql = _require_str(raw.get("sql"), "sql")
    entries = raw.get("migrations", [])
    if not isinstance(entries, list):
        raise ValueError("migrations must be a list")
    migrations = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError("each migration must be a table")
        migrations.append(
            Migration(
                version=_require_int(entry.get("version"), "migration version"),
                sql=_require_str(entry.get("sql"), "migration sql"),
            )
        )
    return Schema(version=version, sql=sql, migrations=tuple(migrations))


def _parse_int(text: str) -> int:
    return int(text) if _INT_RE.fullmatch(text) else 0


def _now() -> int:
    return int(time.time())


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


class Store:
    """Database handle writing locally and mirroring writes to an optional remote."""

    def __init__(
        self,
        local_conn: sqlite3.Connection,
        remote_conn: sqlite3.Connection | None,
        hostname: str,
        machine_id: str,
        host_id: int = 0,
    ) -> None:
        self.local_conn = local_conn
        self.remote_conn = remote_conn
        self.hostname = hostname
        self.machine_id = machine_id
        self.host_id = host_id

    @classmethod
    def connect(
        cls,
        path: str | os.PathLike[str],
        hostname_override: str | None = None,
        machine_id: str | None = None,
        remote: sqlite3.Connection | None = None,
    ) -> Store:
        """Open the local database file without touching its schema."""
        db_path = Path(path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OSError(f"Failed to create database directory: {exc}") from exc
        local = sqlite3.connect(db_path, isolation_level=None)
        try:
            if hostname_override is not None:
                hostname = hostname_override
            else:
                hostname = socket.gethostname() or "local"
            mid = machine_id if machine_id is not None else get_machine_id()
        except BaseException:
            local.close()
            raise
        return cls(local, remote, hostname, mid)

    @classmethod
    def open(
        cls,
        path: str | os.PathLike[str],
        schema: Schema,
        hostname_override: str | None = None,
        machine_id: str | None = None,
        remote: sqlite3.Connection | None = None,
    ) -> Store:
        """Open the database, bring its schema up to date and register this host."""
        store = cls.connect(path, hostname_override, machine_id, remote)
        try:
            store.init_schema(schema)
            store.host_id = store.get_or_create_host()
        except BaseException:
            store.close()
            raise
        return store

    def close(self) -> None:
        self.local_conn.close()
        if self.remote_conn is not None:
            self.remote_conn.close()

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def sync(self) -> None:
        """Commit any open transaction on both databases."""
        for conn in (self.local_conn, self.remote_conn):
            if conn is not None and conn.in_transaction:
                conn.commit()

    def _remote_execute(self, sql: str, params: Sequence[Any], failure: str | None) -> None:
        if self.remote_conn is None:
            return
        try:
            self.remote_conn.execute(sql, params)
        except sqlite3.Error as exc:
            if failure is not None:
                _warn(f"{failure}: {exc}")

    def execute_batch(self, sql: str) -> None:
        self.local_conn.executescript(sql)
        if self.remote_conn is not None:
            try:
                self.remote_conn.executescript(sql)
            except sqlite3.Error as exc:
                _warn(f"Failed to execute batch on remote database: {exc}")

    def get_info(self, name: str) -> str | None:
        row = self.local_conn.execute("SELECT value FROM info WHERE name = ?", (name,)).fetchone()
        return row[0] if row else None

    def set_info(self, name: str, value: str) -> None:
        self.local_conn.execute(_INFO_UPSERT, (name, value))
        self._remote_execute(_INFO_UPSERT, (name, value), None)

    def set_info_local(self, name: str, value: str) -> None:
        self.local_conn.execute(_INFO_UPSERT, (name, value))

    def is_legacy_db(self, conn: sqlite3.Connection) -> bool:
        """True when a host table exists, meaning data predates version tracking."""
        try:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='host'"
            ).fetchone()
        except sqlite3.Error:
            return False
        return row is not None

    def get_schema_version_from(self, conn: sqlite3.Connection) -> int:
        try:
            conn.execute(_INFO_TABLE)
        except sqlite3.Error:
            pass
        row = conn.execute("SELECT value FROM info WHERE name = ?", ("schema_version",)).fetchone()
        if row is not None:
            return _parse_int(str(row[0]))
        row = conn.execute("SELECT value FROM info WHERE name = ?", ("version",)).fetchone()
        if row is not None:
            version = _parse_int(str(row[0]))
            if 0 < version < 10000:
                return 0
            return version
        return 0

    def _set_remote_schema_version(self, version: int) -> None:
        self._remote_execute(
            f"INSERT INTO info (name, value) VALUES ('schema_version', '{version}') "
            "ON CONFLICT(name) DO UPDATE SET value = excluded.value",
            (),
            "Failed to update schema version on remote",
        )

    def init_schema(self, schema: Schema) -> None:
        """Create tables and apply pending migrations, locally and remotely."""
        current_local = self.get_schema_version_from(self.local_conn)
        is_legacy_local = current_local == 0 and self.is_legacy_db(self.local_conn)

        self.execute_batch(schema.sql)

        if current_local == 0 and is_legacy_local:
            current_local = 1

        if current_local == 0:
            print(f"Initializing fresh local database schema (v{schema.version})...")
            self.set_info_local("schema_version", str(schema.version))
        elif current_local < schema.version:
            print(f"Migrating local database from v{current_local} to v{schema.version}...")
            for migration in schema.migrations:
                if current_local < migration.version <= schema.version:
                    print(f"Applying local migration v{migration.version}...")
                    self.local_conn.executescript(migration.sql)
            self.set_info_local("schema_version", str(schema.version))
        else:
            print(f"Local database schema is up-to-date (v{current_local}).")

        remote = self.remote_conn
        if remote is None:
            return
        current_remote = self.get_schema_version_from(remote)
        if current_remote == 0 and self.is_legacy_db(remote):
            current_remote = 1

        if current_remote == 0:
            print(f"Initializing fresh remote database schema (v{schema.version})...")
            self._set_remote_schema_version(schema.version)
        elif current_remote < schema.version:
            print(f"Migrating remote database from v{current_remote} to v{schema.version}...")
            for migration in schema.migrations:
                if current_remote < migration.version <= schema.version:
                    print(f"Applying remote migration v{migration.version}...")
                    remote.executescript(migration.sql)
            self._set_remote_schema_version(schema.version)
        else:
            print(f"Remote database schema is up-to-date (v{current_remote}).")

    def get_or_create_host(self) -> int:
        """Register this machine, refresh its details and return its local id."""
        now = _now()
        self.local_conn.execute(
            "INSERT OR IGNORE INTO host (machine_id, hostname, version, started) VALUES (?, ?, ?, ?)",
            (self.machine_id, self.hostname, VERSION, now),
        )
        self.local_conn.execute(
            "UPDATE host SET hostname = ?, version = ?, started = ? WHERE machine_id = ?",
            (self.hostname, VERSION, now, self.machine_id),
        )
        row = self.local_conn.execute(
            "SELECT id FROM host WHERE machine_id = ?", (self.machine_id,)
        ).fetchone()
        if row is None:
            raise RuntimeError("Failed to retrieve host ID after creation")
        self._remote_execute(
            "INSERT INTO host (machine_id, hostname, version, started) VALUES (?, ?, ?, ?) "
            "ON CONFLICT(machine_id) DO UPDATE SET hostname = excluded.hostname, "
            "version = excluded.version, started = excluded.started",
            (self.machine_id, self.hostname, VERSION, now),
            "Failed to upsert host on remote",
        )
        return row[0]

    def get_all_hosts(self, filter_host: str | None = None) -> list[HostRecord]:
        conn = self.remote_conn or self.local_conn
        sql = "SELECT hostname, machine_id, version, started, last_seen FROM host"
        params: tuple[str, ...] = ()
        if filter_host is not None:
            sql += " WHERE machine_id = ? OR hostname = ?"
            params = (filter_host, filter_host)
        sql += " ORDER BY hostname"
        return [HostRecord(*row) for row in conn.execute(sql, params)]

    def get_interface(self, name: str) -> InterfaceRecord | None:
        if name == "lo":
            return None
        row = self.local_conn.execute(
            "SELECT id, rxcounter, txcounter, mac_address, updated, created, rxtotal, txtotal "
            "FROM interface WHERE host_id = ? AND name = ?",
            (self.host_id, name),
        ).fetchone()
        return InterfaceRecord(*row) if row else None

    def create_interface(self, name: str, rx: int, tx: int, mac: str | None) -> int:
        now = _now()
        self.local_conn.execute(
            "INSERT OR IGNORE INTO interface (host_id, name, mac_address, created, updated, "
            "rxcounter, txcounter) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (self.host_id, name, mac, now, now, rx, tx),
        )
        interface_id = self.local_conn.execute("SELECT last_insert_rowid()").fetchone()[0]
        self._remote_execute(
            "INSERT OR IGNORE INTO interface (host_id, name, mac_address, created, updated, "
            "rxcounter, txcounter) SELECT id, ?, ?, ?, ?, ?, ? FROM host WHERE machine_id = ?",
            (name, mac, now, now, rx, tx, self.machine_id),
            "Failed to create interface on remote",
        )
        return interface_id

    def update_interface_counters(
        self,
        interface_id: int,
        name: str,
        rx: int,
        tx: int,
        rx_delta: int,
        tx_delta: int,
        rxtotal: int,
        txtotal: int,
        created: int,
        mac: str | None,
    ) -> None:
        now = _now()
        self.local_conn.execute(
            "UPDATE interface SET updated = ?, rxcounter = ?, txcounter = ?, "
            "rxtotal = rxtotal + ?, txtotal = txtotal + ? WHERE id = ?",
            (now, rx, tx, rx_delta, tx_delta, interface_id),
        )
        self._remote_execute(
            "INSERT INTO interface (host_id, name, mac_address, created, updated, rxcounter, "
            "txcounter, rxtotal, txtotal) SELECT id, ?, ?, ?, ?, ?, ?, ?, ? FROM host "
            "WHERE machine_id = ? ON CONFLICT(host_id, name) DO UPDATE SET "
            "updated = excluded.updated, rxcounter = excluded.rxcounter, "
            "txcounter = excluded.txcounter, rxtotal = rxtotal + ?, txtotal = txtotal + ?",
            (name, mac, created, now, rx, tx, rxtotal, txtotal, self.machine_id, rx_delta, tx_delta),
            "Failed to update interface counters on remote",
        )

    def _update_column(
        self, column: str, value: Any, interface_id: int, name: str, failure: str
    ) -> None:
        self.local_conn.execute(
            f"UPDATE interface SET {column} = ? WHERE id = ?", (value, interface_id)
        )
        self._remote_execute(
            f"UPDATE interface SET {column} = ? WHERE name = ? AND host_id = {_HOST_BY_MACHINE}",
            (value, name, self.machine_id),
            failure,
        )

    def update_interface_mac(self, interface_id: int, name: str, mac: str) -> None:
        self._update_column(
            "mac_address", mac, interface_id, name, "Failed to update interface MAC on remote"
        )

    def update_interface_alias(self, interface_id: int, name: str, alias: str) -> None:
        self._update_column(
            "alias", alias, interface_id, name, "Failed to update interface alias on remote"
        )

    def set_interface_active(self, interface_id: int, name: str, active: bool) -> None:
        self._update_column(
            "active",
            1 if active else 0,
            interface_id,
            name,
            "Failed to set interface active status on remote",
        )

    def _require_interface(self, name: str) -> InterfaceRecord:
        record = self.get_interface(name)
        if record is None:
            raise LookupError(f'Interface "{name}" not found for host "{self.hostname}"')
        return record

    def remove_interface(self, name: str) -> None:
        """Delete an interface of this host together with all its traffic rows."""
        record = self._require_interface(name)
        interface_ref = (
            f"(SELECT id FROM interface WHERE name = ? AND host_id = {_HOST_BY_MACHINE})"
        )
        for table in TRAFFIC_TABLES:
            self.local_conn.execute(f"DELETE FROM {table} WHERE interface = ?", (record.id,))
            self._remote_execute(
                f"DELETE FROM {table} WHERE interface = {interface_ref}",
                (name, self.machine_id),
                None,
            )
        self.local_conn.execute("DELETE FROM interface WHERE id = ?", (record.id,))
        self._remote_execute(
            f"DELETE FROM interface WHERE name = ? AND host_id = {_HOST_BY_MACHINE}",
            (name, self.machine_id),
            "Failed to remove interface on remote",
        )

    def rename_interface(self, old_name: str, new_name: str) -> None:
        record = self._require_interface(old_name)
        self.local_conn.execute(
            "UPDATE interface SET name = ? WHERE id = ?", (new_name, record.id)
        )
        self._remote_execute(
            f"UPDATE interface SET name = ? WHERE name = ? AND host_id = {_HOST_BY_MACHINE}",
            (new_name, old_name, self.machine_id),
            "Failed to rename interface on remote",
        )