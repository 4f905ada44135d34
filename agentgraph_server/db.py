"""SQLite connection and schema helpers."""

import json
import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any


DEFAULT_DB_PATH = Path(__file__).parent / "data" / "agentgraph.db"


def db_path() -> Path:
    """Database location, read on every connect so it can be redirected."""
    return Path(os.getenv("AGENTGRAPH_DB_PATH", str(DEFAULT_DB_PATH)))


def connect(isolation_level: str | None = "DEFERRED") -> sqlite3.Connection:
    path = db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=30.0, isolation_level=isolation_level)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def session() -> Iterator[sqlite3.Connection]:
    """Open a connection, commit on success, roll back on error, always close."""
    conn = connect()
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value)


def load_json(value: str | None) -> Any:
    if value is None:
        return None
    return json.loads(value)


def assignments(fields: dict[str, Any]) -> tuple[str, list[Any]]:
    """Build the ``set`` clause of an update from a column -> value dict."""
    columns = ", ".join(f"{column} = ?" for column in fields)
    return columns, list(fields.values())


def init_db() -> None:
    with session() as conn:
        conn.execute(
            """
            create table if not exists agents (
                id integer primary key autoincrement,
                name text not null,
                description text,
                slug text not null unique,
                company_id integer,
                auto_capture integer not null default 0,
                auto_stop integer not null default 0,
                created_at text not null,
                updated_at text not null,
                deleted_at text
            )
            """
        )
        conn.execute(
            """
            create table if not exists nodes (
                id integer primary key autoincrement,
                agent_id integer not null references agents(id),
                name text not null,
                type text not null,
                model_ref text,
                slug text,
                is_entry integer not null default 0,
                is_terminal integer not null default 0,
                mapping_node_id integer,
                config_json text,
                created_at text not null,
                updated_at text not null,
                deleted_at text
            )
            """
        )
        conn.execute(
            """
            create table if not exists connections (
                id integer primary key autoincrement,
                agent_id integer not null references agents(id),
                from_node_id integer not null references nodes(id),
                to_node_id integer not null references nodes(id),
                output_name text not null default 'output',
                input_name text not null default 'input',
                created_at text not null,
                updated_at text not null,
                deleted_at text
            )
            """
        )
        conn.execute(
            """
            create table if not exists run_logs (
                id integer primary key autoincrement,
                agent_id integer not null references agents(id),
                status text not null default 'pending',
                environment text not null default 'production',
                started_at text not null,
                input_json text,
                output_json text,
                duration_ms integer,
                ended_at text,
                external_id text,
                updated_at text not null,
                deleted_at text
            )
            """
        )
        conn.execute(
            """
            create table if not exists node_entry_logs (
                id integer primary key autoincrement,
                agent_id integer not null references agents(id),
                node_id integer not null references nodes(id),
                run_log_id integer not null references run_logs(id),
                parent_log_id integer,
                input_json text,
                output_json text,
                operation_type text not null default 'node_operation',
                status text not null default 'success',
                duration_ms integer,
                created_at text not null,
                updated_at text not null,
                deleted_at text
            )
            """
        )
        conn.execute(
            """
            create table if not exists tool_call_logs (
                id integer primary key autoincrement,
                node_id integer not null references nodes(id),
                run_log_id integer not null references run_logs(id),
                input_json text,
                output_json text,
                status text not null default 'success',
                duration_ms integer,
                created_at text not null,
                updated_at text not null,
                deleted_at text
            )
            """
        )
        conn.execute("create index if not exists idx_nodes_agent_id on nodes(agent_id)")
        conn.execute(
            "create index if not exists idx_connections_agent_id on connections(agent_id)"
        )
        conn.execute(
            """
            create index if not exists idx_run_logs_agent_env
            on run_logs(agent_id, environment, started_at)
            """
        )
        conn.execute(
            "create index if not exists idx_run_logs_external_id on run_logs(external_id)"
        )
        conn.execute(
            """
            create index if not exists idx_node_entry_logs_run_log_id
            on node_entry_logs(run_log_id)
            """
        )
        conn.execute(
            """
            create index if not exists idx_tool_call_logs_run_log_id
            on tool_call_logs(run_log_id)
            """
        )


def init_all() -> None:
    """initialize all sqlite tables."""
    init_db()
