"""SQLite storage for run logs, node entry logs and tool call logs."""

import sqlite3
from typing import Any

from agentgraph.models.run_log import (
    Environment,
    NodeEntryLog,
    RunLog,
    RunStatus,
    StepStatus,
    ToolCallLog,
)
from agentgraph.utils.identifiers import utc_timestamp
from agentgraph_server.db import assignments, dump_json, load_json, session

RUN_FIELDS = {"status", "output", "duration_ms", "ended_at", "external_id"}


def _decode_io(row: sqlite3.Row) -> dict[str, Any]:
    data = dict(row)
    data["input"] = load_json(data.pop("input_json"))
    data["output"] = load_json(data.pop("output_json"))
    return data


# runs


def create_run(
    agent_id: int,
    environment: Environment = Environment.production,
    status: RunStatus = RunStatus.pending,
    input: Any = None,
    external_id: str | None = None,
    started_at: str | None = None,
) -> RunLog:
    now = utc_timestamp()
    with session() as conn:
        cursor = conn.execute(
            """
            insert into run_logs (
                agent_id, status, environment, started_at,
                input_json, external_id, updated_at
            )
            values (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                agent_id,
                RunStatus(status).value,
                Environment(environment).value,
                started_at or now,
                dump_json(input),
                external_id,
                now,
            ),
        )
        run_id = cursor.lastrowid
    return get_run(run_id)


def get_run(run_id: int, include_deleted: bool = False) -> RunLog | None:
    live = "" if include_deleted else " and deleted_at is null"
    with session() as conn:
        row = conn.execute(
            f"select * from run_logs where id = ?{live}",
            (run_id,),
        ).fetchone()
    if not row:
        return None
    return RunLog.model_validate(_decode_io(row))


def find_run_by_external_id(external_id: str) -> RunLog | None:
    with session() as conn:
        row = conn.execute(
            """
            select * from run_logs
            where external_id = ? and deleted_at is null
            order by started_at desc, id desc
            limit 1
            """,
            (external_id,),
        ).fetchone()
    if not row:
        return None
    return RunLog.model_validate(_decode_io(row))


def latest_processing_run(agent_id: int, environment: Environment) -> RunLog | None:
    """most recent run of an agent that is still processing."""
    with session() as conn:
        row = conn.execute(
            """
            select * from run_logs
            where agent_id = ? and environment = ? and status = ?
            and deleted_at is null
            order by started_at desc, id desc
            limit 1
            """,
            (agent_id, Environment(environment).value, RunStatus.processing.value),
        ).fetchone()
    if not row:
        return None
    return RunLog.model_validate(_decode_io(row))


def list_runs(
    agent_id: int,
    environment: Environment | None = None,
    status: RunStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[RunLog]:
    """runs of an agent, newest first, optionally filtered."""
    query = "select * from run_logs where agent_id = ? and deleted_at is null"
    params: list[Any] = [agent_id]
    if environment is not None:
        query += " and environment = ?"
        params.append(Environment(environment).value)
    if status is not None:
        query += " and status = ?"
        params.append(RunStatus(status).value)
    query += " order by started_at desc, id desc limit ? offset ?"
    params.extend([limit, offset])
    with session() as conn:
        rows = conn.execute(query, params).fetchall()
    return [RunLog.model_validate(_decode_io(row)) for row in rows]


def latest_run_started_at(
    agent_id: int, environment: Environment = Environment.production
) -> str | None:
    with session() as conn:
        row = conn.execute(
            """
            select max(started_at) as last_run_at from run_logs
            where agent_id = ? and environment = ? and deleted_at is null
            """,
            (agent_id, Environment(environment).value),
        ).fetchone()
    return row["last_run_at"] if row else None


def update_run(run_id: int, fields: dict[str, Any]) -> RunLog | None:
    fields = {key: value for key, value in fields.items() if key in RUN_FIELDS}
    if "status" in fields:
        fields["status"] = RunStatus(fields["status"]).value
    if "output" in fields:
        fields["output_json"] = dump_json(fields.pop("output"))
    fields["updated_at"] = utc_timestamp()
    columns, values = assignments(fields)
    with session() as conn:
        conn.execute(
            f"update run_logs set {columns} where id = ? and deleted_at is null",
            (*values, run_id),
        )
    return get_run(run_id)


def delete_run(run_id: int) -> None:
    """soft-delete a run and its step and tool logs."""
    now = utc_timestamp()
    with session() as conn:
        conn.execute(
            "update node_entry_logs set deleted_at = ? where run_log_id = ? and deleted_at is null",
            (now, run_id),
        )
        conn.execute(
            "update tool_call_logs set deleted_at = ? where run_log_id = ? and deleted_at is null",
            (now, run_id),
        )
        conn.execute(
            "update run_logs set deleted_at = ? where id = ? and deleted_at is null",
            (now, run_id),
        )


# node entry logs


def create_node_entry(
    agent_id: int,
    node_id: int,
    run_log_id: int,
    parent_log_id: int | None = None,
    input: Any = None,
    output: Any = None,
    operation_type: str = "node_operation",
    status: StepStatus = StepStatus.success,
    duration_ms: int | None = None,
    created_at: str | None = None,
) -> NodeEntryLog:
    now = utc_timestamp()
    with session() as conn:
        cursor = conn.execute(
            """
            insert into node_entry_logs (
                agent_id, node_id, run_log_id, parent_log_id,
                input_json, output_json, operation_type, status,
                duration_ms, created_at, updated_at
            )
            values (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                agent_id,
                node_id,
                run_log_id,
                parent_log_id,
                dump_json(input),
                dump_json(output),
                operation_type,
                StepStatus(status).value,
                duration_ms,
                created_at or now,
                now,
            ),
        )
        entry_id = cursor.lastrowid
        row = conn.execute(
            "select * from node_entry_logs where id = ?", (entry_id,)
        ).fetchone()
    return NodeEntryLog.model_validate(_decode_io(row))


def list_node_entries(run_log_id: int) -> list[NodeEntryLog]:
    with session() as conn:
        rows = conn.execute(
            """
            select * from node_entry_logs
            where run_log_id = ? and deleted_at is null
            order by created_at asc, id asc
            """,
            (run_log_id,),
        ).fetchall()
    return [NodeEntryLog.model_validate(_decode_io(row)) for row in rows]


def latest_node_entry(run_log_id: int) -> NodeEntryLog | None:
    with session() as conn:
        row = conn.execute(
            """
            select * from node_entry_logs
            where run_log_id = ? and deleted_at is null
            order by created_at desc, id desc
            limit 1
            """,
            (run_log_id,),
        ).fetchone()
    if not row:
        return None
    return NodeEntryLog.model_validate(_decode_io(row))


# tool call logs


def create_tool_call(
    node_id: int,
    run_log_id: int,
    input: Any = None,
    output: Any = None,
    status: StepStatus = StepStatus.success,
    duration_ms: int | None = None,
    created_at: str | None = None,
) -> ToolCallLog:
    now = utc_timestamp()
    with session() as conn:
        cursor = conn.execute(
            """
            insert into tool_call_logs (
                node_id, run_log_id, input_json, output_json,
                status, duration_ms, created_at, updated_at
            )
            values (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                node_id,
                run_log_id,
                dump_json(input),
                dump_json(output),
                StepStatus(status).value,
                duration_ms,
                created_at or now,
                now,
            ),
        )
        call_id = cursor.lastrowid
        row = conn.execute(
            "select * from tool_call_logs where id = ?", (call_id,)
        ).fetchone()
    return ToolCallLog.model_validate(_decode_io(row))


def list_tool_calls(run_log_id: int) -> list[ToolCallLog]:
    with session() as conn:
        rows = conn.execute(
            """
            select * from tool_call_logs
            where run_log_id = ? and deleted_at is null
            order by created_at asc, id asc
            """,
            (run_log_id,),
        ).fetchall()
    return [ToolCallLog.model_validate(_decode_io(row)) for row in rows]
