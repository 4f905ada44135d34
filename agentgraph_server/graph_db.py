"""SQLite storage for agents, nodes and connections.

Every record is soft-deleted through ``deleted_at``; reads exclude
tombstoned rows unless ``include_deleted`` is set. Role flags on nodes are
only written through ``write_node_roles``.
"""

import sqlite3
from typing import Any

from agentgraph.errors import InconsistentGraph, SlugConflict
from agentgraph.models.graph import Agent, Connection, Node, NodeRoles, NodeType
from agentgraph.utils.identifiers import generate_slug, generate_tool_slug, utc_timestamp
from agentgraph_server.db import assignments, dump_json, load_json, session

_SLUG_ATTEMPTS = 5

AGENT_FIELDS = {"name", "description", "slug", "company_id", "auto_capture", "auto_stop"}
NODE_FIELDS = {"name", "type", "model_ref", "slug", "mapping_node_id", "config"}
CONNECTION_FIELDS = {"from_node_id", "to_node_id", "output_name", "input_name"}


def _live(include_deleted: bool) -> str:
    return "" if include_deleted else " and deleted_at is null"


def _agent_from_row(row: sqlite3.Row) -> Agent:
    return Agent.model_validate(dict(row))


def _node_from_row(row: sqlite3.Row) -> Node:
    data = dict(row)
    data["config"] = load_json(data.pop("config_json"))
    return Node.model_validate(data)


def _connection_from_row(row: sqlite3.Row) -> Connection:
    return Connection.model_validate(dict(row))


# agents


def create_agent(
    name: str,
    description: str | None = None,
    slug: str | None = None,
    company_id: int | None = None,
    auto_capture: bool = False,
    auto_stop: bool = False,
) -> Agent:
    """insert an agent, generating a unique slug when none is given."""
    now = utc_timestamp()
    attempts = 1 if slug else _SLUG_ATTEMPTS
    for _ in range(attempts):
        candidate = slug or generate_slug(name)
        try:
            with session() as conn:
                cursor = conn.execute(
                    """
                    insert into agents (
                        name, description, slug, company_id,
                        auto_capture, auto_stop, created_at, updated_at
                    )
                    values (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (name, description, candidate, company_id, auto_capture, auto_stop, now, now),
                )
                agent_id = cursor.lastrowid
        except sqlite3.IntegrityError:
            continue
        return get_agent(agent_id)
    raise SlugConflict(slug or name)


def get_agent(agent_id: int, include_deleted: bool = False) -> Agent | None:
    with session() as conn:
        return fetch_agent(conn, agent_id, include_deleted)


def fetch_agent(
    conn: sqlite3.Connection, agent_id: int, include_deleted: bool = False
) -> Agent | None:
    row = conn.execute(
        f"select * from agents where id = ?{_live(include_deleted)}",
        (agent_id,),
    ).fetchone()
    if not row:
        return None
    return _agent_from_row(row)


def list_agents(company_id: int | None = None) -> list[Agent]:
    with session() as conn:
        if company_id is None:
            rows = conn.execute(
                "select * from agents where deleted_at is null order by id"
            ).fetchall()
        else:
            rows = conn.execute(
                "select * from agents where company_id = ? and deleted_at is null order by id",
                (company_id,),
            ).fetchall()
    return [_agent_from_row(row) for row in rows]


def update_agent(agent_id: int, fields: dict[str, Any]) -> Agent | None:
    fields = {key: value for key, value in fields.items() if key in AGENT_FIELDS}
    if not fields:
        return get_agent(agent_id)
    fields["updated_at"] = utc_timestamp()
    columns, values = assignments(fields)
    try:
        with session() as conn:
            conn.execute(
                f"update agents set {columns} where id = ? and deleted_at is null",
                (*values, agent_id),
            )
    except sqlite3.IntegrityError as exc:
        raise SlugConflict(fields.get("slug", "")) from exc
    return get_agent(agent_id)


def delete_agent(agent_id: int) -> None:
    """soft-delete an agent with its nodes and connections."""
    now = utc_timestamp()
    with session() as conn:
        conn.execute(
            "update connections set deleted_at = ? where agent_id = ? and deleted_at is null",
            (now, agent_id),
        )
        conn.execute(
            "update nodes set deleted_at = ? where agent_id = ? and deleted_at is null",
            (now, agent_id),
        )
        conn.execute(
            "update agents set deleted_at = ? where id = ? and deleted_at is null",
            (now, agent_id),
        )


# nodes


def _check_mapping_node(
    conn: sqlite3.Connection, agent_id: int, mapping_node_id: int | None
) -> None:
    if mapping_node_id is None:
        return
    row = conn.execute(
        "select agent_id from nodes where id = ? and deleted_at is null",
        (mapping_node_id,),
    ).fetchone()
    if not row or row["agent_id"] != agent_id:
        raise InconsistentGraph(
            f"Mapping node {mapping_node_id} is not a node of agent {agent_id}"
        )


def create_node(
    agent_id: int,
    name: str,
    node_type: NodeType,
    model_ref: str | None = None,
    slug: str | None = None,
    mapping_node_id: int | None = None,
    config: dict | None = None,
) -> Node:
    """insert a node; tool nodes get a generated slug when none is given."""
    node_type = NodeType(node_type)
    if node_type == NodeType.tool and not slug:
        slug = generate_tool_slug(name)
    now = utc_timestamp()
    with session() as conn:
        _check_mapping_node(conn, agent_id, mapping_node_id)
        cursor = conn.execute(
            """
            insert into nodes (
                agent_id, name, type, model_ref, slug,
                mapping_node_id, config_json, created_at, updated_at
            )
            values (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                agent_id,
                name,
                node_type.value,
                model_ref,
                slug,
                mapping_node_id,
                dump_json(config),
                now,
                now,
            ),
        )
        node_id = cursor.lastrowid
    return get_node(node_id)


def get_node(node_id: int, include_deleted: bool = False) -> Node | None:
    with session() as conn:
        row = conn.execute(
            f"select * from nodes where id = ?{_live(include_deleted)}",
            (node_id,),
        ).fetchone()
    if not row:
        return None
    return _node_from_row(row)


def fetch_nodes(
    conn: sqlite3.Connection, agent_id: int, include_deleted: bool = False
) -> list[Node]:
    rows = conn.execute(
        f"select * from nodes where agent_id = ?{_live(include_deleted)} order by id",
        (agent_id,),
    ).fetchall()
    return [_node_from_row(row) for row in rows]


def list_nodes(agent_id: int, include_deleted: bool = False) -> list[Node]:
    with session() as conn:
        return fetch_nodes(conn, agent_id, include_deleted)


def find_node_by_slug(agent_id: int, slug: str) -> Node | None:
    """first live node of an agent with the given slug."""
    with session() as conn:
        row = conn.execute(
            """
            select * from nodes
            where agent_id = ? and slug = ? and deleted_at is null
            order by id
            limit 1
            """,
            (agent_id, slug),
        ).fetchone()
    if not row:
        return None
    return _node_from_row(row)


def get_nodes_by_ids(node_ids: set[int]) -> dict[int, Node]:
    """Look up nodes by id, soft-deleted ones included."""
    if not node_ids:
        return {}
    placeholders = ", ".join("?" for _ in node_ids)
    with session() as conn:
        rows = conn.execute(
            f"select * from nodes where id in ({placeholders})",
            tuple(node_ids),
        ).fetchall()
    return {row["id"]: _node_from_row(row) for row in rows}


def update_node(node_id: int, fields: dict[str, Any]) -> Node | None:
    """update editable node fields; role flags are not editable here."""
    fields = {key: value for key, value in fields.items() if key in NODE_FIELDS}
    existing = get_node(node_id)
    if existing is None:
        return None
    if not fields:
        return existing
    if "type" in fields:
        fields["type"] = NodeType(fields["type"]).value
    if "config" in fields:
        fields["config_json"] = dump_json(fields.pop("config"))
    fields["updated_at"] = utc_timestamp()
    columns, values = assignments(fields)
    with session() as conn:
        if "mapping_node_id" in fields:
            if fields["mapping_node_id"] == node_id:
                raise InconsistentGraph(f"Node {node_id} cannot map onto itself")
            _check_mapping_node(conn, existing.agent_id, fields["mapping_node_id"])
        conn.execute(
            f"update nodes set {columns} where id = ? and deleted_at is null",
            (*values, node_id),
        )
    return get_node(node_id)


def delete_node(node_id: int) -> list[int]:
    """soft-delete a node and its live connections.

    Live nodes that map onto it lose their ``mapping_node_id``.

    Returns:
        ids of the connections that were removed with it.
    """
    now = utc_timestamp()
    with session() as conn:
        rows = conn.execute(
            """
            select id from connections
            where (from_node_id = ? or to_node_id = ?) and deleted_at is null
            """,
            (node_id, node_id),
        ).fetchall()
        connection_ids = [row["id"] for row in rows]
        conn.execute(
            """
            update connections set deleted_at = ?
            where (from_node_id = ? or to_node_id = ?) and deleted_at is null
            """,
            (now, node_id, node_id),
        )
        conn.execute(
            "update nodes set deleted_at = ? where id = ? and deleted_at is null",
            (now, node_id),
        )
        # aliases onto the removed node fall back to drawing themselves
        conn.execute(
            """
            update nodes set mapping_node_id = null, updated_at = ?
            where mapping_node_id = ? and deleted_at is null
            """,
            (now, node_id),
        )
    return connection_ids


def write_node_roles(conn: sqlite3.Connection, node_id: int, roles: NodeRoles) -> None:
    """write both role flags of a node in one statement."""
    conn.execute(
        "update nodes set is_entry = ?, is_terminal = ?, updated_at = ? where id = ?",
        (roles.is_entry, roles.is_terminal, utc_timestamp(), node_id),
    )


# connections


def _check_endpoints(
    conn: sqlite3.Connection, agent_id: int, from_node_id: int, to_node_id: int
) -> None:
    rows = conn.execute(
        "select id, agent_id from nodes where id in (?, ?) and deleted_at is null",
        (from_node_id, to_node_id),
    ).fetchall()
    owners = {row["id"]: row["agent_id"] for row in rows}
    for node_id in (from_node_id, to_node_id):
        if owners.get(node_id) != agent_id:
            raise InconsistentGraph(
                f"Node {node_id} is not a live node of agent {agent_id}"
            )


def create_connection(
    agent_id: int,
    from_node_id: int,
    to_node_id: int,
    output_name: str = "output",
    input_name: str = "input",
) -> Connection:
    now = utc_timestamp()
    with session() as conn:
        _check_endpoints(conn, agent_id, from_node_id, to_node_id)
        cursor = conn.execute(
            """
            insert into connections (
                agent_id, from_node_id, to_node_id,
                output_name, input_name, created_at, updated_at
            )
            values (?, ?, ?, ?, ?, ?, ?)
            """,
            (agent_id, from_node_id, to_node_id, output_name, input_name, now, now),
        )
        connection_id = cursor.lastrowid
    return get_connection(connection_id)


def get_connection(connection_id: int, include_deleted: bool = False) -> Connection | None:
    with session() as conn:
        row = conn.execute(
            f"select * from connections where id = ?{_live(include_deleted)}",
            (connection_id,),
        ).fetchone()
    if not row:
        return None
    return _connection_from_row(row)


def find_connection(agent_id: int, from_node_id: int, to_node_id: int) -> Connection | None:
    with session() as conn:
        row = conn.execute(
            """
            select * from connections
            where agent_id = ? and from_node_id = ? and to_node_id = ?
            and deleted_at is null
            order by id
            limit 1
            """,
            (agent_id, from_node_id, to_node_id),
        ).fetchone()
    if not row:
        return None
    return _connection_from_row(row)


def fetch_connections(
    conn: sqlite3.Connection, agent_id: int, include_deleted: bool = False
) -> list[Connection]:
    rows = conn.execute(
        f"select * from connections where agent_id = ?{_live(include_deleted)} order by id",
        (agent_id,),
    ).fetchall()
    return [_connection_from_row(row) for row in rows]


def list_connections(agent_id: int, include_deleted: bool = False) -> list[Connection]:
    with session() as conn:
        return fetch_connections(conn, agent_id, include_deleted)


def update_connection(connection_id: int, fields: dict[str, Any]) -> Connection | None:
    fields = {key: value for key, value in fields.items() if key in CONNECTION_FIELDS}
    existing = get_connection(connection_id)
    if existing is None:
        return None
    if not fields:
        return existing
    fields["updated_at"] = utc_timestamp()
    columns, values = assignments(fields)
    with session() as conn:
        _check_endpoints(
            conn,
            existing.agent_id,
            fields.get("from_node_id", existing.from_node_id),
            fields.get("to_node_id", existing.to_node_id),
        )
        conn.execute(
            f"update connections set {columns} where id = ? and deleted_at is null",
            (*values, connection_id),
        )
    return get_connection(connection_id)


def delete_connection(connection_id: int) -> None:
    with session() as conn:
        conn.execute(
            "update connections set deleted_at = ? where id = ? and deleted_at is null",
            (utc_timestamp(), connection_id),
        )


def restore_connection(connection_id: int) -> Connection | None:
    """clear the tombstone of a connection whose endpoints are still live."""
    existing = get_connection(connection_id, include_deleted=True)
    if existing is None:
        return None
    with session() as conn:
        _check_endpoints(conn, existing.agent_id, existing.from_node_id, existing.to_node_id)
        conn.execute(
            "update connections set deleted_at = null, updated_at = ? where id = ?",
            (utc_timestamp(), connection_id),
        )
    return get_connection(connection_id)
