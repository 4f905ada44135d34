"""HTTP tests for the agentgraph API."""

import pytest


@pytest.fixture
def agent(client):
    response = client.post("/api/agents", json={"name": "Support Bot", "auto_stop": True})
    assert response.status_code == 201
    return response.json()


def _node(client, agent_id, name, node_type="model", **extra):
    response = client.post(
        f"/api/agents/{agent_id}/nodes",
        json={"name": name, "type": node_type, **extra},
    )
    assert response.status_code == 201
    return response.json()


def _connect(client, agent_id, source, target):
    response = client.post(
        f"/api/agents/{agent_id}/connections",
        json={"from_node_id": source["id"], "to_node_id": target["id"]},
    )
    assert response.status_code == 201
    return response.json()


class TestAgents:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_create_generates_slug(self, agent):
        assert agent["slug"].startswith("supportBot")
        assert len(agent["slug"]) == len("supportBot") + 2

    def test_list_and_get(self, client, agent):
        assert [a["id"] for a in client.get("/api/agents").json()] == [agent["id"]]
        assert client.get(f"/api/agents/{agent['id']}").json()["name"] == "Support Bot"

    def test_duplicate_explicit_slug_conflicts(self, client):
        assert client.post("/api/agents", json={"name": "A", "slug": "same"}).status_code == 201
        response = client.post("/api/agents", json={"name": "B", "slug": "same"})
        assert response.status_code == 409

    def test_patch_ignores_nulls(self, client, agent):
        response = client.patch(
            f"/api/agents/{agent['id']}",
            json={"name": None, "description": "answers tickets"},
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Support Bot"
        assert response.json()["description"] == "answers tickets"

    def test_delete_then_missing(self, client, agent):
        assert client.delete(f"/api/agents/{agent['id']}").status_code == 200
        assert client.get(f"/api/agents/{agent['id']}").status_code == 404

    def test_unknown_agent(self, client):
        assert client.get("/api/agents/999").status_code == 404
        assert client.get("/api/agents/999/structure").status_code == 404

    def test_patch_can_clear_optional_fields(self, client, agent):
        client.patch(f"/api/agents/{agent['id']}", json={"description": "answers tickets"})

        response = client.patch(f"/api/agents/{agent['id']}", json={"description": None})

        assert response.status_code == 200
        assert response.json()["description"] is None
        assert response.json()["slug"] == agent["slug"]


class TestGraph:
    def test_structure_reflects_connections(self, client, agent):
        a = _node(client, agent["id"], "plan")
        b = _node(client, agent["id"], "search", node_type="tool")
        _connect(client, agent["id"], a, b)

        structure = client.get(f"/api/agents/{agent['id']}/structure").json()

        by_name = {node["name"]: node for node in structure["nodes"]}
        assert by_name["plan"]["is_entry"] is True
        assert by_name["search"]["is_terminal"] is True
        assert by_name["plan"]["outgoing"][0]["peer_node_name"] == "search"
        assert structure["last_run_at"] is None

    def test_tool_node_gets_slug(self, client, agent):
        node = _node(client, agent["id"], "web search", node_type="tool")
        assert node["slug"].startswith("toolwebSearch")

    def test_role_flags_not_accepted_from_clients(self, client, agent):
        node = _node(client, agent["id"], "plan", is_entry=True)
        assert node["is_entry"] is False

    def test_cross_agent_connection_is_rejected(self, client, agent):
        other = client.post("/api/agents", json={"name": "Other"}).json()
        a = _node(client, agent["id"], "plan")
        foreign = _node(client, other["id"], "x")

        response = client.post(
            f"/api/agents/{agent['id']}/connections",
            json={"from_node_id": a["id"], "to_node_id": foreign["id"]},
        )

        assert response.status_code == 400

    def test_delete_connection_and_restore(self, client, agent):
        a = _node(client, agent["id"], "plan")
        b = _node(client, agent["id"], "answer")
        conn = _connect(client, agent["id"], a, b)

        assert client.delete(f"/api/connections/{conn['id']}").status_code == 200
        assert client.get(f"/api/nodes/{a['id']}").json()["is_entry"] is False

        restored = client.post(f"/api/connections/{conn['id']}/restore")
        assert restored.status_code == 200
        assert client.get(f"/api/nodes/{a['id']}").json()["is_entry"] is True

    def test_delete_node_reports_removed_connections(self, client, agent):
        a = _node(client, agent["id"], "plan")
        b = _node(client, agent["id"], "answer")
        conn = _connect(client, agent["id"], a, b)

        response = client.delete(f"/api/nodes/{b['id']}")

        assert response.json() == {"deleted": b["id"], "removed_connection_ids": [conn["id"]]}
        assert client.get(f"/api/nodes/{b['id']}").status_code == 404

    def test_recompute_endpoint(self, client, agent):
        _node(client, agent["id"], "plan")

        response = client.post(f"/api/agents/{agent['id']}/recompute-roles")

        assert response.json() == {"agent_id": agent["id"], "changed_node_ids": []}

    def test_node_cannot_map_onto_itself(self, client, agent):
        a = _node(client, agent["id"], "plan")

        response = client.patch(f"/api/nodes/{a['id']}", json={"mapping_node_id": a["id"]})

        assert response.status_code == 400

    def test_missing_connection(self, client):
        assert client.delete("/api/connections/999").status_code == 404
        assert client.patch("/api/connections/999", json={"input_name": "x"}).status_code == 404


class TestRuns:
    @pytest.fixture
    def chain(self, client, agent):
        a = _node(client, agent["id"], "plan")
        b = _node(client, agent["id"], "answer")
        _connect(client, agent["id"], a, b)
        return a, b

    def test_track_and_trace(self, client, agent, chain):
        a, b = chain
        first = client.post("/api/track", json={"node_id": a["id"], "input": {"q": "hi"}})
        assert first.status_code == 201
        run_id = first.json()["run_log_id"]
        client.post("/api/track", json={"node_id": b["id"], "output": "done"})

        trace = client.get(f"/api/runs/{run_id}/trace").json()

        assert [step["node_name"] for step in trace["steps"]] == ["plan", "answer"]
        assert trace["edges"] == [{"source": a["id"], "target": b["id"], "step_index": 0}]
        assert trace["status"] == "success"
        assert client.get(f"/api/runs/{run_id}/last-node").json() == {
            "run_id": run_id,
            "node_id": b["id"],
        }
        structure = client.get(f"/api/agents/{agent['id']}/structure").json()
        assert structure["last_run_at"] is not None

    def test_trace_of_unknown_run_is_empty(self, client):
        response = client.get("/api/runs/999/trace")

        assert response.status_code == 200
        assert response.json()["steps"] == []

    def test_manual_steps(self, client, agent, chain):
        a, b = chain
        run = client.post("/api/runs", json={"agent_id": agent["id"]}).json()
        assert run["status"] == "processing"
        step = client.post(f"/api/runs/{run['id']}/steps", json={"node_id": a["id"]}).json()
        client.post(
            f"/api/runs/{run['id']}/steps",
            json={"node_id": b["id"], "parent_log_id": step["id"], "duration_ms": None},
        )
        client.post(f"/api/runs/{run['id']}/tool-calls", json={"node_id": b["id"]})

        trace = client.get(f"/api/runs/{run['id']}/trace").json()

        assert [s["node_id"] for s in trace["steps"]] == [a["id"], b["id"]]
        assert trace["steps"][1]["duration_ms"] is None
        assert len(trace["tool_calls"]) == 1

    def test_step_node_must_belong_to_run_agent(self, client, agent):
        other = client.post("/api/agents", json={"name": "Other"}).json()
        foreign = _node(client, other["id"], "x")
        run = client.post("/api/runs", json={"agent_id": agent["id"]}).json()

        response = client.post(f"/api/runs/{run['id']}/steps", json={"node_id": foreign["id"]})

        assert response.status_code == 400
        assert client.post(f"/api/runs/{run['id']}/steps", json={"node_id": 999}).status_code == 404

    def test_track_into_run_of_another_agent(self, client, agent):
        other = client.post("/api/agents", json={"name": "Other"}).json()
        foreign = _node(client, other["id"], "x")
        run = client.post("/api/runs", json={"agent_id": agent["id"]}).json()

        response = client.post(
            "/api/track", json={"node_id": foreign["id"], "run_log_id": run["id"]}
        )

        assert response.status_code == 400
        assert client.get(f"/api/runs/{run['id']}/trace").json()["steps"] == []

    def test_list_agent_runs(self, client, agent):
        first = client.post("/api/runs", json={"agent_id": agent["id"]}).json()
        client.post("/api/runs", json={"agent_id": agent["id"], "environment": "staging"})

        listed = client.get(f"/api/agents/{agent['id']}/runs").json()
        production = client.get(
            f"/api/agents/{agent['id']}/runs", params={"environment": "production"}
        ).json()

        assert len(listed) == 2
        assert [run["id"] for run in production] == [first["id"]]
        assert client.get("/api/agents/999/runs").status_code == 404
        assert client.get(f"/api/agents/{agent['id']}/runs", params={"limit": 0}).status_code == 422

    def test_update_and_delete_run(self, client, agent):
        run = client.post("/api/runs", json={"agent_id": agent["id"]}).json()

        updated = client.patch(f"/api/runs/{run['id']}", json={"status": "failed"}).json()
        assert updated["status"] == "failed"

        assert client.delete(f"/api/runs/{run['id']}").status_code == 200
        assert client.get(f"/api/runs/{run['id']}").status_code == 404

    def test_unknown_run(self, client):
        assert client.get("/api/runs/999").status_code == 404
        assert client.get("/api/runs/999/last-node").status_code == 404
        assert client.post("/api/track", json={"node_id": 999}).status_code == 404
        assert client.post("/api/runs", json={"agent_id": 999}).status_code == 404


class TestCapture:
    def test_capture_learns_graph(self, client):
        agent = client.post("/api/agents", json={"name": "Learner", "auto_capture": True}).json()

        first = client.post(f"/api/agents/{agent['id']}/capture", json={"slug": "plan"})
        second = client.post(
            f"/api/agents/{agent['id']}/capture",
            json={"slug": "lookup", "type": "tool", "output": {"hits": 1}},
        )

        assert first.status_code == second.status_code == 201
        assert second.json()["parent_log_id"] == first.json()["id"]
        structure = client.get(f"/api/agents/{agent['id']}/structure").json()
        by_slug = {node["slug"]: node for node in structure["nodes"]}
        assert by_slug["plan"]["is_entry"] is True
        assert by_slug["lookup"]["is_terminal"] is True
        assert by_slug["lookup"]["type"] == "tool"

    def test_capture_disabled(self, client, agent):
        response = client.post(f"/api/agents/{agent['id']}/capture", json={"slug": "plan"})

        assert response.status_code == 409
        assert client.get(f"/api/agents/{agent['id']}/nodes").json() == []
