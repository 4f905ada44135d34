"""Shared fixtures."""

import pytest
from fastapi.testclient import TestClient

from agentgraph_server.db import init_all


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Point the store at a fresh sqlite file."""
    path = tmp_path / "agentgraph.db"
    monkeypatch.setenv("AGENTGRAPH_DB_PATH", str(path))
    init_all()
    return path


@pytest.fixture
def client(db):
    from agentgraph_server.app import app

    with TestClient(app) as test_client:
        yield test_client
