"""Tests for the /health endpoint."""

from __future__ import annotations

from fastapi.testclient import TestClient

from feedline.config import Config
from feedline.sources import SourcesConfig
from feedline.storage.schema import init_db
from feedline.web.app import create_app


def _client(db_path: str, **kwargs) -> TestClient:
    app = create_app(Config(database_path=db_path), SourcesConfig(feeds=()))
    return TestClient(app, **kwargs)


class TestHealthEndpoint:
    def test_healthy_response(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        init_db(db_path)

        resp = _client(db_path).get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["database"] == "ok"

    def test_unhealthy_when_db_missing(self, tmp_path):
        db_path = str(tmp_path / "nonexistent" / "missing.db")

        resp = _client(db_path, raise_server_exceptions=False).get("/health")
        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "unhealthy"
        assert data["database"] == "error"
        assert "detail" in data

    def test_health_not_under_api_prefix(self, tmp_path):
        db_path = str(tmp_path / "test.db")
        init_db(db_path)
        client = _client(db_path)

        # /health should work at root
        assert client.get("/health").status_code == 200
        # /api/v1/health should NOT exist
        assert client.get("/api/v1/health").status_code != 200
