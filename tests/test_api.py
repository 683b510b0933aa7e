# test_api.py -- Tests for the project API and health endpoints

from __future__ import annotations

import logging
import uuid

import pytest
from fastapi.testclient import TestClient

from chat_relay.projects import ProjectStore


def _create(client: TestClient, name: str = "Relay", description: str = "Chat backend"):
    return client.post("/projects", json={"project": {"name": name, "description": description}})


class TestIndex:
    def test_index_returns_banner(self, test_client: TestClient):
        resp = test_client.get("/")
        assert resp.status_code == 200
        assert resp.text == "Chat relay running"

    def test_unknown_route_returns_json_404(self, test_client: TestClient):
        resp = test_client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Route not found."}


class TestHealthEndpoint:
    def test_health_returns_ok(self, test_client: TestClient):
        resp = test_client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert "uptime_s" in data

    def test_health_includes_relay_stats(self, test_client: TestClient):
        data = test_client.get("/health").json()
        assert data["participants"] == 0
        assert data["history_size"] == 0
        assert data["history_total"] == 0
        assert data["projects"] == 0


class TestCreateProject:
    def test_create_returns_201_with_id(self, test_client: TestClient):
        resp = _create(test_client)
        assert resp.status_code == 201
        data = resp.json()
        assert data["name"] == "Relay"
        assert data["description"] == "Chat backend"
        uuid.UUID(data["id"])

    def test_ids_are_unique(self, test_client: TestClient):
        a = _create(test_client).json()
        b = _create(test_client).json()
        assert a["id"] != b["id"]

    def test_missing_project_object(self, test_client: TestClient):
        resp = test_client.post("/projects", json={"name": "x", "description": "y"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing project object in request body."}

    def test_invalid_json_body(self, test_client: TestClient):
        resp = test_client.post(
            "/projects", content=b"not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Missing project object in request body."

    def test_empty_name(self, test_client: TestClient):
        resp = _create(test_client, name="")
        assert resp.status_code == 400
        assert resp.json() == {"error": {"name": ["Project name is required."]}}

    def test_missing_fields(self, test_client: TestClient):
        resp = test_client.post("/projects", json={"project": {}})
        assert resp.status_code == 400
        errors = resp.json()["error"]
        assert errors["name"] == ["Project name is required."]
        assert errors["description"] == ["Project description is required."]

    def test_non_string_field(self, test_client: TestClient):
        resp = test_client.post("/projects", json={"project": {"name": 5, "description": "d"}})
        assert resp.status_code == 400
        assert "name" in resp.json()["error"]

    def test_project_not_an_object(self, test_client: TestClient):
        resp = test_client.post("/projects", json={"project": "abc"})
        assert resp.status_code == 400
        assert resp.json() == {"error": {}}

    def test_empty_project_value_is_missing(self, test_client: TestClient):
        resp = test_client.post("/projects", json={"project": ""})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Missing project object in request body."}

    def test_invalid_project_not_stored(self, test_client: TestClient):
        _create(test_client, description="")
        assert test_client.get("/projects").json() == []


class TestReadProjects:
    def test_list_empty(self, test_client: TestClient):
        resp = test_client.get("/projects")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_list_in_creation_order(self, test_client: TestClient):
        _create(test_client, name="first")
        _create(test_client, name="second")
        names = [p["name"] for p in test_client.get("/projects").json()]
        assert names == ["first", "second"]

    def test_get_by_id(self, test_client: TestClient):
        created = _create(test_client).json()
        resp = test_client.get(f"/projects/{created['id']}")
        assert resp.status_code == 200
        assert resp.json() == created

    def test_get_unknown_id(self, test_client: TestClient):
        resp = test_client.get(f"/projects/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Project not found."}

    def test_health_counts_projects(self, test_client: TestClient):
        _create(test_client)
        assert test_client.get("/health").json()["projects"] == 1


class TestCors:
    def test_cors_header_on_simple_request(self, test_client: TestClient):
        resp = test_client.get("/projects", headers={"Origin": "http://localhost:5173"})
        assert resp.status_code == 200
        assert "access-control-allow-origin" in resp.headers

    def test_preflight_allows_post(self, test_client: TestClient):
        resp = test_client.options(
            "/projects",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert resp.status_code == 200
        assert "POST" in resp.headers["access-control-allow-methods"]


class TestErrorHandling:
    def test_unhandled_error_returns_json_500(self, monkeypatch: pytest.MonkeyPatch):
        from chat_relay.app import app

        def broken_list(self):
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(ProjectStore, "list_all", broken_list)
        with TestClient(app, raise_server_exceptions=False) as client:
            resp = client.get("/projects")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal Server Error"}


class TestRequestLogging:
    def test_request_line_logged(self, test_client: TestClient, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.INFO, logger="chat_relay.app")
        test_client.get("/projects")
        assert any("GET /projects -> 200" in r.getMessage() for r in caplog.records)

    def test_post_body_logged_at_debug(
        self, test_client: TestClient, caplog: pytest.LogCaptureFixture
    ):
        caplog.set_level(logging.DEBUG, logger="chat_relay.app")
        resp = _create(test_client, name="Logged")
        assert resp.status_code == 201
        assert any(
            "POST /projects body:" in r.getMessage() and '"Logged"' in r.getMessage()
            for r in caplog.records
        )
