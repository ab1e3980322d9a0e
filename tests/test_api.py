import asyncio
import time

import pytest
from conftest import DB1, DB2, FakeServer
from fastapi.testclient import TestClient

from hrs.api import create_app
from hrs.db import ConnectionDescriptor, ResourcePool
from hrs.reconciler import Reconciler
from hrs.runtime import ProcessState
from hrs.settings import ConfigSource


@pytest.fixture
def stack(write_env, connector, tmp_path):
    """Build app + collaborators around a .env file; optionally pre-connect the pool."""

    def _stack(connect=False, mock_fallback=True, render=None, **env):
        path = write_env(**env)
        source = ConfigSource(path, environ={})
        state = ProcessState(source.load())
        pool = ResourcePool(state, connect=connector, connect_timeout_s=1.0)
        server = FakeServer()
        reconciler = Reconciler(source, state, pool, server)
        if connect:
            asyncio.run(pool.open(ConnectionDescriptor.from_url(state.settings.database_url)))
        app = create_app(
            state.settings, state, pool, reconciler, root=tmp_path, render=render, mock_fallback=mock_fallback
        )
        return app, state, server

    return _stack


def _wait_for(client, predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        body = client.get("/api/status").json()
        if predicate(body):
            return body
        time.sleep(0.02)
    raise AssertionError(f"condition not reached, last status: {body}")


def test_status_reports_settings_and_connection(stack):
    app, state, _ = stack(PORT="3000", NODE_ENV="production", DATABASE_URL=DB1)
    client = TestClient(app)

    body = client.get("/api/status").json()
    assert body["dbConnected"] is False
    assert body["port"] == 3000
    assert body["nodeEnv"] == "production"
    assert body["serverTime"].endswith("Z")
    assert body["generation"] == 0


def test_mock_data_served_while_disconnected(stack):
    app, _, _ = stack(DATABASE_URL=DB1)
    client = TestClient(app)

    r = client.get("/api/users")
    assert r.status_code == 200
    assert len(r.json()) == 5

    r = client.get("/api/products/2")
    assert r.json()["name"] == "Laptop Pro"

    r = client.get("/api/users/99")
    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"


def test_503_without_database_or_fallback(stack):
    app, _, _ = stack(mock_fallback=False, DATABASE_URL=DB1)
    client = TestClient(app)

    for path in ("/api/users", "/api/tasks/1"):
        r = client.get(path)
        assert r.status_code == 503
        assert r.json() == {"message": "Database not connected"}


def test_rows_come_from_database_when_connected(stack, connector):
    connector.rows = [{"id": 7, "title": "From the database"}]
    app, _, _ = stack(connect=True, DATABASE_URL=DB1)
    client = TestClient(app)

    assert client.get("/api/posts").json() == [{"id": 7, "title": "From the database"}]
    assert client.get("/api/posts/7").json()["title"] == "From the database"
    assert client.get("/api/posts/8").status_code == 404
    assert connector.queries[0] == (DB1, "SELECT * FROM posts", ())


def test_query_failure_is_500(stack, connector):
    connector.query_error = OSError('relation "users" does not exist')
    app, _, _ = stack(connect=True, DATABASE_URL=DB1)
    client = TestClient(app)

    r = client.get("/api/users")
    assert r.status_code == 500
    assert r.json() == {"error": "Database error", "message": 'relation "users" does not exist'}


def test_unknown_resource_is_404(stack):
    app, _, _ = stack(DATABASE_URL=DB1)
    assert TestClient(app).get("/api/widgets").status_code == 404


def test_reload_env_reconnects_on_url_change(stack, write_env):
    app, state, server = stack(connect=True, PORT="3000", DATABASE_URL=DB1)

    with TestClient(app) as client:
        write_env(PORT="3000", DATABASE_URL=DB2)
        body = client.post("/api/reload-env").json()

        assert body["success"] is True
        assert body["message"] == "Environment variables reloaded"
        assert body["databaseUrlChanged"] is True
        assert body["serverRestarting"] is False
        assert body["generation"] == 1

        _wait_for(client, lambda s: s["dbConnected"])
    assert server.restarts == []


def test_reload_env_reports_restart_decision(stack, write_env):
    app, state, server = stack(PORT="3000", DATABASE_URL=DB1)

    with TestClient(app) as client:
        write_env(PORT="4000", DATABASE_URL=DB1)
        body = client.post("/api/reload-env").json()

        assert body["serverRestarting"] is True
        assert body["databaseUrlChanged"] is False
        assert body["port"] == 4000
        _wait_for(client, lambda s: s["port"] == 4000)
        deadline = time.time() + 2
        while not server.restarts and time.time() < deadline:
            time.sleep(0.02)
    assert server.restarts == [(4000, 1)]


def test_reload_env_failure_keeps_settings(stack, tmp_path):
    app, state, _ = stack(PORT="3000", DATABASE_URL=DB1)
    (tmp_path / ".env").unlink()

    body = TestClient(app).post("/api/reload-env").json()
    assert body["success"] is False
    assert body["port"] == 3000
    assert body["generation"] == 0


def test_database_comes_up_after_reload(stack, connector, write_env):
    connector.unreachable.add(DB1)
    app, state, _ = stack(connect=True, DATABASE_URL=DB1)

    with TestClient(app) as client:
        assert client.get("/api/status").json()["dbConnected"] is False
        write_env(DATABASE_URL=DB2)
        client.post("/api/reload-env")
        _wait_for(client, lambda s: s["dbConnected"])


def test_events_lists_latest_first(stack):
    app, state, _ = stack(DATABASE_URL=DB1)
    state.log_event("INFO", "first")
    state.log_event("WARN", "second")

    events = TestClient(app).get("/api/events", params={"limit": 1}).json()
    assert events == [{"ts": events[0]["ts"], "level": "WARN", "message": "second"}]


def test_page_uses_default_template(stack):
    app, _, _ = stack(DATABASE_URL=DB1)

    r = TestClient(app).get("/dashboard?tab=users")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert 'data-route="/dashboard?tab=users"' in r.text
    assert "<!--app-html-->" not in r.text


def test_page_fills_project_template(stack, tmp_path):
    (tmp_path / "index.html").write_text("<html><body><!--app-html--></body></html>")
    app, _, _ = stack(render=lambda url: f"<p>{url}</p>", DATABASE_URL=DB1)

    assert TestClient(app).get("/about").text == "<html><body><p>/about</p></body></html>"


def test_production_serves_built_assets(stack, tmp_path):
    client_dir = tmp_path / "dist" / "client"
    (client_dir / "assets").mkdir(parents=True)
    (client_dir / "index.html").write_text("<html><!--app-html--></html>")
    (client_dir / "assets" / "app.js").write_text("console.log('hi')")
    app, _, _ = stack(NODE_ENV="production", render=lambda url: "built", DATABASE_URL=DB1)
    client = TestClient(app)

    assert client.get("/assets/app.js").text == "console.log('hi')"
    assert client.get("/").text == "<html>built</html>"
    assert client.get("/docs").text == "<html>built</html>"


def test_render_failure_is_500(stack):
    def _boom(url):
        raise RuntimeError("render exploded")

    app, _, _ = stack(render=_boom, DATABASE_URL=DB1)
    r = TestClient(app).get("/")
    assert r.status_code == 500
    assert "render exploded" in r.text


def test_database_errors_are_documented(stack):
    app, _, _ = stack(DATABASE_URL=DB1)
    schema = TestClient(app).get("/openapi.json").json()

    responses = schema["paths"]["/api/{resource}"]["get"]["responses"]
    assert responses["503"]["content"]["application/json"]["schema"]["$ref"].endswith("/ErrorResponse")
    assert "ErrorResponse" in schema["components"]["schemas"]
