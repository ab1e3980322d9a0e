import json

import requests

import cli


class _Resp:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


def test_status_prints_json(monkeypatch, capsys):
    calls = []

    def fake_get(url, timeout=10, params=None):
        calls.append(url)
        return _Resp({"dbConnected": True, "port": 3002})

    monkeypatch.setattr(cli.requests, "get", fake_get)

    assert cli.main(["--api", "http://localhost:9999/", "status"]) == 0
    assert calls == ["http://localhost:9999/api/status"]
    assert json.loads(capsys.readouterr().out)["dbConnected"] is True


def test_reload_exit_code_follows_success(monkeypatch):
    monkeypatch.setattr(cli.requests, "post", lambda url, timeout=30: _Resp({"success": False}))
    assert cli.main(["reload"]) == 1

    monkeypatch.setattr(cli.requests, "post", lambda url, timeout=30: _Resp({"success": True}))
    assert cli.main(["reload"]) == 0


def test_get_single_item_and_missing(monkeypatch):
    seen = []

    def fake_get(url, timeout=10, params=None):
        seen.append(url)
        return _Resp({"detail": "Task not found"}, status_code=404)

    monkeypatch.setattr(cli.requests, "get", fake_get)

    assert cli.main(["get", "tasks", "--id", "42"]) == 1
    assert seen == ["http://localhost:3002/api/tasks/42"]


def test_unreachable_server(monkeypatch, capsys):
    def fake_get(url, timeout=10, params=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(cli.requests, "get", fake_get)

    assert cli.main(["events", "--limit", "5"]) == 1
    assert "Cannot reach" in capsys.readouterr().err
