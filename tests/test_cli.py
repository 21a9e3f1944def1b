import httpx
import pytest

from donation_relay import cli


class Recorder:
    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.calls = []

    def __call__(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        self.response.request = httpx.Request(method, url)
        return self.response


def test_resolve_base_url() -> None:
    assert cli._resolve_base_url("127.0.0.1", 8080) == "http://127.0.0.1:8080"
    assert cli._resolve_base_url("https://relay.example.com/", 8080) == "https://relay.example.com"


def test_send_posts_to_test_endpoint(monkeypatch, capsys) -> None:
    recorder = Recorder(httpx.Response(200, json={"success": True, "queued": False}))
    monkeypatch.setattr(cli.httpx, "request", recorder)

    exit_code = cli.main(["--api-key", "secret", "send", "ABCD-EFGH-IJKL-MNOP", "saweria"])

    assert exit_code == 0
    method, url, kwargs = recorder.calls[0]
    assert method == "POST"
    assert url == "http://127.0.0.1:8080/donation/ABCD-EFGH-IJKL-MNOP/test/saweria"
    assert kwargs["headers"] == {"X-API-Key": "secret"}
    assert '"success": true' in capsys.readouterr().out


def test_clear_reports_http_errors(monkeypatch, capsys) -> None:
    recorder = Recorder(httpx.Response(404, json={"error": "NO_DONATION"}))
    monkeypatch.setattr(cli.httpx, "request", recorder)

    assert cli.main(["--api-key", "secret", "clear", "KEY"]) == 1
    assert "404" in capsys.readouterr().err


def test_send_rejects_unknown_platform() -> None:
    with pytest.raises(SystemExit):
        cli.main(["send", "KEY", "kofi"])


def test_register_requires_master_key(monkeypatch) -> None:
    monkeypatch.delenv("RELAY_MASTER_KEY", raising=False)
    with pytest.raises(SystemExit):
        cli.main(["--master-key", "", "register", "Game"])
