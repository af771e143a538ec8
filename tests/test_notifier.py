import requests

from symphony import notifier as notifier_module
from symphony.notifier import DecisionNotifier


class _Response:
    def __init__(self, status_code: int):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


def test_posts_decision_payload(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json, timeout))
        return _Response(200)

    monkeypatch.setattr(notifier_module.requests, "post", fake_post)
    hook = DecisionNotifier("https://hooks.example.test/x", timeout=5)
    assert hook.notify_decision("/tmp/state.json", {"phaseId": "b"})
    assert calls == [(
        "https://hooks.example.test/x",
        {"event": "decision_required", "statePath": "/tmp/state.json",
         "decision": {"phaseId": "b"}},
        5,
    )]


def test_delivery_failure_is_only_a_warning(monkeypatch, capsys):
    monkeypatch.setattr(notifier_module.requests, "post",
                        lambda *a, **kw: _Response(500))
    hook = DecisionNotifier("https://hooks.example.test/x")
    assert hook.notify_decision("s.json", {"phaseId": "b"}) is False
    assert "[SYMPHONY-NOTIFY] Warning:" in capsys.readouterr().err


def test_connection_error_is_only_a_warning(monkeypatch, capsys):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(notifier_module.requests, "post", refuse)
    hook = DecisionNotifier("https://hooks.example.test/x")
    assert hook.notify_decision("s.json", {"phaseId": "b"}) is False
    assert "refused" in capsys.readouterr().err


def test_from_config_requires_url(monkeypatch):
    monkeypatch.setattr(notifier_module, "DECISION_WEBHOOK_URL", None)
    assert DecisionNotifier.from_config() is None
    monkeypatch.setattr(notifier_module, "DECISION_WEBHOOK_URL",
                        "https://hooks.example.test/y")
    assert DecisionNotifier.from_config().url == \
        "https://hooks.example.test/y"
