import signal

import pytest

from backend import autoscaler_daemon


@pytest.fixture(autouse=True)
def reset_shutdown_flag(monkeypatch):
    monkeypatch.setattr(signal, "signal", lambda *args: None)
    autoscaler_daemon.shutdown_requested.clear()
    yield
    autoscaler_daemon.shutdown_requested.clear()


def test_signal_handler_requests_shutdown():
    autoscaler_daemon.signal_handler(signal.SIGTERM, None)
    assert autoscaler_daemon.shutdown_requested.is_set()


def test_loop_exits_once_shutdown_requested(make_controller, capsys):
    controller = make_controller(initial_replicas=3)
    autoscaler_daemon.shutdown_requested.set()

    autoscaler_daemon.autoscale_loop(controller)

    out = capsys.readouterr().out
    assert "Autoscaler daemon started" in out
    assert "stopped gracefully" in out
    assert controller.audit_events() == []
