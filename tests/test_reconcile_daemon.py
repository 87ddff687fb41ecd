from __future__ import annotations

import sys

import pytest

from app.workers.charge_worker import ReconcileSummary
from scripts import reconcile_daemon
from settings import settings


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch):
    monkeypatch.setattr(reconcile_daemon, "configure_logging", lambda: None)
    monkeypatch.setattr(settings, "ENV", "test", raising=False)


@pytest.mark.parametrize("backend", ["postgres", "memory"])
@pytest.mark.parametrize("argv", [[], ["--once"]])
def test_daemon_refuses_sandbox_gateway(monkeypatch, caplog, backend, argv):
    monkeypatch.setattr(settings, "GATEWAY_MODE", "sandbox", raising=False)
    monkeypatch.setattr(settings, "STORE_BACKEND", backend, raising=False)
    monkeypatch.setattr(sys, "argv", ["reconcile_daemon", *argv])

    def _no_reconciler(*a, **kw):
        raise AssertionError("reconciler must not be built in sandbox mode")

    monkeypatch.setattr(reconcile_daemon, "ChargeReconciler", _no_reconciler)

    with pytest.raises(SystemExit) as exc:
        reconcile_daemon.main()

    assert exc.value.code == 2
    assert "GATEWAY_MODE=sandbox" in caplog.text


def test_daemon_runs_single_pass_with_real_gateway(monkeypatch):
    monkeypatch.setattr(settings, "GATEWAY_MODE", "real", raising=False)
    monkeypatch.setattr(sys, "argv", ["reconcile_daemon", "--once", "--batch-size", "7"])
    monkeypatch.setattr(reconcile_daemon, "get_store", lambda: "store")
    monkeypatch.setattr(reconcile_daemon, "get_gateway", lambda: "gateway")

    calls = []

    class _Reconciler:
        def __init__(self, store, gateway, fee_rate=None):
            calls.append(("init", store, gateway))

        def process_once(self, *, batch_size=None):
            calls.append(("once", batch_size))
            return ReconcileSummary()

    monkeypatch.setattr(reconcile_daemon, "ChargeReconciler", _Reconciler)

    reconcile_daemon.main()

    assert calls == [("init", "store", "gateway"), ("once", 7)]
