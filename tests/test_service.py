import os
import signal

import pytest

from nxhost import service as svc


class _Runner(svc.Runner):
    def __init__(self, signals):
        self.signals = signals
        self.logs = []
        self.stopped = False

    def start(self):
        for s in self.signals:
            os.kill(os.getpid(), s)

    def stop(self):
        self.stopped = True
        return "done"

    def log(self, msg):
        self.logs.append(msg)


class _Dummy(svc.Service):
    def install(self): pass
    def uninstall(self): pass
    def status(self): return svc.Status.RUNNING
    def start(self): pass
    def stop(self): pass
    def restart(self): pass
    def save_config(self, entries): pass
    def load_config(self, entries): pass


def test_has_flag():
    c = svc.Config(name="x", flags=["podman"])
    assert c.has_flag("podman")
    assert not c.has_flag("other")


def test_run_mode(monkeypatch):
    monkeypatch.setenv(svc.RUN_MODE_ENV, "1")
    assert svc.current_run_mode() is svc.RunMode.SERVICE
    monkeypatch.setenv(svc.RUN_MODE_ENV, "0")
    assert svc.current_run_mode() is svc.RunMode.NONE


def test_error_messages():
    assert str(svc.NotSupportedError()) == "system not supported"
    assert str(svc.AlreadyInstalledError()) == "already installed"
    assert str(svc.NotInstalledError()) == "not installed"
    assert issubclass(svc.NotInstalledError, svc.ServiceError)


def test_service_name():
    assert svc.service_name(_Dummy()) == __name__.rsplit(".", 1)[-1]


def test_run_foreground(monkeypatch):
    monkeypatch.delenv(svc.RUN_MODE_ENV, raising=False)
    r = _Runner([signal.SIGTERM])
    assert svc.run("x", r) == "done"
    assert r.stopped


def test_run_service_logs_ignored(monkeypatch):
    monkeypatch.setenv(svc.RUN_MODE_ENV, "1")
    r = _Runner([signal.SIGUSR1, signal.SIGTERM])
    assert svc.run("x", r) == "done"
    assert any("(ignored)" in m for m in r.logs)
    assert r.logs[-1] == "Received signal: SIGTERM"