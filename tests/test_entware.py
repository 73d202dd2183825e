import os

import pytest

from nxhost.initsys import entware
from nxhost.initsys.common import CommandError
from nxhost.initsys.entware import EntwareService
from nxhost.service import (
    AlreadyInstalledError,
    Config,
    NotInstalledError,
    NotSupportedError,
    Status,
)


def _script(tmp_path, body):
    path = tmp_path / "S09demo"
    path.write_text("#!/bin/sh\n" + body + "\n")
    path.chmod(0o755)
    return str(path)


def _service(path):
    return EntwareService(config=Config(name="demo"), path=path)


def test_detect_requires_rc_func(monkeypatch, tmp_path):
    monkeypatch.setattr(entware, "RC_FUNC", str(tmp_path / "rc.func"))
    with pytest.raises(NotSupportedError):
        EntwareService.detect(Config(name="demo"))


def test_detect_paths(monkeypatch, tmp_path):
    rc = tmp_path / "rc.func"
    rc.write_text("")
    monkeypatch.setattr(entware, "RC_FUNC", str(rc))
    srv = EntwareService.detect(Config(name="demo"))
    assert srv.path == "/opt/etc/init.d/S09demo"
    assert srv.config_file == "/opt/etc/demo.conf"


def test_install_renders_template(tmp_path):
    srv = _service(str(tmp_path / "init.d" / "S09demo"))
    srv.install()
    text = open(srv.path).read()
    assert "PROCS=demo\n" in text
    assert text.rstrip().endswith(". /opt/etc/init.d/rc.func")
    assert os.access(srv.path, os.X_OK)
    with pytest.raises(AlreadyInstalledError):
        srv.install()


def test_uninstall_missing(tmp_path):
    srv = _service(str(tmp_path / "S09demo"))
    srv.install()
    srv.uninstall()
    assert not os.path.exists(srv.path)
    with pytest.raises(NotInstalledError):
        srv.uninstall()


def test_status_not_installed(tmp_path):
    assert _service(str(tmp_path / "none")).status() is Status.NOT_INSTALLED


def test_status_uses_check(tmp_path):
    srv = _service(_script(tmp_path, '[ "$1" = check ] || exit 5\nexit 1'))
    assert srv.status() is Status.STOPPED


def test_status_running(tmp_path):
    assert _service(_script(tmp_path, "exit 0")).status() is Status.RUNNING


def test_status_error(tmp_path):
    with pytest.raises(CommandError):
        _service(_script(tmp_path, "exit 4")).status()


def test_actions_pass_argument(tmp_path):
    log = tmp_path / "log"
    srv = _service(_script(tmp_path, f'echo "$1" >> "{log}"'))
    srv.restart()
    assert log.read_text().split() == ["restart"]