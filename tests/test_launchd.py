import plistlib
import subprocess
from unittest import mock

import pytest

from nxhost.initsys.common import CommandError, exit_code, render_template
from nxhost.initsys.launchd import TEMPLATE, LaunchdService, launchctl
from nxhost.service import (
    RUN_MODE_ENV,
    Config,
    NotInstalledError,
    NotSupportedError,
    ServiceError,
    Status,
)


def fake_runner(handler):
    calls = []

    def _run(cmd, *args, **kwargs):
        calls.append(list(cmd))
        rc, out, err = handler(list(cmd))
        return subprocess.CompletedProcess(cmd, rc, out, err)

    return calls, _run


def make_service(tmp_path):
    return LaunchdService(
        config=Config(name="nextdns", arguments=["run", "-listen", "a&b"]),
        path=str(tmp_path / "nextdns.plist"),
        config_file=str(tmp_path / "nextdns.conf"),
    )


def test_launchctl_returns_stdout():
    _, fake = fake_runner(lambda cmd: (0, "out", ""))
    with mock.patch("subprocess.run", side_effect=fake):
        assert launchctl("list") == "out"


def test_launchctl_exit_status():
    _, fake = fake_runner(lambda cmd: (2, "", "bad"))
    with mock.patch("subprocess.run", side_effect=fake):
        with pytest.raises(CommandError) as info:
            launchctl("list")
    assert exit_code(info.value) == 2


@pytest.mark.parametrize(
    "sub,stderr",
    [("load", "service already loaded"), ("unload", "Could not find specified service")],
)
def test_launchctl_ignored_stderr(sub, stderr):
    _, fake = fake_runner(lambda cmd: (0, "out", stderr))
    with mock.patch("subprocess.run", side_effect=fake):
        assert launchctl(sub, "/x.plist") == ""


def test_launchctl_in_progress_is_success():
    _, fake = fake_runner(lambda cmd: (0, "out", "Operation now in progress"))
    with mock.patch("subprocess.run", side_effect=fake):
        assert launchctl("load", "/x.plist") == "out"


def test_launchctl_stderr_failure():
    _, fake = fake_runner(lambda cmd: (0, "out", "something broke"))
    with mock.patch("subprocess.run", side_effect=fake):
        with pytest.raises(ServiceError) as info:
            launchctl("load", "/x.plist")
    assert exit_code(info.value) == -1


def test_template_is_valid_plist():
    config = Config(name="a&b", arguments=["run", "<x>"])
    data = plistlib.loads(render_template(TEMPLATE, config).encode())
    assert data["Label"] == "a&b"
    assert data["ProgramArguments"][1:] == ["run", "<x>"]
    assert data["EnvironmentVariables"] == {RUN_MODE_ENV: "1"}
    assert data["KeepAlive"] is True


def test_detect_without_launchctl():
    with mock.patch("shutil.which", return_value=None):
        with pytest.raises(NotSupportedError):
            LaunchdService.detect(Config(name="nextdns"))


def test_detect_paths():
    with mock.patch("shutil.which", return_value="/bin/launchctl"):
        srv = LaunchdService.detect(Config(name="nextdns"))
    assert srv.path == "/Library/LaunchDaemons/nextdns.plist"
    assert srv.config_file == "/etc/nextdns.conf"


def test_permission_denied(tmp_path):
    srv = make_service(tmp_path)
    with mock.patch("os.geteuid", return_value=501):
        with pytest.raises(ServiceError, match="permission denied"):
            srv.install()
        with pytest.raises(ServiceError, match="permission denied"):
            srv.status()


def test_install_writes_plist(tmp_path):
    srv = make_service(tmp_path)
    with mock.patch("os.geteuid", return_value=0):
        srv.install()
    data = plistlib.loads((tmp_path / "nextdns.plist").read_bytes())
    assert data["Label"] == "nextdns"
    assert data["ProgramArguments"][1:] == ["run", "-listen", "a&b"]


def test_status(tmp_path):
    srv = make_service(tmp_path)
    _, running = fake_runner(lambda cmd: (0, '{\n\t"PID" = 42;\n};\n', ""))
    _, failing = fake_runner(lambda cmd: (113, "", "not found"))
    with mock.patch("os.geteuid", return_value=0):
        with mock.patch("subprocess.run", side_effect=running):
            assert srv.status() is Status.RUNNING
        with mock.patch("subprocess.run", side_effect=failing):
            assert srv.status() is Status.NOT_INSTALLED
            (tmp_path / "nextdns.plist").write_text("")
            assert srv.status() is Status.STOPPED


def test_status_stderr_error_raised(tmp_path):
    srv = make_service(tmp_path)
    _, fake = fake_runner(lambda cmd: (0, "", "weird"))
    with mock.patch("os.geteuid", return_value=0):
        with mock.patch("subprocess.run", side_effect=fake):
            with pytest.raises(ServiceError):
                srv.status()


def test_restart_unloads_then_loads(tmp_path):
    srv = make_service(tmp_path)
    calls, fake = fake_runner(lambda cmd: (0, "", ""))
    with mock.patch("os.geteuid", return_value=0):
        with mock.patch("subprocess.run", side_effect=fake):
            srv.restart()
    assert calls == [
        ["launchctl", "unload", srv.path],
        ["launchctl", "load", srv.path],
    ]


def test_uninstall(tmp_path):
    srv = make_service(tmp_path)
    (tmp_path / "nextdns.plist").write_text("")
    _, fake = fake_runner(lambda cmd: (0, "", ""))
    with mock.patch("os.geteuid", return_value=0):
        with mock.patch("subprocess.run", side_effect=fake):
            srv.uninstall()
            assert not (tmp_path / "nextdns.plist").exists()
            with pytest.raises(NotInstalledError):
                srv.uninstall()