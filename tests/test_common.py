import sys

import pytest

from nxhost.config import ConfigValue
from nxhost.initsys import common
from nxhost.service import RUN_MODE_ENV, AlreadyInstalledError, Config, Status


class _Svc(common.InitService):
    def install(self): pass
    def uninstall(self): pass
    def status(self): return Status.UNKNOWN
    def start(self): pass
    def stop(self): pass
    def restart(self): pass


def test_run_output():
    assert common.run_output(sys.executable, "-c", "print(' hi ')") == "hi"


def test_exit_code_from_failure():
    with pytest.raises(common.CommandError) as info:
        common.run(sys.executable, "-c", "import sys; sys.exit(3)")
    assert common.exit_code(info.value) == 3


def test_exit_code_wrapped():
    try:
        try:
            common.run(sys.executable, "-c", "import sys; sys.exit(2)")
        except common.CommandError as e:
            raise RuntimeError("outer") from e
    except RuntimeError as outer:
        assert common.exit_code(outer) == 2


def test_exit_code_defaults():
    assert common.exit_code(None) == 0
    assert common.exit_code(ValueError("x")) == -1


def test_missing_command():
    with pytest.raises(common.CommandError) as info:
        common.run("definitely-not-a-command-xyz")
    assert common.exit_code(info.value) == -1


def test_render_template():
    out = common.render_template(
        "{{ name }} {{ run_mode_env }}{% for a in arguments %} {{ a }}{% endfor %}\n",
        Config(name="svc", arguments=["run", "-x"]),
    )
    assert out == f"svc {RUN_MODE_ENV} run -x\n"


def test_create_with_template(tmp_path):
    path = str(tmp_path / "d" / "svc.sh")
    cfg = Config(name="svc")
    common.create_with_template(path, "name={{ name }}\n", 0o644, cfg)
    assert open(path).read() == "name=svc\n"
    with pytest.raises(AlreadyInstalledError):
        common.create_with_template(path, "x", 0o644, cfg)


def test_init_service_config(tmp_path):
    s = _Svc(Config(name="svc"), path="p", config_file=str(tmp_path / "c.conf"))
    s.save_config({"listen": ConfigValue("a")})
    v = ConfigValue()
    s.load_config({"listen": v})
    assert v.value == "a"
    assert s.name == "svc"