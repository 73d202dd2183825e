"""The macOS launchd init system."""

from __future__ import annotations

import os
import re
import shutil
import subprocess
import time

from nxhost.initsys.common import CommandError, InitService, create_with_template, exit_code
from nxhost.service import Config, NotInstalledError, NotSupportedError, ServiceError, Status

TEMPLATE = """<?xml version='1.0' encoding='UTF-8'?>
<plist version='1.0'>
	<dict>
		<key>EnvironmentVariables</key>
		<dict>
			<key>{{ run_mode_env }}</key>
			<string>1</string>
		</dict>
		<key>Label</key>
		<string>{{ name | e }}</string>
		<key>ProgramArguments</key>
		<array>
			<string>{{ executable | e }}</string>
		{% for arg in arguments %}
			<string>{{ arg | e }}</string>
		{% endfor %}
		</array>
		<key>KeepAlive</key>
		<true/>
		<key>Disabled</key>
		<false/>
	</dict>
</plist>
"""

_PID_RE = re.compile(r'"PID" = ([0-9]+);')


def launchctl(*args: str) -> str:
    """Run ``launchctl``, treating unexpected stderr output as failure."""
    try:
        proc = subprocess.run(["launchctl", *args], capture_output=True, text=True)
    except OSError as e:
        raise CommandError("launchctl", args, e) from e
    if proc.returncode != 0:
        rc = proc.returncode if proc.returncode > 0 else -1
        raise CommandError("launchctl", args, f"exit status {proc.returncode}", proc.stderr, rc)
    stderr = proc.stderr
    # launchctl can fail with a zero exit status.
    if stderr and "Operation now in progress" not in stderr:
        sub = args[0] if args else ""
        if sub == "load" and "service already loaded" in stderr:
            return ""
        if sub == "unload" and "Could not find specified service" in stderr:
            return ""
        raise ServiceError(f"launchctl {' '.join(args)}: {stderr}")
    return proc.stdout


def _check_root() -> None:
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() != 0:
        raise ServiceError("permission denied")


class LaunchdService(InitService):
    """A launch daemon plist in ``/Library/LaunchDaemons``."""

    @classmethod
    def detect(cls, config: Config):
        if shutil.which("launchctl") is None:
            raise NotSupportedError()
        return cls(
            config=config,
            path=f"/Library/LaunchDaemons/{config.name}.plist",
            config_file=f"/etc/{config.name}.conf",
        )

    def install(self) -> None:
        _check_root()
        create_with_template(self.path, TEMPLATE, 0o644, self.config)

    def uninstall(self) -> None:
        _check_root()
        try:
            self.stop()
        except Exception:
            pass
        try:
            os.remove(self.path)
        except FileNotFoundError:
            raise NotInstalledError() from None
        except OSError:
            pass

    def status(self) -> Status:
        _check_root()
        out = ""
        try:
            out = launchctl("list", self.name)
        except Exception as e:
            if exit_code(e) == -1 and "failed with StandardError" not in str(e):
                raise
        if _PID_RE.search(out):
            return Status.RUNNING
        if os.path.exists(self.path):
            return Status.STOPPED
        return Status.NOT_INSTALLED

    def start(self) -> None:
        _check_root()
        launchctl("load", self.path)

    def stop(self) -> None:
        _check_root()
        launchctl("unload", self.path)

    def restart(self) -> None:
        self.stop()
        time.sleep(0.05)
        self.start()