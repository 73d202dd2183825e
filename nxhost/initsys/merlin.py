"""The ASUS-Merlin init system."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass

from nxhost.initsys.common import (
    CommandError,
    InitService,
    _executable,
    create_with_template,
    exit_code,
    run,
    run_output,
)
from nxhost.service import (
    AlreadyInstalledError,
    Config,
    NotInstalledError,
    NotSupportedError,
    ServiceError,
    Status,
)

JFFS_SCRIPT = "/jffs/scripts/services-start"
SHEBANG = "#!/bin/sh"

_TZ_FETCH_MARK = "%TZ_FETCH%"

TEMPLATE = """#!/bin/sh

name="{{ name }}"
exe="{{ executable }}"
cmd="$exe{% for arg in arguments %} {{ arg }}{% endfor %}"
pid_file="/tmp/$name.pid"

get_pid() {
	cat "$pid_file"
}

is_running() {
	test -f "$pid_file" && ps | grep -q "^ *$(get_pid) "
}

log() {
	logger -s -t "${name}.init" "$@"
}

setup_tz() {
	tz="$(nvram get time_zone)"
	tz_dir="/jffs/zoneinfo"
	tz_file="$tz_dir/$tz"
	if [ "$(readlink /etc/localtime)" != "$tz_file" ]; then
		if [ -f "$tz_file" ]; then
			ln -sf "$tz_file" /etc/localtime
		else
%TZ_FETCH%
		fi
	fi
}

case "$1" in
	start)
		if is_running; then
			log "Already started"
		else
			if [ -f /rom/ca-bundle.crt ]; then
				# Some firmware forks keep the trust store in a non-standard location
				export SSL_CERT_FILE=/rom/ca-bundle.crt
			fi
			setup_tz
			unset TZ
			export {{ run_mode_env }}=1
			$cmd &
			echo $! > "$pid_file"
			if ! is_running; then
				log "Unable to start"
				exit 1
			fi
		fi

		# Install a symlink of the service into the path if not already present
		if [ -z "$(which $(basename $exe))" ]; then
			# /home/$USER is in the path and does not seem to conflict with stuff
			# like entware.
			mkdir -p /home/$USER
			ln -s "$exe" "/home/$USER/$(basename $exe)"
		fi
	;;
	stop)
		if is_running; then
			kill $(get_pid)
			for i in 1 2 3 4 5 6 7 8 9 10; do
				if ! is_running; then
					break
				fi
				sleep 1
			done
			if is_running; then
				log "Not stopped; may still be shutting down or shutdown may have failed"
				exit 1
			else
				log "Stopped"
				if [ -f "$pid_file" ]; then
					rm "$pid_file"
				fi
			fi
		else
			log "Not running"
		fi
	;;
	restart)
		$0 stop
		if is_running; then
			log "Unable to stop, will not attempt to start"
			exit 1
		fi
		$0 start
	;;
	status)
		if is_running; then
			log "Running"
		else
			log "Stopped"
			exit 1
		fi
	;;
	*)
	log "Usage: $0 {start|stop|restart|status}"
	exit 1
	;;
esac
exit 0
"""


def _uname(flag: str) -> str | None:
    try:
        proc = subprocess.run(["uname", flag], capture_output=True, text=True)
    except OSError:
        return None
    return proc.stdout if proc.returncode == 0 else None


def _write_file(path: str, data: bytes, mode: int = 0o755) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def _read_lines(path: str) -> list[str]:
    with open(path, "rb") as f:
        data = f.read().decode("utf-8", errors="surrogateescape")
    lines = data.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _encode(text: str) -> bytes:
    return text.encode("utf-8", errors="surrogateescape")


def exclude_line(file: str, line: str) -> tuple[bool, bytes]:
    """Return whether ``line`` is in ``file`` and the file's content without it."""
    found = False
    kept = []
    for current in _read_lines(file):
        if current == line:
            found = True
        else:
            kept.append(current + "\n")
    return found, _encode("".join(kept))


def add_line(file: str, line: str) -> None:
    """Add ``line`` right after the shebang of the script ``file``."""
    try:
        found, _ = exclude_line(file, line)
    except FileNotFoundError:
        _write_file(file, _encode(f"{SHEBANG}\n{line}\n"))
        return
    if found:
        raise AlreadyInstalledError()
    lines = _read_lines(file)
    if not lines:
        _write_file(file, _encode(f"{SHEBANG}\n{line}\n"))
        return
    first, rest = lines[0], lines[1:]
    if first.startswith("#!"):
        head = f"{first}\n\n{line}\n"
    else:
        head = f"{SHEBANG}\n\n{line}\n{first}\n"
    _write_file(file, _encode(head + "".join(f"{l}\n" for l in rest)))


def remove_line(file: str, line: str) -> None:
    """Remove ``line`` from ``file``, deleting the file if only a shebang is left."""
    found, out = exclude_line(file, line)
    if not found:
        raise NotInstalledError()
    if out.strip() == _encode(SHEBANG):
        os.remove(file)
        return
    _write_file(file, out)


@dataclass
class MerlinService(InitService):
    """An init script next to the executable, started from the JFFS services script."""

    jffs_script: str = JFFS_SCRIPT
    tz_base_url: str = ""

    @classmethod
    def detect(cls, config: Config):
        out = _uname("-o")
        if out is None or not out.startswith("ASUSWRT-Merlin"):
            raise NotSupportedError()
        exe = _executable()
        return cls(
            config=config,
            path=exe + ".init",
            config_file=exe + ".conf",
            jffs_script=JFFS_SCRIPT,
        )

    def _template(self) -> str:
        if self.tz_base_url:
            url = self.tz_base_url.rstrip("/")
            fetch = (
                '\t\t\tmkdir -p "$tz_dir"\n'
                f'\t\t\tif curl -sLo "$tz_file" "{url}/$tz"; then\n'
                '\t\t\t\tln -sf "$tz_file" /etc/localtime\n'
                "\t\t\tfi"
            )
        else:
            fetch = "\t\t\t:"
        return TEMPLATE.replace(_TZ_FETCH_MARK, fetch)

    @property
    def _start_line(self) -> str:
        return f"{self.path} start"

    def install(self) -> None:
        create_with_template(self.path, self._template(), 0o755, self.config)
        try:
            out = run_output("nvram", "get", "jffs2_scripts")
        except CommandError as e:
            raise ServiceError(f"check jffs2_scripts: {e}") from e
        if not out.startswith("1"):
            try:
                run("nvram", "set", "jffs2_scripts=1")
            except CommandError as e:
                raise ServiceError(f"enable jffs2_scripts: {e}") from e
            try:
                run("nvram", "commit")
            except CommandError as e:
                raise ServiceError(f"nvram commit: {e}") from e
        add_line(self.jffs_script, self._start_line)

    def uninstall(self) -> None:
        try:
            remove_line(self.jffs_script, self._start_line)
        except (OSError, ServiceError):
            pass
        try:
            os.remove(self.path)
        except FileNotFoundError:
            raise NotInstalledError() from None

    def status(self) -> Status:
        if not os.path.exists(self.path):
            return Status.NOT_INSTALLED
        try:
            run(self.path, "status")
        except CommandError as e:
            if exit_code(e) == 1:
                return Status.STOPPED
            raise
        return Status.RUNNING

    def start(self) -> None:
        run(self.path, "start")

    def stop(self) -> None:
        run(self.path, "stop")

    def restart(self) -> None:
        run(self.path, "restart")