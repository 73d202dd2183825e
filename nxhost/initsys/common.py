"""Helpers shared by init system implementations."""

from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass

import jinja2

from nxhost.config import ConfigFileStorer
from nxhost.service import RUN_MODE_ENV, AlreadyInstalledError, Config, Service


class CommandError(Exception):
    """An external command failed."""

    def __init__(self, command, args, cause, stderr="", returncode=None):
        self.command = command
        self.args_list = list(args)
        self.cause = cause
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"{command} {' '.join(self.args_list)}: {cause}: {stderr}")


def run_output(command: str, *args: str) -> str:
    """Run a command with a 30 second limit and return its trimmed stdout."""
    try:
        proc = subprocess.run([command, *args], capture_output=True, text=True, timeout=30)
    except subprocess.TimeoutExpired as e:
        err = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        raise CommandError(command, args, "signal: killed", err, -1) from e
    except OSError as e:
        raise CommandError(command, args, e) from e
    if proc.returncode != 0:
        rc = proc.returncode if proc.returncode > 0 else -1
        raise CommandError(command, args, f"exit status {proc.returncode}", proc.stderr, rc)
    return proc.stdout.strip()


def run(command: str, *args: str) -> None:
    run_output(command, *args)


def exit_code(err: BaseException | None) -> int:
    """Return the exit status carried by ``err``, 0 for none, -1 if unknown."""
    if err is None:
        return 0
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, CommandError) and err.returncode is not None:
            return err.returncode
        if isinstance(err, subprocess.CalledProcessError):
            return err.returncode
        err = err.__cause__ or err.__context__
    return -1


def _executable() -> str:
    path = os.path.abspath(sys.argv[0]) if sys.argv and sys.argv[0] else ""
    return path if path and os.path.isfile(path) else sys.executable


def render_template(template: str, config: Config) -> str:
    env = jinja2.Environment(keep_trailing_newline=True, autoescape=False)
    return env.from_string(template).render(
        name=config.name,
        display_name=config.display_name,
        description=config.description,
        arguments=config.arguments,
        flags=config.flags,
        config=config,
        executable=_executable(),
        run_mode_env=RUN_MODE_ENV,
    )


def create_with_template(path: str, template: str, mode: int, config: Config) -> None:
    """Render ``template`` into a new file at ``path``."""
    if os.path.exists(path):
        raise AlreadyInstalledError()
    directory = os.path.dirname(path) or "."
    if not os.path.exists(directory):
        os.makedirs(directory, 0o755, exist_ok=True)
    elif not os.path.isdir(directory):
        raise NotADirectoryError(f"{directory}: not a directory")
    content = render_template(template, config)
    fd = os.open(path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)


@dataclass
class InitService(Service):
    """Base for init systems that keep their configuration in a file."""

    config: Config
    path: str = ""
    config_file: str = ""

    @property
    def name(self) -> str:
        return self.config.name

    def save_config(self, entries: dict) -> None:
        ConfigFileStorer(self.config_file).save_config(entries)

    def load_config(self, entries: dict) -> None:
        ConfigFileStorer(self.config_file).load_config(entries)