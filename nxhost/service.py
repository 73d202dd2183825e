"""Service abstractions shared by every init system, and the process runner."""

from __future__ import annotations

import contextlib
import enum
import os
import queue
import signal
import sys
import threading
import traceback
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator

RUN_MODE_ENV = "SERVICE_RUN_MODE"


@dataclass
class Config:
    """Description of a service to install."""

    name: str = ""
    display_name: str = ""
    description: str = ""
    arguments: list[str] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags


class Status(enum.IntEnum):
    UNKNOWN = 0
    NOT_INSTALLED = 1
    RUNNING = 2
    STOPPED = 3


class RunMode(enum.IntEnum):
    NONE = 0
    SERVICE = 1


class ServiceError(Exception):
    """Base error for service management."""

    message = "service error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class NotSupportedError(ServiceError):
    message = "system not supported"


class AlreadyInstalledError(ServiceError):
    message = "already installed"


class NotInstalledError(ServiceError):
    message = "not installed"


class Service(ABC):
    """A service managed by the host init system."""

    @abstractmethod
    def install(self) -> None: ...

    @abstractmethod
    def uninstall(self) -> None: ...

    @abstractmethod
    def status(self) -> Status: ...

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def restart(self) -> None: ...

    @abstractmethod
    def save_config(self, entries: dict) -> None: ...

    @abstractmethod
    def load_config(self, entries: dict) -> None: ...


class Runner(ABC):
    """The program run by :func:`run`."""

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> Any: ...

    @abstractmethod
    def log(self, msg: str) -> None: ...


def current_run_mode() -> RunMode:
    """Tell whether this process was started by the init system."""
    if os.environ.get(RUN_MODE_ENV) == "1":
        return RunMode.SERVICE
    return RunMode.NONE


def service_name(service: Service) -> str:
    """Return the short name of the init system implementing ``service``."""
    return type(service).__module__.rsplit(".", 1)[-1]


def _signals(*names: str) -> list[int]:
    return [getattr(signal, n) for n in names if hasattr(signal, n)]


@contextlib.contextmanager
def _signal_queue(signums: list[int]) -> Iterator[queue.SimpleQueue]:
    received: queue.SimpleQueue = queue.SimpleQueue()
    previous = {}
    try:
        for signum in signums:
            previous[signum] = signal.signal(signum, lambda n, _f: received.put(n))
        yield received
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


def _next_signal(received: queue.SimpleQueue) -> int:
    while True:
        try:
            return received.get(timeout=0.2)
        except queue.Empty:
            continue


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


def _stack_dump() -> str:
    parts = []
    for thread_id, frame in sys._current_frames().items():
        parts.append(f"thread {thread_id}:\n" + "".join(traceback.format_stack(frame)))
    return "\n".join(parts)


def _run_foreground(runner: Runner) -> Any:
    with _signal_queue(_signals("SIGHUP", "SIGTERM", "SIGINT")) as received:
        runner.start()
        _next_signal(received)
    return runner.stop()


def _run_service(name: str, runner: Runner) -> Any:
    sigs = _signals("SIGHUP", "SIGINT", "SIGQUIT", "SIGTERM", "SIGUSR1", "SIGUSR2")
    with _signal_queue(sigs) as received:
        runner.start()
        while True:
            signum = _next_signal(received)
            if signum == signal.SIGTERM:
                runner.log(f"Received signal: {_signal_name(signum)}")
                return runner.stop()
            if signum == getattr(signal, "SIGQUIT", None):
                runner.log(_stack_dump()[: 100 * 1024])
            else:
                runner.log(f"Received signal: {_signal_name(signum)} (ignored)")


def run(name: str, runner: Runner) -> Any:
    """Start ``runner`` and block until told to stop; return what stop returns."""
    if current_run_mode() is RunMode.NONE:
        return _run_foreground(runner)
    return _run_service(name, runner)


_ = threading  # threads may call run's runner; kept for type clarity