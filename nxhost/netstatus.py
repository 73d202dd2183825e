"""Watch network interfaces and report changes to subscribers."""

from __future__ import annotations

import enum
import socket
import threading
from dataclasses import dataclass, field
from typing import Any

import psutil


class InterfaceFlag(enum.IntFlag):
    UP = 1
    BROADCAST = 2
    LOOPBACK = 4
    POINTTOPOINT = 8
    MULTICAST = 16


_FLAG_NAMES = [
    (InterfaceFlag.UP, "up"),
    (InterfaceFlag.BROADCAST, "broadcast"),
    (InterfaceFlag.LOOPBACK, "loopback"),
    (InterfaceFlag.POINTTOPOINT, "pointtopoint"),
    (InterfaceFlag.MULTICAST, "multicast"),
]


def _flags_str(flags: int) -> str:
    names = [n for f, n in _FLAG_NAMES if flags & f]
    return "|".join(names) if names else "0"


@dataclass
class Interface:
    name: str
    flags: int = 0
    addrs: list[Any] = field(default_factory=list)


def diff_addrs(old_addrs: list, new_addrs: list) -> str:
    new_set = {str(a) for a in new_addrs}
    for o in old_addrs:
        if str(o) not in new_set:
            return f"{o} removed"
    if len(old_addrs) != len(new_addrs):
        old_set = {str(a) for a in old_addrs}
        for n in new_addrs:
            if str(n) not in old_set:
                return f"{n} added"
    return ""


def diff(old: list[Interface] | None, new: list[Interface] | None) -> str:
    """Describe the first difference between two interface lists, or ''."""
    if old is None or new is None:
        return ""
    old = sorted(old, key=lambda i: i.name)
    new = sorted(new, key=lambda i: i.name)
    for i in range(max(len(old), len(new))):
        if i >= len(old):
            return f"{new[i].name} added"
        if i >= len(new):
            return f"{old[i].name} removed"
        o, n = old[i], new[i]
        if o.name != n.name:
            return f"{o.name} removed" if o.name < n.name else f"{n.name} added"
        if o.flags != n.flags:
            old_up = bool(o.flags & InterfaceFlag.UP)
            new_up = bool(n.flags & InterfaceFlag.UP)
            if old_up != new_up:
                return f"{n.name} down" if old_up else f"{n.name} up"
            return f"{n.name} flag {_flags_str(o.flags)} -> {_flags_str(n.flags)}"
        d = diff_addrs(o.addrs, n.addrs)
        if d:
            return f"{n.name} {d}"
    return ""


def list_interfaces() -> list[Interface]:
    stats = psutil.net_if_stats()
    result = []
    for name, snics in psutil.net_if_addrs().items():
        flags = 0
        st = stats.get(name)
        if st is not None:
            if st.isup:
                flags |= InterfaceFlag.UP
            for part in getattr(st, "flags", "").split(","):
                flags |= {
                    "broadcast": InterfaceFlag.BROADCAST,
                    "loopback": InterfaceFlag.LOOPBACK,
                    "pointopoint": InterfaceFlag.POINTTOPOINT,
                    "multicast": InterfaceFlag.MULTICAST,
                }.get(part, 0)
        addrs = [
            f"{a.address}/{a.netmask}" if a.netmask else a.address
            for a in snics
            if a.family in (socket.AF_INET, socket.AF_INET6)
        ]
        result.append(Interface(name, int(flags), addrs))
    return result


_lock = threading.Lock()
_subscribers: list = []
_prev: list[Interface] | None = None
_stop_event: threading.Event | None = None


def changed() -> str:
    """Compare current interfaces with the last snapshot and return the change."""
    global _prev
    new = list_interfaces()
    change = diff(_prev, new)
    _prev = new
    return change


def _broadcast(change: str) -> None:
    with _lock:
        for q in _subscribers:
            q.put(change)


def _checker(stop_event: threading.Event) -> None:
    try:
        changed()
    except OSError:
        pass
    while not stop_event.wait(10):
        try:
            c = changed()
        except OSError:
            continue
        if c:
            _broadcast(c)


def notify(queue) -> None:
    """Put a change description on ``queue`` whenever interfaces change."""
    global _stop_event
    with _lock:
        if not _subscribers:
            _stop_event = threading.Event()
            threading.Thread(target=_checker, args=(_stop_event,), daemon=True).start()
        _subscribers.append(queue)


def stop(queue) -> None:
    """Unsubscribe ``queue``."""
    global _stop_event
    with _lock:
        _subscribers[:] = [q for q in _subscribers if q is not queue]
        if not _subscribers and _stop_event is not None:
            _stop_event.set()
            _stop_event = None