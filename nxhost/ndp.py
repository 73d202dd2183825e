"""IPv6 neighbour table lookups."""

from __future__ import annotations

import ipaddress
import subprocess
import sys
import threading
import time
from dataclasses import dataclass

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def _to_ip(value) -> IPAddress | None:
    if value is None:
        return None
    try:
        ip = ipaddress.ip_address(value)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


@dataclass
class Entry:
    ip: IPAddress | None
    mac: bytes


class Table(list):
    """A list of :class:`Entry`."""

    def search_mac(self, ip) -> bytes | None:
        target = _to_ip(ip)
        for entry in self:
            if target is not None and _to_ip(entry.ip) == target:
                return entry.mac
        return None

    def search_ip(self, mac: bytes) -> IPAddress | None:
        for entry in self:
            if entry.mac == mac:
                return entry.ip
        return None


def parse_mac(text: str) -> bytes | None:
    """Parse a MAC address, accepting single-digit octets like ``0:1:2:3:4:5``."""
    if len(text) < 17:
        parts = text.split(":")
        if len(parts) != 6:
            return None
        text = ":".join(p.zfill(2) if len(p) == 1 else p for p in parts)
    sep = text[2:3]
    if sep not in (":", "-"):
        return None
    parts = text.split(sep)
    if len(parts) not in (6, 8, 20) or any(len(p) != 2 for p in parts):
        return None
    try:
        return bytes(int(p, 16) for p in parts)
    except ValueError:
        return None


def parse_ndp_output(data: str) -> Table:
    table = Table()
    for line in data.split("\n")[1:]:
        fields = line.split()
        if len(fields) < 2:
            continue
        mac = parse_mac(fields[1])
        if mac is not None:
            table.append(Entry(_to_ip(fields[0].split("%", 1)[0]), mac))
    return table


def parse_netsh_output(data: str) -> Table:
    table = Table()
    for line in data.split("\n"):
        fields = line.split()
        if len(fields) < 3:
            continue
        mac = parse_mac(fields[1].replace("-", ":"))
        if mac is not None:
            table.append(Entry(_to_ip(fields[0]), mac))
    return table


def get() -> Table:
    """Read the system neighbour table."""
    if sys.platform == "win32":
        cmd = ["netsh", "interface", "ipv6", "show", "neighbors"]
        parse = parse_netsh_output
    else:
        cmd = ["ndp", "-an"]
        parse = parse_ndp_output
    out = subprocess.run(cmd, capture_output=True, text=True, check=True).stdout
    return parse(out)


class _Cache:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_update = 0.0
        self._table = Table()

    def _refresh(self) -> None:
        try:
            table = get()
        except (OSError, subprocess.SubprocessError):
            table = Table()
        self._table = table

    def get(self) -> Table:
        now = time.time()
        with self._lock:
            if now - self._last_update > 30:
                self._last_update = now
                threading.Thread(target=self._refresh, daemon=True).start()
        return self._table


_global = _Cache()


def search_mac(ip) -> bytes | None:
    return _global.get().search_mac(ip)


def search_ip(mac: bytes) -> IPAddress | None:
    return _global.get().search_ip(mac)