"""Discover, set and restore the system DNS resolver configuration."""

from __future__ import annotations

import glob
import ipaddress
import os
import re
import socket
import struct
import subprocess
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable

import psutil

from nxhost.service import NotSupportedError

RESOLV_FILE = "/etc/resolv.conf"
RESOLV_BACKUP_FILE = "/etc/resolv.conf.nextdns-bak"
RESOLV_TMP_FILE = "/etc/resolv.conf.nextdns-tmp"

RESOLVCONF_FILE = "/etc/resolvconf.conf"
RESOLVCONF_BACKUP_FILE = "/etc/resolvconf.conf.nextdns-bak"
RESOLVCONF_TMP_FILE = "/etc/resolvconf.conf.nextdns-tmp"

NETWORK_MANAGER_FILE = "/etc/NetworkManager/conf.d/nextdns.conf"
NETWORK_MANAGER_CONTENT = "[main]\ndns=none\n"

SYSTEMD_LEASE_DIR = "/run/systemd/netif/leases"
DHCLIENT_LEASES = "/var/db/dhclient.leases.*"

_BSD_PLATFORMS = ("freebsd", "openbsd", "netbsd", "dragonfly")
_PROBE_TIMEOUT = 0.1

_HEADER = (
    "# This file is managed by nextdns.\n"
    "#\n"
    '# Run "nextdns deactivate" to restore previous configuration.\n'
    "\n"
)


def _platform() -> str:
    p = sys.platform
    if p.startswith("linux"):
        return "linux"
    if p == "darwin":
        return "darwin"
    if p.startswith(_BSD_PLATFORMS):
        return "bsd"
    if p == "win32":
        return "windows"
    return "other"


def _output(*cmd: str) -> str | None:
    """Run a command and return its stdout, or None if it could not run or failed."""
    try:
        proc = subprocess.run(list(cmd), capture_output=True, text=True)
    except OSError:
        return None
    return proc.stdout if proc.returncode == 0 else None


def _read_text(path: str) -> str | None:
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError:
        return None


def append_uniq(items: Iterable[str], *args: str) -> list[str]:
    """Return ``items`` followed by those of ``args`` not already present."""
    result = list(items)
    for item in args:
        if item not in result:
            result.append(item)
    return result


def guess_dns(*args: Callable[[], list[str]]) -> list[str]:
    """Run every discovery strategy concurrently and merge their results."""
    if not args:
        return []

    def call(strategy: Callable[[], list[str]]) -> list[str]:
        try:
            return list(strategy() or [])
        except Exception:
            return []

    with ThreadPoolExecutor(max_workers=len(args)) as pool:
        results = list(pool.map(call, args))
    found: list[str] = []
    for result in results:
        found = append_uniq(found, *result)
    return found


def build_probe_query() -> bytes:
    """Return a DNS query for the root name, type A, class IN."""
    header = struct.pack("!6H", 0, 0, 1, 0, 0, 0)
    return header + b"\x00" + struct.pack("!2H", 1, 1)


def probe_dns(addr: str) -> bool:
    """Tell whether a DNS server answers on ``addr`` port 53."""
    try:
        ip = ipaddress.ip_address(addr)
    except ValueError:
        return False
    family = socket.AF_INET6 if ip.version == 6 else socket.AF_INET
    try:
        with socket.socket(family, socket.SOCK_DGRAM) as sock:
            sock.settimeout(_PROBE_TIMEOUT)
            sock.connect((str(ip), 53))
            sock.send(build_probe_query())
            sock.recv(512)
    except OSError:
        return False
    return True


def parse_nmcli(output: str) -> list[str]:
    """Extract IPv4 DNS servers from ``nmcli dev show`` output."""
    found = []
    for line in output.splitlines():
        if line.startswith("IP4.DNS"):
            _, sep, value = line.partition(":")
            if sep:
                found.append(value.strip())
    return found


def parse_dhcpcd(output: str) -> list[str]:
    """Extract DNS servers from ``dhcpcd -U`` output."""
    prefix = "domain_name_servers="
    found = []
    for line in output.splitlines():
        if not line.startswith(prefix):
            continue
        value = line[len(prefix):].strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        found.extend(v for v in value.split(" ") if v)
    return found


def parse_systemd_lease(text: str) -> list[str]:
    """Extract DNS servers from a systemd-networkd lease file."""
    return [line[len("DNS="):] for line in text.splitlines() if line.startswith("DNS=")]


def parse_dhclient_lease(text: str) -> list[str]:
    """Extract DNS servers from a dhclient lease file."""
    prefix = "option domain-name-servers"
    found: list[str] = []
    for line in text.splitlines():
        line = line.strip()
        if not line.startswith(prefix):
            continue
        value = line[len(prefix):].rstrip(";").strip()
        if value:
            found = append_uniq(found, *(ns.strip() for ns in value.split(",") if ns.strip()))
    return found


def parse_gateway_routes(text: str, size: int) -> list[str]:
    """Return default gateways from ``/proc/net/route`` (size 4) or ``ipv6_route`` (16)."""
    if size == 4:
        dest_col, gw_col = 1, 2
    elif size == 16:
        dest_col, gw_col = 0, 4
    else:
        raise ValueError(f"unsupported address size {size}")
    hex_size = size * 2
    default = "0" * hex_size
    found = []
    for line in text.splitlines():
        fields = line.split()
        if len(fields) <= max(dest_col, gw_col):
            continue
        dest, gateway = fields[dest_col], fields[gw_col]
        if len(dest) != hex_size or len(gateway) != hex_size or dest != default:
            continue
        try:
            raw = bytes.fromhex(gateway)
        except ValueError:
            return found
        if size == 4:
            raw = raw[::-1]  # IPv4 routes are written in host (little-endian) order
        if not any(raw):
            continue
        found.append(str(ipaddress.ip_address(raw)))
    return found


def parse_network_services(output: str) -> list[str]:
    """List enabled services from ``networksetup -listallnetworkservices``."""
    return [svc for svc in output.strip().split("\n") if "*" not in svc]


def parse_netsh_interfaces(output: str) -> list[str]:
    """List interface indexes from ``netsh interface ipv4 show interfaces``."""
    indexes = []
    for line in output.splitlines():
        fields = line.split()
        if fields and re.fullmatch(r"[0-9]+", fields[0]) and int(fields[0]) <= 0xFFFFFFFF:
            indexes.append(fields[0])
    return indexes


@dataclass
class ResolvConf:
    """A resolv.conf file replaced by a managed copy, with a backup of the original."""

    path: str = RESOLV_FILE
    backup_path: str = RESOLV_BACKUP_FILE
    tmp_path: str = RESOLV_TMP_FILE

    def render(self, current: str, dns: str) -> str:
        """Return the managed content derived from ``current`` using server ``dns``."""
        kept = []
        for raw in current.splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or line.startswith("nameserver "):
                continue
            kept.append(line + "\n")
        return _HEADER + "".join(kept) + f"nameserver {dns}\n"

    def setup(self, dns: str) -> None:
        """Point the file at ``dns``, keeping the first original as backup."""
        try:
            os.stat(self.backup_path)
            backup = False
        except FileNotFoundError:
            backup = True
        with open(self.path, encoding="utf-8", errors="replace") as f:
            content = self.render(f.read(), dns)
        try:
            os.remove(self.tmp_path)
        except OSError:
            pass
        with open(self.tmp_path, "w", encoding="utf-8") as f:
            f.write(content)
        if backup:
            os.rename(self.path, self.backup_path)
        os.rename(self.tmp_path, self.path)

    def restore(self) -> None:
        """Put the backed up file back in place."""
        os.rename(self.backup_path, self.path)


def setup_resolvconf_conf(
    path: str = RESOLVCONF_FILE,
    backup_path: str = RESOLVCONF_BACKUP_FILE,
    tmp_path: str = RESOLVCONF_TMP_FILE,
) -> None:
    """Disable resolvconf updates, backing up the original configuration."""
    try:
        os.stat(backup_path)
        backup = False
    except FileNotFoundError:
        backup = True
    try:
        os.remove(tmp_path)
    except OSError:
        pass
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write("resolvconf=NO\n")
    if backup:
        try:
            os.rename(path, backup_path)
        except FileNotFoundError:
            # An empty backup records that there was no file.
            with open(backup_path, "w", encoding="utf-8"):
                pass
    os.rename(tmp_path, path)


def _reload_network_manager() -> None:
    subprocess.run(
        ["systemctl", "reload", "NetworkManager"], check=True, capture_output=True
    )


def disable_network_manager_resolver(conf_file: str = NETWORK_MANAGER_FILE) -> None:
    """Stop NetworkManager from managing resolv.conf, if NetworkManager is present."""
    conf_dir = os.path.dirname(conf_file)
    if not os.path.exists(conf_dir):
        return
    if not os.path.isdir(conf_dir):
        raise NotADirectoryError(f"{conf_dir}: is not a directory")
    with open(conf_file, "w", encoding="utf-8") as f:
        f.write(NETWORK_MANAGER_CONTENT)
    _reload_network_manager()


def restore_network_manager_resolver(conf_file: str = NETWORK_MANAGER_FILE) -> None:
    """Undo :func:`disable_network_manager_resolver`."""
    if not os.path.exists(conf_file):
        return
    os.remove(conf_file)
    _reload_network_manager()


# Linux discovery


def _nmcli_dns() -> list[str]:
    out = _output("nmcli", "dev", "show")
    return parse_nmcli(out) if out else []


def _dhcpcd_dns() -> list[str]:
    try:
        stats = psutil.net_if_stats()
    except (OSError, RuntimeError):
        return []
    found = []
    for name, st in stats.items():
        if not st.isup:
            continue
        flags = getattr(st, "flags", "") or ""
        if "loopback" in flags.split(",") or name == "lo":
            continue
        out = _output("dhcpcd", "-U", name)
        if out:
            found.extend(parse_dhcpcd(out))
    return found


def _systemd_lease_dns() -> list[str]:
    try:
        names = sorted(os.listdir(SYSTEMD_LEASE_DIR))
    except OSError:
        return []
    found = []
    for name in names:
        path = os.path.join(SYSTEMD_LEASE_DIR, name)
        if name.startswith(".") or os.path.isdir(path):
            continue
        text = _read_text(path)
        if text:
            found.extend(parse_systemd_lease(text))
    return found


def _gateway_dns_from(file: str, size: int) -> list[str]:
    text = _read_text(file)
    if text is None:
        return []
    return [ip for ip in parse_gateway_routes(text, size) if probe_dns(ip)]


def _gateway_dns() -> list[str]:
    return _gateway_dns_from("/proc/net/route", 4)


def _gateway_dns6() -> list[str]:
    return _gateway_dns_from("/proc/net/ipv6_route", 16)


# BSD discovery


def _dhclient_dns() -> list[str]:
    found: list[str] = []
    for lease in sorted(glob.glob(DHCLIENT_LEASES)):
        text = _read_text(lease)
        if text:
            found = append_uniq(found, *parse_dhclient_lease(text))
    found.reverse()  # the last lease is the freshest
    return found


def _bsd_gateway_dns() -> list[str]:
    out = _output("route", "-n", "get", "default")
    if not out:
        return []
    found = []
    for line in out.splitlines():
        key, sep, value = line.strip().partition(":")
        if not sep or key != "gateway":
            continue
        value = value.strip()
        try:
            ipaddress.ip_address(value)
        except ValueError:
            continue
        if probe_dns(value):
            found.append(value)
    return found


def _update_resolvconf() -> None:
    subprocess.run(["/sbin/resolvconf", "-u"], check=True, capture_output=True)


# Windows helpers


def _netsh(*args: str) -> None:
    try:
        proc = subprocess.run(["netsh", *args], capture_output=True, text=True)
    except OSError as e:
        raise OSError(f"{e}: ") from e
    if proc.returncode != 0:
        raise OSError(f"exit status {proc.returncode}: {proc.stdout}")


def _windows_interfaces() -> list[str]:
    proc = subprocess.run(
        ["netsh", "interface", "ipv4", "show", "interfaces"],
        capture_output=True,
        text=True,
        check=True,
    )
    return parse_netsh_interfaces(proc.stdout)


def _windows_set(idx: str, dns: str) -> None:
    try:
        _netsh("interface", "ipv4", "set", "dnsserver", idx, "static", dns, "primary")
    except OSError as e:
        err: OSError | None = OSError(f"set {idx} {dns}: {e}")
    else:
        err = None
    try:
        _netsh("interface", "ipv6", "set", "dnsserver", idx, "static", "::1", "primary")
    except OSError:
        pass
    if err is not None:
        raise err


def _windows_reset(idx: str) -> None:
    try:
        _netsh("interface", "ipv4", "set", "dnsserver", idx, "dhcp")
    except OSError as e:
        err: OSError | None = OSError(f"reset dns {idx}: {e}")
    else:
        err = None
    try:
        _netsh("interface", "ipv6", "set", "dnsserver", idx, "dhcp")
    except OSError:
        pass
    if err is not None:
        raise err


# macOS helpers


def _darwin_services() -> list[str]:
    proc = subprocess.run(
        ["networksetup", "-listallnetworkservices"],
        capture_output=True,
        text=True,
        check=True,
    )
    return parse_network_services(proc.stdout)


def _darwin_set(dns: str) -> None:
    for service in _darwin_services():
        proc = subprocess.run(
            ["networksetup", "-setdnsservers", service, dns],
            capture_output=True,
            text=True,
        )
        if proc.returncode != 0:
            raise OSError(proc.stdout)


# Public entry points


def dns() -> list[str]:
    """Return the DNS servers the system would use without us."""
    platform = _platform()
    if platform == "linux":
        return guess_dns(
            _nmcli_dns, _dhcpcd_dns, _systemd_lease_dns, _gateway_dns, _gateway_dns6
        )
    if platform == "bsd":
        return guess_dns(_dhclient_dns, _bsd_gateway_dns)
    if platform == "darwin":
        out = _output("ipconfig", "getoption", "", "domain_name_server")
        out = (out or "").strip()
        return [out] if out else []
    return []


def set_dns(dns: str) -> None:
    """Make the system use ``dns`` as its resolver."""
    platform = _platform()
    if platform in ("linux", "bsd"):
        try:
            ResolvConf().setup(dns)
        except OSError as e:
            raise OSError(f"setup resolv.conf: {e}") from e
        if platform == "linux":
            try:
                disable_network_manager_resolver(NETWORK_MANAGER_FILE)
            except (OSError, subprocess.CalledProcessError) as e:
                raise OSError(f"NetworkManager resolver management: {e}") from e
            return
        try:
            setup_resolvconf_conf()
        except OSError as e:
            raise OSError(f"setup resolvconf.conf: {e}") from e
        _update_resolvconf()
        return
    if platform == "darwin":
        _darwin_set(dns)
        return
    if platform == "windows":
        first: OSError | None = None
        for idx in _windows_interfaces():
            try:
                _windows_set(idx, dns)
            except OSError as e:
                if first is None:
                    first = e
        if first is not None:
            raise first
        return
    raise NotSupportedError("platform not supported")


def reset_dns() -> None:
    """Restore the resolver configuration that was in place before :func:`set_dns`."""
    platform = _platform()
    if platform == "linux":
        try:
            ResolvConf().restore()
        except FileNotFoundError:
            return
        except OSError as e:
            raise OSError(f"restore resolv.conf: {e}") from e
        try:
            restore_network_manager_resolver(NETWORK_MANAGER_FILE)
        except (OSError, subprocess.CalledProcessError) as e:
            raise OSError(f"NetworkManager resolver management: {e}") from e
        return
    if platform == "bsd":
        try:
            ResolvConf().restore()
        except OSError as e:
            raise OSError(f"restore resolv.conf: {e}") from e
        try:
            empty_backup = os.stat(RESOLVCONF_BACKUP_FILE).st_size == 0
        except OSError:
            empty_backup = False
        if empty_backup:
            try:
                os.remove(RESOLVCONF_BACKUP_FILE)
            except OSError as e:
                raise OSError(f"remove resolvconf.conf backup: {e}") from e
            try:
                os.remove(RESOLVCONF_FILE)
            except OSError as e:
                raise OSError(f"restore resolvconf.conf: {e}") from e
        else:
            try:
                os.rename(RESOLVCONF_BACKUP_FILE, RESOLVCONF_FILE)
            except OSError as e:
                raise OSError(f"restore resolvconf.conf: {e}") from e
        _update_resolvconf()
        return
    if platform == "darwin":
        _darwin_set("empty")
        return
    if platform == "windows":
        for idx in _windows_interfaces():
            try:
                _windows_reset(idx)
            except OSError:
                pass
        return
    raise NotSupportedError("platform not supported")