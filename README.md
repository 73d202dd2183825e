# nxhost

`nxhost` is a library of host-integration pieces for a long-running DNS proxy.
It provides the following:

- Installing and controlling the daemon as a service under a few init systems,
  and storing its settings.
- Running the daemon in the foreground or as a service, driven by signals.
- Pointing the system resolver at the proxy, and restoring the previous
  resolver settings.
- Discovering which DNS servers the host would use otherwise.
- Watching network interfaces for changes.
- Looking up the IPv6 neighbour table.

It depends on `jinja2` and `psutil`.

## Services

`nxhost.service` defines the common pieces:

- `Config` describes the service: `name`, `display_name`, `description`,
  `arguments` and `flags`. `has_flag()` checks whether a flag is set.
- `Service` is the abstract interface: `install`, `uninstall`, `status`,
  `start`, `stop`, `restart`, `save_config` and `load_config`.
- `Status` is one of `UNKNOWN`, `NOT_INSTALLED`, `RUNNING` or `STOPPED`.
- `ServiceError` is the base error. It has the subclasses
  `NotSupportedError`, `AlreadyInstalledError` and `NotInstalledError`.
- `service_name(svc)` returns the short name of the back end's module, such
  as `"launchd"`.

### Back ends

The init-system back ends live in `nxhost.initsys`. Each back end has a
`detect(config)` class method. It raises `NotSupportedError` when the host
does not run that system.

| Class | Host | Service file | Settings file |
|---|---|---|---|
| `entware.EntwareService` | hosts with `/opt/etc/init.d/rc.func` | `/opt/etc/init.d/S09<name>` | `/opt/etc/<name>.conf` |
| `merlin.MerlinService` | ASUSWRT-Merlin (`uname -o`) | `<executable>.init` | `<executable>.conf` |
| `launchd.LaunchdService` | macOS, when `launchctl` is on the PATH | `/Library/LaunchDaemons/<name>.plist` | `/etc/<name>.conf` |

```python
from nxhost.initsys.entware import EntwareService
from nxhost.service import Config, Status, NotSupportedError

config = Config(name="mydns", description="Local DNS proxy", arguments=["run"])

try:
    svc = EntwareService.detect(config)
except NotSupportedError:
    raise SystemExit("Entware not found")

svc.install()          # AlreadyInstalledError if the script already exists
svc.start()
if svc.status() is Status.RUNNING:
    print("running")
svc.stop()
svc.uninstall()        # NotInstalledError if there was nothing to remove
```

Back-end specifics:

- `MerlinService.install` turns on the `jffs2_scripts` nvram setting if it
  is off. It then adds `<path> start` to `/jffs/scripts/services-start`.
  - `add_line`, `remove_line` and `exclude_line` are the helpers for that
    script file.
  - The timezone download in the generated init script runs only when
    `tz_base_url` is set.
- `LaunchdService` requires root for every operation except `restart`, and
  raises `ServiceError("permission denied")` without it.
  - `launchctl(*args)` treats unexpected output on stderr as a failure,
    even when the exit status is zero.

Shared helpers in `nxhost.initsys.common`:

- `run` and `run_output` run a command with a 30-second limit. On failure
  they raise `CommandError`.
- `exit_code(err)` returns the exit status carried by an error: 0 for
  `None`, and -1 when no status is known.
- `render_template` and `create_with_template` render a Jinja2 template.
  The template can use `name`, `display_name`, `description`, `arguments`,
  `flags`, `config`, `executable` and `run_mode_env`.
- `InitService` is the dataclass base (`config`, `path`, `config_file`).
  It stores settings through `ConfigFileStorer`.

### Running

`nxhost.service.run(name, runner)` drives a `Runner`, which has `start`,
`stop` and `log` methods. It returns whatever `stop()` returns.

`current_run_mode()` returns `RunMode.SERVICE` when the environment
variable `SERVICE_RUN_MODE` is `1`; the generated init scripts set it. In
that mode:

- `SIGTERM` stops the runner.
- `SIGQUIT` logs a dump of every thread's stack.
- Other handled signals are logged as ignored.

Otherwise the runner runs in the foreground until `SIGINT`, `SIGTERM` or
`SIGHUP` arrives.

## Settings

`nxhost.config` provides typed entries, each with `set(text)`,
`is_default()` and `str()`:

- `ConfigValue` holds a string.
- `ConfigFlag` holds a boolean. It accepts `yes`, `true`, `1`, `no`,
  `false`, `0` and the empty string.
- `ConfigDuration` holds a duration in seconds.
- `ConfigUint` holds an integer from 0 to 65535.

`ConfigFileStorer(file)` saves and loads a `dict` of entries. Each entry is
one `name value` line. A `ConfigListEntry` gets one line per value. Blank
lines, `#` comments and unknown names are skipped on load. A missing file
loads nothing.

`parse_duration("1m30s")` returns `90.0`. `format_duration(3600)` returns
`"1h0m0s"`.

## System resolver

```python
from nxhost import dns

print(dns.dns())          # servers the host would use otherwise
dns.set_dns("127.0.0.1")
dns.reset_dns()
```

What `set_dns` does depends on the platform:

- **Linux**: it rewrites `/etc/resolv.conf` through `ResolvConf` and keeps
  a backup at `/etc/resolv.conf.nextdns-bak`. It also writes a
  NetworkManager drop-in that sets `dns=none` and reloads NetworkManager.
- **BSD**: it does the same with `resolv.conf`, writes `resolvconf=NO` to
  `/etc/resolvconf.conf`, and runs `resolvconf -u`.
- **macOS**: it uses `networksetup`.
- **Windows**: it uses `netsh`.
- **Other platforms**: it raises `NotSupportedError`.

Discovery merges several strategies, which run concurrently through
`guess_dns`:

- Linux: nmcli, dhcpcd, systemd-networkd leases, and the default gateways
  that answer a DNS probe.
- BSD: dhclient leases and the default gateway.

The parsers can be used on their own:

- `parse_nmcli`
- `parse_dhcpcd`
- `parse_systemd_lease`
- `parse_dhclient_lease`
- `parse_gateway_routes`
- `parse_network_services`
- `parse_netsh_interfaces`

`probe_dns(addr)` sends the query from `build_probe_query()` to port 53. It
returns `True` when a reply arrives within 100 ms.

## Network helpers

- `nxhost.netstatus.notify(queue)` starts a background check every 10
  seconds. It puts strings such as `"eth0 up"`, `"eth0 down"` or
  `"eth0 192.0.2.1/255.255.255.0 added"` on the queue whenever the
  interfaces change. `stop(queue)` unsubscribes.
- `diff`, `diff_addrs`, `list_interfaces` and `changed` are available
  directly.
- `nxhost.ndp.get()` reads the neighbour table from `ndp -an`, or from
  `netsh` on Windows.
  - `search_mac(ip)` and `search_ip(mac)` query a cached table. The cache
    is refreshed in the background at most every 30 seconds.
  - `parse_mac`, `parse_ndp_output` and `parse_netsh_output` parse the
    tools' output.

## What it does not do

- It has no automatic detection of the host's init system. You pick a back
  end and call its `detect`.
- Back ends exist only for Entware, ASUS-Merlin and launchd. There are none
  for systemd, OpenRC, System V, Upstart, runit, procd or BSD rc.d.
- It provides no logger, no way to read past service logs, and no host-name
  helper.
- On Linux the neighbour table comes only from `ndp -an`. Where that tool
  is missing, the lookups find nothing.
- It installs no command-line program.