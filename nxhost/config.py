"""Typed configuration entries and a plain-file configuration store."""

from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

_UNITS = {
    "ns": 1e-9, "us": 1e-6, "µs": 1e-6, "μs": 1e-6,
    "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0,
}
_TOKEN = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_FULL = re.compile(f"(?:{_TOKEN})+")
_PART = re.compile(_TOKEN)


def parse_duration(text: str) -> float:
    """Parse a duration such as ``1h30m`` or ``1.5s`` into seconds."""
    s = text
    sign = 1.0
    if s[:1] in ("+", "-"):
        sign = -1.0 if s[0] == "-" else 1.0
        s = s[1:]
    if s == "0":
        return 0.0
    if not s or not _FULL.fullmatch(s):
        raise ValueError(f'time: invalid duration "{text}"')
    return sign * sum(float(n) * _UNITS[u] for n, u in _PART.findall(s))


def _frac(value: int, unit: int) -> str:
    whole, part = divmod(value, unit)
    if not part:
        return str(whole)
    digits = str(part).zfill(len(str(unit)) - 1).rstrip("0")
    return f"{whole}.{digits}"


def format_duration(seconds: float) -> str:
    """Format seconds the way durations are written, e.g. ``1h0m0s``."""
    ns = round(seconds * 1e9)
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns == 0:
        return "0s"
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_frac(ns, 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_frac(ns, 1_000_000)}ms"
    hours, rest = divmod(ns, 3600 * 10**9)
    minutes, rest = divmod(rest, 60 * 10**9)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{_frac(rest, 10**9)}s"


class ConfigEntry(ABC):
    """A configuration value that can be set from and written as text."""

    @abstractmethod
    def set(self, value: str) -> None: ...

    @abstractmethod
    def is_default(self) -> bool: ...


class ConfigListEntry(ConfigEntry):
    """An entry holding several values, one line each."""

    @abstractmethod
    def strings(self) -> list[str]: ...


@dataclass
class ConfigValue(ConfigEntry):
    value: str | None = None
    default: str = ""

    def set(self, value: str) -> None:
        self.value = value

    def is_default(self) -> bool:
        return self.value is None or self.value == self.default

    def __str__(self) -> str:
        return self.value or ""


@dataclass
class ConfigFlag(ConfigEntry):
    value: bool | None = None
    default: bool = False

    def set(self, value: str) -> None:
        if value in ("yes", "true", "1"):
            self.value = True
        elif value in ("no", "false", "0", ""):
            self.value = False
        else:
            raise ValueError(f"{value}: invalid bool value")

    def is_default(self) -> bool:
        return self.value is None or self.value == self.default

    def __str__(self) -> str:
        return "true" if self.value else "false"


@dataclass
class ConfigDuration(ConfigEntry):
    value: float | None = None
    default: float = 0.0

    def set(self, value: str) -> None:
        self.value = parse_duration(value)

    def is_default(self) -> bool:
        return self.value is None or self.value == self.default

    def __str__(self) -> str:
        return "" if self.value is None else format_duration(self.value)


@dataclass
class ConfigUint(ConfigEntry):
    value: int | None = None
    default: int = 0

    def set(self, value: str) -> None:
        if not re.fullmatch(r"[0-9]+", value) or int(value) > 0xFFFF:
            raise ValueError(f'parsing "{value}": invalid unsigned 16-bit value')
        self.value = int(value)

    def is_default(self) -> bool:
        return self.value is None or self.value == self.default

    def __str__(self) -> str:
        return "" if self.value is None else str(self.value)


@dataclass
class ConfigFileStorer:
    """Stores entries as ``name value`` lines in a file."""

    file: str

    def save_config(self, entries: dict[str, ConfigEntry]) -> None:
        directory = os.path.dirname(self.file) or "."
        if not os.path.exists(directory):
            os.makedirs(directory, 0o755, exist_ok=True)
        elif not os.path.isdir(directory):
            raise NotADirectoryError(f"{directory}: not a directory")
        with open(self.file, "w", encoding="utf-8") as f:
            for name, entry in entries.items():
                if isinstance(entry, ConfigListEntry):
                    for value in entry.strings():
                        f.write(f"{name} {value}\n")
                else:
                    f.write(f"{name} {entry}\n")

    def load_config(self, entries: dict[str, ConfigEntry]) -> None:
        try:
            f = open(self.file, encoding="utf-8")
        except FileNotFoundError:
            return
        with f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                name, _, value = line.partition(" ")
                entry = entries.get(name)
                if entry is not None:
                    entry.set(value.strip())