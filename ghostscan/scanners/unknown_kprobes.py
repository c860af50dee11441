"""Report busy kprobes on sensitive kernel symbols that no known tool owns."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_SENSITIVE_PREFIXES = ("sys_", "vfs_", "tcp_", "security_")
_EVENT_TOOL_HINTS = ("bpftrace", "tracee", "bcc", "systemtap", "perf_", "uftrace")
_MIN_HITS = 10
_TRACEFS_ROOTS = ("/sys/kernel/tracing", "/sys/kernel/debug/tracing")


def _ascii_lower(text: str) -> str:
    return "".join(ch.lower() if ch.isascii() else ch for ch in text)


@dataclass(frozen=True)
class ProbeType:
    """Kind of a probe; unknown kinds keep the character that named them."""

    name: str
    code: str = ""

    @classmethod
    def from_char(cls, char: str) -> ProbeType:
        if char in ("p", "P"):
            return cls("kprobe")
        if char in ("r", "R"):
            return cls("kretprobe")
        return cls("unknown", char)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class KprobeEvent:
    """One probe definition from ``kprobe_events``."""

    probe_type: ProbeType
    event_name: str
    symbol: str
    raw: str


def parse_event_token(token: str) -> tuple[str, str]:
    """Split a ``p:group/name`` token into its type character and event name."""
    type_char = token[:1] or "p"
    _, sep, rest = token.partition(":")
    return (type_char, rest) if sep else (type_char, token[1:])


def normalize_symbol(token: str) -> str:
    """Strip offsets, module and path suffixes from a probe target."""
    base = token
    for separator in ("+", "@", "/"):
        base = base.split(separator, 1)[0]
    return base.strip()


def parse_kprobe_events(content: str) -> list[KprobeEvent]:
    """Parse ``kprobe_events`` text into distinct events, in file order."""
    seen: set[tuple[ProbeType, str, str]] = set()
    events: list[KprobeEvent] = []
    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        parts = trimmed.split()
        if len(parts) < 2:
            continue
        type_char, event_name = parse_event_token(parts[0])
        probe_type = ProbeType.from_char(type_char)
        symbol = normalize_symbol(parts[1])
        if not symbol:
            continue
        key = (probe_type, event_name, symbol)
        if key in seen:
            continue
        seen.add(key)
        events.append(KprobeEvent(probe_type, event_name, symbol, trimmed))
    return events


def parse_kprobe_profile(content: str) -> dict[tuple[ProbeType, str], int]:
    """Parse ``kprobe_profile`` text into hit counts keyed by type and event name."""
    hits: dict[tuple[ProbeType, str], int] = {}
    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        parts = trimmed.split()
        if len(parts) < 2:
            continue
        probe_type = ProbeType.from_char(parts[0][:1] or "p")
        count = 0
        if len(parts) > 2 and parts[2].lstrip("+").isdigit() and parts[2].isascii():
            value = int(parts[2])
            count = value if value < 2**64 else 0
        hits[(probe_type, parts[1])] = count
    return hits


def is_sensitive_symbol(symbol: str) -> bool:
    """Whether a probe target is a syscall, VFS, TCP or LSM function."""
    return symbol.startswith(_SENSITIVE_PREFIXES)


def find_tracefs_root() -> Path:
    """Return the first mounted tracefs location."""
    for root in _TRACEFS_ROOTS:
        if os.path.exists(root):
            return Path(root)
    raise FileNotFoundError("tracefs not mounted in expected locations")


def evaluate(events_content: str, profile_content: str) -> list[str]:
    """Return sorted findings for busy, untooled probes on sensitive symbols."""
    events = parse_kprobe_events(events_content)
    if not events:
        return []
    profile = parse_kprobe_profile(profile_content)
    findings: list[str] = []
    for event in events:
        if not is_sensitive_symbol(event.symbol):
            continue
        hits = profile.get((event.probe_type, event.event_name), 0)
        if hits < _MIN_HITS:
            continue
        lowered = _ascii_lower(event.event_name)
        if any(hint in lowered for hint in _EVENT_TOOL_HINTS):
            continue
        findings.append(
            f"type={event.probe_type}, target={event.symbol}, hits={hits}, raw={event.raw}"
        )
    return sorted(findings)


def run() -> str | None:
    """Inspect the kprobes registered through tracefs."""
    try:
        root = find_tracefs_root()
    except OSError as err:
        raise ScanError(f"failed to locate tracefs: {err}") from err

    events_path = root / "kprobe_events"
    try:
        events_content = events_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {events_path}: {err}") from err
    if not events_content.strip():
        return None

    profile_path = root / "kprobe_profile"
    try:
        profile_content = profile_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {profile_path}: {err}") from err

    return summarize(evaluate(events_content, profile_content), [])