"""Report SOCKMAP/SOCKHASH maps that are neither pinned nor held by a process."""

from __future__ import annotations

import json
import subprocess
from typing import Any

from ghostscan.outcome import ScanError, summarize

_SOCK_TYPES = ("sockmap", "sockhash")


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _as_u64(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64:
        return value
    return None


def _ascii_lower(text: str) -> str:
    return "".join(ch.lower() if ch.isascii() else ch for ch in text)


def find_unowned_sockmaps(maps: Any) -> list[str]:
    """Return findings for unowned socket maps in a ``bpftool -j map show`` listing."""
    if not isinstance(maps, list):
        return []
    findings: list[str] = []
    for entry in maps:
        if not isinstance(entry, dict):
            continue
        raw_type = entry.get("type")
        map_type = _ascii_lower(raw_type) if isinstance(raw_type, str) else ""
        if map_type not in _SOCK_TYPES:
            continue

        map_id = _as_u64(entry.get("id"))
        pinned = entry.get("pinned")
        has_pin = pinned if isinstance(pinned, bool) else False
        pids = entry.get("pids")
        owner_pids = (
            [pid for pid in pids if _as_u64(pid) is not None]
            if isinstance(pids, list)
            else []
        )
        if has_pin or owner_pids:
            continue

        verdict = _as_u64(entry.get("verdict_prog_id"))
        findings.append(
            f"map_id={map_id if map_id is not None else 'unknown'}, type={map_type}, "
            f"verdict_prog_id={verdict if verdict is not None else 'unknown'}, "
            "has_pin=false, owner_pids=∅"
        )
    return findings


def run() -> str | None:
    """Enumerate BPF maps via bpftool and report unowned socket maps."""
    try:
        subprocess.run(["bpftool", "--version"], capture_output=True, check=False)
    except OSError as err:
        raise ScanError("bpftool not available to inspect SOCKMAP/SOCKHASH state") from err

    try:
        proc = subprocess.run(
            ["bpftool", "-j", "map", "show"], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute bpftool map show: {err}") from err
    if proc.returncode != 0:
        raise ScanError(f"bpftool map show exited with {_status(proc.returncode)}")

    try:
        maps = json.loads(proc.stdout)
    except ValueError as err:
        raise ScanError(f"failed to parse bpftool map output: {err}") from err

    return summarize(find_unowned_sockmaps(maps), [])