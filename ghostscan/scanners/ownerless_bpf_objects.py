"""Report loaded BPF programs that are neither pinned nor held by a process."""

from __future__ import annotations

import json
import subprocess
from typing import Any

from ghostscan.outcome import ScanError, summarize


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _as_u64(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64:
        return value
    return None


def _non_empty_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value)


def find_ownerless_programs(programs: Any) -> list[str]:
    """Return findings for programs in a ``bpftool -j prog show`` listing."""
    if not isinstance(programs, list):
        return []
    findings: list[str] = []
    for prog in programs:
        if not isinstance(prog, dict):
            continue
        prog_id = _as_u64(prog.get("id"))
        if prog_id is None:
            continue
        if _non_empty_list(prog.get("pinned")) or _non_empty_list(prog.get("pids")):
            continue
        name = prog.get("name")
        if not isinstance(name, str):
            name = "unknown"
        findings.append(
            f"object=prog, id={prog_id}, name={name}, pinned=false, owner_pids=∅"
        )
    return findings


def run() -> str | None:
    """Enumerate BPF programs via bpftool and report ownerless ones."""
    try:
        subprocess.run(["bpftool", "--version"], capture_output=True, check=False)
    except OSError as err:
        raise ScanError("bpftool not available to enumerate BPF objects") from err

    try:
        proc = subprocess.run(
            ["bpftool", "-j", "prog", "show"], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute bpftool prog show: {err}") from err

    if proc.returncode != 0:
        raise ScanError(f"bpftool prog show exited with {_status(proc.returncode)}")

    try:
        programs = json.loads(proc.stdout)
    except ValueError as err:
        raise ScanError(f"failed to parse bpftool prog output: {err}") from err

    return summarize(find_ownerless_programs(programs), [])