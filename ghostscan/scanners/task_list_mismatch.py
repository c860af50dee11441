"""Compare the tasks BPF maps know about with the tasks /proc shows."""

from __future__ import annotations

from collections.abc import Mapping

from ghostscan.outcome import ScanError, summarize
from ghostscan.scanners.task_snapshot import (
    BpfTaskSnapshot,
    collect_bpf_tasks,
    collect_proc_tasks,
)

_MAP_SCAN_LIMIT = 64
_ENTRY_SCAN_LIMIT = 65536


def compare_tasks(bpf_snapshot: BpfTaskSnapshot, proc_tasks: Mapping[int, str]) -> list[str]:
    """Return sorted findings for tasks seen by only one of the two views."""
    findings = [
        f"seen_by=bpf_only, pid={pid}, comm={record.comm or 'unknown'}, "
        f"sources={'|'.join(record.sources)}"
        for pid, record in bpf_snapshot.tasks.items()
        if pid not in proc_tasks
    ]
    findings.extend(
        f"seen_by=proc_only, pid={pid}, comm={comm}"
        for pid, comm in proc_tasks.items()
        if pid not in bpf_snapshot.tasks
    )
    return sorted(findings)


def run() -> str | None:
    """Report tasks hidden from /proc or unknown to BPF state."""
    bpf_snapshot = collect_bpf_tasks(_MAP_SCAN_LIMIT, _ENTRY_SCAN_LIMIT)
    proc_tasks = collect_proc_tasks()
    if not proc_tasks:
        raise ScanError("no tasks enumerated via /proc")
    return summarize(compare_tasks(bpf_snapshot, proc_tasks), bpf_snapshot.errors)