"""Report ptrace relationships that cross users or come from daemons."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_SIGNED = re.compile(r"[+-]?[0-9]+")
_UNSIGNED = re.compile(r"\+?[0-9]+")


def _parse_i32(text: str) -> int | None:
    if not _SIGNED.fullmatch(text):
        return None
    value = int(text)
    return value if -(2**31) <= value < 2**31 else None


def _parse_u32(text: str) -> int | None:
    if not _UNSIGNED.fullmatch(text):
        return None
    value = int(text)
    return value if value < 2**32 else None


@dataclass(frozen=True)
class TaskInfo:
    """What a scan needs to know about one process."""

    pid: int
    comm: str
    uid: int
    tracer_pid: int | None
    ppid: int


def parse_ppid(stat: str) -> int | None:
    """Return the parent pid from the text of ``/proc/<pid>/stat``."""
    right_paren = stat.rfind(")")
    if right_paren < 0:
        return None
    fields = stat[right_paren + 2:].split()
    if len(fields) < 2:
        return None
    return _parse_i32(fields[1])


def parse_status(status: str) -> tuple[int | None, int]:
    """Return ``(tracer_pid, uid)`` from the text of ``/proc/<pid>/status``."""
    tracer_pid: int | None = None
    uid = 0
    for line in status.splitlines():
        if line.startswith("TracerPid:"):
            tracer_pid = _parse_i32(line[len("TracerPid:"):].strip())
        if line.startswith("Uid:"):
            values = line[len("Uid:"):].split()
            if values:
                parsed = _parse_u32(values[0])
                uid = parsed if parsed is not None else 0
    return tracer_pid, uid


def find_suspicious(tasks: Mapping[int, TaskInfo]) -> list[str]:
    """Return findings for traced tasks with a suspicious or missing tracer."""
    findings: list[str] = []
    for task in tasks.values():
        tracer_pid = task.tracer_pid
        if tracer_pid is None or tracer_pid == 0:
            continue
        tracer = tasks.get(tracer_pid)
        if tracer is None:
            findings.append(
                f"{tracer_pid} -> {task.pid}, tracer_comm=unknown, "
                f"traced_comm={task.comm}, info=missing_tracer"
            )
            continue
        flags: list[str] = []
        if tracer.uid != task.uid:
            flags.append("cross_uid=true")
        if tracer.ppid == 1:
            flags.append("daemon_tracing=true")
        if flags:
            findings.append(
                f"{tracer_pid} -> {task.pid}, tracer_comm={tracer.comm}, "
                f"traced_comm={task.comm}, {'|'.join(flags)}"
            )
    return findings


def _read_task(pid: int) -> TaskInfo:
    base = Path("/proc") / str(pid)
    comm = (base / "comm").read_text(encoding="utf-8").strip()
    tracer_pid, uid = parse_status((base / "status").read_text(encoding="utf-8"))
    ppid = parse_ppid((base / "stat").read_text(encoding="utf-8"))
    return TaskInfo(pid, comm, uid, tracer_pid, ppid if ppid is not None else 0)


def _collect_tasks() -> dict[int, TaskInfo]:
    try:
        with os.scandir("/proc") as entries:
            names = [entry.name for entry in entries]
    except OSError as err:
        raise ScanError(f"failed to read /proc: {err}") from err

    tasks: dict[int, TaskInfo] = {}
    for name in names:
        pid = _parse_i32(name)
        if pid is None:
            continue
        try:
            tasks[pid] = _read_task(pid)
        except FileNotFoundError:
            continue
        except (OSError, UnicodeDecodeError) as err:
            raise ScanError(f"pid={pid}: {err}") from err
    return tasks


def run() -> str | None:
    """Scan every process for suspicious tracers."""
    return summarize(find_suspicious(_collect_tasks()), [])