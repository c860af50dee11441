"""Flag scripts in /etc/*.d directories with unsafe ownership or permissions."""

from __future__ import annotations

import os
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_ROOT = Path("/etc")


def inspect_dir(path: str | os.PathLike[str]) -> list[str]:
    """Return findings for files in ``path`` not owned by root, world-writable or under /tmp/."""
    directory = Path(path)
    try:
        with os.scandir(directory) as entries:
            files = [Path(entry.path) for entry in entries]
    except OSError as err:
        raise ScanError(f"failed to read {directory}: {err}") from err

    findings: list[str] = []
    for file in files:
        if not file.is_file():
            continue
        try:
            meta = file.stat()
        except OSError:
            continue
        mode = meta.st_mode & 0o777
        owner = meta.st_uid
        world_writable = bool(mode & 0o002)
        in_tmp = "/tmp/" in str(file)
        reasons: list[str] = []
        if owner != 0:
            reasons.append(f"owner={owner}")
        if world_writable:
            reasons.append(f"world_writable=true (mode={mode:o})")
        if in_tmp:
            reasons.append("path_in_tmp=true")
        if reasons:
            findings.append(f"script={file}, {', '.join(reasons)}")
    return findings


def run() -> str | None:
    """Inspect every ``*.d`` directory directly under /etc."""
    findings: list[str] = []
    try:
        with os.scandir(_ROOT) as entries:
            candidates = [Path(entry.path) for entry in entries]
    except OSError:
        candidates = []
    for candidate in candidates:
        if candidate.is_dir() and candidate.name.endswith(".d"):
            try:
                findings.extend(inspect_dir(candidate))
            except ScanError:
                pass
    return summarize(findings, [])