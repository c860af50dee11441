"""Find overlayfs whiteout and opaque-directory markers on overlay mounts."""

from __future__ import annotations

import errno
import os
from collections import deque
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_SCAN_LIMIT = 5000
_OPAQUE_MARKER = ".wh..wh..opq"
_WHITEOUT_PREFIX = ".wh."


def overlay_mountpoints(mountinfo: str) -> list[Path]:
    """Return the mount points of every overlay filesystem in a mountinfo text."""
    mountpoints: list[Path] = []
    for line in mountinfo.splitlines():
        prefix, sep, rest = line.partition(" - ")
        if not sep:
            continue
        if rest.split()[:1] != ["overlay"]:
            continue
        fields = prefix.split()
        if len(fields) > 4:
            mountpoints.append(Path(fields[4]))
    return mountpoints


def scan_mount(root: str | os.PathLike[str], limit: int) -> list[str]:
    """Walk a mount breadth first, visiting at most ``limit`` directories.

    Directories that cannot be read for lack of permission are skipped; any
    other read failure raises ScanError.
    """
    findings: list[str] = []
    queue: deque[Path] = deque([Path(root)])
    visited = 0

    while queue:
        directory = queue.popleft()
        if visited >= limit:
            break
        visited += 1

        try:
            with os.scandir(directory) as entries:
                names = [entry.name for entry in entries]
        except OSError as err:
            if err.errno == errno.EACCES:
                continue
            raise ScanError(f"failed to read {directory}: {err}") from err

        for name in names:
            path = directory / name
            if path.is_dir():
                if name == _OPAQUE_MARKER:
                    findings.append(f"path={path}, kind=opaque")
                    continue
                queue.append(path)
            elif name.startswith(_WHITEOUT_PREFIX):
                findings.append(f"path={path}, kind=whiteout")

    return findings


def run() -> str | None:
    """Scan every mounted overlay filesystem for whiteout markers."""
    try:
        mountinfo = Path("/proc/self/mountinfo").read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read mountinfo: {err}") from err

    findings: list[str] = []
    for mount in overlay_mountpoints(mountinfo):
        if not mount.exists():
            continue
        try:
            findings.extend(scan_mount(mount, _SCAN_LIMIT))
        except ScanError as err:
            findings.append(f"{mount}: {err}")

    return summarize(findings, [])