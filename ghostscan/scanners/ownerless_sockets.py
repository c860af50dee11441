"""Report TCP/UDP sockets whose inode is not held open by any process."""

from __future__ import annotations

import errno
import os
import re
from collections.abc import Mapping
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_SOCKET_TABLES = ("/proc/net/tcp", "/proc/net/tcp6", "/proc/net/udp", "/proc/net/udp6")
_PID = re.compile(r"[+-]?[0-9]+")
_SOCKET_PREFIX = "socket:["


def _parse_pid(name: str) -> int | None:
    if not _PID.fullmatch(name):
        return None
    pid = int(name)
    if -(2**31) <= pid < 2**31:
        return pid
    return None


def parse_socket_table(content: str) -> list[str]:
    """Return the inode column of every row in a ``/proc/net`` socket table."""
    inodes: list[str] = []
    for line in content.splitlines()[1:]:
        parts = line.split()
        if len(parts) > 9:
            inodes.append(parts[9])
    return inodes


def _collect_pid(pid: int, proc_path: Path, owners: dict[str, set[int]]) -> None:
    fd_path = proc_path / "fd"
    try:
        with os.scandir(fd_path) as entries:
            links = [entry.path for entry in entries]
    except OSError as err:
        if err.errno in (errno.EACCES, errno.ENOENT):
            return
        raise ScanError(f"failed to read {fd_path}: {err}") from err

    for link in links:
        try:
            target = os.readlink(link)
        except OSError:
            continue
        if target.startswith(_SOCKET_PREFIX) and target.endswith("]"):
            inode = target[len(_SOCKET_PREFIX):-1]
            owners.setdefault(inode, set()).add(pid)


def collect_owners(proc_root: str | os.PathLike[str]) -> dict[str, set[int]]:
    """Map socket inodes to the pids holding them, from a procfs tree."""
    root = Path(proc_root)
    owners: dict[str, set[int]] = {}
    try:
        with os.scandir(root) as it:
            entries = list(it)
    except OSError as err:
        raise ScanError(f"failed to read {root}: {err}") from err

    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError as err:
            raise ScanError(f"failed to stat {entry.path}: {err}") from err
        if not is_dir:
            continue
        pid = _parse_pid(entry.name)
        if pid is not None:
            _collect_pid(pid, Path(entry.path), owners)
    return owners


def find_ownerless(
    inode_to_source: Mapping[str, str], owners: Mapping[str, set[int]]
) -> list[str]:
    """Return findings for socket inodes that no process owns."""
    return [
        f"proto_source={source}, inode={inode}, owner_pids=∅"
        for inode, source in sorted(inode_to_source.items())
        if inode != "0" and inode not in owners
    ]


def run() -> str | None:
    """Cross-check /proc/net socket tables against open file descriptors."""
    inode_to_source: dict[str, str] = {}
    for table in _SOCKET_TABLES:
        try:
            content = Path(table).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        for inode in parse_socket_table(content):
            inode_to_source[inode] = table

    try:
        owners = collect_owners("/proc")
    except ScanError as err:
        raise ScanError(f"failed to enumerate fd owners: {err}") from err

    return summarize(find_ownerless(inode_to_source, owners), [])