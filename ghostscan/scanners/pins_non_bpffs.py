"""Report pinned BPF objects whose pin path is not on a bpf filesystem."""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from ghostscan.outcome import ScanError, summarize

_ESCAPES = {
    "040": " ",
    "011": "\t",
    "012": "\n",
    "013": "\r",
    "014": "\x0c",
    "015": "\x0b",
    "016": "\x0e",
    "017": "\x0f",
    "010": "\x08",
    "134": "\\",
}


@dataclass(frozen=True)
class MountEntry:
    """A mount point and its filesystem type."""

    mount_point: PurePosixPath
    fstype: str


@dataclass(frozen=True)
class PinRecord:
    """One pinned path of a BPF object."""

    obj_type: str
    id: str
    path: str


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def decode_mount_field(field: str) -> str:
    """Undo the octal escapes used in mountinfo path fields."""
    result: list[str] = []
    pos = 0
    while pos < len(field):
        ch = field[pos]
        pos += 1
        if ch != "\\":
            result.append(ch)
            continue
        code = field[pos:pos + 3]
        if len(code) < 3:
            break
        pos += 3
        result.append(_ESCAPES.get(code, "\\" + code))
    return "".join(result)


def parse_mountinfo(content: str) -> list[MountEntry]:
    """Parse ``/proc/self/mountinfo`` text into mount entries, in file order."""
    mounts: list[MountEntry] = []
    for line in content.splitlines():
        pre, sep, post = line.partition(" - ")
        if not sep:
            continue
        post_fields = post.split()
        fstype = post_fields[0] if post_fields else ""
        fields = pre.split()
        if len(fields) < 5:
            continue
        mounts.append(MountEntry(PurePosixPath(decode_mount_field(fields[4])), fstype))
    return mounts


def _collect_paths(value: Any, paths: set[str]) -> None:
    if isinstance(value, str):
        if value:
            paths.add(value)
    elif isinstance(value, list):
        for item in value:
            _collect_paths(item, paths)
    elif isinstance(value, dict):
        for item in value.values():
            _collect_paths(item, paths)


def extract_pin_paths(entry: Any) -> list[str]:
    """Return the sorted, distinct pin paths named under ``pinned`` or ``pins``."""
    paths: set[str] = set()
    if isinstance(entry, dict):
        for key in ("pinned", "pins"):
            if key in entry:
                _collect_paths(entry[key], paths)
    return sorted(paths)


def pins_from_listing(listing: Any, obj_type: str) -> list[PinRecord]:
    """Turn a ``bpftool -j <obj> show`` listing into pin records."""
    if not isinstance(listing, list):
        return []
    records: list[PinRecord] = []
    for entry in listing:
        raw_id = entry.get("id") if isinstance(entry, dict) else None
        if isinstance(raw_id, int) and not isinstance(raw_id, bool) and 0 <= raw_id < 2**64:
            obj_id = str(raw_id)
        else:
            obj_id = "unknown"
        records.extend(PinRecord(obj_type, obj_id, path) for path in extract_pin_paths(entry))
    return records


def mount_type_for(path: str | PurePosixPath, mounts: list[MountEntry]) -> str | None:
    """Return the fstype of the first mount in ``mounts`` that contains ``path``."""
    target = PurePosixPath(path)
    for entry in mounts:
        if target.is_relative_to(entry.mount_point):
            return entry.fstype
    return None


def _collect_pins(obj_type: str) -> list[PinRecord]:
    try:
        proc = subprocess.run(
            ["bpftool", "-j", obj_type, "show"], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute bpftool {obj_type} show: {err}") from err
    if proc.returncode != 0:
        raise ScanError(f"bpftool {obj_type} show exited with {_status(proc.returncode)}")
    try:
        listing = json.loads(proc.stdout)
    except ValueError as err:
        raise ScanError(f"failed to parse bpftool {obj_type} output: {err}") from err
    return pins_from_listing(listing, obj_type)


def run() -> str | None:
    """Check every pinned program, map and link against the mount table."""
    try:
        subprocess.run(
            ["bpftool", "--version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as err:
        raise ScanError("bpftool not available to inspect pinned objects") from err

    try:
        content = Path("/proc/self/mountinfo").read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to parse /proc/self/mountinfo: {err}") from err
    mounts = sorted(
        parse_mountinfo(content),
        key=lambda entry: len(entry.mount_point.parts),
        reverse=True,
    )

    pins: list[PinRecord] = []
    errors: list[str] = []
    for obj_type in ("prog", "map", "link"):
        try:
            pins.extend(_collect_pins(obj_type))
        except ScanError as err:
            errors.append(f"{obj_type}: {err}")

    findings: list[str] = []
    for pin in pins:
        mount_type = mount_type_for(pin.path, mounts) or "unknown"
        if mount_type != "bpf":
            findings.append(
                f"pinned_path={pin.path}, obj_type={pin.obj_type}, id={pin.id}, "
                f"mount_fstype={mount_type}"
            )

    return summarize(findings, errors)