"""Collect the set of tasks that BPF maps know about, and the set /proc shows."""

from __future__ import annotations

import json
import os
import re
import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ghostscan.outcome import ScanError

_MAP_NAME_HINTS = ("pid", "task", "proc")
_MAP_TYPES = ("hash", "lru_hash", "percpu_hash", "lru_percpu_hash")
_PID = re.compile(r"[+-]?[0-9]+")
_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]*")


@dataclass
class BpfTaskRecord:
    """A task seen in BPF state, with the maps that mentioned it."""

    comm: str | None
    sources: list[str] = field(default_factory=list)


@dataclass
class BpfTaskSnapshot:
    """Tasks gathered from BPF maps, keyed by pid, plus collection errors."""

    tasks: dict[int, BpfTaskRecord] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def add(self, pid: int, comm: str | None, source: str) -> None:
        """Record that ``source`` mentions ``pid``, keeping the first known comm."""
        record = self.tasks.get(pid)
        if record is None:
            self.tasks[pid] = BpfTaskRecord(comm, [source])
            return
        if record.comm is None and comm is not None:
            record.comm = comm
        if source not in record.sources:
            record.sources.append(source)


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _ascii_lower(text: str) -> str:
    return "".join(ch.lower() if ch.isascii() else ch for ch in text)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_u64(value: Any) -> int | None:
    if _is_int(value) and 0 <= value < 2**64:
        return value
    return None


def _as_i64(value: Any) -> int | None:
    if _is_int(value) and -(2**63) <= value < 2**63:
        return value
    return None


def _wrap_i32(value: int) -> int:
    return ((value + 2**31) % 2**32) - 2**31


def _parse_pid(name: str) -> int | None:
    if not _PID.fullmatch(name):
        return None
    pid = int(name)
    return pid if -(2**31) <= pid < 2**31 else None


def parse_hex(text: str) -> bytes | None:
    """Decode hex text, ignoring an ``0x`` prefix, whitespace, colons and commas."""
    digits = text.strip()
    if digits.startswith(("0x", "0X")):
        digits = digits[2:]
    digits = "".join(ch for ch in digits if not ch.isspace() and ch not in ":,")
    if not digits:
        return None
    if len(digits) % 2:
        digits = "0" + digits
    if not _HEX_DIGITS.fullmatch(digits):
        return None
    return bytes.fromhex(digits)


def ascii_from_bytes(data: bytes) -> str | None:
    """Return the ASCII text before the first NUL byte, or None if empty or not ASCII."""
    text = data.split(b"\0", 1)[0]
    if not text or not text.isascii():
        return None
    return text.decode("ascii")


def _bytes_from_list(items: Iterable[Any]) -> bytes:
    result = bytearray()
    for item in items:
        if _as_u64(item) is not None or _as_i64(item) is not None:
            result.append(item & 0xFF)
        elif isinstance(item, str):
            parsed = parse_hex(item)
            if parsed is not None:
                result.extend(parsed)
    return bytes(result)


def to_bytes(value: Any) -> bytes | None:
    """Turn one of bpftool's JSON renderings of a key or value into raw bytes."""
    if isinstance(value, dict):
        hexdata = value.get("hexdata")
        if isinstance(hexdata, str):
            return parse_hex(hexdata)
        if "bytes" in value:
            raw = value["bytes"]
            if isinstance(raw, list):
                return _bytes_from_list(raw)
            if isinstance(raw, str):
                return parse_hex(raw)
        number = _as_u64(value.get("value"))
        if number is not None:
            return number.to_bytes(8, "little")
        if len(value) == 1:
            return to_bytes(next(iter(value.values())))
        return None
    if isinstance(value, list):
        return _bytes_from_list(value)
    if isinstance(value, str):
        return parse_hex(value)
    number = _as_u64(value)
    if number is not None:
        return number.to_bytes(8, "little")
    number = _as_i64(value)
    if number is not None:
        return (number % 2**64).to_bytes(8, "little")
    return None


def extract_pid(entry: Any, key_size: int) -> int | None:
    """Read a pid from the key of a map dump entry."""
    key = entry.get("key") if isinstance(entry, dict) else None
    if key is None:
        return None

    if isinstance(key, dict):
        for name in ("pid", "tgid"):
            number = _as_i64(key.get(name))
            if number is not None:
                return _wrap_i32(number)
        if len(key) == 1:
            number = _as_i64(next(iter(key.values())))
            if number is not None:
                return _wrap_i32(number)

    data = to_bytes(key)
    if not data:
        return None
    take = min(len(data), key_size, 8)
    pid = int.from_bytes(data[:take], "little") & 0xFFFFFFFF
    return None if pid == 0 else _wrap_i32(pid)


def extract_comm(entry: Any) -> str | None:
    """Read a command name from the value of a map dump entry."""
    value = entry.get("value") if isinstance(entry, dict) else None
    if value is None:
        return None
    if isinstance(value, dict):
        comm = value.get("comm")
        if isinstance(comm, str):
            return comm
        for name in ("string", "value_str"):
            text = value.get(name)
            if isinstance(text, str) and text:
                return text
    data = to_bytes(value)
    return None if data is None else ascii_from_bytes(data)


def is_interesting_map(name: str, map_obj: Mapping[str, Any]) -> bool:
    """Whether a map's name or BTF key type suggests it is keyed by pid."""
    lowered = _ascii_lower(name)
    if any(hint in lowered for hint in _MAP_NAME_HINTS):
        return True
    btf_name = map_obj.get("btf_key_type_name")
    if isinstance(btf_name, str):
        lowered = _ascii_lower(btf_name)
        return any(hint in lowered for hint in _MAP_NAME_HINTS)
    return False


def merge_dump(
    snapshot: BpfTaskSnapshot,
    entries: Iterable[Any],
    map_id: int,
    map_name: str,
    key_size: int,
    entry_limit: int,
) -> None:
    """Add the pids in a map dump to ``snapshot``, reading at most ``entry_limit`` entries."""
    label = f"{map_name}#{map_id}"
    for processed, entry in enumerate(entries):
        if processed >= entry_limit:
            snapshot.errors.append(f"map {map_name} truncated at {entry_limit} entries")
            break
        pid = extract_pid(entry, key_size)
        if pid is None or pid <= 0:
            continue
        snapshot.add(pid, extract_comm(entry), label)


def _dump_map_entries(
    map_id: int, key_size: int, entry_limit: int, map_name: str, snapshot: BpfTaskSnapshot
) -> None:
    try:
        proc = subprocess.run(
            ["bpftool", "-j", "map", "dump", "id", str(map_id)],
            capture_output=True,
            check=False,
        )
    except OSError as err:
        snapshot.errors.append(f"failed to dump BPF map {map_name}: {err}")
        return

    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        snapshot.errors.append(
            f"bpftool map dump id {map_id} exited with {_status(proc.returncode)}: {stderr}"
        )
        return

    try:
        entries = json.loads(proc.stdout)
    except ValueError as err:
        snapshot.errors.append(f"failed to parse dump for map {map_name}: {err}")
        return
    if not isinstance(entries, list):
        snapshot.errors.append(f"unexpected dump format for map {map_name}")
        return

    merge_dump(snapshot, entries, map_id, map_name, key_size, entry_limit)


def collect_bpf_tasks(map_limit: int, entry_limit: int) -> BpfTaskSnapshot:
    """Dump up to ``map_limit`` pid-keyed BPF hash maps and collect their pids."""
    if map_limit == 0 or entry_limit == 0:
        raise ScanError("map_limit and entry_limit must be non-zero")

    snapshot = BpfTaskSnapshot()

    try:
        proc = subprocess.run(
            ["bpftool", "-j", "map", "show"], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute bpftool map show: {err}") from err
    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        raise ScanError(
            f"bpftool map show exited with {_status(proc.returncode)}: {stderr}"
        )

    try:
        maps = json.loads(proc.stdout)
    except ValueError as err:
        raise ScanError(f"failed to parse bpftool map show output: {err}") from err
    if not isinstance(maps, list):
        raise ScanError("bpftool map show output was not an array")

    processed = 0
    for map_obj in maps:
        if processed >= map_limit:
            break
        if not isinstance(map_obj, dict):
            continue
        error = map_obj.get("error")
        if isinstance(error, str):
            raise ScanError(f"bpftool map show: {error}")
        map_id = _as_u64(map_obj.get("id"))
        if map_id is None:
            continue
        map_type = map_obj.get("type")
        if not isinstance(map_type, str) or map_type not in _MAP_TYPES:
            continue
        key_size = _as_u64(map_obj.get("key_size")) or 0
        if key_size not in (4, 8):
            continue
        name = map_obj.get("name")
        if not isinstance(name, str):
            name = ""
        if not is_interesting_map(name, map_obj):
            continue
        processed += 1
        _dump_map_entries(map_id, key_size, entry_limit, name, snapshot)

    if not snapshot.tasks and not snapshot.errors:
        raise ScanError("no candidate BPF PID maps discovered")
    return snapshot


def collect_proc_tasks() -> dict[int, str]:
    """Map every pid listed in /proc to its command name."""
    try:
        with os.scandir("/proc") as entries:
            candidates = [(entry.name, entry.path) for entry in entries]
    except OSError as err:
        raise ScanError(f"failed to read /proc: {err}") from err

    tasks: dict[int, str] = {}
    for name, path in candidates:
        pid = _parse_pid(name)
        if pid is None:
            continue
        try:
            comm = (Path(path) / "comm").read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            # tasks may exit or deny access between listing and reading
            continue
        tasks[pid] = comm.strip()

    if not tasks:
        raise ScanError("no tasks enumerated via /proc")
    return tasks