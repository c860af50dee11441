"""Report BPF programs that call sensitive kernel functions."""

from __future__ import annotations

import json
import subprocess
from typing import Any

from ghostscan.outcome import ScanError, summarize


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _ascii_lower(text: str) -> str:
    return "".join(ch.lower() if ch.isascii() else ch for ch in text)


def _as_u64(value: Any) -> int | None:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64:
        return value
    return None


def extract_called_symbol(line: str) -> str | None:
    """Return the symbol named after the first ``call`` token of a dump line."""
    tokens = iter(line.split())
    for token in tokens:
        if token != "call":
            continue
        target = next(tokens, None)
        if target is None:
            return None
        cleaned = target.strip(",")
        if all(ch.isnumeric() for ch in cleaned):
            return None
        return cleaned.strip()
    return None


def is_sensitive_symbol(symbol: str) -> bool:
    """Whether a called symbol touches tasks, credentials, LSM hooks or overrides."""
    lower = _ascii_lower(symbol)
    return (
        "task" in lower
        or "cred" in lower
        or lower.startswith("security_")
        or (lower.startswith("bpf_") and "_override" in lower)
    )


def sensitive_calls(text: str) -> list[str]:
    """Return the sorted, distinct sensitive symbols called in a translated dump."""
    matches = {
        symbol
        for symbol in map(extract_called_symbol, text.splitlines())
        if symbol is not None and is_sensitive_symbol(symbol)
    }
    return sorted(matches)


def _inspect_program(prog_id: int) -> list[str]:
    try:
        proc = subprocess.run(
            ["bpftool", "prog", "dump", "xlated", "id", str(prog_id)],
            capture_output=True,
            check=False,
        )
    except OSError as err:
        raise ScanError(f"failed to dump program: {err}") from err
    if proc.returncode != 0:
        raise ScanError(f"dump failed with status {_status(proc.returncode)}")
    return sensitive_calls(proc.stdout.decode("utf-8", errors="replace"))


def run() -> str | None:
    """Dump every loaded BPF program and report sensitive kfunc calls."""
    try:
        subprocess.run(
            ["bpftool", "--version"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as err:
        raise ScanError("bpftool not available to inspect kfunc usage") from err

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

    findings: list[str] = []
    errors: list[str] = []
    if isinstance(programs, list):
        for prog in programs:
            if not isinstance(prog, dict):
                continue
            prog_id = _as_u64(prog.get("id"))
            name = prog.get("name")
            if not isinstance(name, str):
                name = "unknown"
            if prog_id is None:
                continue
            try:
                kfuncs = _inspect_program(prog_id)
            except ScanError as err:
                errors.append(f"prog_id={prog_id}: {err}")
                continue
            if kfuncs:
                findings.append(
                    f"prog_id={prog_id}, name={name}, kfuncs={'|'.join(kfuncs)}"
                )

    return summarize(findings, errors)