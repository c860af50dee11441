"""Find systemd service units whose commands are missing, deleted or in /tmp."""

from __future__ import annotations

import os
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_UNIT_DIRS = ("/etc/systemd/system", "/usr/lib/systemd/system", "/lib/systemd/system")
_EXEC_KEYS = ("ExecStart=", "ExecStartPre=", "ExecStop=")


def evaluate_exec(command: str) -> str | None:
    """Classify the executable of a unit command line, or None if it looks fine."""
    tokens = command.split()
    if not tokens:
        return None
    token = tokens[0].strip("\"'")
    if token.startswith("/"):
        if not os.path.exists(token):
            return "exec_deleted" if "(deleted)" in token else "exec_missing"
        if token.startswith(("/tmp/", "/var/tmp/")):
            return "exec_in_tmp"
    elif "/tmp/" in token:
        return "exec_in_tmp"
    return None


def analyze_unit(path: str | os.PathLike[str]) -> list[str]:
    """Return findings for the Exec lines of one unit file."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {path}: {err}") from err

    findings: list[str] = []
    for line in content.split("\n"):
        line = line.strip()
        if not line.startswith(_EXEC_KEYS):
            continue
        cmd = line.split("=", 1)[1]
        anomaly = evaluate_exec(cmd)
        if anomaly is not None:
            findings.append(f"unit={path}, exec={cmd.strip()}, anomaly={anomaly}")
    return findings


def run() -> str | None:
    """Inspect the service units in the standard systemd unit directories."""
    findings: list[str] = []
    errors: list[str] = []
    for unit_dir in map(Path, _UNIT_DIRS):
        if not unit_dir.exists():
            continue
        try:
            with os.scandir(unit_dir) as entries:
                paths = [Path(entry.path) for entry in entries]
        except OSError as err:
            errors.append(f"failed to read {unit_dir}: {err}")
            continue
        for path in paths:
            if path.suffix != ".service":
                continue
            try:
                findings.extend(analyze_unit(path))
            except ScanError as err:
                errors.append(str(err))
    return summarize(findings, errors)