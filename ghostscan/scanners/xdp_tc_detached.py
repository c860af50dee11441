"""Report XDP and TC programs attached to network devices."""

from __future__ import annotations

import json
import subprocess
from typing import Any

from ghostscan.outcome import ScanError


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def has_meaningful_data(value: Any) -> bool:
    """Whether a JSON value holds anything other than nulls and blanks."""
    if value is None:
        return False
    if isinstance(value, (bool, int, float)):
        return True
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return any(has_meaningful_data(item) for item in value)
    if isinstance(value, dict):
        return any(has_meaningful_data(item) for item in value.values())
    return False


def run() -> str | None:
    """Return the ``bpftool net list`` output when it lists any attachments."""
    try:
        subprocess.run(["bpftool", "--version"], capture_output=True, check=False)
    except OSError as err:
        raise ScanError("bpftool not available to inspect XDP/TC programs") from err

    try:
        proc = subprocess.run(
            ["bpftool", "-j", "net", "list"], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute bpftool net list: {err}") from err

    if proc.returncode != 0:
        raise ScanError(f"bpftool net list exited with {_status(proc.returncode)}")

    payload = proc.stdout.decode("utf-8", errors="replace").strip()
    if not payload:
        return None
    try:
        value = json.loads(payload, parse_constant=_reject_constant)
    except ValueError:
        return payload
    return payload if has_meaningful_data(value) else None