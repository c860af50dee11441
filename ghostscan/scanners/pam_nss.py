"""Flag PAM and NSS modules loaded from outside the system library directories."""

from __future__ import annotations

import os
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_SYSTEM_LIB_DIRS = ("/lib", "/lib64", "/usr/lib", "/usr/lib64")
_ANOMALY = "anomaly=module_outside_system_libdirs"


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def is_system_lib(path: str) -> bool:
    """Whether a module path lies under one of the system library directories."""
    return path.startswith(_SYSTEM_LIB_DIRS)


def analyse_pam_file(path: str | os.PathLike[str]) -> list[str]:
    """Return findings for absolute module paths in a PAM configuration file."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {path}: {err}") from err

    findings: list[str] = []
    for line_no, line in enumerate(_lines(content), start=1):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        parts = trimmed.split()
        if len(parts) < 3:
            continue
        module = parts[2]
        if module.startswith("/") and not is_system_lib(module):
            findings.append(f"file={path}, line_no={line_no}, line={trimmed}, {_ANOMALY}")
    return findings


def analyse_nsswitch(content: str) -> list[str]:
    """Return findings for absolute service paths in nsswitch.conf text."""
    findings: list[str] = []
    for line_no, line in enumerate(_lines(content), start=1):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        _, sep, services = trimmed.partition(":")
        if not sep:
            continue
        for service in services.split():
            if service.startswith("/") and not is_system_lib(service):
                findings.append(
                    f"file=/etc/nsswitch.conf, line_no={line_no}, line={trimmed}, "
                    f"{_ANOMALY}"
                )
    return findings


def run() -> str | None:
    """Inspect /etc/pam.d and /etc/nsswitch.conf."""
    findings: list[str] = []

    try:
        with os.scandir("/etc/pam.d") as entries:
            paths = [Path(entry.path) for entry in entries]
    except OSError:
        paths = []
    for path in paths:
        if path.is_file():
            try:
                findings.extend(analyse_pam_file(path))
            except ScanError:
                pass

    try:
        content = Path("/etc/nsswitch.conf").read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        content = None
    if content is not None:
        findings.extend(analyse_nsswitch(content))

    return summarize(findings, [])