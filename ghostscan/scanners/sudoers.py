"""Flag sudoers entries that grant passwordless or unauthenticated root."""

from __future__ import annotations

import os
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_SUDOERS = Path("/etc/sudoers")
_SUDOERS_DIR = Path("/etc/sudoers.d")


def _lines(text: str) -> list[str]:
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def analyze_content(path: str | os.PathLike[str], content: str) -> list[str]:
    """Return findings for risky entries in sudoers text read from ``path``."""
    shown = Path(path)
    findings: list[str] = []
    for line_no, line in enumerate(_lines(content), start=1):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        entry = f"file={shown}, line_no={line_no}, entry='{trimmed}'"
        if "NOPASSWD: ALL" in trimmed:
            findings.append(entry)
        if "ALL=(ALL) ALL" in trimmed and "!authenticate" in trimmed:
            findings.append(entry)
    return findings


def analyze_file(path: str | os.PathLike[str]) -> list[str]:
    """Read a sudoers file and return its risky entries."""
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {path}: {err}") from err
    return analyze_content(path, content)


def run() -> str | None:
    """Inspect /etc/sudoers and the files in /etc/sudoers.d."""
    findings: list[str] = []
    errors: list[str] = []

    def check(path: Path) -> None:
        try:
            findings.extend(analyze_file(path))
        except ScanError as err:
            errors.append(str(err))

    check(_SUDOERS)

    if _SUDOERS_DIR.exists():
        try:
            with os.scandir(_SUDOERS_DIR) as entries:
                paths = [Path(entry.path) for entry in entries]
        except OSError as err:
            errors.append(f"failed to read {_SUDOERS_DIR}: {err}")
            paths = []
        for path in paths:
            if path.is_file():
                check(path)

    if not findings:
        return f"collection_errors={', '.join(errors)}" if errors else None
    return summarize(findings, errors)