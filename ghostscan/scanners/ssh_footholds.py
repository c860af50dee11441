"""Find risky options in users' authorized_keys files."""

from __future__ import annotations

import os
from pathlib import Path

from ghostscan.outcome import ScanError, summarize

_ACCOUNTS_FILE = Path("/etc/passwd")


def _is_risky_option(opt: str) -> bool:
    return (
        opt.startswith("command=")
        or opt.startswith("permitopen=")
        or (opt.startswith("from=") and "*" in opt)
    )


def analyze_key_lines(user: str, path: str | os.PathLike[str], content: str) -> list[str]:
    """Return findings for forced commands, port forwards and wildcard sources."""
    shown = Path(path)
    findings: list[str] = []
    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue
        first, *rest = trimmed.split()
        if first.startswith("ssh-"):
            continue
        comment = rest[2] if len(rest) > 2 else ""
        for opt in first.split(","):
            opt = opt.strip()
            if opt and _is_risky_option(opt):
                findings.append(
                    f"user={user}, file={shown}, key_comment={comment}, option={opt}"
                )
    return findings


def analyze_file(user: str, path: str | os.PathLike[str]) -> list[str]:
    """Check permissions and options of one authorized_keys file."""
    path = Path(path)
    try:
        meta = path.stat()
    except OSError as err:
        raise ScanError(f"failed to stat {path}: {err}") from err

    findings: list[str] = []
    if meta.st_mode & 0o077:
        findings.append(f"user={user}, file={path}, perms_insecure=true")

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {path}: {err}") from err

    findings.extend(analyze_key_lines(user, path, content))
    return findings


def run() -> str | None:
    """Inspect the authorized_keys file of every account in the account database."""
    try:
        accounts = _ACCOUNTS_FILE.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as err:
        raise ScanError(f"failed to read {_ACCOUNTS_FILE}: {err}") from err

    findings: list[str] = []
    for line in accounts.splitlines():
        parts = line.split(":")
        if len(parts) < 6:
            continue
        user, home = parts[0], parts[5]
        if not os.path.exists(home):
            continue
        auth_path = Path(home) / ".ssh" / "authorized_keys"
        if not os.path.exists(auth_path):
            continue
        try:
            findings.extend(analyze_file(user, auth_path))
        except ScanError as err:
            findings.append(f"user={user}, file={auth_path}, error={err}")

    return summarize(findings, [])