"""Result handling shared by all scanners."""

from __future__ import annotations

from collections.abc import Iterable


class ScanError(Exception):
    """Raised when a scanner cannot produce a result."""


def summarize(findings: Iterable[str], errors: Iterable[str]) -> str | None:
    """Combine findings and collection errors into a scanner report.

    Returns None when there is nothing to report. Raises ScanError when
    nothing was found but collection failed. Otherwise the findings are
    sorted, followed by a ``collection_errors=`` line if any errors occurred.
    """
    report = sorted(findings)
    problems = list(errors)
    if not report:
        if problems:
            raise ScanError(", ".join(problems))
        return None
    if problems:
        report.append(f"collection_errors={', '.join(problems)}")
    return "\n".join(report)