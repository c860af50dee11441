"""Cross-check the address of sys_call_table across kallsyms and System.map files."""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ghostscan.outcome import ScanError

_SYMBOL = "sys_call_table"
_KALLSYMS = "/proc/kallsyms"
_OSRELEASE = "/proc/sys/kernel/osrelease"
_HEX = re.compile(r"\+?[0-9A-Fa-f]+")


@dataclass(frozen=True)
class Resolution:
    """An address of sys_call_table and the source it was read from."""

    source: str
    address: int


def parse_hex(value: str) -> int | None:
    """Parse an unsigned 64-bit hexadecimal number, or return None."""
    if not _HEX.fullmatch(value):
        return None
    number = int(value, 16)
    return number if number < 2**64 else None


def find_symbol(lines: Iterable[str], target: str) -> int | None:
    """Return the address of ``target`` in symbol-table lines, or None if absent.

    Each line reads ``<address> <type> <symbol>``; an unparsable address of
    the target symbol yields 0.
    """
    for line in lines:
        parts = line.split()
        if len(parts) < 3:
            continue
        if parts[2] == target:
            address = parse_hex(parts[0])
            return address if address is not None else 0
    return None


def system_map_candidates(kernel: str) -> list[str]:
    """Return the System.map locations to check for a kernel release."""
    return [
        f"/usr/lib/modules/{kernel}/System.map",
        f"/usr/lib/modules/{kernel}/build/System.map",
        f"/lib/modules/{kernel}/System.map",
        f"/lib/modules/{kernel}/build/System.map",
        f"/boot/System.map-{kernel}",
        "/boot/System.map",
    ]


def detect_address_mismatch(
    resolutions: Sequence[Resolution],
) -> tuple[list[str], list[int]] | None:
    """Return the sources and distinct addresses when sources disagree.

    Each distinct address is reported once, with the first source that gave it.
    """
    unique: dict[int, str] = {}
    for resolution in resolutions:
        unique.setdefault(resolution.address, resolution.source)
    if len(unique) <= 1:
        return None
    return list(unique.values()), list(unique)


def _lookup(path: str) -> int | None:
    with open(path, encoding="utf-8") as handle:
        return find_symbol(handle, _SYMBOL)


def run() -> str | None:
    """Resolve sys_call_table from every available source and compare them."""
    addresses: list[Resolution] = []
    violations: list[str] = []
    errors: list[str] = []

    try:
        address = _lookup(_KALLSYMS)
    except (OSError, UnicodeDecodeError) as err:
        errors.append(f"{_KALLSYMS}: {err}")
    else:
        if address is None:
            violations.append(f"source={_KALLSYMS} issue=missing_sys_call_table")
        elif address == 0:
            errors.append(f"{_KALLSYMS} returned zero address (likely kptr_restrict)")
        else:
            addresses.append(Resolution(_KALLSYMS, address))

    try:
        kernel = Path(_OSRELEASE).read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as err:
        errors.append(f"{_OSRELEASE}: {err}")
        candidates: list[str] = []
    else:
        candidates = system_map_candidates(kernel)

    for candidate in candidates:
        source = f"System.map({candidate})"
        try:
            address = _lookup(candidate)
        except FileNotFoundError:
            continue
        except (OSError, UnicodeDecodeError) as err:
            errors.append(f"{source}: {err}")
            continue
        if address is None:
            violations.append(f"source={source} issue=missing_sys_call_table")
        elif address == 0:
            errors.append(f"{source} returned zero address")
        else:
            addresses.append(Resolution(source, address))

    mismatch = detect_address_mismatch(addresses)
    if mismatch is not None:
        sources, values = mismatch
        violations.append(
            f"inconsistent_addresses sources={'|'.join(sources)} "
            f"addresses={'|'.join(f'0x{value:016x}' for value in values)}"
        )

    if not violations:
        if errors:
            raise ScanError(", ".join(errors))
        return None
    report = ["\n".join(violations)]
    if errors:
        report.append(f"collection_errors={', '.join(errors)}")
    return "\n".join(report)