"""Compare sockets reported over netlink (ss) with /proc/net tables."""

from __future__ import annotations

import ipaddress
import re
import subprocess
from pathlib import Path
from typing import NamedTuple

from ghostscan.outcome import ScanError, summarize

SocketKey = tuple[str, str, str]

_DEC_PORT = re.compile(r"\+?[0-9]+")
_HEX_PORT = re.compile(r"\+?[0-9A-Fa-f]+")
_HEX = re.compile(r"[0-9A-Fa-f]*")
_PID = re.compile(r"pid=([0-9]*)")
_NON_SPACE = re.compile(r"\S*")

_UNSPECIFIED_V4 = ipaddress.IPv4Address("0.0.0.0")
_UNSPECIFIED_V6 = ipaddress.IPv6Address("::")


class _NetlinkEntry(NamedTuple):
    inode: str | None
    pids: frozenset[int]


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _format_endpoint(addr: ipaddress.IPv4Address | ipaddress.IPv6Address, port: int) -> str:
    if addr.version == 4:
        return f"{addr}:{port}"
    mapped = addr.ipv4_mapped
    text = f"::ffff:{mapped}" if mapped is not None else str(addr)
    return f"[{text}]:{port}"


def _parse_ip(text: str):
    if "%" in text:
        return None
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def normalize_ss_endpoint(raw: str) -> str | None:
    """Normalise an ``ss`` address column to ``addr:port`` form."""
    if raw == "*":
        return "0.0.0.0:0"

    if raw.startswith("["):
        end = raw.rfind("]")
        if end < 0 or end + 2 > len(raw):
            return None
        addr_part, port_part = raw[1:end], raw[end + 2:]
    elif ":" in raw:
        addr_part, _, port_part = raw.rpartition(":")
    else:
        return None

    if addr_part == "*":
        addr = _UNSPECIFIED_V4
    elif addr_part == "::":
        addr = _UNSPECIFIED_V6
    else:
        addr = _parse_ip(addr_part) or _UNSPECIFIED_V4

    if port_part != "*" and _DEC_PORT.fullmatch(port_part) and int(port_part) <= 0xFFFF:
        port = int(port_part)
    else:
        port = 0

    return _format_endpoint(addr, port)


def _hex_bytes(text: str, size: int) -> bytes | None:
    if len(text) != size * 2 or not _HEX.fullmatch(text):
        return None
    return bytes.fromhex(text)


def parse_proc_endpoint(endpoint: str, ipv6: bool) -> str | None:
    """Decode a ``/proc/net/*`` hex endpoint such as ``0100007F:0016``."""
    parts = endpoint.split(":")
    if len(parts) < 2:
        return None
    addr_hex, port_hex = parts[0], parts[1]
    if not _HEX_PORT.fullmatch(port_hex):
        return None
    port = int(port_hex, 16)
    if port > 0xFFFF:
        return None

    if ipv6:
        raw = _hex_bytes(addr_hex, 16)
        if raw is None:
            return None
        words = (raw[start:start + 4][::-1] for start in range(0, 16, 4))
        return _format_endpoint(ipaddress.IPv6Address(b"".join(words)), port)

    raw = _hex_bytes(addr_hex, 4)
    if raw is None:
        return None
    return _format_endpoint(ipaddress.IPv4Address(raw[::-1]), port)


def extract_inode(line: str) -> str | None:
    """Return the socket inode from an ``ss`` line, if present."""
    for segment in line.split():
        if segment.startswith("ino:") and len(segment) > 4:
            return segment[4:]
    pos = line.find("ino:")
    if pos >= 0:
        inode = _NON_SPACE.match(line, pos + 4).group()
        if inode:
            return inode
    return None


def extract_pids(line: str) -> set[int]:
    """Return every ``pid=N`` owner listed on an ``ss`` line."""
    return {
        int(digits)
        for digits in _PID.findall(line)
        if digits and int(digits) <= 0xFFFFFFFF
    }


def parse_ss_output(text: str, proto: str) -> dict[SocketKey, _NetlinkEntry]:
    """Parse ``ss -H -a -n -p -i`` output into sockets keyed by endpoints."""
    sockets: dict[SocketKey, _NetlinkEntry] = {}
    for line in text.splitlines():
        tokens = line.split()
        if len(tokens) < 5:
            continue
        local = normalize_ss_endpoint(tokens[3])
        if local is None:
            continue
        remote = normalize_ss_endpoint(tokens[4])
        if remote is None:
            continue
        sockets[(proto, local, remote)] = _NetlinkEntry(
            extract_inode(line), frozenset(extract_pids(line))
        )
    return sockets


def parse_proc_table(text: str, proto: str, ipv6: bool) -> dict[SocketKey, str]:
    """Parse a ``/proc/net/{tcp,udp}[6]`` table into inodes keyed by endpoints."""
    sockets: dict[SocketKey, str] = {}
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 10:
            continue
        local = parse_proc_endpoint(parts[1], ipv6)
        if local is None:
            continue
        remote = parse_proc_endpoint(parts[2], ipv6)
        if remote is None:
            continue
        sockets[(proto, local, remote)] = parts[9]
    return sockets


def compare_sockets(
    netlink: dict[SocketKey, _NetlinkEntry], proc: dict[SocketKey, str]
) -> list[str]:
    """Report sockets seen by only one of the two views."""
    findings: list[str] = []
    for key, entry in sorted(netlink.items()):
        if key in proc:
            continue
        proto, local, remote = key
        inode = entry.inode if entry.inode is not None else "unknown"
        owners = "|".join(str(pid) for pid in sorted(entry.pids)) or "∅"
        findings.append(
            f"from=netlink_only, proto={proto}, laddr={local}, raddr={remote}, "
            f"inode={inode}, owner_pids={owners}"
        )
    for key, inode in sorted(proc.items()):
        if key in netlink:
            continue
        proto, local, remote = key
        findings.append(
            f"from=proc_only, proto={proto}, laddr={local}, raddr={remote}, "
            f"inode={inode}, owner_pids=unknown"
        )
    return findings


def _collect_ss(flag: str, proto: str) -> dict[SocketKey, _NetlinkEntry]:
    try:
        proc = subprocess.run(
            ["ss", "-H", "-a", "-n", "-p", "-i", flag], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute ss {flag}: {err}") from err
    if proc.returncode != 0:
        raise ScanError(f"ss {flag} exited with {_status(proc.returncode)}")
    return parse_ss_output(proc.stdout.decode("utf-8", errors="replace"), proto)


def _collect_proc(proto: str) -> dict[SocketKey, str]:
    sockets: dict[SocketKey, str] = {}
    for path in (Path(f"/proc/net/{proto}"), Path(f"/proc/net/{proto}6")):
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        sockets.update(parse_proc_table(content, proto, path.name.endswith("6")))
    return sockets


def run() -> str | None:
    """Compare live TCP/UDP sockets from ss and /proc/net."""
    try:
        subprocess.run(
            ["ss", "-V"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError as err:
        raise ScanError("ss not available to query sockets") from err

    netlink: dict[SocketKey, _NetlinkEntry] = {}
    proc: dict[SocketKey, str] = {}
    errors: list[str] = []

    for flag, proto in (("-t", "tcp"), ("-u", "udp")):
        try:
            netlink.update(_collect_ss(flag, proto))
        except ScanError as err:
            errors.append(str(err))
        proc.update(_collect_proc(proto))

    return summarize(compare_sockets(netlink, proc), errors)