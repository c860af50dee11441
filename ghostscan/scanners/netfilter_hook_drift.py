"""Detect drift between nftables chains, jumps and set references."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ghostscan.outcome import ScanError, summarize


@dataclass
class _TableInfo:
    chains: dict[str, tuple[str | None, str | None]] = field(default_factory=dict)
    rules: dict[str, list[Any]] = field(default_factory=dict)


def _status(returncode: int) -> str:
    if returncode < 0:
        return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def _strings(obj: Any, *names: str) -> tuple[str, ...] | None:
    if not isinstance(obj, dict):
        return None
    values = tuple(obj.get(name) for name in names)
    if all(isinstance(value, str) for value in values):
        return values
    return None


def _optional_string(obj: dict, name: str) -> tuple[bool, str | None]:
    value = obj.get(name)
    return (value is None or isinstance(value, str)), value


def _unresolved_set(
    candidate: str,
    family: str,
    table: str,
    chain: str,
    defined_sets: set[tuple[str, str, str]],
) -> Iterator[str]:
    if candidate.startswith("@"):
        if (family, table, candidate[1:]) not in defined_sets:
            yield f"{family},{table},{chain} anomaly=anon_set_unresolved set={candidate}"


def _scan_expr(
    expr: Any,
    family: str,
    table: str,
    chain: str,
    known_chains: set[str],
    defined_sets: set[tuple[str, str, str]],
) -> Iterator[str]:
    if isinstance(expr, dict):
        for key, value in expr.items():
            if key in ("jump", "goto"):
                target = value.get("target") if isinstance(value, dict) else None
                if isinstance(target, str) and target not in known_chains:
                    yield (
                        f"{family},{table},{chain} anomaly=jump_to_missing_handle "
                        f"target={target}"
                    )
            elif key == "set":
                if isinstance(value, str):
                    name = value
                elif isinstance(value, dict) and isinstance(value.get("name"), str):
                    name = value["name"]
                else:
                    name = None
                if name is not None:
                    yield from _unresolved_set(name, family, table, chain, defined_sets)
            yield from _scan_expr(value, family, table, chain, known_chains, defined_sets)
    elif isinstance(expr, list):
        for value in expr:
            yield from _scan_expr(value, family, table, chain, known_chains, defined_sets)
    elif isinstance(expr, str):
        yield from _unresolved_set(expr, family, table, chain, defined_sets)


def analyze_ruleset(document: Any) -> list[str]:
    """Return the anomalies found in a parsed ``nft -j list ruleset`` document."""
    if not isinstance(document, dict):
        raise ScanError("failed to parse nftables JSON: expected an object")
    entries = document.get("nftables", [])
    if not isinstance(entries, list):
        raise ScanError("failed to parse nftables JSON: 'nftables' is not an array")

    tables: dict[tuple[str, str], _TableInfo] = {}
    defined_sets: set[tuple[str, str, str]] = set()

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        table_def = _strings(entry.get("table"), "family", "name")
        if table_def is not None:
            tables.setdefault(table_def, _TableInfo())
            continue

        chain = entry.get("chain")
        chain_ids = _strings(chain, "family", "table", "name")
        if chain_ids is not None:
            hook_ok, hook = _optional_string(chain, "hook")
            type_ok, chain_type = _optional_string(chain, "type")
            if hook_ok and type_ok:
                family, table, name = chain_ids
                info = tables.setdefault((family, table), _TableInfo())
                info.chains[name] = (hook, chain_type)
                continue

        rule = entry.get("rule")
        rule_ids = _strings(rule, "family", "table", "chain")
        if rule_ids is not None:
            family, table, chain_name = rule_ids
            info = tables.setdefault((family, table), _TableInfo())
            expr = rule.get("expr")
            if expr is not None:
                info.rules.setdefault(chain_name, []).append(expr)
            continue

        set_ids = _strings(entry.get("set"), "family", "table", "name")
        if set_ids is not None:
            defined_sets.add(set_ids)

    findings: list[str] = []
    for (family, table), info in sorted(tables.items()):
        for name, (hook, chain_type) in sorted(info.chains.items()):
            if chain_type is not None and hook is None:
                findings.append(f"{family},{table},{name} anomaly=orphan_base_chain")

    for (family, table), info in sorted(tables.items()):
        known_chains = set(info.chains)
        for chain_name, expressions in sorted(info.rules.items()):
            for expr in expressions:
                findings.extend(
                    _scan_expr(expr, family, table, chain_name, known_chains, defined_sets)
                )

    return sorted(findings)


def run() -> str | None:
    """Inspect the live nftables ruleset."""
    try:
        proc = subprocess.run(
            ["nft", "-j", "list", "ruleset"], capture_output=True, check=False
        )
    except OSError as err:
        raise ScanError(f"failed to execute nft: {err}") from err

    if proc.returncode != 0:
        stderr = proc.stderr.decode("utf-8", errors="replace").strip()
        raise ScanError(f"nft exited with {_status(proc.returncode)}: {stderr}")

    try:
        document = json.loads(proc.stdout)
    except ValueError as err:
        raise ScanError(f"failed to parse nftables JSON: {err}") from err

    return summarize(analyze_ruleset(document), [])