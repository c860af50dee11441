import json
import subprocess
from unittest.mock import patch

import pytest

from ghostscan.outcome import ScanError
from ghostscan.scanners.netfilter_hook_drift import analyze_ruleset, run


def _table(family="inet", name="filter"):
    return {"table": {"family": family, "name": name}}


def _chain(name, hook=None, chain_type=None, family="inet", table="filter"):
    body = {"family": family, "table": table, "name": name}
    if hook is not None:
        body["hook"] = hook
    if chain_type is not None:
        body["type"] = chain_type
    return {"chain": body}


def _rule(chain, expr, family="inet", table="filter"):
    return {"rule": {"family": family, "table": table, "chain": chain, "expr": expr}}


def test_clean_ruleset_has_no_findings():
    document = {
        "nftables": [
            {"metainfo": {"version": "1.0"}},
            _table(),
            _chain("input", hook="input", chain_type="filter"),
            _chain("helper"),
            _rule("input", [{"jump": {"target": "helper"}}]),
        ]
    }
    assert analyze_ruleset(document) == []


def test_orphan_base_chain():
    document = {"nftables": [_table(), _chain("sneaky", chain_type="filter")]}
    assert analyze_ruleset(document) == ["inet,filter,sneaky anomaly=orphan_base_chain"]


def test_jump_and_goto_to_missing_chain():
    document = {
        "nftables": [
            _table(),
            _chain("input", hook="input", chain_type="filter"),
            _rule("input", [{"jump": {"target": "ghost"}}, {"goto": {"target": "ghost2"}}]),
        ]
    }
    findings = analyze_ruleset(document)
    assert findings == [
        "inet,filter,input anomaly=jump_to_missing_handle target=ghost",
        "inet,filter,input anomaly=jump_to_missing_handle target=ghost2",
    ]


def test_unresolved_set_reference_reported_per_occurrence():
    expr = [{"match": {"left": {"payload": {}}, "right": "@blocked", "op": "=="}}]
    document = {"nftables": [_table(), _chain("input"), _rule("input", expr)]}
    assert analyze_ruleset(document) == [
        "inet,filter,input anomaly=anon_set_unresolved set=@blocked"
    ]


def test_set_key_string_is_counted_twice():
    document = {"nftables": [_table(), _rule("input", [{"set": "@nope"}])]}
    findings = analyze_ruleset(document)
    assert len(findings) == 2
    assert set(findings) == {"inet,filter,input anomaly=anon_set_unresolved set=@nope"}


def test_defined_set_in_same_table_resolves():
    document = {
        "nftables": [
            _table(),
            {"set": {"family": "inet", "table": "filter", "name": "blocked"}},
            _chain("input"),
            _rule("input", [{"match": {"right": "@blocked"}}, {"set": {"name": "@blocked"}}]),
        ]
    }
    assert analyze_ruleset(document) == []


def test_set_in_other_table_does_not_resolve():
    document = {
        "nftables": [
            {"set": {"family": "ip", "table": "other", "name": "blocked"}},
            _rule("input", [{"match": {"right": "@blocked"}}]),
        ]
    }
    assert len(analyze_ruleset(document)) == 1


def test_null_entries_and_missing_key_are_ignored():
    assert analyze_ruleset({"nftables": [None, None]}) == []
    assert analyze_ruleset({}) == []


def test_invalid_document_raises():
    with pytest.raises(ScanError):
        analyze_ruleset({"nftables": "broken"})
    with pytest.raises(ScanError):
        analyze_ruleset([1, 2, 3])


def _completed(stdout=b"", returncode=0, stderr=b""):
    return subprocess.CompletedProcess(["nft"], returncode, stdout=stdout, stderr=stderr)


def test_run_reports_findings():
    payload = json.dumps({"nftables": [_table(), _chain("x", chain_type="nat")]}).encode()
    with patch("subprocess.run", return_value=_completed(payload)):
        assert run() == "inet,filter,x anomaly=orphan_base_chain"


def test_run_clean_returns_none():
    payload = json.dumps({"nftables": [_table()]}).encode()
    with patch("subprocess.run", return_value=_completed(payload)):
        assert run() is None


def test_run_nonzero_exit_raises():
    failed = _completed(returncode=1, stderr=b"Operation not permitted\n")
    with patch("subprocess.run", return_value=failed):
        with pytest.raises(ScanError, match="nft exited with"):
            run()


def test_run_bad_json_raises():
    with patch("subprocess.run", return_value=_completed(b"not json")):
        with pytest.raises(ScanError, match="failed to parse nftables JSON"):
            run()


def test_run_missing_binary_raises():
    with patch("subprocess.run", side_effect=FileNotFoundError("nft")):
        with pytest.raises(ScanError, match="failed to execute nft"):
            run()