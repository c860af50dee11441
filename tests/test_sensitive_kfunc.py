import json
import subprocess

import pytest

from ghostscan.outcome import ScanError
from ghostscan.scanners import sensitive_kfunc
from ghostscan.scanners.sensitive_kfunc import (
    extract_called_symbol,
    is_sensitive_symbol,
    sensitive_calls,
)


def _fake_runner(responses):
    def fake_run(args, **kwargs):
        value = responses[tuple(args)]
        if isinstance(value, Exception):
            raise value
        returncode, stdout = value
        return subprocess.CompletedProcess(args, returncode, stdout, b"")

    return fake_run


def test_extract_symbol_after_call():
    assert extract_called_symbol("  12: (85) call bpf_task_acquire") == "bpf_task_acquire"


def test_extract_symbol_trims_commas():
    assert extract_called_symbol("call commit_creds,") == "commit_creds"


def test_extract_numeric_target_is_ignored():
    assert extract_called_symbol("call 42") is None


def test_extract_without_target_or_call():
    assert extract_called_symbol("r0 = 1; call") is None
    assert extract_called_symbol("exit") is None


@pytest.mark.parametrize(
    "symbol, expected",
    [
        ("bpf_task_acquire", True),
        ("commit_creds", True),
        ("security_file_open", True),
        ("bpf_override_return", True),
        ("BPF_TASK_RELEASE", True),
        ("bpf_map_lookup_elem", False),
        ("override_only", False),
    ],
)
def test_is_sensitive_symbol(symbol, expected):
    assert is_sensitive_symbol(symbol) is expected


def test_sensitive_calls_sorted_and_distinct():
    text = "call security_bprm_check\ncall bpf_map_lookup_elem\ncall commit_creds\ncall commit_creds\n"
    assert sensitive_calls(text) == ["commit_creds", "security_bprm_check"]


def test_run_reports_programs(monkeypatch):
    progs = [{"id": 7, "name": "hider"}, {"id": 8, "name": "benign"}, {"name": "noid"}]
    responses = {
        ("bpftool", "--version"): (0, b""),
        ("bpftool", "-j", "prog", "show"): (0, json.dumps(progs).encode()),
        ("bpftool", "prog", "dump", "xlated", "id", "7"): (
            0,
            b"call commit_creds\ncall bpf_task_acquire\n",
        ),
        ("bpftool", "prog", "dump", "xlated", "id", "8"): (0, b"call bpf_map_lookup_elem\n"),
    }
    monkeypatch.setattr(subprocess, "run", _fake_runner(responses))
    assert sensitive_kfunc.run() == "prog_id=7, name=hider, kfuncs=bpf_task_acquire|commit_creds"


def test_run_appends_dump_errors(monkeypatch):
    progs = [{"id": 7, "name": "hider"}, {"id": 8}]
    responses = {
        ("bpftool", "--version"): (0, b""),
        ("bpftool", "-j", "prog", "show"): (0, json.dumps(progs).encode()),
        ("bpftool", "prog", "dump", "xlated", "id", "7"): (0, b"call commit_creds\n"),
        ("bpftool", "prog", "dump", "xlated", "id", "8"): (1, b""),
    }
    monkeypatch.setattr(subprocess, "run", _fake_runner(responses))
    lines = sensitive_kfunc.run().split("\n")
    assert len(lines) == 2
    assert lines[0].startswith("prog_id=7, name=hider")
    assert lines[1].startswith("collection_errors=prog_id=8: dump failed with status")


def test_run_only_errors_raises(monkeypatch):
    responses = {
        ("bpftool", "--version"): (0, b""),
        ("bpftool", "-j", "prog", "show"): (0, json.dumps([{"id": 3}]).encode()),
        ("bpftool", "prog", "dump", "xlated", "id", "3"): (2, b""),
    }
    monkeypatch.setattr(subprocess, "run", _fake_runner(responses))
    with pytest.raises(ScanError, match="prog_id=3"):
        sensitive_kfunc.run()


def test_run_without_bpftool(monkeypatch):
    responses = {("bpftool", "--version"): FileNotFoundError("bpftool")}
    monkeypatch.setattr(subprocess, "run", _fake_runner(responses))
    with pytest.raises(ScanError, match="bpftool not available to inspect kfunc usage"):
        sensitive_kfunc.run()


def test_run_bad_json(monkeypatch):
    responses = {
        ("bpftool", "--version"): (0, b""),
        ("bpftool", "-j", "prog", "show"): (0, b"not json"),
    }
    monkeypatch.setattr(subprocess, "run", _fake_runner(responses))
    with pytest.raises(ScanError, match="failed to parse bpftool prog output"):
        sensitive_kfunc.run()