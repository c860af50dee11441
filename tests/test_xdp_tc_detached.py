import subprocess
from unittest.mock import patch

import pytest

from ghostscan.outcome import ScanError
from ghostscan.scanners.xdp_tc_detached import has_meaningful_data, run


@pytest.mark.parametrize(
    "value",
    [None, "", "   ", [], {}, [None, "  "], {"xdp": [], "tc": [], "flow_dissector": []}],
)
def test_empty_values_are_not_meaningful(value):
    assert has_meaningful_data(value) is False


@pytest.mark.parametrize(
    "value",
    [0, False, "eth0", [None, 1], {"xdp": [{"devname": "eth0", "id": 12}]}],
)
def test_populated_values_are_meaningful(value):
    assert has_meaningful_data(value) is True


def _fake(stdout=b"", returncode=0):
    def handler(args, **kwargs):
        if args == ["bpftool", "--version"]:
            return subprocess.CompletedProcess(args, 0, stdout=b"bpftool v7", stderr=b"")
        return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=b"")

    return handler


def test_run_empty_listing_returns_none():
    with patch("subprocess.run", side_effect=_fake(b'[{"xdp":[],"tc":[],"flow_dissector":[]}]\n')):
        assert run() is None


def test_run_blank_output_returns_none():
    with patch("subprocess.run", side_effect=_fake(b"   \n")):
        assert run() is None


def test_run_returns_trimmed_payload():
    payload = '[{"xdp":[{"devname":"eth0","ifindex":2,"mode":"driver","id":5}]}]'
    with patch("subprocess.run", side_effect=_fake(("\n" + payload + "\n").encode())):
        assert run() == payload


def test_run_returns_unparsable_payload():
    with patch("subprocess.run", side_effect=_fake(b"not json at all")):
        assert run() == "not json at all"


def test_run_nonzero_exit_raises():
    with patch("subprocess.run", side_effect=_fake(returncode=2)):
        with pytest.raises(ScanError, match="bpftool net list exited with"):
            run()


def test_run_missing_bpftool_raises():
    with patch("subprocess.run", side_effect=FileNotFoundError("bpftool")):
        with pytest.raises(ScanError, match="bpftool not available"):
            run()