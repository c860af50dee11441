import os

import pytest

from ghostscan.outcome import ScanError
from ghostscan.scanners.ownerless_sockets import (
    collect_owners,
    find_ownerless,
    parse_socket_table,
)

TABLE = (
    "  sl  local_address rem_address   st tx_queue rx_queue tr tm->when retrnsmt"
    "   uid  timeout inode\n"
    "   0: 0100007F:0016 00000000:0000 0A 00000000:00000000 00:00000000 00000000"
    "     0        0 12345 1 0000000000000000 100 0 0 10 0\n"
    "   1: short line\n"
)


def test_parse_socket_table_reads_inode_column():
    assert parse_socket_table(TABLE) == ["12345"]


def test_parse_socket_table_header_only():
    assert parse_socket_table("header only\n") == []


@pytest.fixture
def proc_tree(tmp_path):
    fd = tmp_path / "123" / "fd"
    fd.mkdir(parents=True)
    os.symlink("socket:[4567]", fd / "3")
    os.symlink("pipe:[77]", fd / "4")
    (tmp_path / "456").mkdir()
    (tmp_path / "self").mkdir()
    (tmp_path / "789").write_text("not a directory")
    return tmp_path


def test_collect_owners_maps_socket_inodes(proc_tree):
    assert collect_owners(proc_tree) == {"4567": {123}}


def test_collect_owners_missing_root(tmp_path):
    with pytest.raises(ScanError, match="failed to read"):
        collect_owners(tmp_path / "nope")


def test_find_ownerless_skips_owned_and_zero():
    sources = {"12345": "/proc/net/tcp", "0": "/proc/net/udp", "99": "/proc/net/udp6"}
    assert find_ownerless(sources, {"99": {1}}) == [
        "proto_source=/proc/net/tcp, inode=12345, owner_pids=∅"
    ]


def test_find_ownerless_all_owned():
    assert find_ownerless({"5": "/proc/net/tcp"}, {"5": {10, 11}}) == []