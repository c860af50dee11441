from pathlib import PurePosixPath

import pytest

from ghostscan.scanners.pins_non_bpffs import (
    MountEntry,
    PinRecord,
    decode_mount_field,
    extract_pin_paths,
    mount_type_for,
    parse_mountinfo,
    pins_from_listing,
)


@pytest.mark.parametrize(
    ("field", "expected"),
    [
        ("/mnt/with\\040space", "/mnt/with space"),
        ("/a\\134b", "/a\\b"),
        ("/tab\\011x", "/tab\tx"),
        ("/odd\\999", "/odd\\999"),
        ("ab\\04", "ab"),
        ("/plain", "/plain"),
    ],
)
def test_decode_mount_field(field, expected):
    assert decode_mount_field(field) == expected


def test_parse_mountinfo():
    content = (
        "25 1 8:1 / / rw,relatime - ext4 /dev/sda1 rw\n"
        "40 25 0:30 / /sys/fs/bpf rw - bpf bpf rw\n"
        "41 25 0:31 / /mnt/my\\040dir rw - tmpfs tmpfs rw\n"
        "1 2 3 - short\n"
    )
    assert parse_mountinfo(content) == [
        MountEntry(PurePosixPath("/"), "ext4"),
        MountEntry(PurePosixPath("/sys/fs/bpf"), "bpf"),
        MountEntry(PurePosixPath("/mnt/my dir"), "tmpfs"),
    ]


def test_extract_pin_paths_nested_and_sorted():
    entry = {"pinned": ["/sys/fs/bpf/b", "/sys/fs/bpf/a", ""], "pins": {"x": "/tmp/c"}}
    assert extract_pin_paths(entry) == ["/sys/fs/bpf/a", "/sys/fs/bpf/b", "/tmp/c"]


def test_extract_pin_paths_without_pins():
    assert extract_pin_paths({"id": 1, "name": "x"}) == []


def test_pins_from_listing():
    listing = [{"id": 5, "pinned": ["/tmp/p"]}, {"pinned": ["/x"]}, {"id": 6}]
    assert pins_from_listing(listing, "map") == [
        PinRecord("map", "5", "/tmp/p"),
        PinRecord("map", "unknown", "/x"),
    ]


def test_pins_from_non_list():
    assert pins_from_listing({"id": 5, "pinned": ["/x"]}, "prog") == []


@pytest.fixture
def mounts():
    return [
        MountEntry(PurePosixPath("/sys/fs/bpf"), "bpf"),
        MountEntry(PurePosixPath("/"), "ext4"),
    ]


def test_mount_type_prefers_first_match(mounts):
    assert mount_type_for("/sys/fs/bpf/prog", mounts) == "bpf"


def test_mount_type_is_component_wise(mounts):
    assert mount_type_for("/sys/fs/bpfx/prog", mounts) == "ext4"


def test_mount_type_relative_path_unmatched(mounts):
    assert mount_type_for("relative/path", mounts) is None