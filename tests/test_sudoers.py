import pytest

from ghostscan.outcome import ScanError
from ghostscan.scanners.sudoers import analyze_content, analyze_file


def test_nopasswd_all_reported_with_line_number():
    content = "root ALL=(ALL) ALL\n%wheel ALL=(ALL) NOPASSWD: ALL\n"
    assert analyze_content("/etc/sudoers", content) == [
        "file=/etc/sudoers, line_no=2, entry='%wheel ALL=(ALL) NOPASSWD: ALL'"
    ]


def test_comments_and_blanks_ignored():
    content = "# %admin ALL=(ALL) NOPASSWD: ALL\n\n   \nroot ALL=(ALL) ALL\n"
    assert analyze_content("/etc/sudoers", content) == []


def test_not_authenticate_reported():
    content = "  bob ALL=(ALL) ALL, !authenticate  \n"
    findings = analyze_content("/etc/sudoers.d/bob", content)
    assert findings == ["file=/etc/sudoers.d/bob, line_no=1, entry='bob ALL=(ALL) ALL, !authenticate'"]


def test_line_matching_both_rules_reported_twice():
    content = "eve ALL=(ALL) ALL !authenticate NOPASSWD: ALL\n"
    findings = analyze_content("/etc/sudoers", content)
    assert len(findings) == 2
    assert findings[0] == findings[1]


def test_analyze_file_reads_path(tmp_path):
    sudoers = tmp_path / "sudoers"
    sudoers.write_text("Defaults env_reset\nops ALL=(ALL) NOPASSWD: ALL\n")
    (finding,) = analyze_file(sudoers)
    assert finding.startswith(f"file={sudoers}, line_no=2, ")


def test_analyze_file_missing(tmp_path):
    with pytest.raises(ScanError, match="failed to read"):
        analyze_file(tmp_path / "missing")