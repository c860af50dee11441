from ghostscan.scanners.suspicious_ptrace import (
    TaskInfo,
    find_suspicious,
    parse_ppid,
    parse_status,
)


def test_parse_ppid_simple():
    assert parse_ppid("1234 (bash) S 1 1234 1234 0 -1") == 1


def test_parse_ppid_comm_with_parens():
    assert parse_ppid("77 (odd) name) R 42 77 77") == 42


def test_parse_ppid_malformed():
    assert parse_ppid("no parens here") is None
    assert parse_ppid("5 (x)") is None
    assert parse_ppid("5 (x) S abc") is None


def test_parse_status_fields():
    status = "Name:\tsleep\nUid:\t1000\t1000\t1000\t1000\nTracerPid:\t0\n"
    assert parse_status(status) == (0, 1000)


def test_parse_status_defaults():
    assert parse_status("Name:\tsleep\n") == (None, 0)
    assert parse_status("TracerPid:\tnope\nUid:\tx\n") == (None, 0)


def _tasks(*infos):
    return {info.pid: info for info in infos}


def test_same_uid_non_daemon_tracer_ignored():
    tasks = _tasks(
        TaskInfo(10, "gdb", 1000, 0, 9),
        TaskInfo(11, "app", 1000, 10, 9),
    )
    assert find_suspicious(tasks) == []


def test_cross_uid_and_daemon_flags():
    tasks = _tasks(
        TaskInfo(10, "tracer", 0, 0, 1),
        TaskInfo(11, "victim", 1000, 10, 9),
    )
    assert find_suspicious(tasks) == [
        "10 -> 11, tracer_comm=tracer, traced_comm=victim, cross_uid=true|daemon_tracing=true"
    ]


def test_daemon_only_flag():
    tasks = _tasks(
        TaskInfo(10, "tracer", 1000, 0, 1),
        TaskInfo(11, "victim", 1000, 10, 9),
    )
    (finding,) = find_suspicious(tasks)
    assert finding.endswith(", daemon_tracing=true")
    assert "cross_uid" not in finding


def test_missing_tracer():
    tasks = _tasks(TaskInfo(11, "victim", 1000, 999, 9))
    assert find_suspicious(tasks) == [
        "999 -> 11, tracer_comm=unknown, traced_comm=victim, info=missing_tracer"
    ]


def test_untraced_tasks_skipped():
    tasks = _tasks(TaskInfo(1, "init", 0, None, 0), TaskInfo(2, "kthreadd", 0, 0, 0))
    assert find_suspicious(tasks) == []