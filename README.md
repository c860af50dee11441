# ghostscan

Read-only scanners for Linux hosts. Each one compares what the kernel or the
system configuration reports through different channels, or looks for
configuration that is commonly abused for persistence, and reports anything
that stands out.

Nothing on the host is changed. Scanners read files under `/proc`, `/sys`
and `/etc`, and some of them run `ss`, `nft` or `bpftool`. Many checks only
see the whole system when run as root.

## Scanners

Every scanner is a module in `ghostscan.scanners` with a `run()` function
that takes no arguments.

| Module                   | What it reports                                                       |
|--------------------------|-----------------------------------------------------------------------|
| `netfilter_hook_drift`   | nftables chains with a type but no hook, jumps/gotos to unknown chains, `@set` references to undefined sets (`nft -j list ruleset`) |
| `netlink_vs_proc`        | TCP/UDP sockets listed by `ss` but not in `/proc/net/{tcp,udp}[6]`, and the reverse |
| `xdp_tc_detached`        | the `bpftool -j net list` output, when it lists any attachment        |
| `overlayfs_whiteouts`    | `.wh.*` whiteouts and `.wh..wh..opq` opaque markers under overlay mounts (up to 5000 directories per mount) |
| `ownerless_bpf_objects`  | BPF programs with no pin and no owning pid                            |
| `ownerless_sockets`      | socket inodes in `/proc/net` that no process has open                 |
| `pam_nss`                | absolute PAM / NSS module paths outside `/lib`, `/lib64`, `/usr/lib`, `/usr/lib64` |
| `pins_non_bpffs`         | BPF program, map and link pins on a filesystem other than `bpf`       |
| `scripts_d`              | files in `/etc/*.d` not owned by root, world-writable, or under `/tmp/` |
| `sensitive_kfunc`        | BPF programs whose translated code calls task, credential, `security_*` or `bpf_*_override` symbols |
| `sockmap_sockhash`       | SOCKMAP / SOCKHASH maps with no pin and no owning pid                 |
| `ssh_footholds`          | `authorized_keys` files with group/other permission bits, or `command=`, `permitopen=` or wildcard `from=` options |
| `sudoers`                | `NOPASSWD: ALL` lines, and `ALL=(ALL) ALL` lines with `!authenticate` |
| `suspicious_ptrace`      | traced processes whose tracer has a different uid, is a child of pid 1, or is missing |
| `syscall_table`          | a missing `sys_call_table` symbol, or different addresses between `/proc/kallsyms` and System.map files |
| `systemd_ghost`          | `ExecStart=`, `ExecStartPre=`, `ExecStop=` commands that are missing, deleted, or in `/tmp` |
| `task_list_mismatch`     | pids found in pid-keyed BPF hash maps but not in `/proc`, and the reverse |
| `unknown_kprobes`        | kprobes on `sys_`, `vfs_`, `tcp_`, `security_` symbols with at least 10 hits whose event name does not look like a known tracing tool's |

## Usage

```python
from ghostscan.outcome import ScanError
from ghostscan.scanners import sudoers, suspicious_ptrace

for scanner in (sudoers, suspicious_ptrace):
    try:
        report = scanner.run()
    except ScanError as err:
        print(f"{scanner.__name__}: could not scan: {err}")
        continue
    if report is None:
        print(f"{scanner.__name__}: clean")
    else:
        print(f"{scanner.__name__}:\n{report}")
```

`run()` returns `None` when there is nothing to report, or a string with one
finding per line. `ScanError` is raised when a scanner cannot run at all (for
example a required tool is missing or exits with an error).

Most scanners build their report with
`ghostscan.outcome.summarize(findings, errors)`: the findings are sorted, and
when some data could not be collected a final `collection_errors=...` line is
added. If there are no findings but there were collection errors, `summarize`
raises `ScanError` instead. A few scanners differ:

- `sudoers` returns just the `collection_errors=...` line in that case rather
  than raising.
- `ssh_footholds` and `overlayfs_whiteouts` report a file or mount they could
  not read as a finding line.
- `pam_nss` and `scripts_d` skip files and directories they cannot read.
- `syscall_table` keeps its violations in detection order.
- `xdp_tc_detached` returns the raw JSON text from `bpftool`.

## Offline analysis

The parsing and analysis steps are exposed as plain functions, so saved
output can be checked without touching a live system:

```python
from ghostscan.scanners.netlink_vs_proc import normalize_ss_endpoint, parse_proc_endpoint
from ghostscan.scanners.netfilter_hook_drift import analyze_ruleset
from ghostscan.scanners.sensitive_kfunc import sensitive_calls
from ghostscan.scanners.unknown_kprobes import evaluate

normalize_ss_endpoint("[::1]:22")            # "[::1]:22"
parse_proc_endpoint("0100007F:0016", False)  # "127.0.0.1:22"
analyze_ruleset(parsed_nft_json)             # sorted list of anomaly lines
sensitive_calls(saved_xlated_dump)           # sorted list of sensitive call targets
evaluate(kprobe_events_text, kprobe_profile_text)
```

Other examples: `netlink_vs_proc.parse_ss_output` / `parse_proc_table` /
`compare_sockets`, `pins_non_bpffs.parse_mountinfo` / `pins_from_listing` /
`mount_type_for`, `suspicious_ptrace.parse_status` / `parse_ppid` /
`find_suspicious`, `syscall_table.find_symbol` / `detect_address_mismatch`,
`task_snapshot.merge_dump` and `task_list_mismatch.compare_tasks`.

## What this package does not do

- There is no command-line program and no runner that executes all
  scanners; call each module's `run()` yourself.
- `task_list_mismatch` only sees pids that `bpftool -j map dump` shows in
  existing BPF hash maps whose name or key type mentions pid, task or proc.
  It does not load a BPF program of its own to walk the task list.
- There are no checks of container runtime state (container mounts or
  overlay lower directories).

## Requirements

Python 3.10 or later on Linux; no third-party packages. `ss`, `nft` and
`bpftool` are needed by the scanners that use them.

## Tests

```
pip install -e .[test]
pytest
```