[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ghostscan"
version = "0.1.1"
description = "Read-only Linux host scanners that cross-check kernel views for hidden tasks, sockets, BPF objects and persistence footholds"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "security",
    "linux",
    "rootkit",
    "ebpf",
    "bpftool",
    "nftables",
    "forensics",
    "incident-response",
    "integrity",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Information Technology",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Monitoring",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ghostscan"]

[tool.hatch.build.targets.sdist]
include = ["ghostscan", "tests", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
