"""Read-only Linux host scanners and the shared result handling in ghostscan.outcome."""

__version__ = "0.1.1"