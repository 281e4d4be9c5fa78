"""Syft invocation and installation."""

from .installer import get_scanner_command
from .runner import CommandResult, build_scan_command, execute_scan, run_command

__all__ = [
    "CommandResult",
    "build_scan_command",
    "execute_scan",
    "get_scanner_command",
    "run_command",
]
