from __future__ import annotations

from .outputs import export_variable, write_github_outputs
from .step_summary import write_step_summary

__all__ = [
    "export_variable",
    "write_github_outputs",
    "write_step_summary",
]
