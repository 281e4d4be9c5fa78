from __future__ import annotations

import os
import uuid
from typing import Optional


def _write_command_file(env_var: str, name: str, value: str) -> bool:
    path = os.environ.get(env_var)
    if not path:
        return False
    with open(path, "a", encoding="utf-8") as f:
        if "\n" in value or "\r" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
        else:
            f.write(f"{name}={value}\n")
    return True


def write_github_outputs(**values: Optional[str]) -> None:
    """Write GitHub Actions step outputs; None values are skipped."""
    for name, value in values.items():
        if value is None:
            continue
        _write_command_file("GITHUB_OUTPUT", name, str(value))


def export_variable(name: str, value: str) -> None:
    """Set an environment variable for this and all later steps of the job."""
    os.environ[name] = value
    _write_command_file("GITHUB_ENV", name, value)
