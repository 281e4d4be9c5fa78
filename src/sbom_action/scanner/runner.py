from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..errors import ScanError
from ..logging import ActionLogger
from ..models import RegistryTarget, ScanResult, ScanTarget


@dataclass(frozen=True)
class CommandResult:
    args: list[str]
    returncode: int
    stdout: str
    stderr: str


async def run_command(args: list[str], env: Optional[Mapping[str, str]] = None) -> CommandResult:
    """Run a command to completion, capturing output. The caller owns timeouts."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            env=dict(env) if env is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return CommandResult(args=args, returncode=127, stdout="", stderr="command not found")

    stdout_b, stderr_b = await proc.communicate()
    return CommandResult(
        args=args,
        returncode=int(proc.returncode or 0),
        stdout=(stdout_b or b"").decode("utf-8", errors="replace"),
        stderr=(stderr_b or b"").decode("utf-8", errors="replace"),
    )


def build_scan_command(
    target: ScanTarget,
    fmt: str,
    *,
    config_file: str = "",
    extra_outputs: Sequence[Tuple[str, str]] = (),
) -> Tuple[List[str], Dict[str, str]]:
    """
    Scanner arguments and extra environment for ``target``.

    The main report is written to stdout; ``extra_outputs`` are (format, path)
    pairs written to files by the same scan.
    """
    args = ["scan", target.source(), "-o", fmt]
    for extra_fmt, path in extra_outputs:
        args.extend(["-o", f"{extra_fmt}={path}"])
    if config_file:
        args.extend(["-c", config_file])

    env = {"SYFT_CHECK_FOR_APP_UPDATE": "false"}
    if isinstance(target, RegistryTarget):
        env.update(target.env())
    return args, env


async def execute_scan(
    cmd: str,
    target: ScanTarget,
    fmt: str,
    logger: ActionLogger,
    *,
    config_file: str = "",
    extra_outputs: Sequence[Tuple[str, str]] = (),
) -> ScanResult:
    args, extra_env = build_scan_command(
        target, fmt, config_file=config_file, extra_outputs=extra_outputs
    )
    env = {**os.environ, **extra_env}

    # The report itself goes to stdout; never echo it into the job log.
    logger.info(f"[command]{cmd} {' '.join(args)}")
    start = time.monotonic()
    result = await run_command([cmd, *args], env=env)
    duration_ms = int((time.monotonic() - start) * 1000)

    if result.returncode != 0:
        logger.debug(result.stdout)
        logger.error(result.stderr or f"{cmd} exited with {result.returncode}")
        raise ScanError(
            "An error occurred running Syft",
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
        )
    if not result.stdout:
        raise ScanError("No Syft output", stderr=result.stderr, returncode=result.returncode)

    return ScanResult(
        report=result.stdout,
        stderr=result.stderr,
        returncode=result.returncode,
        duration_ms=duration_ms,
    )
