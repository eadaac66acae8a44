# AGPL-3.0 License

"""
Subprocess execution with timeouts and output caps.

Non-zero exit codes are ordinary results here, never exceptions.
Infrastructure failures are reported through sentinel exit codes.
"""

import asyncio
import os
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from prove.log import get_logger

DEFAULT_TIMEOUT_MS = 300_000
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024

TIMEOUT_EXIT_CODE = 124
OVERFLOW_EXIT_CODE = 125
SPAWN_FAILURE_EXIT_CODE = 126

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class ExecResult:
    """
    Outcome of running an external command.

    Attributes:
        exit_code: Process exit code, or a sentinel (124 timeout, 125 overflow, 126 spawn failure)
        stdout: Captured standard output (possibly partial or truncated)
        stderr: Captured standard error, with any notices appended
        duration_ms: Wall-clock duration
        timed_out: Whether the process was killed for exceeding its timeout
        truncated: Whether output exceeded the byte cap
    """
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int = 0
    timed_out: bool = False
    truncated: bool = False

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def spawn_failed(self) -> bool:
        return self.exit_code == SPAWN_FAILURE_EXIT_CODE

    def combined_output(self) -> str:
        """Return stdout and stderr joined for diagnostics."""
        parts = [part.strip() for part in (self.stdout, self.stderr) if part and part.strip()]
        return "\n".join(parts)


async def execute(
    command: str,
    args: Optional[Sequence[str]] = None,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
) -> ExecResult:
    """
    Run an external process and capture its output.

    Args:
        command: Executable to run
        args: Arguments passed to the executable
        cwd: Working directory for the process
        env: Extra environment variables layered over os.environ
        timeout_ms: Kill the process after this many milliseconds
        max_output_bytes: Kill the process once either stream exceeds this size

    Returns:
        ExecResult describing the outcome; this function does not raise
        for process failures
    """
    logger = get_logger()
    args = [str(arg) for arg in (args or [])]
    display = " ".join([command, *args])
    process_env = {**os.environ, **env} if env else None
    started = time.monotonic()

    logger.bind(command=display, cwd=cwd, timeout_ms=timeout_ms).debug(f"Executing: {display}")

    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            env=process_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (OSError, ValueError) as e:
        duration_ms = _elapsed_ms(started)
        logger.bind(command=display, duration_ms=duration_ms).warning(f"Could not start: {display}")
        return ExecResult(
            exit_code=SPAWN_FAILURE_EXIT_CODE,
            stdout="",
            stderr=f"Execution error: {e}",
            duration_ms=duration_ms,
        )

    stdout_buffer = bytearray()
    stderr_buffer = bytearray()
    overflowed: set[str] = set()
    overflow = asyncio.Event()

    async def _pump(stream: asyncio.StreamReader, buffer: bytearray, name: str) -> None:
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            remaining = max_output_bytes - len(buffer)
            if len(chunk) > remaining:
                buffer.extend(chunk[:max(remaining, 0)])
                overflowed.add(name)
                overflow.set()
                return
            buffer.extend(chunk)

    async def _communicate() -> None:
        await asyncio.gather(
            _pump(process.stdout, stdout_buffer, "stdout"),
            _pump(process.stderr, stderr_buffer, "stderr"),
        )
        await process.wait()

    communicate_task = asyncio.ensure_future(_communicate())
    overflow_task = asyncio.ensure_future(overflow.wait())
    done, pending = await asyncio.wait(
        {communicate_task, overflow_task},
        timeout=timeout_ms / 1000,
        return_when=asyncio.FIRST_COMPLETED,
    )
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)

    timed_out = False
    if overflow.is_set():
        await _kill(process)
        exit_code = OVERFLOW_EXIT_CODE
    elif communicate_task in done:
        communicate_task.result()
        exit_code = process.returncode
    else:
        await _kill(process)
        timed_out = True
        exit_code = TIMEOUT_EXIT_CODE

    stdout = stdout_buffer.decode("utf-8", errors="replace")
    stderr = stderr_buffer.decode("utf-8", errors="replace")

    if exit_code == OVERFLOW_EXIT_CODE:
        if "stdout" in overflowed:
            stdout += "\n... (truncated)"
        if "stderr" in overflowed:
            stderr += "\n... (truncated)"
        stderr += "\nOutput truncated due to buffer size limit"
    elif timed_out:
        stderr += f"\nCommand timed out after {timeout_ms}ms"

    duration_ms = _elapsed_ms(started)
    logger.bind(command=display, exit_code=exit_code, duration_ms=duration_ms).debug(
        f"Finished: {display} (exit {exit_code}, {duration_ms}ms)"
    )

    return ExecResult(
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        duration_ms=duration_ms,
        timed_out=timed_out,
        truncated=bool(overflowed),
    )


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class CommandExecutor:
    """
    Executes commands with shared defaults.

    Checks receive an executor instead of calling execute() directly so
    tests can substitute a scripted implementation.
    """

    def __init__(
        self,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    ):
        self.cwd = cwd
        self.env = dict(env) if env else None
        self.default_timeout_ms = default_timeout_ms
        self.max_output_bytes = max_output_bytes

    async def run(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        timeout_ms: Optional[int] = None,
        cwd: Optional[str] = None
    ) -> ExecResult:
        return await execute(
            command,
            args,
            cwd=cwd or self.cwd,
            env=self.env,
            timeout_ms=timeout_ms or self.default_timeout_ms,
            max_output_bytes=self.max_output_bytes,
        )
