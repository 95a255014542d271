"""Async subprocess execution with deadlines and bounded output capture."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from makefilehub.errors import SpawnFailed, TaskTimeout
from makefilehub.runner.models import ExecutionOptions, ExecutionResult

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n... [output truncated] ...\n"

_DISCARD_CHUNK_SIZE = 64 * 1024
_REAP_TIMEOUT_SECONDS = 5.0


@dataclass(slots=True)
class _StreamCapture:
    text: str
    truncated: bool


@dataclass(slots=True)
class _ProcessCapture:
    exit_code: int | None
    stdout: _StreamCapture
    stderr: _StreamCapture


def render_command(program: str, args: Sequence[str]) -> str:
    """Join argv into a single display string."""

    return " ".join([program, *args])


async def execute(
    program: str,
    args: Sequence[str],
    options: ExecutionOptions,
    *,
    command: str | None = None,
) -> ExecutionResult:
    """Run `program` with `args` and capture its output.

    Raises `SpawnFailed` when the process cannot be created and `TaskTimeout`
    when `options.timeout` expires; on timeout the child is killed and all
    output captured so far is dropped. A non-zero exit is reported through
    `ExecutionResult.success`, not raised.
    """

    command_str = command or render_command(program, args)
    started = time.monotonic()
    logger.debug("Executing: %s", command_str)

    collect = _spawn_and_collect(
        program=program,
        args=list(args),
        options=options,
        command=command_str,
    )
    if options.timeout is None:
        capture = await collect
    else:
        try:
            capture = await asyncio.wait_for(collect, timeout=options.timeout)
        except TimeoutError:
            logger.debug("Timed out after %ss: %s", options.timeout, command_str)
            raise TaskTimeout(command_str, options.timeout) from None

    duration = time.monotonic() - started
    exit_code = capture.exit_code
    if exit_code is not None and exit_code < 0:
        logger.debug("%s was terminated by signal %d", command_str, -exit_code)
        exit_code = None
    return ExecutionResult(
        success=exit_code == 0,
        exit_code=exit_code,
        stdout=capture.stdout.text,
        stdout_truncated=capture.stdout.truncated,
        stderr=capture.stderr.text,
        stderr_truncated=capture.stderr.truncated,
        duration_seconds=duration,
        command=command_str,
    )


def execute_sync(
    program: str,
    args: Sequence[str],
    options: ExecutionOptions,
    *,
    command: str | None = None,
) -> ExecutionResult:
    """Blocking wrapper around `execute` for callers without an event loop."""

    return asyncio.run(execute(program, args, options, command=command))


async def execute_shell(shell: str, script: str, options: ExecutionOptions) -> ExecutionResult:
    """Run a shell snippet through `<shell> -c`."""

    return await execute(
        shell,
        ["-c", script],
        options,
        command=f"{shell} -c {shlex.quote(script)}",
    )


async def _spawn_and_collect(
    *,
    program: str,
    args: list[str],
    options: ExecutionOptions,
    command: str,
) -> _ProcessCapture:
    process = await _spawn(program=program, args=args, options=options, command=command)
    stdout_task = asyncio.create_task(_drain(process.stdout, options.max_output_size))
    stderr_task = asyncio.create_task(_drain(process.stderr, options.max_output_size))
    completed = False
    try:
        stdout, stderr, exit_code = await asyncio.gather(
            stdout_task,
            stderr_task,
            process.wait(),
        )
        completed = True
    finally:
        if not completed:
            await _reap(process)
            for task in (stdout_task, stderr_task):
                task.cancel()
            await asyncio.gather(stdout_task, stderr_task, return_exceptions=True)

    return _ProcessCapture(exit_code=exit_code, stdout=stdout, stderr=stderr)


async def _spawn(
    *,
    program: str,
    args: list[str],
    options: ExecutionOptions,
    command: str,
) -> asyncio.subprocess.Process:
    env = os.environ.copy()
    env.update(options.env)
    cwd: Path | None = options.working_dir

    spawn = asyncio.ensure_future(
        asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
            start_new_session=os.name == "posix",
        ),
    )
    try:
        # Process creation is not interrupted halfway; a late child is killed instead.
        return await asyncio.shield(spawn)
    except asyncio.CancelledError:
        spawn.add_done_callback(_kill_late_spawn)
        raise
    except OSError as error:
        raise SpawnFailed(command, str(error)) from error


def _kill_late_spawn(spawn: asyncio.Future[asyncio.subprocess.Process]) -> None:
    if spawn.cancelled() or spawn.exception() is not None:
        return
    _kill_process_group(spawn.result())


async def _reap(process: asyncio.subprocess.Process) -> None:
    _kill_process_group(process)
    if process.returncode is not None:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=_REAP_TIMEOUT_SECONDS)
    except TimeoutError:
        logger.warning("Process %s did not exit after SIGKILL", process.pid)


def _kill_process_group(process: asyncio.subprocess.Process) -> None:
    if os.name == "posix":
        try:
            # start_new_session makes the child its own process group leader.
            os.killpg(process.pid, signal.SIGKILL)
            return
        except ProcessLookupError:
            return
        except PermissionError:
            pass
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return


async def _drain(stream: asyncio.StreamReader | None, max_size: int) -> _StreamCapture:
    if stream is None:
        return _StreamCapture(text="", truncated=False)

    buffer = bytearray()
    truncated = False
    while True:
        line = await _read_line(stream)
        if not line:
            break
        if len(buffer) + len(line) > max_size:
            remaining = max(0, max_size - len(buffer))
            buffer.extend(line[:remaining])
            truncated = True
            break
        buffer.extend(line)

    if truncated:
        await _discard(stream)

    text = buffer.decode("utf-8", errors="replace")
    if truncated:
        text += TRUNCATION_MARKER
    return _StreamCapture(text=text, truncated=truncated)


async def _read_line(stream: asyncio.StreamReader) -> bytes:
    try:
        return await stream.readuntil(b"\n")
    except asyncio.IncompleteReadError as error:
        return error.partial
    except asyncio.LimitOverrunError as error:
        # Hand back the buffered part of an over-long line; the rest follows on the next read.
        return await stream.read(error.consumed)


async def _discard(stream: asyncio.StreamReader) -> None:
    # Keep the pipe empty so a chatty child is not blocked on write.
    while await stream.read(_DISCARD_CHUNK_SIZE):
        pass
