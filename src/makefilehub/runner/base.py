"""Runner interface and the execution policy shared by all backends."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Protocol

from makefilehub import executor
from makefilehub.errors import (
    TaskError,
    TaskNotFound,
    closest_task_suggestion,
    suggest_fix,
)
from makefilehub.runner.models import (
    ExecutionOptions,
    ExecutionResult,
    RunnerKind,
    TaskDescriptor,
    task_names,
)

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TIMEOUT_SECONDS = 30.0
PROBE_MAX_OUTPUT_SIZE = 4 * 1024 * 1024


class Runner(Protocol):
    """Protocol implemented by the make, just and script runners."""

    @property
    def name(self) -> str:
        """Display name: `make`, `just` or the script path."""

    @property
    def kind(self) -> RunnerKind:
        """Backend identity used by the factory."""

    async def list_tasks(self, directory: Path) -> list[TaskDescriptor]:
        """Discover tasks, falling back across strategies."""

    async def run_task(
        self,
        directory: Path,
        task: str,
        options: ExecutionOptions,
    ) -> ExecutionResult:
        """Execute one task and return its captured result."""

    def build_command(self, task: str, options: ExecutionOptions) -> str:
        """Render the command line for display without running it."""

    async def task_exists(self, directory: Path, task: str) -> bool:
        """Check whether discovery reports `task`."""


async def run_probe(
    program: str,
    args: Sequence[str],
    directory: Path,
    *,
    timeout: float,
) -> ExecutionResult:
    """Run a discovery command such as `just --dump` with a bounded deadline."""

    return await executor.execute(
        program,
        args,
        ExecutionOptions(
            working_dir=directory,
            timeout=timeout,
            max_output_size=PROBE_MAX_OUTPUT_SIZE,
        ),
    )


async def finalize_execution(
    runner: Runner,
    directory: Path,
    task: str,
    result: ExecutionResult,
    *,
    rejects_task: Callable[[str], bool],
) -> ExecutionResult:
    """Turn backend "unknown task" failures into `TaskNotFound`.

    Other failures stay results with `success=False` so callers can tell a
    failing task apart from one that could not run. `rejects_task` receives
    the captured stderr and reports whether the backend refused the task name.
    """

    if result.success:
        return result
    if not rejects_task(result.stderr):
        return result

    try:
        available = task_names(await runner.list_tasks(directory))
    except TaskError as error:
        logger.debug("Discovery after unknown task '%s' failed: %s", task, error)
        available = []

    raise TaskNotFound(
        task,
        available,
        runner=runner.name,
        command=result.command,
        stderr=result.stderr,
        suggestion=(
            closest_task_suggestion(task, available) or suggest_fix(result.command, result.stderr)
        ),
    )


def combine_streams(result: ExecutionResult) -> str:
    """Some scripts print usage to stderr, so help parsing reads both."""

    return f"{result.stdout}\n{result.stderr}"


def unique_by_name(tasks: list[TaskDescriptor]) -> list[TaskDescriptor]:
    seen: set[str] = set()
    unique: list[TaskDescriptor] = []
    for task in tasks:
        if task.name in seen:
            continue
        seen.add(task.name)
        unique.append(task)
    return unique


def contains_any(patterns: Sequence[str]) -> Callable[[str], bool]:
    """Build a `rejects_task` check that looks for any of `patterns` in stderr."""

    def _matches(stderr: str) -> bool:
        return any(pattern in stderr for pattern in patterns)

    return _matches
