"""Caller-facing detection, listing and execution operations."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from makefilehub.config import Settings, SettingsHandle
from makefilehub.errors import ProjectNotFound
from makefilehub.runner.base import Runner
from makefilehub.runner.detect import detect_runner
from makefilehub.runner.factory import resolve_runner
from makefilehub.runner.models import (
    DetectionResult,
    ExecutionOptions,
    ExecutionResult,
    TaskDescriptor,
    task_names,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TaskListing:
    """Tasks discovered for one directory."""

    runner: str
    directory: Path
    tasks: list[TaskDescriptor] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "runner": self.runner,
            "project_dir": str(self.directory),
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(slots=True)
class RunRequest:
    """Inputs for one task execution request."""

    directory: Path
    task: str
    args: Mapping[str, str] = field(default_factory=dict)
    positional_args: Sequence[str] = ()
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    runner_name: str | None = None


class TaskService:
    """Resolve runners from the shared settings and delegate to them.

    Settings are read once per call from the handle, so a concurrent reload
    never changes the configuration in the middle of an operation.
    """

    def __init__(self, settings: SettingsHandle) -> None:
        self._settings = settings

    def detect(self, directory: Path) -> DetectionResult:
        resolved = _resolve_directory(directory)
        settings = self._settings.snapshot()
        return detect_runner(resolved, settings.runner_priority, settings.script.scripts)

    async def list_tasks(self, directory: Path, runner_name: str | None = None) -> TaskListing:
        resolved = _resolve_directory(directory)
        runner = resolve_runner(resolved, self._settings.snapshot(), runner_name)
        tasks = await runner.list_tasks(resolved)
        logger.debug("Discovered %d task(s) via %s in %s", len(tasks), runner.name, resolved)
        return TaskListing(runner=runner.name, directory=resolved, tasks=tasks)

    async def run_task(self, request: RunRequest) -> ExecutionResult:
        resolved = _resolve_directory(request.directory)
        settings = self._settings.snapshot()
        runner = resolve_runner(resolved, settings, request.runner_name)
        task = await _resolve_alias(runner, resolved, request.task, settings)

        options = ExecutionOptions(
            working_dir=resolved,
            args=dict(request.args),
            positional_args=list(request.positional_args),
            env=dict(request.env),
            timeout=_effective_timeout(request.timeout_seconds, settings),
            max_output_size=settings.max_output_size,
        )
        result = await runner.run_task(resolved, task, options)
        logger.info(
            "Ran %s: exit_code=%s duration=%.2fs",
            result.command,
            result.exit_code,
            result.duration_seconds,
        )
        return result


def _resolve_directory(directory: Path) -> Path:
    resolved = directory.expanduser()
    if not resolved.is_dir():
        raise ProjectNotFound(str(directory))
    return resolved.resolve()


def _effective_timeout(timeout_seconds: float | None, settings: Settings) -> float | None:
    if timeout_seconds is None:
        return settings.default_timeout
    if timeout_seconds <= 0:
        return None
    return timeout_seconds


async def _resolve_alias(runner: Runner, directory: Path, task: str, settings: Settings) -> str:
    aliases = settings.task_aliases.get(task)
    if not aliases:
        return task

    available = task_names(await runner.list_tasks(directory))
    for candidate in (task, *aliases):
        if candidate in available:
            if candidate != task:
                logger.debug("Task '%s' resolved to alias '%s'", task, candidate)
            return candidate
    return task
