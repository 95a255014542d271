"""CLI controllers: translate click input into service calls and output lines."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from makefilehub.config import Settings, SettingsHandle
from makefilehub.errors import ConfigurationError, TaskError
from makefilehub.runner.models import DetectionResult, ExecutionResult, TaskArgument
from makefilehub.service import RunRequest, TaskListing, TaskService

OUTPUT_FORMATS = ("table", "json", "plain")


@dataclass(slots=True)
class DetectCommand:
    """CLI input for build system detection."""

    project_dir: Path
    output_format: str = "table"


@dataclass(slots=True)
class ListCommand:
    """CLI input for task discovery."""

    project_dir: Path
    runner: str | None = None
    output_format: str = "table"


@dataclass(slots=True)
class RunCommand:
    """CLI input for running one task."""

    project_dir: Path
    task: str
    args: dict[str, str] = field(default_factory=dict)
    positional_args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None
    runner: str | None = None
    output_format: str = "table"


@dataclass(slots=True)
class CommandOutcome:
    """Rendered lines plus whether the command succeeded."""

    lines: list[str]
    success: bool
    error: str | None = None


class TaskCliController:
    """Coordinates detection, listing and execution CLI operations."""

    def __init__(self, settings: SettingsHandle | None = None) -> None:
        self._settings = settings

    def _service(self) -> TaskService:
        if self._settings is not None:
            return TaskService(self._settings)
        try:
            settings = Settings.from_env()
            settings.validate()
        except ValueError as error:
            raise ConfigurationError(str(error)) from error
        return TaskService(SettingsHandle(settings))

    def detect(self, command: DetectCommand) -> CommandOutcome:
        try:
            detection = self._service().detect(command.project_dir)
        except TaskError as error:
            return _error_outcome(error, command.output_format)
        return CommandOutcome(
            lines=render_detection(detection, command.output_format),
            success=True,
        )

    def list_tasks(self, command: ListCommand) -> CommandOutcome:
        try:
            listing = asyncio.run(
                self._service().list_tasks(command.project_dir, runner_name=command.runner),
            )
        except TaskError as error:
            return _error_outcome(error, command.output_format)
        return CommandOutcome(
            lines=render_listing(listing, command.output_format),
            success=True,
        )

    def run_task(self, command: RunCommand) -> CommandOutcome:
        request = RunRequest(
            directory=command.project_dir,
            task=command.task,
            args=command.args,
            positional_args=command.positional_args,
            env=command.env,
            timeout_seconds=command.timeout_seconds,
            runner_name=command.runner,
        )
        try:
            result = asyncio.run(self._service().run_task(request))
        except TaskError as error:
            return _error_outcome(error, command.output_format)
        return CommandOutcome(
            lines=render_result(result, command.output_format),
            success=result.success,
            error=None if result.success else f"Task '{command.task}' failed.",
        )


def render_detection(detection: DetectionResult, output_format: str) -> list[str]:
    if output_format == "json":
        return [json.dumps(detection.to_dict(), indent=2, ensure_ascii=False)]
    if output_format == "plain":
        return [str(detection.detected) if detection.detected else ""]

    evidence = detection.evidence
    return [
        f"Detected: {detection.detected or '-'}",
        f"Available: {', '.join(str(kind) for kind in detection.available) or '-'}",
        f"Makefile: {evidence.makefile_path or '-'}",
        f"Justfile: {evidence.justfile_path or '-'}",
        f"Scripts: {', '.join(evidence.scripts) or '-'}",
    ]


def render_listing(listing: TaskListing, output_format: str) -> list[str]:
    if output_format == "json":
        return [json.dumps(listing.to_dict(), indent=2, ensure_ascii=False)]
    if output_format == "plain":
        return [task.name for task in listing.tasks]

    lines = [f"Tasks ({listing.runner}, {len(listing.tasks)} found in {listing.directory}):"]
    width = max((len(task.name) for task in listing.tasks), default=0)
    for task in listing.tasks:
        row = f"  {task.name.ljust(width)}"
        if task.arguments:
            labels = " ".join(_argument_label(argument) for argument in task.arguments)
            row += f"  [{labels}]"
        if task.description:
            row += f"  # {task.description}"
        lines.append(row.rstrip())
    return lines


def render_result(result: ExecutionResult, output_format: str) -> list[str]:
    if output_format == "json":
        return [json.dumps(result.to_dict(), indent=2, ensure_ascii=False)]

    lines: list[str] = []
    if result.stdout:
        lines.append(result.stdout.rstrip("\n"))
    if result.stderr:
        lines.append(result.stderr.rstrip("\n"))
    if output_format == "plain":
        return lines

    status = "ok" if result.success else "failed"
    lines.append(
        f"[{status}] {result.command} exit_code={result.exit_code} "
        f"duration_ms={result.duration_ms}",
    )
    return lines


def parse_assignments(values: tuple[str, ...], *, option: str) -> dict[str, str]:
    """Parse repeated `KEY=VALUE` options; `KEY` alone maps to an empty value."""

    assignments: dict[str, str] = {}
    for value in values:
        key, _, assigned = value.partition("=")
        if not key.strip():
            raise ValueError(f"Invalid {option} value: {value!r} (expected KEY=VALUE)")
        assignments[key.strip()] = assigned
    return assignments


def _argument_label(argument: TaskArgument) -> str:
    if argument.default is not None:
        return f"{argument.name}={argument.default}"
    return argument.name if argument.required else f"{argument.name}?"


def _error_outcome(error: TaskError, output_format: str) -> CommandOutcome:
    details: Mapping[str, object] = error.to_details()
    if output_format == "json":
        lines = [json.dumps({"error": details}, indent=2, ensure_ascii=False)]
    else:
        lines = []
    message = error.message
    if error.suggestion:
        message = f"{message}\nSuggestion: {error.suggestion}"
    return CommandOutcome(lines=lines, success=False, error=message)
