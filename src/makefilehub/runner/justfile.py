"""just runner: JSON dump, `--list` and justfile parsing with ordered fallback."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from pathlib import Path
from typing import Any

from makefilehub import executor
from makefilehub.errors import NoBackendDetected, SpawnFailed, TaskTimeout
from makefilehub.runner.base import (
    DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    contains_any,
    finalize_execution,
    run_probe,
)
from makefilehub.runner.detect import find_justfile
from makefilehub.runner.models import (
    ExecutionOptions,
    ExecutionResult,
    RunnerKind,
    TaskArgument,
    TaskDescriptor,
    task_names,
)

logger = logging.getLogger(__name__)

LIST_LINE_RE = re.compile(r"^\s{4}([a-zA-Z_][a-zA-Z0-9_-]*)\s*([^#]*?)(?:\s*#\s*(.*))?$")
LIST_ARG_RE = re.compile(
    r"(?P<variadic>[+*]?)\$?(?P<name>[a-zA-Z_][a-zA-Z0-9_-]*)"
    r"""(?:=(?:'(?P<single>[^']*)'|"(?P<double>[^"]*)"|(?P<bare>[^\s'"]+)))?""",
)
RECIPE_HEADER_RE = re.compile(r"^@?([a-zA-Z_][a-zA-Z0-9_-]*)\s*([^:]*?):(?!=)")
COMMENT_RE = re.compile(r"^#\s*(.*)$")

VARIADIC_KINDS = frozenset({"plus", "star"})
ALIAS_PREFIX = "alias for "
NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "Justfile does not contain recipe",
    "Just was unable to find",
    "Unknown recipe",
)


def parse_just_dump(text: str) -> list[TaskDescriptor]:
    """Parse `just --dump --format json` output.

    Raises `ValueError` when the payload is not a just dump.
    """

    payload = json.loads(text)
    recipes = payload.get("recipes") if isinstance(payload, dict) else None
    if not isinstance(recipes, dict):
        raise ValueError("just dump has no recipes mapping")

    tasks: list[TaskDescriptor] = []
    for name, recipe in recipes.items():
        if not isinstance(recipe, dict) or recipe.get("private"):
            continue
        tasks.append(
            TaskDescriptor(
                name=name,
                description=recipe.get("doc") or None,
                arguments=[_dump_parameter(item) for item in recipe.get("parameters", [])],
            ),
        )
    return sorted(tasks, key=lambda task: task.name)


def parse_just_list(text: str) -> list[TaskDescriptor]:
    """Parse `just --list --unsorted` output.

    Expected shape::

        Available recipes:
            build target='release' # Build the project
            test                   # Run tests
    """

    tasks: list[TaskDescriptor] = []
    for line in text.splitlines():
        if line.startswith("Available") or not line.strip():
            continue
        match = LIST_LINE_RE.match(line)
        if match is None:
            continue
        description = (match.group(3) or "").strip()
        if description.startswith(ALIAS_PREFIX):
            continue
        tasks.append(
            TaskDescriptor(
                name=match.group(1),
                description=description or None,
                arguments=parse_list_arguments(match.group(2).strip()),
            ),
        )
    return tasks


def parse_list_arguments(text: str) -> list[TaskArgument]:
    """Parse a recipe parameter string such as `a b='x' +rest`."""

    arguments: list[TaskArgument] = []
    for match in LIST_ARG_RE.finditer(text):
        default = _first_present(
            match.group("single"),
            match.group("double"),
            match.group("bare"),
        )
        variadic = bool(match.group("variadic"))
        arguments.append(
            TaskArgument(
                name=match.group("name"),
                required=not variadic and default is None,
                default=default,
            ),
        )
    return arguments


def parse_justfile(text: str) -> list[TaskDescriptor]:
    """Parse recipe headers from a justfile, pairing each with the comment above it."""

    lines = text.splitlines()
    tasks: list[TaskDescriptor] = []
    seen: set[str] = set()

    for index, line in enumerate(lines):
        match = RECIPE_HEADER_RE.match(line)
        if match is None:
            continue
        name = match.group(1)
        if name in seen or name.startswith("_"):
            continue
        seen.add(name)
        tasks.append(
            TaskDescriptor(
                name=name,
                description=_preceding_comment(lines, index),
                arguments=parse_list_arguments(match.group(2).strip()),
            ),
        )

    return sorted(tasks, key=lambda task: task.name)


def _dump_parameter(parameter: dict[str, Any]) -> TaskArgument:
    default = parameter.get("default")
    if default is not None and not isinstance(default, str):
        default = json.dumps(default)
    kind = str(parameter.get("kind", "")).lower()
    return TaskArgument(
        name=str(parameter.get("name", "")),
        required=default is None and kind not in VARIADIC_KINDS,
        default=default,
    )


def _preceding_comment(lines: list[str], index: int) -> str | None:
    cursor = index - 1
    # Attribute lines like [group('ci')] sit between a doc comment and its recipe.
    while cursor >= 0 and lines[cursor].startswith("["):
        cursor -= 1
    if cursor < 0:
        return None
    match = COMMENT_RE.match(lines[cursor])
    if match is None or lines[cursor].startswith("#!"):
        return None
    return match.group(1).strip() or None


def _first_present(*values: str | None) -> str | None:
    for value in values:
        if value is not None:
            return value
    return None


class JustRunner:
    """Runner for just command runner projects."""

    def __init__(
        self,
        command: str = "just",
        *,
        discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    ) -> None:
        self._command = command
        self._discovery_timeout = discovery_timeout

    @property
    def name(self) -> str:
        return "just"

    @property
    def kind(self) -> RunnerKind:
        return RunnerKind.just()

    @property
    def command(self) -> str:
        return self._command

    async def list_tasks(self, directory: Path) -> list[TaskDescriptor]:
        justfile = find_justfile(directory)
        if justfile is None:
            raise NoBackendDetected(str(directory))

        try:
            tasks = await self._list_via_just(directory)
        except SpawnFailed as error:
            logger.debug("just is unavailable (%s), parsing %s directly", error.error, justfile)
            tasks = []
        if tasks:
            return tasks

        try:
            return parse_justfile(justfile.read_text("utf-8", errors="replace"))
        except OSError as error:
            logger.warning("Failed to read %s: %s", justfile, error)
            return []

    async def _list_via_just(self, directory: Path) -> list[TaskDescriptor]:
        try:
            dump = await run_probe(
                self._command,
                ["--dump", "--format", "json"],
                directory,
                timeout=self._discovery_timeout,
            )
        except TaskTimeout as error:
            logger.debug("just --dump timed out: %s", error)
        else:
            if dump.success:
                try:
                    tasks = parse_just_dump(dump.stdout)
                except ValueError as error:
                    logger.debug("Unreadable just dump, falling back to --list: %s", error)
                else:
                    if tasks:
                        return tasks
            else:
                logger.debug("just --dump failed with exit code %s", dump.exit_code)

        try:
            listing = await run_probe(
                self._command,
                ["--list", "--unsorted"],
                directory,
                timeout=self._discovery_timeout,
            )
        except TaskTimeout as error:
            logger.debug("just --list timed out: %s", error)
            return []
        if not listing.success:
            logger.debug("just --list failed with exit code %s", listing.exit_code)
            return []
        return parse_just_list(listing.stdout)

    async def run_task(
        self,
        directory: Path,
        task: str,
        options: ExecutionOptions,
    ) -> ExecutionResult:
        if find_justfile(directory) is None:
            raise NoBackendDetected(str(directory))

        result = await executor.execute(
            self._command,
            self.build_args(task, options),
            replace(options, working_dir=directory),
            command=self.build_command(task, options),
        )
        return await finalize_execution(
            self,
            directory,
            task,
            result,
            rejects_task=contains_any(NOT_FOUND_PATTERNS),
        )

    def build_args(self, task: str, options: ExecutionOptions) -> list[str]:
        args = [task]
        args.extend(f"{key}={value}" for key, value in options.args.items())
        args.extend(options.positional_args)
        return args

    def build_command(self, task: str, options: ExecutionOptions) -> str:
        return executor.render_command(self._command, self.build_args(task, options))

    async def task_exists(self, directory: Path, task: str) -> bool:
        return task in task_names(await self.list_tasks(directory))
