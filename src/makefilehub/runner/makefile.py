"""GNU Make runner: Makefile parsing, database fallback and execution."""

from __future__ import annotations

import logging
import re
from collections.abc import Collection
from dataclasses import replace
from pathlib import Path

from makefilehub import executor
from makefilehub.config import DEFAULT_BUILTIN_MAKE_VARS
from makefilehub.errors import NoBackendDetected, SpawnFailed, TaskTimeout
from makefilehub.runner.base import (
    DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    finalize_execution,
    run_probe,
)
from makefilehub.runner.detect import find_makefile
from makefilehub.runner.models import (
    ExecutionOptions,
    ExecutionResult,
    RunnerKind,
    TaskArgument,
    TaskDescriptor,
    task_names,
)

logger = logging.getLogger(__name__)

TARGET_RE = re.compile(r"^([a-zA-Z_][a-zA-Z0-9_-]*)\s*:")
DOC_COMMENT_RE = re.compile(r"^##\s*(.+)$")
TARGET_COMMENT_RE = re.compile(r"^#\s*([a-zA-Z_][a-zA-Z0-9_-]*)\s*:\s*(.+)$")
VARIABLE_REF_RE = re.compile(r"\$[({]([A-Z_][A-Z0-9_]*)[)}]")

ASSIGNMENT_OPERATORS: tuple[str, ...] = ("::=", ":=", "?=", "+=")
NO_RULE_TEMPLATE = r"No rule to make target [`'‘]{target}['’]\."


def parse_makefile(
    text: str,
    builtin_vars: Collection[str] = DEFAULT_BUILTIN_MAKE_VARS,
) -> list[TaskDescriptor]:
    """Extract targets, comment descriptions and recipe variables from a Makefile."""

    lines = text.splitlines()
    tasks: list[TaskDescriptor] = []
    seen: set[str] = set()

    for index, line in enumerate(lines):
        match = TARGET_RE.match(line)
        if match is None:
            continue
        if any(operator in line for operator in ASSIGNMENT_OPERATORS):
            continue
        name = match.group(1)
        if name in seen:
            continue
        seen.add(name)
        tasks.append(
            TaskDescriptor(
                name=name,
                description=_description_for(lines[index - 1], name) if index > 0 else None,
                arguments=_recipe_arguments(lines, index, builtin_vars),
            ),
        )

    return sorted(tasks, key=lambda task: task.name)


def parse_make_database(text: str) -> list[TaskDescriptor]:
    """Extract target names from `make -pRrq :` output."""

    names: set[str] = set()
    not_a_target = False
    for line in text.splitlines():
        if line.startswith("# Not a target"):
            not_a_target = True
            continue
        if not line or line.startswith(("#", "\t")):
            continue
        match = TARGET_RE.match(line)
        if match is not None and not not_a_target:
            if not any(operator in line for operator in ASSIGNMENT_OPERATORS):
                names.add(match.group(1))
        not_a_target = False

    return [TaskDescriptor(name=name) for name in sorted(names)]


def rejects_target(task: str, stderr: str) -> bool:
    """Whether make refused `task` itself.

    A missing prerequisite reads `No rule to make target 'x', needed by 'task'`
    and is an ordinary build failure, not an unknown target.
    """

    pattern = NO_RULE_TEMPLATE.format(target=re.escape(task))
    return re.search(pattern, stderr) is not None


def _description_for(previous_line: str, target: str) -> str | None:
    doc = DOC_COMMENT_RE.match(previous_line)
    if doc is not None:
        return doc.group(1).strip()
    named = TARGET_COMMENT_RE.match(previous_line)
    if named is not None and named.group(1) == target:
        return named.group(2).strip()
    return None


def _recipe_arguments(
    lines: list[str],
    target_index: int,
    builtin_vars: Collection[str],
) -> list[TaskArgument]:
    names: set[str] = set()
    for line in lines[target_index + 1 :]:
        if line and not line.startswith("\t"):
            break
        for match in VARIABLE_REF_RE.finditer(line):
            if match.group(1) not in builtin_vars:
                names.add(match.group(1))
    return [TaskArgument(name=name, required=False) for name in sorted(names)]


class MakeRunner:
    """Runner for GNU Make projects."""

    def __init__(
        self,
        command: str = "make",
        *,
        builtin_vars: Collection[str] = DEFAULT_BUILTIN_MAKE_VARS,
        discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    ) -> None:
        self._command = command
        self._builtin_vars = frozenset(builtin_vars)
        self._discovery_timeout = discovery_timeout

    @property
    def name(self) -> str:
        return "make"

    @property
    def kind(self) -> RunnerKind:
        return RunnerKind.make()

    @property
    def command(self) -> str:
        return self._command

    async def list_tasks(self, directory: Path) -> list[TaskDescriptor]:
        makefile = find_makefile(directory)
        if makefile is None:
            raise NoBackendDetected(str(directory))

        try:
            tasks = parse_makefile(
                makefile.read_text("utf-8", errors="replace"),
                self._builtin_vars,
            )
        except OSError as error:
            logger.warning("Failed to read %s: %s", makefile, error)
            tasks = []
        if tasks:
            return tasks

        logger.debug("No targets parsed from %s, querying make database", makefile)
        try:
            probe = await run_probe(
                self._command,
                ["-pRrq", ":"],
                directory,
                timeout=self._discovery_timeout,
            )
        except (SpawnFailed, TaskTimeout) as error:
            logger.debug("make database query failed: %s", error)
            return []
        return parse_make_database(probe.stdout)

    async def run_task(
        self,
        directory: Path,
        task: str,
        options: ExecutionOptions,
    ) -> ExecutionResult:
        if find_makefile(directory) is None:
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
            rejects_task=lambda stderr: rejects_target(task, stderr),
        )

    def build_args(self, task: str, options: ExecutionOptions) -> list[str]:
        args = [task]
        args.extend(f"{key}={value}" for key, value in options.args.items())
        if options.positional_args:
            args.append("--")
            args.extend(options.positional_args)
        return args

    def build_command(self, task: str, options: ExecutionOptions) -> str:
        return executor.render_command(self._command, self.build_args(task, options))

    async def task_exists(self, directory: Path, task: str) -> bool:
        return task in task_names(await self.list_tasks(directory))
