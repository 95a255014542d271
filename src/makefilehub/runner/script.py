"""Shell script runner: help-text parsing, script-body parsing and execution."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from pathlib import Path

from makefilehub import executor
from makefilehub.errors import NoBackendDetected, SpawnFailed, TaskTimeout
from makefilehub.runner.base import (
    DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    combine_streams,
    contains_any,
    finalize_execution,
    run_probe,
    unique_by_name,
)
from makefilehub.runner.detect import find_script
from makefilehub.runner.models import (
    ExecutionOptions,
    ExecutionResult,
    RunnerKind,
    TaskDescriptor,
    normalize_script_name,
    task_names,
)

logger = logging.getLogger(__name__)

COMMANDS_SECTION_RE = re.compile(r"(?i)commands?:")
COMMAND_LINE_RE = re.compile(r"^\s{2,4}([a-zA-Z_][a-zA-Z0-9_-]*)(?:\s+(.*))?$")
TWO_COLUMN_RE = re.compile(r"^\s{2,4}([a-zA-Z_][a-zA-Z0-9_-]*)\s+[-:]?\s*(.*)$")
CASE_LABEL_RE = re.compile(r"""^\s*["']?([a-zA-Z_][a-zA-Z0-9_-]*)["']?\s*(?:\|[^)]*)?\)""")
FUNCTION_RE = re.compile(
    r"^\s*(?:function\s+([a-zA-Z_][a-zA-Z0-9_-]*)|([a-zA-Z_][a-zA-Z0-9_-]*)\s*\(\s*\))",
)
COMMENT_RE = re.compile(r"^\s*#\s*(.*)$")

COMMON_WORDS = frozenset(
    {
        "the",
        "and",
        "for",
        "with",
        "from",
        "into",
        "usage",
        "options",
        "arguments",
        "description",
        "example",
        "examples",
        "note",
        "notes",
        "see",
        "also",
        "more",
        "info",
    },
)
INTERNAL_FUNCTIONS = frozenset(
    {
        "main",
        "usage",
        "help",
        "error",
        "log",
        "debug",
        "info",
        "warn",
        "die",
        "abort",
        "exit",
        "cleanup",
        "setup",
        "init",
        "check",
    },
)
NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "Unknown command",
    "unknown command",
    "not a valid command",
    "Invalid command",
    "unrecognized command",
)


def parse_help_output(text: str) -> list[TaskDescriptor]:
    """Parse `--help` text: a `Commands:` section first, two-column lines otherwise."""

    tasks = _parse_commands_section(text)
    if not tasks:
        tasks = _parse_two_column_lines(text)
    return sorted(unique_by_name(tasks), key=lambda task: task.name)


def parse_script_body(text: str) -> list[TaskDescriptor]:
    """Collect case-branch labels and function definitions from a shell script."""

    lines = text.splitlines()
    tasks: list[TaskDescriptor] = []

    for index, line in enumerate(lines):
        case_label = CASE_LABEL_RE.match(line)
        if case_label is not None and case_label.group(1) != "help":
            tasks.append(
                TaskDescriptor(
                    name=case_label.group(1),
                    description=_preceding_comment(lines, index),
                ),
            )
            continue

        function = FUNCTION_RE.match(line)
        if function is None:
            continue
        name = function.group(1) or function.group(2)
        if name.startswith("_") or name in INTERNAL_FUNCTIONS:
            continue
        tasks.append(TaskDescriptor(name=name, description=_preceding_comment(lines, index)))

    return sorted(unique_by_name(tasks), key=lambda task: task.name)


def _parse_commands_section(text: str) -> list[TaskDescriptor]:
    tasks: list[TaskDescriptor] = []
    in_section = False
    for line in text.splitlines():
        if COMMANDS_SECTION_RE.search(line):
            in_section = True
            continue
        if not in_section:
            continue
        if not line.strip():
            if tasks:
                in_section = False
            continue
        if not line[0].isspace():
            in_section = False
            continue
        match = COMMAND_LINE_RE.match(line)
        if match is not None:
            description = (match.group(2) or "").strip()
            tasks.append(TaskDescriptor(name=match.group(1), description=description or None))
    return tasks


def _parse_two_column_lines(text: str) -> list[TaskDescriptor]:
    tasks: list[TaskDescriptor] = []
    for line in text.splitlines():
        if line.strip().startswith("-"):
            continue
        match = TWO_COLUMN_RE.match(line)
        if match is None or match.group(1).lower() in COMMON_WORDS:
            continue
        description = match.group(2).strip()
        if not description:
            continue
        tasks.append(TaskDescriptor(name=match.group(1), description=description))
    return tasks


def _preceding_comment(lines: list[str], index: int) -> str | None:
    if index == 0:
        return None
    previous = lines[index - 1]
    if previous.lstrip().startswith("#!"):
        return None
    match = COMMENT_RE.match(previous)
    if match is None:
        return None
    return match.group(1).strip() or None


class ScriptRunner:
    """Runner for project scripts such as `./run.sh <command>`."""

    def __init__(
        self,
        script: str = "./run.sh",
        *,
        shell: str = "bash",
        discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT_SECONDS,
    ) -> None:
        self._script = normalize_script_name(script)
        self._shell = shell
        self._discovery_timeout = discovery_timeout

    @property
    def name(self) -> str:
        return self._script

    @property
    def kind(self) -> RunnerKind:
        return RunnerKind.for_script(self._script)

    @property
    def shell(self) -> str:
        return self._shell

    async def list_tasks(self, directory: Path) -> list[TaskDescriptor]:
        script_path = find_script(directory, self._script)
        if script_path is None:
            raise NoBackendDetected(str(directory))

        try:
            probe = await run_probe(
                self._shell,
                [self._script, "--help"],
                directory,
                timeout=self._discovery_timeout,
            )
        except (SpawnFailed, TaskTimeout) as error:
            logger.debug("%s --help failed: %s, parsing script body", self._script, error)
        else:
            tasks = parse_help_output(combine_streams(probe))
            if tasks:
                return tasks
            logger.debug("No commands found via %s --help, parsing script body", self._script)

        try:
            return parse_script_body(script_path.read_text("utf-8", errors="replace"))
        except OSError as error:
            logger.warning("Failed to read %s: %s", script_path, error)
            return []

    async def run_task(
        self,
        directory: Path,
        task: str,
        options: ExecutionOptions,
    ) -> ExecutionResult:
        if find_script(directory, self._script) is None:
            raise NoBackendDetected(str(directory))

        result = await executor.execute(
            self._shell,
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
        args = [self._script, task, *options.positional_args]
        for key, value in options.args.items():
            args.append(f"--{key}" if value == "" else f"--{key}={value}")
        return args

    def build_command(self, task: str, options: ExecutionOptions) -> str:
        return executor.render_command(self._shell, self.build_args(task, options))

    async def task_exists(self, directory: Path, task: str) -> bool:
        return task in task_names(await self.list_tasks(directory))
