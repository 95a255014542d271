from __future__ import annotations

import asyncio
import json
from pathlib import Path

import allure
import pytest

from makefilehub.errors import TaskNotFound
from makefilehub.runner.justfile import (
    JustRunner,
    parse_just_dump,
    parse_just_list,
    parse_justfile,
    parse_list_arguments,
)
from makefilehub.runner.models import ExecutionOptions, TaskArgument, TaskDescriptor

pytestmark = [
    allure.epic("Build Systems"),
    allure.feature("Just Runner"),
]

DUMP = {
    "recipes": {
        "deploy": {
            "doc": "Deploy the application",
            "name": "deploy",
            "parameters": [
                {"name": "env", "default": "prod", "kind": "singular"},
                {"name": "hosts", "default": None, "kind": "plus"},
            ],
            "private": False,
        },
        "build": {
            "doc": None,
            "name": "build",
            "parameters": [{"name": "target", "default": None, "kind": "singular"}],
            "private": False,
        },
        "_helper": {"doc": None, "name": "_helper", "parameters": [], "private": True},
    },
}

JUSTFILE = """\
set shell := ["bash", "-c"]

default_target := "release"

# Build the project
build target="release":
    cargo build --{{target}}

[group('ci')]
# Run tests
[no-cd]
test *args:
    cargo test {{args}}

_private:
    echo hidden

@deploy env +hosts:
    #!/usr/bin/env bash
    echo {{env}} {{hosts}}
"""

FAKE_JUST = """
import json
import os
import sys

DUMP = json.loads(os.environ.get("FAKE_JUST_DUMP", "{}"))
mode = os.environ.get("FAKE_JUST_MODE", "")
args = sys.argv[1:]
if args[:1] == ["--dump"]:
    if mode == "no-dump":
        sys.stderr.write("error: Found argument '--dump' which wasn't expected\\n")
        sys.exit(2)
    print(json.dumps(DUMP))
    sys.exit(0)
if args[:1] == ["--list"]:
    print("Available recipes:")
    print("    build target='release' # Build it")
    print("    lint")
    sys.exit(0)
task = args[0]
if task == "deplyo":
    sys.stderr.write("error: Justfile does not contain recipe `deplyo`.\\n")
    sys.exit(1)
print(json.dumps(args))
"""


@pytest.fixture()
def fake_just(fake_bin, monkeypatch, project_dir: Path) -> None:
    fake_bin("just", FAKE_JUST)
    monkeypatch.setenv("FAKE_JUST_DUMP", json.dumps(DUMP))
    (project_dir / "justfile").write_text(JUSTFILE, "utf-8")


def test_parse_just_dump_reads_parameters_and_skips_private_recipes() -> None:
    tasks = parse_just_dump(json.dumps(DUMP))

    assert tasks == [
        TaskDescriptor(name="build", arguments=[TaskArgument(name="target", required=True)]),
        TaskDescriptor(
            name="deploy",
            description="Deploy the application",
            arguments=[
                TaskArgument(name="env", required=False, default="prod"),
                TaskArgument(name="hosts", required=False),
            ],
        ),
    ]


def test_parse_just_dump_rejects_other_payloads() -> None:
    with pytest.raises(ValueError):
        parse_just_dump(json.dumps(["build"]))
    with pytest.raises(ValueError):
        parse_just_dump("not json")


def test_parse_just_list_reads_arguments_and_comments() -> None:
    text = "\n".join(
        [
            "Available recipes:",
            "    build target='release' # Build the project",
            "    test                   # Run tests",
            '    deploy env="prod" +hosts',
        ],
    )

    assert parse_just_list(text) == [
        TaskDescriptor(
            name="build",
            description="Build the project",
            arguments=[TaskArgument(name="target", default="release")],
        ),
        TaskDescriptor(name="test", description="Run tests"),
        TaskDescriptor(
            name="deploy",
            arguments=[TaskArgument(name="env", default="prod"), TaskArgument(name="hosts")],
        ),
    ]


def test_parse_just_list_skips_alias_lines() -> None:
    text = "Available recipes:\n    build # Build the project\n    b     # alias for `build`\n"

    assert parse_just_list(text) == [TaskDescriptor(name="build", description="Build the project")]


def test_parse_list_arguments_handles_variadic_and_exported_parameters() -> None:
    assert parse_list_arguments("a $b='x' *rest") == [
        TaskArgument(name="a", required=True),
        TaskArgument(name="b", default="x"),
        TaskArgument(name="rest", required=False),
    ]


def test_parse_justfile_reads_recipes_comments_and_parameters() -> None:
    assert parse_justfile(JUSTFILE) == [
        TaskDescriptor(
            name="build",
            description="Build the project",
            arguments=[TaskArgument(name="target", default="release")],
        ),
        TaskDescriptor(
            name="deploy",
            arguments=[
                TaskArgument(name="env", required=True),
                TaskArgument(name="hosts", required=False),
            ],
        ),
        TaskDescriptor(
            name="test",
            description="Run tests",
            arguments=[TaskArgument(name="args", required=False)],
        ),
    ]


def test_list_tasks_prefers_json_dump(fake_just, project_dir: Path) -> None:
    tasks = asyncio.run(JustRunner().list_tasks(project_dir))

    deploy = next(task for task in tasks if task.name == "deploy")
    env = deploy.arguments[0]
    assert env.name == "env"
    assert env.default == "prod"
    assert env.required is False


def test_list_tasks_falls_back_to_list_output(fake_just, monkeypatch, project_dir: Path) -> None:
    monkeypatch.setenv("FAKE_JUST_MODE", "no-dump")

    tasks = asyncio.run(JustRunner().list_tasks(project_dir))

    assert [task.name for task in tasks] == ["build", "lint"]
    assert tasks[0].description == "Build it"


def test_list_tasks_parses_justfile_when_just_is_missing(project_dir: Path) -> None:
    (project_dir / "justfile").write_text(JUSTFILE, "utf-8")

    tasks = asyncio.run(JustRunner("makefilehub-missing-just").list_tasks(project_dir))

    assert [task.name for task in tasks] == ["build", "deploy", "test"]


def test_run_task_passes_named_then_positional_arguments(fake_just, project_dir: Path) -> None:
    runner = JustRunner()
    options = ExecutionOptions(args={"env": "staging"}, positional_args=["web1"], timeout=30)

    result = asyncio.run(runner.run_task(project_dir, "deploy", options))

    assert result.success is True
    assert json.loads(result.stdout) == ["deploy", "env=staging", "web1"]
    assert runner.build_command("deploy", options) == "just deploy env=staging web1"


def test_unknown_recipe_raises_task_not_found(fake_just, project_dir: Path) -> None:
    with pytest.raises(TaskNotFound) as exc_info:
        asyncio.run(JustRunner().run_task(project_dir, "deplyo", ExecutionOptions()))

    assert exc_info.value.available == ["build", "deploy"]
    assert exc_info.value.suggestion == "Did you mean 'deploy'?"
    assert exc_info.value.runner == "just"
