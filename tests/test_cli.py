from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from makefilehub import __version__
from makefilehub.main import makefilehub

pytestmark = [
    allure.epic("Build Systems"),
    allure.feature("CLI"),
]

MAKEFILE = """\
## Build the project
build:
\tcc -o app main.c $(TARGET)

test:
\t./run-tests
"""

FAKE_MAKE = """
import sys

args = sys.argv[1:]
task = args[0]
if task == "test":
    sys.stderr.write("1 failed\\n")
    sys.exit(1)
if task not in ("build",):
    sys.stderr.write(f"make: *** No rule to make target '{task}'.  Stop.\\n")
    sys.exit(2)
print("ran " + " ".join(args))
"""


@pytest.fixture()
def make_project(project_dir: Path, fake_bin) -> Path:
    fake_bin("make", FAKE_MAKE)
    (project_dir / "Makefile").write_text(MAKEFILE, "utf-8")
    return project_dir


def test_version_option() -> None:
    result = CliRunner().invoke(makefilehub, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_detect_json(make_project: Path) -> None:
    result = CliRunner().invoke(
        makefilehub,
        ["detect", "--project", str(make_project), "--format", "json"],
    )

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["detected"] == {"type": "Make"}
    assert payload["files_found"]["makefile_path"] == "Makefile"


def test_detect_table_for_empty_directory(project_dir: Path) -> None:
    result = CliRunner().invoke(makefilehub, ["detect", "-p", str(project_dir)])

    assert result.exit_code == 0
    assert "Detected: -" in result.output


def test_list_plain_and_table(make_project: Path) -> None:
    plain = CliRunner().invoke(makefilehub, ["list", "-p", str(make_project), "--format", "plain"])
    table = CliRunner().invoke(makefilehub, ["list", "-p", str(make_project)])

    assert plain.exit_code == 0
    assert plain.output.splitlines() == ["build", "test"]
    assert table.exit_code == 0
    assert "build  [TARGET?]  # Build the project" in table.output


def test_run_forwards_arguments(make_project: Path) -> None:
    result = CliRunner().invoke(
        makefilehub,
        ["run", "build", "-p", str(make_project), "--arg", "TARGET=release"],
    )

    assert result.exit_code == 0
    assert "ran build TARGET=release" in result.output
    assert "[ok] make build TARGET=release exit_code=0" in result.output


def test_run_failed_task_exits_non_zero(make_project: Path) -> None:
    result = CliRunner().invoke(makefilehub, ["run", "test", "-p", str(make_project)])

    assert result.exit_code != 0
    assert "1 failed" in result.output
    assert "Task 'test' failed." in result.output


def test_run_unknown_task_shows_suggestion(make_project: Path) -> None:
    result = CliRunner().invoke(
        makefilehub,
        ["run", "biuld", "-p", str(make_project), "--format", "json"],
    )

    assert result.exit_code != 0
    assert "Did you mean 'build'?" in result.output
    assert '"error_type": "task_not_found"' in result.output


def test_run_rejects_malformed_argument(make_project: Path) -> None:
    result = CliRunner().invoke(
        makefilehub,
        ["run", "build", "-p", str(make_project), "--arg", "=oops"],
    )

    assert result.exit_code != 0


def test_missing_project_is_reported(tmp_path: Path) -> None:
    result = CliRunner().invoke(makefilehub, ["list", "-p", str(tmp_path / "missing")])

    assert result.exit_code != 0
    assert "Project not found" in result.output


def test_invalid_environment_settings_are_reported(make_project: Path, monkeypatch) -> None:
    monkeypatch.setenv("MAKEFILEHUB_RUNNER_PRIORITY", "cargo")

    result = CliRunner().invoke(makefilehub, ["detect", "-p", str(make_project)])

    assert result.exit_code != 0
    assert "Configuration error" in result.output
