from __future__ import annotations

from pathlib import Path

import allure
import pytest
from conftest import write_executable

from makefilehub.config import JustSettings, MakeSettings, ScriptSettings, Settings
from makefilehub.errors import ConfigurationError, NoBackendDetected
from makefilehub.runner.factory import create_runner, resolve_runner
from makefilehub.runner.justfile import JustRunner
from makefilehub.runner.makefile import MakeRunner
from makefilehub.runner.models import BackendType, RunnerKind
from makefilehub.runner.script import ScriptRunner

pytestmark = [
    allure.epic("Build Systems"),
    allure.feature("Runner Selection"),
]


def test_create_runner_wires_settings_per_backend() -> None:
    settings = Settings(
        make=MakeSettings(command="gmake"),
        just=JustSettings(command="/opt/just"),
        script=ScriptSettings(shell="zsh"),
    )

    make = create_runner(RunnerKind.make(), settings)
    just = create_runner(RunnerKind.just(), settings)
    script = create_runner(RunnerKind.for_script("deploy.sh"), settings)

    assert isinstance(make, MakeRunner)
    assert make.command == "gmake"
    assert isinstance(just, JustRunner)
    assert just.command == "/opt/just"
    assert isinstance(script, ScriptRunner)
    assert script.name == "./deploy.sh"
    assert script.shell == "zsh"


def test_create_runner_rejects_script_kind_without_path() -> None:
    with pytest.raises(ConfigurationError):
        create_runner(RunnerKind(BackendType.SCRIPT), Settings())


def test_explicit_runner_name_wins_over_detection(project_dir: Path) -> None:
    (project_dir / "Makefile").write_text("build:\n", "utf-8")

    runner = resolve_runner(project_dir, Settings(), "just")

    assert isinstance(runner, JustRunner)


def test_script_runner_name_uses_default_script(project_dir: Path) -> None:
    settings = Settings(script=ScriptSettings(default_script="./dev.sh"))

    assert resolve_runner(project_dir, settings, "script").name == "./dev.sh"
    assert resolve_runner(project_dir, settings, "./build.sh").name == "./build.sh"


def test_blank_runner_name_is_a_configuration_error(project_dir: Path) -> None:
    with pytest.raises(ConfigurationError):
        resolve_runner(project_dir, Settings(), "   ")


def test_detection_picks_runner_by_priority(project_dir: Path) -> None:
    (project_dir / "Makefile").write_text("build:\n", "utf-8")
    write_executable(project_dir / "run.sh", "#!/bin/sh\n")

    assert isinstance(resolve_runner(project_dir, Settings()), MakeRunner)
    runner = resolve_runner(project_dir, Settings(runner_priority=("script", "make")))
    assert isinstance(runner, ScriptRunner)
    assert runner.kind == RunnerKind.for_script("./run.sh")


def test_no_evidence_raises_no_backend_detected(project_dir: Path) -> None:
    with pytest.raises(NoBackendDetected) as exc_info:
        resolve_runner(project_dir, Settings(runner_priority=("just", "make")))

    assert exc_info.value.available == ["just", "make"]
    assert exc_info.value.error_type == "no_runner_detected"
