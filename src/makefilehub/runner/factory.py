"""Runner selection from explicit names or directory detection."""

from __future__ import annotations

import logging
from pathlib import Path

from makefilehub.config import Settings
from makefilehub.errors import ConfigurationError, NoBackendDetected
from makefilehub.runner.base import Runner
from makefilehub.runner.detect import detect_runner
from makefilehub.runner.justfile import JustRunner
from makefilehub.runner.makefile import MakeRunner
from makefilehub.runner.models import BackendType, RunnerKind
from makefilehub.runner.script import ScriptRunner

logger = logging.getLogger(__name__)


def create_runner(kind: RunnerKind, settings: Settings) -> Runner:
    """Build the runner for `kind` wired with command overrides from `settings`."""

    discovery_timeout = float(settings.discovery_timeout_seconds)
    if kind.backend is BackendType.MAKE:
        return MakeRunner(
            settings.make.command,
            builtin_vars=settings.make.builtin_vars,
            discovery_timeout=discovery_timeout,
        )
    if kind.backend is BackendType.JUST:
        return JustRunner(settings.just.command, discovery_timeout=discovery_timeout)
    if kind.backend is BackendType.SCRIPT and kind.script:
        return ScriptRunner(
            kind.script,
            shell=settings.script.shell,
            discovery_timeout=discovery_timeout,
        )
    raise ConfigurationError(f"Unsupported runner: {kind}")


def resolve_runner(
    directory: Path,
    settings: Settings,
    runner_name: str | None = None,
) -> Runner:
    """Use the explicitly requested runner, otherwise the detected one."""

    if runner_name:
        try:
            kind = RunnerKind.parse(runner_name, default_script=settings.script.default_script)
        except ValueError as error:
            raise ConfigurationError(str(error)) from error
        return create_runner(kind, settings)

    detection = detect_runner(directory, settings.runner_priority, settings.script.scripts)
    if detection.detected is None:
        raise NoBackendDetected(str(directory), available=settings.runner_priority)
    logger.debug("Detected %s in %s", detection.detected, directory)
    return create_runner(detection.detected, settings)
