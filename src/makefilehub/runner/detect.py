"""Build system detection from marker files."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Sequence
from pathlib import Path

from makefilehub.runner.models import (
    BackendType,
    DetectionResult,
    RunnerKind,
    normalize_script_name,
)

logger = logging.getLogger(__name__)

MAKEFILE_NAMES: tuple[str, ...] = ("Makefile", "makefile", "GNUmakefile")
JUSTFILE_NAMES: tuple[str, ...] = ("justfile", "Justfile", ".justfile")


def detect_runner(
    directory: Path,
    priority: Sequence[str],
    scripts: Sequence[str],
) -> DetectionResult:
    """Probe `directory` for each backend in `priority` order.

    The first backend with evidence becomes `detected`; every backend with
    evidence is listed in `available`. Missing evidence is not an error.
    """

    result = DetectionResult()
    for entry in priority:
        backend = entry.strip().lower()
        if backend == BackendType.MAKE.value:
            _check_makefile(directory, result)
        elif backend == BackendType.JUST.value:
            _check_justfile(directory, result)
        elif backend == BackendType.SCRIPT.value:
            _check_scripts(directory, scripts, result)
        else:
            logger.warning("Unknown runner type in priority list: %s", entry)
    return result


def is_runner_available(directory: Path, kind: RunnerKind) -> bool:
    """Check marker evidence for a single backend."""

    if kind.backend is BackendType.MAKE:
        return find_makefile(directory) is not None
    if kind.backend is BackendType.JUST:
        return find_justfile(directory) is not None
    return find_script(directory, kind.name) is not None


def find_makefile(directory: Path) -> Path | None:
    return _first_file(directory, MAKEFILE_NAMES)


def find_justfile(directory: Path) -> Path | None:
    return _first_file(directory, JUSTFILE_NAMES)


def find_script(directory: Path, script: str) -> Path | None:
    """Return the script path if it exists and, on POSIX, is executable."""

    name = script[2:] if script.startswith("./") else script
    path = directory / name
    if not path.is_file():
        return None
    if os.name == "posix" and not _is_executable(path):
        logger.debug("Script %s exists but is not executable", name)
        return None
    return path


def _check_makefile(directory: Path, result: DetectionResult) -> None:
    path = find_makefile(directory)
    if path is None:
        return
    result.evidence.makefile_path = path.name
    result.record(RunnerKind.make())


def _check_justfile(directory: Path, result: DetectionResult) -> None:
    path = find_justfile(directory)
    if path is None:
        return
    result.evidence.justfile_path = path.name
    result.record(RunnerKind.just())


def _check_scripts(directory: Path, scripts: Sequence[str], result: DetectionResult) -> None:
    for script in scripts:
        if find_script(directory, script) is None:
            continue
        script_name = normalize_script_name(script)
        if script_name in result.evidence.scripts:
            continue
        result.evidence.scripts.append(script_name)
        result.record(RunnerKind.for_script(script_name))


def _first_file(directory: Path, names: Sequence[str]) -> Path | None:
    try:
        entries = {entry.name for entry in directory.iterdir()}
    except OSError:
        return None
    for name in names:
        # Compare against real entries so case-insensitive filesystems report the actual name.
        if name in entries and (directory / name).is_file():
            return directory / name
    return None


def _is_executable(path: Path) -> bool:
    try:
        mode = path.stat().st_mode
    except OSError:
        return False
    return bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
