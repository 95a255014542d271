"""Task error taxonomy and stderr-driven fix suggestions."""

from __future__ import annotations

import difflib
from collections.abc import Sequence
from typing import Any


class TaskError(RuntimeError):
    """Base error for detection, discovery and execution failures."""

    error_type = "task_error"

    def __init__(self, message: str, *, suggestion: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def to_details(self) -> dict[str, Any]:
        """Serialize error context for presentation layers."""

        details: dict[str, Any] = {"message": self.message, "error_type": self.error_type}
        if self.suggestion is not None:
            details["suggestion"] = self.suggestion
        return details


class ProjectNotFound(TaskError):
    error_type = "project_not_found"

    def __init__(self, path: str, *, suggestion: str | None = None) -> None:
        super().__init__(
            f"Project not found: {path}",
            suggestion=suggestion or "Check the project path exists and is a directory.",
        )
        self.path = path


class NoBackendDetected(TaskError):
    error_type = "no_runner_detected"

    def __init__(self, path: str, available: Sequence[str] = ()) -> None:
        super().__init__(
            f"No build system detected in {path}",
            suggestion="Add a Makefile, justfile, or run.sh to the project",
        )
        self.path = path
        self.available = list(available)

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        if self.available:
            details["available"] = list(self.available)
        return details


class TaskNotFound(TaskError):
    error_type = "task_not_found"

    def __init__(  # noqa: PLR0913
        self,
        task: str,
        available: Sequence[str],
        *,
        runner: str | None = None,
        command: str | None = None,
        stderr: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(f"Task '{task}' not found", suggestion=suggestion)
        self.task = task
        self.available = list(available)
        self.runner = runner
        self.command = command
        self.stderr = stderr

    def to_details(self) -> dict[str, Any]:
        details = super().to_details()
        if self.runner is not None:
            details["runner"] = self.runner
        if self.command is not None:
            details["command"] = self.command
        if self.stderr:
            details["stderr"] = self.stderr
        if self.available:
            details["available"] = list(self.available)
        return details


class SpawnFailed(TaskError):
    error_type = "spawn_failed"

    def __init__(self, command: str, error: str) -> None:
        super().__init__(
            f"Failed to spawn command: {command}",
            suggestion=f"Check if the command exists: {error}",
        )
        self.command = command
        self.error = error


class TaskTimeout(TaskError):
    error_type = "timeout"

    def __init__(self, command: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Command timed out after {timeout_seconds:g}s: {command}",
            suggestion="Try increasing the timeout or checking if the command hangs",
        )
        self.command = command
        self.timeout_seconds = timeout_seconds


class ConfigurationError(TaskError):
    error_type = "config_error"

    def __init__(self, message: str) -> None:
        super().__init__(
            f"Configuration error: {message}",
            suggestion="Check the MAKEFILEHUB_* environment settings",
        )


_DOCKER_HINTS: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("not running", "Cannot connect"),
        "Docker daemon is not running. Start Docker Desktop or the Docker service.",
    ),
    (
        ("No such container",),
        "Container not found. Try running 'up' first to start the services.",
    ),
    (
        ("port is already allocated",),
        "Port conflict. Stop the conflicting service or use a different port.",
    ),
)


def suggest_fix(command: str, stderr: str) -> str | None:
    """Return a hint for common failure patterns found in stderr."""

    if "docker" in stderr.lower():
        for patterns, hint in _DOCKER_HINTS:
            if any(pattern in stderr for pattern in patterns):
                return hint

    if "Permission denied" in stderr:
        return "Permission denied. Check file permissions or run with appropriate access."

    if "No rule to make target" in stderr:
        return "Target not found in Makefile. Run 'list' to see available targets."

    if "does not contain recipe" in stderr:
        return "Recipe not found in justfile. Run 'list' to see available recipes."

    if "command not found" in stderr or "not found" in stderr:
        head = command.split(maxsplit=1)[0] if command.strip() else ""
        if head.endswith("make"):
            return "'make' command not found. Install build-essential or make."
        if head.endswith("just"):
            return "'just' command not found. Install just: cargo install just"
        return "Required command not found. Check PATH and dependencies."

    if "No such file" in stderr:
        if ".sh" in command:
            return "Script not found. Verify the working directory is correct."
        return "File not found. Check the project path and file existence."

    return None


def closest_task_suggestion(task: str, available: Sequence[str]) -> str | None:
    matches = difflib.get_close_matches(task, list(available), n=1, cutoff=0.6)
    if not matches:
        return None
    return f"Did you mean '{matches[0]}'?"
