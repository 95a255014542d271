"""Domain models shared by detection, discovery and execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from makefilehub.config import DEFAULT_MAX_OUTPUT_SIZE


class BackendType(str, Enum):
    """Closed set of supported build backends."""

    MAKE = "make"
    JUST = "just"
    SCRIPT = "script"


@dataclass(frozen=True, slots=True)
class RunnerKind:
    """Backend identity; script kinds also carry the script path."""

    backend: BackendType
    script: str | None = None

    @classmethod
    def make(cls) -> RunnerKind:
        return cls(BackendType.MAKE)

    @classmethod
    def just(cls) -> RunnerKind:
        return cls(BackendType.JUST)

    @classmethod
    def for_script(cls, script: str) -> RunnerKind:
        return cls(BackendType.SCRIPT, normalize_script_name(script))

    @classmethod
    def parse(cls, value: str, *, default_script: str = "./run.sh") -> RunnerKind:
        """Parse `make`, `just`, `script`, `script:<path>` or a bare script path."""

        text = value.strip()
        lowered = text.lower()
        if lowered == BackendType.MAKE.value:
            return cls.make()
        if lowered == BackendType.JUST.value:
            return cls.just()
        if lowered == BackendType.SCRIPT.value:
            return cls.for_script(default_script)
        if lowered.startswith("script:"):
            return cls.for_script(text.split(":", 1)[1])
        if not text:
            raise ValueError("Runner name must not be empty.")
        return cls.for_script(text)

    @property
    def name(self) -> str:
        if self.backend is BackendType.SCRIPT:
            return self.script or ""
        return self.backend.value

    @property
    def filename(self) -> str:
        if self.backend is BackendType.MAKE:
            return "Makefile"
        if self.backend is BackendType.JUST:
            return "justfile"
        return self.script or ""

    def to_dict(self) -> dict[str, Any]:
        if self.backend is BackendType.SCRIPT:
            return {"type": "Script", "value": self.script}
        return {"type": self.backend.value.capitalize()}

    def __str__(self) -> str:
        if self.backend is BackendType.SCRIPT:
            return f"script:{self.script}"
        return self.backend.value


def normalize_script_name(script: str) -> str:
    """Render script candidates as `./name` so detection and execution agree."""

    cleaned = script.strip()
    if cleaned.startswith("./"):
        cleaned = cleaned[2:]
    if not cleaned:
        raise ValueError("Script name must not be empty.")
    if Path(cleaned).is_absolute():
        return cleaned
    return f"./{cleaned}"


@dataclass(slots=True)
class DetectionEvidence:
    """Marker files found while probing a directory."""

    makefile_path: str | None = None
    justfile_path: str | None = None
    scripts: list[str] = field(default_factory=list)

    @property
    def makefile(self) -> bool:
        return self.makefile_path is not None

    @property
    def justfile(self) -> bool:
        return self.justfile_path is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"makefile": self.makefile, "justfile": self.justfile}
        if self.makefile_path is not None:
            payload["makefile_path"] = self.makefile_path
        if self.justfile_path is not None:
            payload["justfile_path"] = self.justfile_path
        payload["scripts"] = list(self.scripts)
        return payload


@dataclass(slots=True)
class DetectionResult:
    """Outcome of a directory probe in priority order."""

    detected: RunnerKind | None = None
    available: list[RunnerKind] = field(default_factory=list)
    evidence: DetectionEvidence = field(default_factory=DetectionEvidence)

    def record(self, kind: RunnerKind) -> None:
        if kind in self.available:
            return
        self.available.append(kind)
        if self.detected is None:
            self.detected = kind

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.detected is not None:
            payload["detected"] = self.detected.to_dict()
        payload["available"] = [kind.to_dict() for kind in self.available]
        payload["files_found"] = self.evidence.to_dict()
        return payload


@dataclass(slots=True)
class TaskArgument:
    """One argument accepted by a task."""

    name: str
    required: bool = False
    default: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if self.default is not None:
            self.required = False

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "required": self.required}
        if self.default is not None:
            payload["default"] = self.default
        if self.description is not None:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class TaskDescriptor:
    """A discovered task with its optional description and arguments."""

    name: str
    description: str | None = None
    arguments: list[TaskArgument] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            payload["description"] = self.description
        if self.arguments:
            payload["arguments"] = [argument.to_dict() for argument in self.arguments]
        return payload


@dataclass(slots=True)
class ExecutionOptions:
    """Inputs for one task execution."""

    working_dir: Path | None = None
    args: dict[str, str] = field(default_factory=dict)
    positional_args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE


@dataclass(slots=True)
class ExecutionResult:
    """Captured outcome of a process that ran to completion.

    `exit_code` is `None` when the process was ended by a signal.
    """

    success: bool
    exit_code: int | None
    stdout: str
    stderr: str
    duration_seconds: float
    command: str = ""
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def duration_ms(self) -> int:
        return int(self.duration_seconds * 1000)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.exit_code is not None:
            payload["exit_code"] = self.exit_code
        payload.update(
            {
                "stdout": self.stdout,
                "stdout_truncated": self.stdout_truncated,
                "stderr": self.stderr,
                "stderr_truncated": self.stderr_truncated,
                "command": self.command,
                "duration_ms": self.duration_ms,
            },
        )
        return payload


def task_names(tasks: list[TaskDescriptor]) -> list[str]:
    return [task.name for task in tasks]
