"""Build system runners: detection, task discovery and execution."""

from makefilehub.runner.base import Runner
from makefilehub.runner.detect import detect_runner, is_runner_available
from makefilehub.runner.factory import create_runner, resolve_runner
from makefilehub.runner.justfile import JustRunner
from makefilehub.runner.makefile import MakeRunner
from makefilehub.runner.models import (
    BackendType,
    DetectionEvidence,
    DetectionResult,
    ExecutionOptions,
    ExecutionResult,
    RunnerKind,
    TaskArgument,
    TaskDescriptor,
)
from makefilehub.runner.script import ScriptRunner

__all__ = [
    "BackendType",
    "DetectionEvidence",
    "DetectionResult",
    "ExecutionOptions",
    "ExecutionResult",
    "JustRunner",
    "MakeRunner",
    "Runner",
    "RunnerKind",
    "ScriptRunner",
    "TaskArgument",
    "TaskDescriptor",
    "create_runner",
    "detect_runner",
    "is_runner_available",
    "resolve_runner",
]
