"""Runtime configuration for detection, discovery and execution."""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


SUPPORTED_RUNNERS: tuple[str, ...] = ("make", "just", "script")
DEFAULT_MAX_OUTPUT_SIZE = 100_000

DEFAULT_BUILTIN_MAKE_VARS: frozenset[str] = frozenset(
    {
        "MAKE",
        "MAKEFLAGS",
        "MAKEFILES",
        "MAKELEVEL",
        "MAKECMDGOALS",
        "CURDIR",
        "SHELL",
        "PATH",
        "HOME",
        "USER",
        "CC",
        "CXX",
        "CFLAGS",
        "CXXFLAGS",
        "LDFLAGS",
        "AR",
        "RM",
        "ARFLAGS",
    },
)


@dataclass(slots=True)
class MakeSettings:
    """GNU Make backend settings."""

    command: str = "make"
    builtin_vars: frozenset[str] = DEFAULT_BUILTIN_MAKE_VARS


@dataclass(slots=True)
class JustSettings:
    """just backend settings."""

    command: str = "just"


@dataclass(slots=True)
class ScriptSettings:
    """Shell script backend settings."""

    scripts: tuple[str, ...] = ("./run.sh", "./build.sh", "./task.sh")
    default_script: str = "./run.sh"
    shell: str = "bash"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by backend."""

    runner_priority: tuple[str, ...] = SUPPORTED_RUNNERS
    timeout_seconds: int = 300
    discovery_timeout_seconds: int = 30
    max_output_size: int = DEFAULT_MAX_OUTPUT_SIZE
    task_aliases: dict[str, tuple[str, ...]] = field(default_factory=dict)
    make: MakeSettings = field(default_factory=MakeSettings)
    just: JustSettings = field(default_factory=JustSettings)
    script: ScriptSettings = field(default_factory=ScriptSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults matching a stock setup."""

        defaults = cls()
        builtin_extra = _env_list("MAKEFILEHUB_MAKE_BUILTIN_VARS")
        return cls(
            runner_priority=(
                _env_list("MAKEFILEHUB_RUNNER_PRIORITY") or defaults.runner_priority
            ),
            timeout_seconds=int(os.getenv("MAKEFILEHUB_TIMEOUT_SECONDS", "300")),
            discovery_timeout_seconds=int(
                os.getenv("MAKEFILEHUB_DISCOVERY_TIMEOUT_SECONDS", "30"),
            ),
            max_output_size=int(
                os.getenv("MAKEFILEHUB_MAX_OUTPUT_SIZE", str(DEFAULT_MAX_OUTPUT_SIZE)),
            ),
            task_aliases=_collect_task_aliases(),
            make=MakeSettings(
                command=os.getenv("MAKEFILEHUB_MAKE_COMMAND", "make"),
                builtin_vars=DEFAULT_BUILTIN_MAKE_VARS | frozenset(builtin_extra),
            ),
            just=JustSettings(command=os.getenv("MAKEFILEHUB_JUST_COMMAND", "just")),
            script=ScriptSettings(
                scripts=_env_list("MAKEFILEHUB_SCRIPTS") or defaults.script.scripts,
                default_script=os.getenv(
                    "MAKEFILEHUB_DEFAULT_SCRIPT",
                    defaults.script.default_script,
                ),
                shell=os.getenv("MAKEFILEHUB_SHELL", defaults.script.shell),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if settings cannot drive detection or execution."""

        if not self.runner_priority:
            raise ValueError("MAKEFILEHUB_RUNNER_PRIORITY must list at least one runner.")
        unknown = [name for name in self.runner_priority if name not in SUPPORTED_RUNNERS]
        if unknown:
            raise ValueError(
                f"Unknown runner(s) in MAKEFILEHUB_RUNNER_PRIORITY: {', '.join(unknown)}. "
                f"Supported: {', '.join(SUPPORTED_RUNNERS)}.",
            )
        if self.timeout_seconds < 0:
            raise ValueError("MAKEFILEHUB_TIMEOUT_SECONDS must be >= 0.")
        if self.discovery_timeout_seconds <= 0:
            raise ValueError("MAKEFILEHUB_DISCOVERY_TIMEOUT_SECONDS must be > 0.")
        if self.max_output_size <= 0:
            raise ValueError("MAKEFILEHUB_MAX_OUTPUT_SIZE must be a positive integer.")
        if not self.make.command.strip() or not self.just.command.strip():
            raise ValueError("Runner commands must not be empty.")
        if not self.script.shell.strip():
            raise ValueError("MAKEFILEHUB_SHELL must not be empty.")

    @property
    def default_timeout(self) -> float | None:
        if self.timeout_seconds == 0:
            return None
        return float(self.timeout_seconds)


class SettingsHandle:
    """Owned settings value guarded by a reader/writer lock.

    Many readers may hold the current settings at once; `replace` waits for
    active readers to leave and blocks new ones while it swaps the value.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read(self) -> Iterator[Settings]:
        with self._condition:
            while self._writing:
                self._condition.wait()
            self._readers += 1
        try:
            yield self._settings
        finally:
            with self._condition:
                self._readers -= 1
                if self._readers == 0:
                    self._condition.notify_all()

    def replace(self, settings: Settings) -> None:
        settings.validate()
        with self._condition:
            while self._writing:
                self._condition.wait()
            self._writing = True
            while self._readers:
                self._condition.wait()
            self._settings = settings
            self._writing = False
            self._condition.notify_all()

    def snapshot(self) -> Settings:
        with self.read() as settings:
            return settings


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return ()
    values: list[str] = []
    for part in raw.split(","):
        token = part.strip()
        if token and token not in values:
            values.append(token)
    return tuple(values)


def _collect_task_aliases() -> dict[str, tuple[str, ...]]:
    raw = os.getenv("MAKEFILEHUB_TASK_ALIASES", "").strip()
    if not raw:
        return {}

    aliases: dict[str, tuple[str, ...]] = {}
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        if "=" not in token:
            raise ValueError(
                "Invalid MAKEFILEHUB_TASK_ALIASES entry: "
                f"{token!r}. Expected format '<task>=<alias>|<alias>'.",
            )
        task, names_raw = token.split("=", 1)
        names = tuple(name.strip() for name in names_raw.split("|") if name.strip())
        if not task.strip() or not names:
            raise ValueError(f"Invalid MAKEFILEHUB_TASK_ALIASES entry: {token!r}.")
        aliases[task.strip()] = names
    return aliases
