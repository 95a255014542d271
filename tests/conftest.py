"""Shared test fixtures."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest


def write_executable(path: Path, text: str) -> Path:
    path.write_text(text, "utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def write_fake_tool(bin_dir: Path, name: str, source: str) -> Path:
    """Install a Python-backed executable called `name` into `bin_dir`."""

    implementation = bin_dir / f"{name}_impl.py"
    implementation.write_text(source.strip() + "\n", "utf-8")
    if os.name == "nt":
        launcher = bin_dir / f"{name}.cmd"
        launcher.write_text(
            f'@echo off\r\n"{sys.executable}" "{implementation}" %*\r\n',
            "utf-8",
        )
        return launcher
    return write_executable(
        bin_dir / name,
        f'#!/usr/bin/env sh\nexec "{sys.executable}" "{implementation}" "$@"\n',
    )


@pytest.fixture()
def fake_bin(tmp_path: Path, monkeypatch) -> Callable[[str, str], Path]:
    """Return an installer for fake tools placed first on PATH."""

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def _install(name: str, source: str) -> Path:
        return write_fake_tool(bin_dir, name, source)

    return _install


@pytest.fixture()
def project_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "project"
    directory.mkdir()
    return directory


@pytest.fixture(autouse=True)
def _clear_makefilehub_env(monkeypatch) -> None:
    for name in list(os.environ):
        if name.startswith("MAKEFILEHUB_"):
            monkeypatch.delenv(name, raising=False)
