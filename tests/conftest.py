"""Shared fixtures for the Flux test suite."""

import logging
import os
import stat
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from flux.config import FluxConfig
from flux.executor import ExecutionResult, ModuleStatus
from flux.errors import ModuleExecutionFailed
from flux.theme import console


def write_module(
    directory: Path, filename: str, body: str = "exit 0\n", executable: bool = True
) -> Path:
    """Create a bash module script and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text("#!/bin/bash\n" + body)
    mode = stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH
    if executable:
        mode |= stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
    os.chmod(path, mode)
    return path


class SpyRunner:
    """Stands in for ModuleRunner and records every module it is asked to run."""

    def __init__(self, failing: Sequence[str] = ()) -> None:
        self.failing = set(failing)
        self.calls: List[str] = []

    def run(self, name: str, args: Sequence[str] = ()) -> ExecutionResult:
        self.calls.append(name)
        if name in self.failing:
            return ExecutionResult(
                module=name,
                status=ModuleStatus.FAILED,
                exit_code=1,
                error=ModuleExecutionFailed(name, 1),
            )
        return ExecutionResult(module=name, status=ModuleStatus.COMPLETED, exit_code=0)


class ScriptedConfirm:
    """Answers confirmation prompts from a table of question prefixes."""

    def __init__(self, answers: Optional[Dict[str, bool]] = None) -> None:
        self.answers = answers or {}
        self.questions: List[str] = []

    def __call__(self, question: str, default: bool) -> bool:
        self.questions.append(question)
        for prefix, answer in self.answers.items():
            if question.startswith(prefix):
                return answer
        return default


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep Rich from wrapping table cells in captured output."""
    monkeypatch.setattr(console, "width", 200)


@pytest.fixture(autouse=True)
def reset_logger():
    yield
    logger = logging.getLogger("flux")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def flux_home(tmp_path, monkeypatch):
    """An isolated Flux home with modules/, legacy/ and config directories."""
    home = tmp_path / "flux"
    (home / "modules").mkdir(parents=True)
    (home / "legacy").mkdir()
    monkeypatch.setenv("FLUX_HOME", str(home))
    monkeypatch.setenv("FLUX_MODULES_DIR", str(home / "modules"))
    monkeypatch.setenv("FLUX_LEGACY_DIR", str(home / "legacy"))
    monkeypatch.setenv("FLUX_CONFIG_DIR", str(tmp_path / "config"))
    return home


@pytest.fixture
def config(flux_home, tmp_path):
    return FluxConfig(LOGFILE=str(tmp_path / "flux.log"))


@pytest.fixture
def config_file(flux_home, tmp_path):
    """A flux.conf that keeps the log inside the test directory."""
    path = tmp_path / "config" / "flux.conf"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f'LOG_LEVEL=1\nLOGFILE="{tmp_path / "flux.log"}"\n'
        "USE_COLORS=false\nMODULE_TIMEOUT=30\n"
    )
    return path
