"""
Module execution.

ModuleExecutor runs one resolved module as a child process; ModuleRunner
adds name lookup on top and turns every framework error into an
ExecutionResult so callers never have to catch them.
"""

import logging
import os
import signal
import stat
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence

from flux.config import FluxConfig, merge_environment
from flux.errors import (
    FluxError,
    ModuleExecutionFailed,
    ModulePermissionError,
    ModuleSyntaxInvalid,
    ModuleTimeout,
)
from flux.modules import ModuleDescriptor, ModuleRegistry, ModuleResolver

logger = logging.getLogger("flux")

# Seconds between SIGTERM and SIGKILL for a module that outlived its timeout
TERMINATE_GRACE: float = 5.0
SYNTAX_CHECK_TIMEOUT: int = 30
# Same convention as coreutils timeout(1)
TIMEOUT_EXIT_CODE: int = 124
CANNOT_EXECUTE_EXIT_CODE: int = 126


class ModuleStatus(Enum):
    """Lifecycle of a module within one run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ExecutionResult:
    """Outcome of running (or skipping) one module."""

    module: str
    status: ModuleStatus = ModuleStatus.PENDING
    exit_code: Optional[int] = None
    duration: float = 0.0
    error: Optional[FluxError] = None

    @property
    def ok(self) -> bool:
        return self.status == ModuleStatus.COMPLETED

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        if self.status == ModuleStatus.COMPLETED:
            return f"Completed in {self.duration:.2f}s"
        return self.status.value.capitalize()


def exit_code_for(error: FluxError) -> int:
    """Process exit code reported for a failed module."""
    if isinstance(error, ModuleExecutionFailed):
        return error.exit_code
    if isinstance(error, ModuleTimeout):
        return TIMEOUT_EXIT_CODE
    if isinstance(error, ModulePermissionError):
        return CANNOT_EXECUTE_EXIT_CODE
    return 1


class ModuleExecutor:
    """Runs module scripts as child processes."""

    def __init__(
        self,
        timeout: float = 0,
        env: Optional[Mapping[str, str]] = None,
        syntax_check: bool = True,
        fix_permissions: bool = True,
        grace: float = TERMINATE_GRACE,
    ) -> None:
        self.timeout = timeout
        self.env: Optional[Dict[str, str]] = dict(env) if env is not None else None
        self.syntax_check = syntax_check
        self.fix_permissions = fix_permissions
        self.grace = grace

    @classmethod
    def from_config(cls, config: FluxConfig) -> "ModuleExecutor":
        return cls(timeout=config.MODULE_TIMEOUT, env=merge_environment(config))

    def ensure_executable(self, module: ModuleDescriptor) -> None:
        if module.is_executable:
            return
        logger.debug(f"Making module executable: {module.path}")
        try:
            mode = os.stat(module.path).st_mode
            os.chmod(module.path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError:
            raise ModulePermissionError(module.name, module.path)

    def check_syntax(self, module: ModuleDescriptor) -> None:
        """Parse shell modules with ``bash -n`` without running them."""
        if module.path.suffix != ".sh":
            return
        try:
            result = subprocess.run(
                ["bash", "-n", str(module.path)],
                capture_output=True,
                text=True,
                timeout=SYNTAX_CHECK_TIMEOUT,
            )
        except FileNotFoundError:
            logger.warning("bash not found; skipping syntax check")
            return
        except subprocess.TimeoutExpired:
            raise ModuleSyntaxInvalid(module.name, "syntax check timed out")
        if result.returncode != 0:
            details = (result.stderr or "").strip()
            if details:
                logger.debug(details)
            raise ModuleSyntaxInvalid(module.name, details)

    def _signal_group(self, process: subprocess.Popen, sig: int) -> None:
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            pass  # group already gone

    def _stop(self, process: subprocess.Popen) -> None:
        """Stop the module's process group, with SIGKILL after ``grace``."""
        self._signal_group(process, signal.SIGTERM)
        try:
            process.wait(timeout=self.grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} ignored SIGTERM; killing it")
        # children may outlive the module's own process
        self._signal_group(process, signal.SIGKILL)
        process.wait()

    def execute(self, module: ModuleDescriptor, args: Sequence[str] = ()) -> int:
        """
        Run ``module`` with ``args`` and return its exit code (always 0).

        Raises ModulePermissionError, ModuleSyntaxInvalid, ModuleTimeout or
        ModuleExecutionFailed.
        """
        if self.fix_permissions:
            self.ensure_executable(module)
        if self.syntax_check:
            self.check_syntax(module)

        cmd: List[str] = [str(module.path), *args]
        timeout = self.timeout if self.timeout and self.timeout > 0 else None
        logger.debug(f"Running command: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(cmd, env=self.env, start_new_session=True)
        except OSError as e:
            logger.error(f"Cannot execute {module.path}: {e}")
            raise ModuleExecutionFailed(module.name, CANNOT_EXECUTE_EXIT_CODE)

        try:
            exit_code = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            self._stop(process)
            raise ModuleTimeout(module.name, timeout)
        except KeyboardInterrupt:
            self._stop(process)
            raise

        if exit_code != 0:
            raise ModuleExecutionFailed(module.name, exit_code)
        return exit_code


class ModuleRunner:
    """Looks modules up by name and executes them, returning typed results."""

    def __init__(self, registry: ModuleRegistry, executor: ModuleExecutor) -> None:
        self.registry = registry
        self.executor = executor

    @classmethod
    def from_config(cls, config: FluxConfig) -> "ModuleRunner":
        registry = ModuleRegistry(ModuleResolver.from_config(config))
        return cls(registry, ModuleExecutor.from_config(config))

    def run(self, name: str, args: Sequence[str] = ()) -> ExecutionResult:
        result = ExecutionResult(module=name, status=ModuleStatus.RUNNING)
        start = time.time()
        try:
            module = self.registry.get(name)
            logger.info(f"Loading module: {name}")
            logger.debug(f"Module path: {module.path}")
            logger.debug(f"Module args: {' '.join(args) or 'none'}")
            result.exit_code = self.executor.execute(module, args)
            result.status = ModuleStatus.COMPLETED
            logger.info(f"✓ Module {name} completed successfully")
        except FluxError as e:
            result.status = ModuleStatus.FAILED
            result.error = e
            result.exit_code = exit_code_for(e)
            logger.error(str(e))
            searched = getattr(e, "searched", None)
            if searched:
                logger.info("Searched locations:")
                for path in searched:
                    logger.info(f"  - {path}")
        finally:
            result.duration = time.time() - start
        return result
