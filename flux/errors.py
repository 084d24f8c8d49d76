"""Exception classes raised by the Flux framework."""

from pathlib import Path
from typing import Iterable, List, Optional


class FluxError(Exception):
    """Base exception for all framework errors."""

    pass


class ConfigError(FluxError):
    """Raised when configuration cannot be read, validated or written."""

    pass


class ModuleError(FluxError):
    """Base class for errors tied to a single module."""

    def __init__(self, module: str, message: str) -> None:
        super().__init__(message)
        self.module = module


class ModuleNotFound(ModuleError):
    """No candidate path for the module name exists."""

    def __init__(self, module: str, searched: Iterable[Path] = ()) -> None:
        self.searched: List[Path] = list(searched)
        super().__init__(module, f"Module not found: {module}")


class ModuleSyntaxInvalid(ModuleError):
    """The syntax pre-check of the module failed."""

    def __init__(self, module: str, details: str = "") -> None:
        self.details = details
        super().__init__(module, f"Module has syntax errors: {module}")


class ModulePermissionError(ModuleError):
    """The module is not executable and could not be made executable."""

    def __init__(self, module: str, path: Path) -> None:
        self.path = path
        super().__init__(
            module, f"Failed to make module executable (permission denied): {path}"
        )


class ModuleTimeout(ModuleError):
    def __init__(self, module: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(module, f"Module {module} timed out after {timeout:g}s")


class ModuleExecutionFailed(ModuleError):
    def __init__(self, module: str, exit_code: int) -> None:
        self.exit_code = exit_code
        super().__init__(
            module, f"Module {module} failed with exit code: {exit_code}"
        )


class UnknownWorkflow(FluxError):
    """The requested workflow is not in the workflow table."""

    def __init__(self, name: str, valid: Optional[Iterable[str]] = None) -> None:
        self.name = name
        self.valid: List[str] = sorted(valid or [])
        message = f"Unknown workflow: {name}"
        if self.valid:
            message += f" (available: {', '.join(self.valid)})"
        super().__init__(message)
