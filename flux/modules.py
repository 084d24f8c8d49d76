"""
Module discovery and resolution.

A module is a standalone script named ``flux-<name>-module.sh`` living in the
modules directory or the Flux home directory. Legacy scripts named
``<name>.sh`` are still found by name but are not listed.
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from flux.config import FluxConfig
from flux.errors import ModuleNotFound

logger = logging.getLogger("flux")

MODULE_PREFIX: str = "flux-"
MODULE_SUFFIX: str = "-module.sh"
DEFAULT_DESCRIPTION: str = "No description available"
DEFAULT_VERSION: str = "Unknown"
HEADER_LINES: int = 30

_DESCRIPTION_RE = re.compile(r"^# .* - (.+)$")
_VERSION_RE = re.compile(r"^# Version: (.+)$")


@dataclass(frozen=True)
class ModuleDescriptor:
    """A module located on disk."""

    name: str
    path: Path
    description: str = DEFAULT_DESCRIPTION
    version: str = DEFAULT_VERSION

    @property
    def is_executable(self) -> bool:
        return os.access(str(self.path), os.X_OK)

    @classmethod
    def from_path(cls, name: str, path: Path) -> "ModuleDescriptor":
        description, version = parse_module_header(path)
        return cls(name=name, path=path, description=description, version=version)


def parse_module_header(path: Path) -> Tuple[str, str]:
    """
    Read the description and version from a module's leading comments.

    The description comes from the first ``# <file> - <text>`` line and the
    version from ``# Version: <x>``. Missing values get placeholders.
    """
    description = DEFAULT_DESCRIPTION
    version = DEFAULT_VERSION
    try:
        with open(path, "r", errors="replace") as f:
            for i, line in enumerate(f):
                if i >= HEADER_LINES:
                    break
                line = line.rstrip("\n")
                if description == DEFAULT_DESCRIPTION:
                    match = _DESCRIPTION_RE.match(line)
                    if match:
                        description = match.group(1).strip()
                        continue
                if version == DEFAULT_VERSION:
                    match = _VERSION_RE.match(line)
                    if match:
                        version = match.group(1).strip()
    except OSError as e:
        logger.debug(f"Cannot read module header {path}: {e}")
    return description, version


def module_name_from_filename(filename: str) -> Optional[str]:
    """``flux-ssh-module.sh`` -> ``ssh``; None for non-module files."""
    if not filename.startswith(MODULE_PREFIX) or not filename.endswith(MODULE_SUFFIX):
        return None
    name = filename[len(MODULE_PREFIX):-len(MODULE_SUFFIX)]
    return name or None


def _is_readable_file(path: Path) -> bool:
    return path.is_file() and os.access(str(path), os.R_OK)


class ModuleResolver:
    """Maps module names to script paths using the configured directories."""

    def __init__(
        self,
        modules_dir: Path,
        home_dir: Path,
        legacy_dir: Optional[Path] = None,
    ) -> None:
        self.modules_dir = Path(modules_dir)
        self.home_dir = Path(home_dir)
        self.legacy_dir = (
            Path(legacy_dir) if legacy_dir else self.home_dir / "legacy"
        )

    @classmethod
    def from_config(cls, config: FluxConfig) -> "ModuleResolver":
        return cls(config.MODULES_DIR, config.HOME_DIR, config.LEGACY_DIR)

    @property
    def search_dirs(self) -> List[Path]:
        """Directories scanned by discover(), highest priority first."""
        return [self.modules_dir, self.home_dir]

    def candidates(self, name: str) -> List[Path]:
        """Candidate paths for ``name`` in priority order."""
        filename = f"{MODULE_PREFIX}{name}{MODULE_SUFFIX}"
        return [
            self.modules_dir / filename,
            self.home_dir / filename,
            self.legacy_dir / f"{name}.sh",
            self.home_dir / f"{name}.sh",
        ]

    def resolve(self, name: str) -> ModuleDescriptor:
        """Return the first readable candidate for ``name``."""
        searched = []
        if name and "/" not in name and name not in (".", ".."):
            searched = self.candidates(name)
            for path in searched:
                if _is_readable_file(path):
                    logger.debug(f"Resolved module {name} -> {path}")
                    return ModuleDescriptor.from_path(name, path)
        raise ModuleNotFound(name, searched)

    def discover(self) -> List[ModuleDescriptor]:
        """All modules following the naming convention, sorted by name."""
        found: Dict[str, ModuleDescriptor] = {}
        for directory in self.search_dirs:
            if not directory.is_dir():
                continue
            pattern = f"{MODULE_PREFIX}*{MODULE_SUFFIX}"
            for path in sorted(directory.glob(pattern)):
                name = module_name_from_filename(path.name)
                if not name or name in found or not path.is_file():
                    continue
                found[name] = ModuleDescriptor.from_path(name, path)
        return [found[name] for name in sorted(found)]


class ModuleRegistry:
    """
    Explicit name -> module map.

    Modules registered by the caller take precedence over anything the
    resolver finds on disk.
    """

    def __init__(self, resolver: ModuleResolver) -> None:
        self.resolver = resolver
        self._modules: Dict[str, ModuleDescriptor] = {}

    def register(self, descriptor: ModuleDescriptor) -> None:
        if descriptor.name in self._modules:
            logger.warning(f"Module {descriptor.name} registered twice; replacing")
        self._modules[descriptor.name] = descriptor

    def register_path(self, name: str, path: Path) -> ModuleDescriptor:
        descriptor = ModuleDescriptor.from_path(name, Path(path))
        self.register(descriptor)
        return descriptor

    def register_all(self, descriptors: Iterable[ModuleDescriptor]) -> None:
        for descriptor in descriptors:
            self.register(descriptor)

    def __contains__(self, name: str) -> bool:
        return name in self._modules

    def get(self, name: str) -> ModuleDescriptor:
        """Look up ``name``, falling back to the resolver."""
        if name in self._modules:
            return self._modules[name]
        return self.resolver.resolve(name)

    def all(self) -> List[ModuleDescriptor]:
        """Registered and discovered modules, sorted by name."""
        merged = {d.name: d for d in self.resolver.discover()}
        merged.update(self._modules)
        return [merged[name] for name in sorted(merged)]
