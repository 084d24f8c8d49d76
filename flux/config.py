"""
Framework configuration.

Settings live in a flat ``KEY=VALUE`` file (``~/.config/flux/flux.conf`` by
default). Directory locations come from the environment so that a checkout
can be run in place.
"""

import ipaddress
import logging
import os
import re
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from flux.errors import ConfigError

logger = logging.getLogger("flux")

CONFIG_FILENAME: str = "flux.conf"
KEY_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
UNSAFE_VALUE_CHARS = ('"', "\n", "\r")

_TRUE_VALUES = ("true", "yes", "on", "1")
_FALSE_VALUES = ("false", "no", "off", "0")


# ----------------------------------------------------------------
# Value Validation
# ----------------------------------------------------------------
def validate_ip(value: str) -> bool:
    """Return True for a dotted-quad IPv4 address."""
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def validate_port(value: int) -> bool:
    return 1 <= value <= 65535


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


# Key -> (check, human readable constraint)
VALIDATORS: Dict[str, Tuple[Callable[[Any], bool], str]] = {
    "LOG_LEVEL": (lambda v: 0 <= v <= 3, "must be between 0 and 3"),
    "MODULE_TIMEOUT": (lambda v: v >= 0, "must be zero or a positive number"),
    "DEFAULT_SSH_PORT": (validate_port, "must be a port between 1 and 65535"),
    "DEFAULT_DNS_PRIMARY": (validate_ip, "must be an IPv4 address"),
    "DEFAULT_DNS_SECONDARY": (validate_ip, "must be an IPv4 address"),
}


# ----------------------------------------------------------------
# Data Structures
# ----------------------------------------------------------------
@dataclass
class FluxConfig:
    """Configuration for the Flux framework."""

    # Values read from flux.conf
    LOG_LEVEL: int = 1  # 0=debug, 1=info, 2=warn, 3=error
    LOGFILE: str = "/var/log/flux-setup.log"
    USE_COLORS: bool = True
    AUTO_UPDATE_MODULES: bool = False
    MODULE_TIMEOUT: int = 300
    DEFAULT_DNS_PRIMARY: str = "1.1.1.1"
    DEFAULT_DNS_SECONDARY: str = "8.8.8.8"
    DEFAULT_SSH_PORT: int = 22
    AUTO_SECURITY_UPDATES: bool = True

    # Directory layout, resolved from the environment when left unset
    HOME_DIR: Optional[Path] = None
    MODULES_DIR: Optional[Path] = None
    LEGACY_DIR: Optional[Path] = None
    CONFIG_DIR: Optional[Path] = None

    # Keys present in the file that the framework does not know about
    EXTRA: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        env = os.environ
        if self.HOME_DIR is None:
            self.HOME_DIR = Path(env.get("FLUX_HOME", os.getcwd()))
        if self.MODULES_DIR is None:
            self.MODULES_DIR = Path(
                env.get("FLUX_MODULES_DIR", str(self.HOME_DIR / "modules"))
            )
        if self.LEGACY_DIR is None:
            self.LEGACY_DIR = Path(
                env.get("FLUX_LEGACY_DIR", str(self.HOME_DIR / "legacy"))
            )
        if self.CONFIG_DIR is None:
            self.CONFIG_DIR = Path(
                env.get(
                    "FLUX_CONFIG_DIR", str(Path.home() / ".config" / "flux")
                )
            )

    @property
    def CONFIG_FILE(self) -> Path:
        return Path(self.CONFIG_DIR) / CONFIG_FILENAME

    @property
    def log_level(self) -> int:
        """The LOG_LEVEL setting as a ``logging`` level."""
        return {
            0: logging.DEBUG,
            1: logging.INFO,
            2: logging.WARNING,
            3: logging.ERROR,
        }.get(self.LOG_LEVEL, logging.INFO)

    def apply(self, key: str, raw: str) -> None:
        """
        Set ``key`` from its textual value.

        Raises ConfigError when the value cannot be converted or fails
        validation. Unknown keys are stored in EXTRA untouched.
        """
        settings = _settings()
        if key not in settings:
            self.EXTRA[key] = raw
            return

        kind = settings[key]
        try:
            if kind is bool:
                value: Any = parse_bool(raw)
            elif kind is int:
                value = int(raw.strip())
            else:
                value = raw.strip()
        except ValueError as e:
            raise ConfigError(f"Invalid value for {key}: {raw!r} ({e})")

        check = VALIDATORS.get(key)
        if check and not check[0](value):
            raise ConfigError(f"Invalid value for {key}: {raw!r} ({check[1]})")
        setattr(self, key, value)

    def to_environment(self) -> Dict[str, str]:
        """Settings as environment variables for module subprocesses."""
        env: Dict[str, str] = {}
        for key in _settings():
            value = getattr(self, key)
            if isinstance(value, bool):
                env[key] = "true" if value else "false"
            else:
                env[key] = str(value)
        env.update(self.EXTRA)
        env["FLUX_HOME"] = str(self.HOME_DIR)
        env["FLUX_MODULES_DIR"] = str(self.MODULES_DIR)
        env["FLUX_LEGACY_DIR"] = str(self.LEGACY_DIR)
        env["FLUX_CONFIG_DIR"] = str(self.CONFIG_DIR)
        return env


def _settings() -> Dict[str, type]:
    """File-backed settings and their value types."""
    return {
        f.name: f.type for f in fields(FluxConfig) if f.type in (int, bool, str)
    }


# ----------------------------------------------------------------
# File Handling
# ----------------------------------------------------------------
def default_config_text() -> str:
    generated = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    defaults = FluxConfig()
    return f"""# Flux Framework Configuration
# Generated: {generated}

# Logging Configuration
LOG_LEVEL={defaults.LOG_LEVEL}  # 0=debug, 1=info, 2=warn, 3=error
LOGFILE="{defaults.LOGFILE}"

# Color Output
USE_COLORS=true

# Module Settings
AUTO_UPDATE_MODULES=false
MODULE_TIMEOUT={defaults.MODULE_TIMEOUT}

# Network Defaults
DEFAULT_DNS_PRIMARY="{defaults.DEFAULT_DNS_PRIMARY}"
DEFAULT_DNS_SECONDARY="{defaults.DEFAULT_DNS_SECONDARY}"

# SSH Defaults
DEFAULT_SSH_PORT="{defaults.DEFAULT_SSH_PORT}"

# Update Settings
AUTO_SECURITY_UPDATES=true
"""


def _strip_value(raw: str) -> str:
    """Remove surrounding quotes or a trailing inline comment."""
    value = raw.strip()
    if value[:1] in ('"', "'"):
        quote = value[0]
        end = value.find(quote, 1)
        if end == -1:
            raise ValueError("unterminated quote")
        return value[1:end]
    if "#" in value:
        value = value.split("#", 1)[0]
    return value.strip()


def parse_config_text(text: str) -> Dict[str, str]:
    """
    Parse flux.conf content into an ordered mapping of raw values.

    Raises ConfigError on the first malformed line.
    """
    values: Dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), 1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export "):].lstrip()
        key, sep, raw = stripped.partition("=")
        key = key.strip()
        if not sep or not KEY_PATTERN.match(key):
            raise ConfigError(f"Syntax error on line {lineno}: {line!r}")
        try:
            values[key] = _strip_value(raw)
        except ValueError as e:
            raise ConfigError(f"Syntax error on line {lineno}: {e}")
    return values


def init_config(config_file: Path) -> bool:
    """Write the default configuration if none exists. Returns True if created."""
    config_file = Path(config_file)
    if config_file.exists():
        return False
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(default_config_text())
    except OSError as e:
        raise ConfigError(f"Cannot create configuration {config_file}: {e}")
    logger.info(f"Created default configuration: {config_file}")
    return True


def load_config(
    config_file: Optional[Path] = None, create: bool = True
) -> FluxConfig:
    """
    Load the configuration, creating the default file on first use.

    A file with syntax errors is ignored as a whole; a single invalid value
    only falls back to its default.
    """
    config = FluxConfig()
    path = Path(config_file) if config_file else config.CONFIG_FILE
    if config_file:
        config.CONFIG_DIR = path.parent

    if create:
        try:
            init_config(path)
        except ConfigError as e:
            logger.warning(str(e))

    if not path.is_file():
        return config

    try:
        values = parse_config_text(path.read_text())
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Cannot read configuration {path}: {e}; using defaults")
        return config
    except ConfigError as e:
        logger.warning(f"Configuration file has syntax errors, using defaults: {e}")
        return config

    for key, raw in values.items():
        try:
            config.apply(key, raw)
        except ConfigError as e:
            logger.warning(f"{e}; keeping default {getattr(config, key)!r}")
    logger.debug(f"Loaded configuration from {path}")
    return config


def save_config(config_file: Path, key: str, value: str) -> None:
    """Set ``key`` in the configuration file, replacing any existing value."""
    if not KEY_PATTERN.match(key):
        raise ConfigError(f"Invalid configuration key: {key}")
    if any(c in value for c in UNSAFE_VALUE_CHARS):
        raise ConfigError(
            f"Invalid value for {key}: quotes and line breaks are not allowed"
        )
    # Validate known keys before touching the file
    FluxConfig().apply(key, value)

    config_file = Path(config_file)
    entry = f'{key}="{value}"'
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        lines = config_file.read_text().splitlines() if config_file.exists() else []
        pattern = re.compile(rf"^\s*(export\s+)?{re.escape(key)}\s*=")
        for i, line in enumerate(lines):
            if pattern.match(line):
                lines[i] = entry
                break
        else:
            lines.append(entry)
        config_file.write_text("\n".join(lines) + "\n")
    except OSError as e:
        raise ConfigError(f"Cannot write configuration {config_file}: {e}")
    logger.debug(f"Saved config: {key}={value}")


def merge_environment(
    config: FluxConfig, base: Optional[Mapping[str, str]] = None
) -> Dict[str, str]:
    """Return ``base`` (default: os.environ) overlaid with the config values."""
    env = dict(os.environ if base is None else base)
    env.update(config.to_environment())
    return env
