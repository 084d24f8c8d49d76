"""
System collaborators: command execution, package management, service
control and the read-only status report.
"""

import logging
import os
import platform
import shutil
import socket
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import psutil
from rich import box
from rich.panel import Panel
from rich.table import Table

from flux.theme import NordColors, console

logger = logging.getLogger("flux")

COMMAND_TIMEOUT: int = 300
OS_RELEASE: Path = Path("/etc/os-release")
REBOOT_REQUIRED_MARKER: Path = Path("/var/run/reboot-required")
INTERNET_TEST_HOSTS: List[str] = ["8.8.8.8", "1.1.1.1", "208.67.222.222"]
KEY_SERVICES: List[str] = [
    "ssh",
    "sshd",
    "ufw",
    "firewalld",
    "fail2ban",
    "docker",
    "netdata",
]

CommandRunner = Callable[..., subprocess.CompletedProcess]


# ----------------------------------------------------------------
# Command Execution Helpers
# ----------------------------------------------------------------
def run_command(
    cmd: Sequence[str],
    check: bool = False,
    capture_output: bool = True,
    timeout: Optional[int] = COMMAND_TIMEOUT,
) -> subprocess.CompletedProcess:
    """Execute a system command, logging failures."""
    logger.debug(f"Running command: {' '.join(cmd)}")
    try:
        return subprocess.run(
            list(cmd),
            check=check,
            text=True,
            capture_output=capture_output,
            timeout=timeout,
        )
    except subprocess.CalledProcessError as e:
        logger.debug(f"Command failed: {' '.join(cmd)} (exit {e.returncode})")
        if e.stderr:
            logger.debug(f"Stderr: {e.stderr.strip()}")
        raise
    except subprocess.TimeoutExpired:
        logger.warning(f"Command timed out after {timeout} seconds: {' '.join(cmd)}")
        raise


def command_exists(cmd: str) -> bool:
    return shutil.which(cmd) is not None


def is_root() -> bool:
    return os.geteuid() == 0


def has_systemd() -> bool:
    return command_exists("systemctl")


def _privileged(cmd: List[str]) -> List[str]:
    """Prefix ``cmd`` with sudo when not running as root."""
    if not is_root() and command_exists("sudo"):
        return ["sudo"] + cmd
    return cmd


def _succeeds(runner: CommandRunner, cmd: List[str], **kwargs) -> bool:
    try:
        return runner(cmd, **kwargs).returncode == 0
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"{' '.join(cmd)}: {e}")
        return False


# ----------------------------------------------------------------
# Package Management
# ----------------------------------------------------------------
PACKAGE_MANAGERS: Dict[str, Dict[str, List[str]]] = {
    "apt": {
        "binary": ["apt-get"],
        "update": ["apt-get", "update", "-qq"],
        "install": ["apt-get", "install", "-y"],
        "query": ["dpkg-query", "-W", "-f=${Status}"],
        "upgradable": ["apt", "list", "--upgradable"],
    },
    "dnf": {
        "binary": ["dnf"],
        "update": ["dnf", "makecache", "-q"],
        "install": ["dnf", "install", "-y"],
        "query": ["rpm", "-q"],
        "upgradable": ["dnf", "check-update", "-q"],
    },
    "yum": {
        "binary": ["yum"],
        "update": ["yum", "makecache", "-q"],
        "install": ["yum", "install", "-y"],
        "query": ["rpm", "-q"],
        "upgradable": ["yum", "check-update", "-q"],
    },
    "zypper": {
        "binary": ["zypper"],
        "update": ["zypper", "--non-interactive", "refresh"],
        "install": ["zypper", "--non-interactive", "install"],
        "query": ["rpm", "-q"],
        "upgradable": [],
    },
    "pacman": {
        "binary": ["pacman"],
        "update": ["pacman", "-Sy", "--noconfirm"],
        "install": ["pacman", "-S", "--noconfirm"],
        "query": ["pacman", "-Q"],
        "upgradable": ["pacman", "-Qu"],
    },
}


def detect_package_manager() -> Optional[str]:
    """First supported package manager found on PATH."""
    for name, commands in PACKAGE_MANAGERS.items():
        if command_exists(commands["binary"][0]):
            return name
    return None


def count_upgradable(manager: str, output: str) -> int:
    """Count pending updates in the output of the manager's listing command."""
    lines = [line for line in output.splitlines() if line.strip()]
    if manager == "apt":
        return sum(1 for line in lines if "upgradable from" in line)
    if manager in ("dnf", "yum"):
        return sum(
            1
            for line in lines
            if not line.startswith((" ", "Last metadata", "Obsoleting"))
        )
    return len(lines)


class PackageManager:
    """Thin wrapper over the distribution package manager."""

    def __init__(self, name: str, runner: CommandRunner = run_command) -> None:
        if name not in PACKAGE_MANAGERS:
            raise ValueError(f"Unsupported package manager: {name}")
        self.name = name
        self.commands = PACKAGE_MANAGERS[name]
        self.runner = runner

    @classmethod
    def detect(cls, runner: CommandRunner = run_command) -> Optional["PackageManager"]:
        name = detect_package_manager()
        return cls(name, runner) if name else None

    def update(self) -> bool:
        """Refresh package metadata."""
        logger.info(f"Updating package lists ({self.name})")
        return _succeeds(self.runner, _privileged(list(self.commands["update"])))

    def install(self, package: str) -> bool:
        logger.info(f"Installing package: {package}")
        cmd = _privileged(list(self.commands["install"]) + [package])
        if _succeeds(self.runner, cmd):
            return True
        logger.error(f"Failed to install package: {package}")
        return False

    def is_installed(self, package: str) -> bool:
        cmd = list(self.commands["query"]) + [package]
        try:
            result = self.runner(cmd)
        except (OSError, subprocess.SubprocessError):
            return False
        if result.returncode != 0:
            return False
        if self.name == "apt":
            return "install ok installed" in (result.stdout or "")
        return True

    def upgradable_count(self) -> Optional[int]:
        """Number of pending updates, or None when it cannot be determined."""
        cmd = list(self.commands["upgradable"])
        if not cmd:
            return None
        try:
            result = self.runner(cmd)
        except (OSError, subprocess.SubprocessError):
            return None
        # dnf/yum check-update exits 100 when updates are available
        if result.returncode not in (0, 100):
            return None
        return count_upgradable(self.name, result.stdout or "")


# ----------------------------------------------------------------
# Service Control
# ----------------------------------------------------------------
class ServiceControl:
    """systemd service queries and restarts."""

    def __init__(self, runner: CommandRunner = run_command) -> None:
        self.runner = runner

    def exists(self, service: str) -> bool:
        try:
            result = self.runner(
                ["systemctl", "list-unit-files", f"{service}.service", "--no-legend"]
            )
        except (OSError, subprocess.SubprocessError):
            return False
        return any(
            line.split()[0] == f"{service}.service"
            for line in (result.stdout or "").splitlines()
            if line.strip()
        )

    def is_active(self, service: str) -> bool:
        return _succeeds(self.runner, ["systemctl", "is-active", "--quiet", service])

    def restart(self, service: str) -> bool:
        logger.info(f"Restarting service: {service}")
        if _succeeds(self.runner, _privileged(["systemctl", "restart", service])):
            return True
        logger.error(f"Failed to restart service: {service}")
        return False


# ----------------------------------------------------------------
# Reboot Management
# ----------------------------------------------------------------
def reboot_required(marker: Path = REBOOT_REQUIRED_MARKER) -> bool:
    return Path(marker).exists()


def reboot_system(runner: CommandRunner = run_command) -> bool:
    logger.info("Rebooting system as requested by user")
    cmd = ["systemctl", "reboot"] if has_systemd() else ["reboot"]
    return _succeeds(runner, _privileged(cmd), capture_output=False)


# ----------------------------------------------------------------
# System Status
# ----------------------------------------------------------------
def detect_distro(os_release: Path = OS_RELEASE) -> str:
    """Distribution ID from os-release, falling back to marker files."""
    info = parse_os_release(os_release)
    if info.get("ID"):
        return info["ID"]
    if Path("/etc/redhat-release").exists():
        return "rhel"
    if Path("/etc/debian_version").exists():
        return "debian"
    return "unknown"


def parse_os_release(path: Path = OS_RELEASE) -> Dict[str, str]:
    values: Dict[str, str] = {}
    try:
        text = Path(path).read_text()
    except OSError:
        return values
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep and key.strip() and not key.startswith("#"):
            values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def parse_default_gateway(output: str) -> Optional[str]:
    """Gateway address from ``ip route show default`` output."""
    for line in output.splitlines():
        parts = line.split()
        if parts[:1] == ["default"] and "via" in parts:
            index = parts.index("via") + 1
            if index < len(parts):
                return parts[index]
    return None


def format_uptime(seconds: float) -> str:
    days = int(seconds // 86400)
    hours = int((seconds % 86400) // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{days}d {hours:02d}h {minutes:02d}m"


def check_internet(
    hosts: Sequence[str] = INTERNET_TEST_HOSTS, runner: CommandRunner = run_command
) -> bool:
    for host in hosts:
        if _succeeds(runner, ["ping", "-c", "1", "-W", "2", host], timeout=5):
            return True
    logger.warning("No internet connectivity detected")
    return False


def _primary_ip(runner: CommandRunner) -> Optional[str]:
    try:
        result = runner(["hostname", "-I"])
        if result.returncode == 0 and result.stdout.split():
            return result.stdout.split()[0]
    except (OSError, subprocess.SubprocessError):
        pass
    try:
        interfaces = psutil.net_if_addrs()
    except OSError:
        return None
    for name, addresses in interfaces.items():
        if name == "lo":
            continue
        for addr in addresses:
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                return addr.address
    return None


def _default_gateway(runner: CommandRunner) -> Optional[str]:
    try:
        result = runner(["ip", "route", "show", "default"])
    except (OSError, subprocess.SubprocessError):
        return None
    return parse_default_gateway(result.stdout or "")


def _usage(used: float, total: float, percent: float) -> str:
    return f"{used / 1024 ** 3:.1f}G/{total / 1024 ** 3:.1f}G ({percent:.0f}%)"


@dataclass
class SystemStatus:
    """Snapshot of the host for the status report."""

    os_name: str = "Unknown"
    kernel: str = "Unknown"
    architecture: str = "Unknown"
    hostname: str = "Unknown"
    uptime: str = "Unknown"
    load_average: str = "Unknown"
    memory: str = "Unknown"
    disk: str = "Unknown"
    primary_ip: Optional[str] = None
    gateway: Optional[str] = None
    internet: bool = False
    services: Dict[str, bool] = field(default_factory=dict)
    reboot_required: bool = False
    package_manager: Optional[str] = None
    updates_available: Optional[int] = None


def gather_status(
    runner: CommandRunner = run_command,
    package_manager: Optional[PackageManager] = None,
    services: Optional[ServiceControl] = None,
    check_network: bool = True,
) -> SystemStatus:
    """Collect the status report. Every probe is best-effort."""
    status = SystemStatus()

    status.os_name = parse_os_release().get("PRETTY_NAME") or ""
    if not status.os_name:
        distro = detect_distro()
        status.os_name = platform.platform() if distro == "unknown" else distro
    uname = platform.uname()
    status.kernel = uname.release or "Unknown"
    status.architecture = uname.machine or "Unknown"
    status.hostname = socket.getfqdn() or socket.gethostname()

    try:
        status.uptime = format_uptime(time.time() - psutil.boot_time())
    except (OSError, RuntimeError) as e:
        logger.debug(f"Uptime unavailable: {e}")
    try:
        status.load_average = " ".join(f"{x:.2f}" for x in os.getloadavg())
    except OSError as e:
        logger.debug(f"Load average unavailable: {e}")
    try:
        mem = psutil.virtual_memory()
        status.memory = _usage(mem.used, mem.total, mem.percent)
    except (OSError, RuntimeError) as e:
        logger.debug(f"Memory usage unavailable: {e}")
    try:
        disk = psutil.disk_usage("/")
        status.disk = _usage(disk.used, disk.total, disk.percent)
    except (OSError, RuntimeError) as e:
        logger.debug(f"Disk usage unavailable: {e}")

    status.primary_ip = _primary_ip(runner)
    status.gateway = _default_gateway(runner)
    if check_network:
        status.internet = check_internet(runner=runner)

    if has_systemd():
        services = services or ServiceControl(runner)
        for service in KEY_SERVICES:
            if services.exists(service):
                status.services[service] = services.is_active(service)

    status.reboot_required = reboot_required()

    if package_manager is None:
        package_manager = PackageManager.detect(runner)
    if package_manager is not None:
        status.package_manager = package_manager.name
        status.updates_available = package_manager.upgradable_count()
    return status


def display_status(status: SystemStatus) -> None:
    """Render the status report with Rich tables."""
    table = Table(show_header=False, box=box.SIMPLE, expand=False)
    table.add_column("Item", style=f"bold {NordColors.FROST_2}")
    table.add_column("Value", style=NordColors.SNOW_STORM_1)

    table.add_row("[header]System Information[/header]", "")
    table.add_row("OS", status.os_name)
    table.add_row("Kernel", status.kernel)
    table.add_row("Architecture", status.architecture)
    table.add_row("Hostname", status.hostname)
    table.add_row("Uptime", status.uptime)

    table.add_row("", "")
    table.add_row("[header]Resource Usage[/header]", "")
    table.add_row("CPU Load", status.load_average)
    table.add_row("Memory", status.memory)
    table.add_row("Disk (/)", status.disk)

    table.add_row("", "")
    table.add_row("[header]Network[/header]", "")
    table.add_row("Primary IP", status.primary_ip or "Not configured")
    table.add_row("Gateway", status.gateway or "Not configured")
    table.add_row(
        "Internet",
        "[success]Connected[/success]"
        if status.internet
        else "[error]Disconnected[/error]",
    )

    if status.services:
        table.add_row("", "")
        table.add_row("[header]Key Services[/header]", "")
        for service, active in status.services.items():
            table.add_row(
                service,
                "[success]active[/success]" if active else "[warning]inactive[/warning]",
            )

    table.add_row("", "")
    table.add_row("[header]System Updates[/header]", "")
    if status.reboot_required:
        table.add_row("Reboot", "[warning]⚠ Reboot required[/warning]")
    if status.package_manager is None or status.updates_available is None:
        table.add_row("Updates", "Check manually (unsupported package manager)")
    elif status.updates_available > 0:
        table.add_row(
            "Updates", f"[warning]{status.updates_available} updates available[/warning]"
        )
    else:
        table.add_row("Updates", "[success]✓ System up to date[/success]")

    console.print(
        Panel(
            table,
            title="[banner]System Status[/banner]",
            border_style=NordColors.FROST_3,
            box=box.ROUNDED,
        )
    )
