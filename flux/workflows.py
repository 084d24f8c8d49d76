"""
Workflows: named, ordered lists of modules run one after another.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Callable, List, Mapping, Optional, Protocol, Sequence, Tuple

from rich import box
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from flux.errors import UnknownWorkflow
from flux.executor import ExecutionResult, ModuleStatus
from flux.system import REBOOT_REQUIRED_MARKER, reboot_required, reboot_system
from flux.theme import (
    NordColors,
    console,
    create_header,
    print_error,
    print_separator,
    print_skipped,
    print_success,
    print_warning,
)

logger = logging.getLogger("flux")


@dataclass(frozen=True)
class Workflow:
    name: str
    modules: Tuple[str, ...]
    description: str = "No description"


def _workflow(name: str, modules: str, description: str) -> Workflow:
    return Workflow(name, tuple(modules.split(",")), description)


WORKFLOWS: Mapping[str, Workflow] = MappingProxyType(
    {
        w.name: w
        for w in (
            _workflow(
                "essential",
                "update,certs,sysctl,ssh",
                "Basic system setup (updates, certs, kernel hardening, SSH)",
            ),
            _workflow(
                "complete",
                "update,locale,hostname,user,certs,sysctl,ssh,zsh,motd,netdata",
                "Full system configuration with all modules",
            ),
            _workflow(
                "security",
                "update,certs,sysctl,ssh,firewall",
                "Security-focused hardening workflow",
            ),
            _workflow("development", "update,zsh", "Development environment setup"),
            _workflow("monitoring", "update,netdata", "Monitoring tools installation"),
        )
    }
)


def get_workflow(
    name: str, workflows: Mapping[str, Workflow] = WORKFLOWS
) -> Workflow:
    try:
        return workflows[name]
    except KeyError:
        raise UnknownWorkflow(name, workflows.keys())


def display_workflows(workflows: Mapping[str, Workflow] = WORKFLOWS) -> None:
    table = Table(
        title="Available Workflows",
        style="banner",
        box=box.ROUNDED,
        title_style=f"bold {NordColors.FROST_2}",
    )
    table.add_column("Workflow", style=f"bold {NordColors.FROST_1}")
    table.add_column("Description", style=NordColors.SNOW_STORM_1)
    table.add_column("Count", justify="right", style=NordColors.FROST_3)
    table.add_column("Modules", style=NordColors.FROST_2)
    for name in sorted(workflows):
        workflow = workflows[name]
        table.add_row(
            name,
            workflow.description,
            str(len(workflow.modules)),
            ", ".join(workflow.modules),
        )
    console.print(table)


# ----------------------------------------------------------------
# Execution
# ----------------------------------------------------------------
class Runner(Protocol):
    def run(self, name: str, args: Sequence[str] = ()) -> ExecutionResult: ...


ConfirmFunc = Callable[[str, bool], bool]


def ask_confirm(question: str, default: bool) -> bool:
    return Confirm.ask(question, default=default, console=console)


@dataclass
class WorkflowResult:
    """Tally and per-step outcome of one workflow run."""

    workflow: str
    steps: List[ExecutionResult] = field(default_factory=list)
    duration: float = 0.0
    cancelled: bool = False
    aborted: bool = False
    reboot_needed: bool = False

    def _count(self, status: ModuleStatus) -> int:
        return sum(1 for step in self.steps if step.status == status)

    @property
    def completed(self) -> int:
        return self._count(ModuleStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(ModuleStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(ModuleStatus.SKIPPED)

    @property
    def pending(self) -> int:
        return self._count(ModuleStatus.PENDING)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0


class WorkflowExecutor:
    """
    Runs workflows step by step.

    In interactive mode the operator confirms the workflow, each step, and
    whether to go on after a failure. Non-interactive runs continue past
    failures unless ``fail_fast`` is set. A run always ends with a summary;
    nothing is rolled back.
    """

    def __init__(
        self,
        runner: Runner,
        workflows: Mapping[str, Workflow] = WORKFLOWS,
        confirm: ConfirmFunc = ask_confirm,
        fail_fast: bool = False,
        log_file: str = "",
        reboot_marker: Optional[Path] = None,
        reboot: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.runner = runner
        self.workflows = workflows
        self.confirm = confirm
        self.fail_fast = fail_fast
        self.log_file = log_file
        self.reboot_marker = reboot_marker or REBOOT_REQUIRED_MARKER
        self.reboot = reboot or reboot_system

    def execute(self, name: str, non_interactive: bool = False) -> WorkflowResult:
        workflow = get_workflow(name, self.workflows)
        interactive = not non_interactive
        result = WorkflowResult(
            workflow=name,
            steps=[ExecutionResult(module=m) for m in workflow.modules],
        )

        logger.info(f"Executing workflow: {name}")
        console.print(create_header(f"Workflow: {name}"))
        console.print(f"[{NordColors.FROST_2}]{workflow.description}[/]\n")
        console.print(f"This workflow will execute {len(workflow.modules)} modules:")
        for module in workflow.modules:
            console.print(f"  - {module}")
        console.print()

        if interactive and not self.confirm("Proceed with workflow?", True):
            logger.info("Workflow cancelled by user")
            result.cancelled = True
            return result

        start = time.time()
        total = len(result.steps)
        for index, step in enumerate(result.steps, 1):
            print_separator()
            console.print(
                f"[bold {NordColors.SNOW_STORM_2}][Step {index}/{total}] "
                f"Module: {step.module}[/]"
            )
            print_separator()

            if interactive and not self.confirm(f"Execute {step.module} module?", True):
                step.status = ModuleStatus.SKIPPED
                logger.info(f"Skipped module: {step.module}")
                print_skipped(f"Skipped {step.module}")
                continue

            step.status = ModuleStatus.RUNNING
            outcome = self.runner.run(step.module)
            step.status = outcome.status
            step.exit_code = outcome.exit_code
            step.duration = outcome.duration
            step.error = outcome.error

            if step.status == ModuleStatus.COMPLETED:
                continue

            step.status = ModuleStatus.FAILED
            logger.error(f"Module {step.module} failed")
            if interactive:
                if not self.confirm("Continue with remaining modules?", True):
                    logger.warning("Workflow aborted by user")
                    result.aborted = True
                    break
            elif self.fail_fast:
                logger.warning("Workflow aborted after failure (fail-fast)")
                result.aborted = True
                break
            console.print()

        result.duration = time.time() - start
        self.show_summary(result)
        self.check_reboot(result, interactive)
        return result

    def show_summary(self, result: WorkflowResult) -> None:
        logger.info(
            f"Workflow {result.workflow} finished: {result.completed} completed, "
            f"{result.failed} failed, {result.skipped} skipped "
            f"in {result.duration:.0f}s"
        )
        table = Table(box=box.ROUNDED, style="banner")
        table.add_column("Module", style="header")
        table.add_column("Status")
        table.add_column("Details", style=NordColors.SNOW_STORM_1)
        colors = {
            ModuleStatus.PENDING: "debug",
            ModuleStatus.RUNNING: "warning",
            ModuleStatus.COMPLETED: "success",
            ModuleStatus.FAILED: "error",
            ModuleStatus.SKIPPED: "warning",
        }
        for step in result.steps:
            color = colors[step.status]
            details = "Not run" if step.status == ModuleStatus.PENDING else step.message
            table.add_row(
                step.module, f"[{color}]{step.status.value.upper()}[/{color}]", details
            )

        console.print(
            Panel(
                table,
                title=f"[banner]Workflow Summary: {result.workflow}[/banner]",
                subtitle=f"Duration: {result.duration:.0f}s",
                border_style=NordColors.FROST_3,
                box=box.ROUNDED,
            )
        )
        print_success(f"Completed: {result.completed}")
        if result.failed:
            print_error(f"Failed: {result.failed}")
        if result.skipped:
            print_skipped(f"Skipped: {result.skipped}")
        if result.pending:
            print_warning(f"Not run: {result.pending}")
        if result.failed and self.log_file:
            console.print(f"[{NordColors.FROST_3}]See {self.log_file} for details.[/]")

    def check_reboot(self, result: WorkflowResult, interactive: bool) -> None:
        result.reboot_needed = reboot_required(self.reboot_marker)
        if not result.reboot_needed:
            return
        print_warning("A system reboot is recommended to apply all changes.")
        if interactive and self.confirm("Reboot now?", False):
            self.reboot()
        else:
            logger.info("Reboot deferred. Please reboot manually when convenient.")
